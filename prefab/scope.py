"""
Scope tree, per-scope state, and fixture descriptors.

A Scope is one node of the group tree: a test class, or any nested group a
host framework wants to model. It owns:

- its own before/after prefabrication callbacks, and the resolved hook
  chains built from them on first use;
- a ScopeState, allocated when the first fixture is declared, holding the
  descriptor table and the run-scoped cache and persisted tables.

Parents are held by weak reference; children are owned by their parent.
"""

import keyword
import weakref
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from prefab.errors import ConfigurationError, DuplicateFixtureError
from prefab.hooks import NULL_HOOK, Callback, Hook, global_after_hook, global_before_hook

Constructor = Callable[[Any], Any]

# Attribute names FabContext uses for itself.
RESERVED_NAMES = frozenset({"store", "scope", "bind", "fork", "scratch"})


class RunState(str, Enum):
    """Lifecycle of one group run.

    - IDLE: never run
    - TRANSACTION_OPEN: transaction begun, nothing fabricated yet
    - FABRICATING: hooks and constructors are running
    - READY: fixtures available to tests
    - ROLLED_BACK: run ended; persisted identifiers are dangling
    - FAILED: a hook or constructor raised; transaction awaits rollback
    """

    IDLE = "idle"
    TRANSACTION_OPEN = "transaction_open"
    FABRICATING = "fabricating"
    READY = "ready"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


ACTIVE_STATES = frozenset({RunState.TRANSACTION_OPEN, RunState.FABRICATING, RunState.READY})


class FixtureDescriptor(BaseModel):
    """A fixture declared directly in one scope."""

    model_config = {"frozen": True, "extra": "forbid"}

    name: str = Field(..., description="Accessor name of the fixture", min_length=1)
    constructor: Callable[[Any], Any] = Field(
        ..., description="Builds the fixture; called with the running context"
    )

    @field_validator("name")
    @classmethod
    def name_is_identifier(cls, v: str) -> str:
        """Validate that the name can be used as an attribute."""
        if not v.isidentifier() or keyword.iskeyword(v):
            raise ValueError(f"Fixture name '{v}' is not a valid identifier")
        if v.startswith("_"):
            raise ValueError(f"Fixture name '{v}' must not start with an underscore")
        if v in RESERVED_NAMES:
            raise ValueError(f"Fixture name '{v}' is reserved")
        return v


@dataclass(frozen=True)
class PersistedRef:
    """Type and identifier of a fabricated object, used to re-fetch it."""

    model: type
    identifier: Any


@dataclass
class ScopeState:
    """Fixture tables of one scope.

    ``descriptors`` is fixed at definition time. ``cache`` and ``persisted``
    belong to the current run: the cache is cleared before every test, the
    persisted table is filled once during fabrication.
    """

    descriptors: dict[str, FixtureDescriptor] = field(default_factory=dict)
    cache: dict[str, Any] = field(default_factory=dict)
    persisted: dict[str, PersistedRef] = field(default_factory=dict)
    run_state: RunState = RunState.IDLE
    transaction_open: bool = False
    error: BaseException | None = None

    @property
    def active(self) -> bool:
        return self.run_state in ACTIVE_STATES

    def reset(self) -> None:
        """Forget everything from a previous run."""
        self.cache.clear()
        self.persisted.clear()
        self.run_state = RunState.IDLE
        self.transaction_open = False
        self.error = None


class Scope:
    """A node in the group tree.

    Example:
        >>> root = Scope("TestThings")
        >>> child = root.child("TestOwned")
        >>> child.declare_fixture("thing", lambda ctx: make_thing())
        >>> [s.name for s in child.lineage()]
        ['TestThings', 'TestOwned']
    """

    def __init__(self, name: str, parent: "Scope | None" = None) -> None:
        self.name = name
        self.children: list[Scope] = []
        self.state: ScopeState | None = None
        self._parent_ref: weakref.ref[Scope] | None = None
        self._attached = False
        self._before_callbacks: list[Callback] = []
        self._after_callbacks: list[Callback] = []
        self._before_hook: Hook | None = None
        self._after_hook: Hook | None = None
        if parent is not None:
            self.attach(parent)

    # -------------------------------------------------------------------------
    # Tree
    # -------------------------------------------------------------------------

    @property
    def parent(self) -> "Scope | None":
        if self._parent_ref is None:
            return None
        return self._parent_ref()

    def attach(self, parent: "Scope | None") -> None:
        """Place this scope under ``parent`` (None means top-level).

        Attaching again to the same parent is a no-op.

        Raises:
            ConfigurationError: If the scope is already attached elsewhere,
                or its hooks were resolved before it was attached.
        """
        if self._attached:
            if parent is not self.parent:
                raise ConfigurationError(
                    f"Scope '{self.name}' is already attached to "
                    f"'{self.parent.name if self.parent else '<top level>'}'"
                )
            return
        if self._before_hook is not None or self._after_hook is not None:
            raise ConfigurationError(
                f"Scope '{self.name}' cannot be attached after its hooks were resolved"
            )
        if parent is not None:
            self._parent_ref = weakref.ref(parent)
            parent.children.append(self)
        self._attached = True

    def child(self, name: str) -> "Scope":
        """Create and return a scope nested in this one."""
        return Scope(name, parent=self)

    def lineage(self) -> list["Scope"]:
        """This scope and its ancestors, outermost first."""
        chain: list[Scope] = []
        scope: Scope | None = self
        while scope is not None:
            chain.append(scope)
            scope = scope.parent
        chain.reverse()
        return chain

    def ancestors(self) -> Iterator["Scope"]:
        """This scope, then each ancestor up to the top level."""
        scope: Scope | None = self
        while scope is not None:
            yield scope
            scope = scope.parent

    # -------------------------------------------------------------------------
    # Hooks
    # -------------------------------------------------------------------------

    def before_hook(self) -> Hook:
        """Resolved before-hook: ancestors' callbacks, then this scope's."""
        if self._before_hook is None:
            parent = self.parent
            predecessor = parent.before_hook() if parent is not None else global_before_hook()
            self._before_hook = Hook(
                predecessor,
                NULL_HOOK,
                callbacks=self._before_callbacks,
                label=f"{self.name} before_prefabrication",
            )
        return self._before_hook

    def after_hook(self) -> Hook:
        """Resolved after-hook: this scope's callbacks, then ancestors'."""
        if self._after_hook is None:
            parent = self.parent
            successor = parent.after_hook() if parent is not None else global_after_hook()
            self._after_hook = Hook(
                NULL_HOOK,
                successor,
                callbacks=self._after_callbacks,
                label=f"{self.name} after_prefabrication",
            )
        return self._after_hook

    def register_before_lifecycle(self, callback: Callback) -> Callback:
        """Add a callback run before fabrication in this scope and below."""
        self._check_not_started("before_prefabrication callback")
        self._before_callbacks.append(callback)
        return callback

    def register_after_lifecycle(self, callback: Callback) -> Callback:
        """Add a callback run after fabrication in this scope and below."""
        self._check_not_started("after_prefabrication callback")
        self._after_callbacks.append(callback)
        return callback

    @property
    def before_callbacks(self) -> list[Callback]:
        return list(self._before_callbacks)

    @property
    def after_callbacks(self) -> list[Callback]:
        return list(self._after_callbacks)

    # -------------------------------------------------------------------------
    # Fixtures
    # -------------------------------------------------------------------------

    def declare_fixture(self, name: str, constructor: Constructor) -> FixtureDescriptor:
        """Declare a fixture visible in this scope and its descendants.

        Args:
            name: Accessor name.
            constructor: Called with the running context; must return an
                object the store can identify.

        Returns:
            The recorded descriptor.

        Raises:
            ConfigurationError: If the name is not a usable identifier, or
                a run of this scope has already started.
            DuplicateFixtureError: If the name is already declared here.
        """
        self._check_not_started(f"fixture '{name}'")
        try:
            descriptor = FixtureDescriptor(name=name, constructor=constructor)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid fixture declaration '{name}': {exc}") from exc

        if self.state is None:
            self.state = ScopeState()
        if name in self.state.descriptors:
            raise DuplicateFixtureError(name, self.name)
        self.state.descriptors[name] = descriptor
        return descriptor

    def declares(self, name: str) -> bool:
        """Whether ``name`` is declared directly in this scope."""
        return self.state is not None and name in self.state.descriptors

    def owner_of(self, name: str) -> "Scope | None":
        """Nearest scope in the ancestor chain that declares ``name``."""
        for scope in self.ancestors():
            if scope.declares(name):
                return scope
        return None

    def visible_fixtures(self) -> list[str]:
        """Names resolvable from this scope, outermost declarations first."""
        names: list[str] = []
        for scope in self.lineage():
            if scope.state is None:
                continue
            for name in scope.state.descriptors:
                if name not in names:
                    names.append(name)
        return names

    def _check_not_started(self, what: str) -> None:
        if self.state is not None and self.state.run_state is not RunState.IDLE:
            raise ConfigurationError(
                f"Cannot register {what} on scope '{self.name}' after its first run"
            )

    def __repr__(self) -> str:
        count = len(self.state.descriptors) if self.state else 0
        return f"Scope({self.name!r}, {count} fixtures)"
