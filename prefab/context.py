"""
Execution context handed to hooks, constructors, and tests.

A FabContext is bound to one scope. Attribute reads look in the context's
scratch state first, then resolve fixtures through the scope chain; writes
always go to scratch state. Hooks use scratch state to pass values to the
tests of their group.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any

from prefab.errors import UnresolvedFixtureError

if TYPE_CHECKING:
    from prefab.lifecycle import LifecycleController
    from prefab.scope import Scope
    from prefab.stores import ObjectStore


CURRENT_CONTEXT: ContextVar[FabContext | None] = ContextVar("prefab_context", default=None)


class FabContext:
    """Receiver for prefabrication callbacks and fixture lookups.

    Example:
        >>> ctx = FabContext(scope, controller)
        >>> ctx.events = ["before"]
        >>> ctx.owner  # resolved through the scope chain
        Owner(id=1, name='owner1')
    """

    __slots__ = ("_scope", "_controller", "_scratch")

    def __init__(
        self,
        scope: Scope | None,
        controller: LifecycleController,
        scratch: dict[str, Any] | None = None,
    ) -> None:
        object.__setattr__(self, "_scope", scope)
        object.__setattr__(self, "_controller", controller)
        object.__setattr__(self, "_scratch", scratch if scratch is not None else {})

    @property
    def scope(self) -> Scope | None:
        return self._scope

    @property
    def store(self) -> ObjectStore:
        return self._controller.store

    @property
    def scratch(self) -> dict[str, Any]:
        return self._scratch

    def bind(self, scope: Scope | None) -> FabContext:
        """Same scratch state, different scope for fixture lookups."""
        return FabContext(scope, self._controller, self._scratch)

    def fork(self, scope: Scope | None) -> FabContext:
        """A context for ``scope`` starting from a copy of this scratch state."""
        return FabContext(scope, self._controller, dict(self._scratch))

    def __getattr__(self, name: str) -> Any:
        scratch = object.__getattribute__(self, "_scratch")
        if name in scratch:
            return scratch[name]
        if name.startswith("_"):
            raise AttributeError(name)
        scope = object.__getattribute__(self, "_scope")
        if scope is None:
            raise UnresolvedFixtureError(name, None)
        return object.__getattribute__(self, "_controller").resolve(scope, name, self)

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_"):
            raise AttributeError(f"Cannot set private attribute '{name}' on a context")
        self._scratch[name] = value

    def __delattr__(self, name: str) -> None:
        try:
            del self._scratch[name]
        except KeyError:
            raise AttributeError(name) from None

    def __dir__(self) -> list[str]:
        names = set(super().__dir__()) | set(self._scratch)
        if self._scope is not None:
            names.update(self._scope.visible_fixtures())
        return sorted(names)

    def __repr__(self) -> str:
        scope_name = self._scope.name if self._scope is not None else None
        return f"FabContext(scope={scope_name!r}, scratch={sorted(self._scratch)})"


def current_context() -> FabContext | None:
    """Context of the test currently running, if any."""
    return CURRENT_CONTEXT.get()


@contextmanager
def context_scope(ctx: FabContext) -> Iterator[None]:
    token = CURRENT_CONTEXT.set(ctx)
    try:
        yield
    finally:
        CURRENT_CONTEXT.reset(token)
