"""
Class-body API for declaring fixtures and prefabrication hooks.

Example:
    >>> class TestThings:
    ...     @before_prefabrication
    ...     def start(ctx):
    ...         ctx.events = ["before"]
    ...
    ...     owner = fab(lambda ctx: ctx.store.create(Owner, name="owner1"))
    ...
    ...     @fab
    ...     def thing(ctx):
    ...         return ctx.store.create(Thing, owner_id=ctx.owner.id)
    ...
    ...     def test_owner(self, prefab):
    ...         assert self.thing.owner_id == prefab.owner.id

Every class gets its own Scope, stored on the class itself; nesting of
scopes follows lexical class nesting and is established by the host
framework (see :mod:`prefab.plugin`).
"""

from typing import Any

from prefab.context import current_context
from prefab.errors import UnresolvedFixtureError
from prefab.hooks import Callback
from prefab.scope import Constructor, Scope

SCOPE_ATTRIBUTE = "__prefab_scope__"


def scope_for(owner: Any) -> Scope:
    """Return the Scope of a class (or module), creating it on first use.

    Only the object's own namespace is consulted, so a subclass never
    shares its base class's scope.
    """
    scope = vars(owner).get(SCOPE_ATTRIBUTE)
    if scope is None:
        name = getattr(owner, "__qualname__", None) or getattr(owner, "__name__", repr(owner))
        scope = Scope(name)
        setattr(owner, SCOPE_ATTRIBUTE, scope)
    return scope


class Fabricated:
    """Class attribute produced by :func:`fab`.

    Reading it from a test instance returns the fixture as resolved by the
    context of the test that is currently running.
    """

    def __init__(self, constructor: Constructor) -> None:
        self.constructor = constructor
        self.name: str | None = None
        self.scope: Scope | None = None

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name
        self.scope = scope_for(owner)
        self.scope.declare_fixture(name, self.constructor)

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        if instance is None:
            return self
        ctx = current_context()
        if ctx is None:
            name = self.name or "<unnamed>"
            raise UnresolvedFixtureError(name, None, reason="no test is running")
        return getattr(ctx, self.name)  # type: ignore[arg-type]

    def __repr__(self) -> str:
        return f"fab({self.name!r})"


def fab(constructor: Constructor) -> Fabricated:
    """Declare a prefabricated fixture in a class body.

    Works as a plain call (``owner = fab(lambda ctx: ...)``) or as a
    decorator on a function taking the context.
    """
    return Fabricated(constructor)


class LifecycleCallback:
    """Class attribute registering a prefabrication callback on its class."""

    def __init__(self, callback: Callback, phase: str) -> None:
        self.callback = callback
        self.phase = phase

    def __set_name__(self, owner: type, name: str) -> None:
        scope = scope_for(owner)
        if self.phase == "before":
            scope.register_before_lifecycle(self.callback)
        else:
            scope.register_after_lifecycle(self.callback)

    def __get__(self, instance: Any, owner: type | None = None) -> Callback:
        return self.callback

    def __repr__(self) -> str:
        return f"{self.phase}_prefabrication({self.callback!r})"


def before_prefabrication(callback: Callback) -> LifecycleCallback:
    """Run ``callback`` before fabrication in this class and nested ones."""
    return LifecycleCallback(callback, "before")


def after_prefabrication(callback: Callback) -> LifecycleCallback:
    """Run ``callback`` after fabrication in this class and nested ones."""
    return LifecycleCallback(callback, "after")
