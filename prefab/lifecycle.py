"""
Lifecycle controller for group runs.

For each scope with declared fixtures, a run goes through::

    IDLE -> TRANSACTION_OPEN -> FABRICATING -> READY -> ROLLED_BACK
                                     |
                                     +-> FAILED -> ROLLED_BACK

Fabrication happens once per run inside a non-joinable transaction. Tests
see fixtures through :meth:`LifecycleController.resolve`, which re-fetches
each object from the store by its persisted identifier the first time it is
used in a test.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from prefab.config import PrefabConfig
from prefab.context import FabContext
from prefab.errors import (
    ConstructionError,
    HookError,
    StaleFixtureError,
    UnresolvedFixtureError,
)
from prefab.log import get_logger
from prefab.scope import PersistedRef, RunState, Scope, ScopeState

if TYPE_CHECKING:
    from prefab.stores import ObjectStore

logger = get_logger(__name__)


class LifecycleController:
    """Runs fabrication for scopes and resolves fixtures by name.

    Example:
        >>> controller = LifecycleController(InMemoryStore())
        >>> with controller.run(scope) as ctx:
        ...     controller.prepare_test(scope)
        ...     ctx.owner
        Owner(id=1, name='owner1')
    """

    def __init__(self, store: ObjectStore, config: PrefabConfig | None = None) -> None:
        self.store = store
        self._config = config or PrefabConfig()

    @property
    def config(self) -> PrefabConfig:
        return self._config

    @property
    def per_test(self) -> bool:
        return self._config.fabricate_per_test

    def context(self, scope: Scope | None, scratch: dict[str, Any] | None = None) -> FabContext:
        """Create a context bound to ``scope``."""
        return FabContext(scope, self, scratch)

    # -------------------------------------------------------------------------
    # Group runs
    # -------------------------------------------------------------------------

    def start_run(self, scope: Scope, context: FabContext) -> None:
        """Open a transaction and fabricate every fixture declared in ``scope``.

        Scopes without declarations have nothing to run. In per-test mode
        fabrication is deferred to :meth:`fabricate_for_test`.

        Raises:
            HookError: If a prefabrication callback fails.
            ConstructionError: If a constructor fails.
        """
        state = scope.state
        if state is None or self.per_test:
            return
        if state.active or state.run_state is RunState.FAILED:
            raise RuntimeError(f"Scope '{scope.name}' already has a run in progress")

        state.reset()
        self.store.begin_transaction(joinable=False)
        state.transaction_open = True
        state.run_state = RunState.TRANSACTION_OPEN
        logger.info("run_started", scope=scope.name, fixtures=len(state.descriptors))

        try:
            state.run_state = RunState.FABRICATING
            self._fabricate(scope, state, context)
        except Exception as exc:
            state.run_state = RunState.FAILED
            state.error = exc
            state.cache.clear()
            state.persisted.clear()
            logger.warning("run_failed", scope=scope.name, error=str(exc))
            raise

        state.run_state = RunState.READY
        logger.info("run_ready", scope=scope.name)

    def _fabricate(self, scope: Scope, state: ScopeState, context: FabContext) -> None:
        scope.before_hook().run(context)
        for name, descriptor in state.descriptors.items():
            try:
                thing = descriptor.constructor(context)
                ref = PersistedRef(type(thing), self.store.identify(thing))
            except (ConstructionError, HookError):
                raise
            except Exception as exc:
                raise ConstructionError(name, scope.name, exc) from exc
            state.persisted[name] = ref
            if self._config.reuse_initial_fabrication:
                state.cache[name] = thing
            logger.debug(
                "fixture_fabricated",
                scope=scope.name,
                fixture=name,
                model=ref.model.__name__,
                identifier=ref.identifier,
            )
        scope.after_hook().run(context)

    def prepare_test(self, scope: Scope, fresh_run: bool = False) -> None:
        """Clear the per-test cache of ``scope`` before a test runs.

        With ``reuse_initial_fabrication`` the first test after a run starts
        (``fresh_run``) keeps the objects built during fabrication.

        Raises:
            The error that failed this scope's run, if it failed.
        """
        self.check_run(scope)
        if scope.state is None:
            return
        if fresh_run and self._config.reuse_initial_fabrication:
            return
        scope.state.cache.clear()

    def check_run(self, scope: Scope) -> None:
        """Re-raise the error that failed this scope's run, if it failed."""
        state = scope.state
        if state is not None and state.run_state is RunState.FAILED and state.error is not None:
            raise state.error

    def end_run(self, scope: Scope) -> None:
        """Roll back the run's transaction, discarding every write made in it."""
        state = scope.state
        if state is None:
            return
        try:
            if state.transaction_open:
                state.transaction_open = False
                self.store.rollback_transaction()
                logger.info("run_rolled_back", scope=scope.name)
        finally:
            if state.run_state is not RunState.IDLE:
                state.run_state = RunState.ROLLED_BACK
            state.cache.clear()

    @contextmanager
    def run(self, scope: Scope, context: FabContext | None = None) -> Iterator[FabContext]:
        """Start a run and guarantee its rollback on every exit path."""
        if context is None:
            context = self.context(scope)
        try:
            self.start_run(scope, context)
            yield context
        finally:
            self.end_run(scope)

    # -------------------------------------------------------------------------
    # Per-test mode
    # -------------------------------------------------------------------------

    def fabricate_for_test(self, scope: Scope, context: FabContext) -> None:
        """Construct every fixture of ``scope`` for a single test.

        Only used in per-test mode; objects live in the cache until the
        next :meth:`prepare_test`.
        """
        state = scope.state
        if state is None:
            return
        state.run_state = RunState.FABRICATING
        scope.before_hook().run(context)
        for name in state.descriptors:
            if name not in state.cache:
                self._construct_into_cache(scope, state, name, context)
        scope.after_hook().run(context)
        state.run_state = RunState.READY

    def finish_test(self, scope: Scope) -> None:
        """Drop per-test objects once a per-test mode test is over."""
        state = scope.state
        if state is None or not self.per_test:
            return
        state.cache.clear()
        state.run_state = RunState.ROLLED_BACK

    def _construct_into_cache(
        self, scope: Scope, state: ScopeState, name: str, context: FabContext
    ) -> Any:
        try:
            thing = state.descriptors[name].constructor(context.bind(scope))
        except (ConstructionError, HookError):
            raise
        except Exception as exc:
            raise ConstructionError(name, scope.name, exc) from exc
        state.cache[name] = thing
        return thing

    # -------------------------------------------------------------------------
    # Accessor
    # -------------------------------------------------------------------------

    def resolve(self, scope: Scope, name: str, context: FabContext | None = None) -> Any:
        """Return the fixture ``name`` as seen from ``scope``.

        The nearest declaring scope in the ancestor chain wins. Within a
        test the first access re-fetches the object from the store and
        later accesses return the same cached object.

        Raises:
            UnresolvedFixtureError: If no scope in the chain declares
                ``name``, or it is used before being fabricated.
            StaleFixtureError: If the owning run is not active.
        """
        owner = scope.owner_of(name)
        if owner is None or owner.state is None:
            raise UnresolvedFixtureError(name, scope.name)
        state = owner.state

        if name in state.cache:
            return state.cache[name]

        if self.per_test:
            if state.run_state not in (RunState.FABRICATING, RunState.READY):
                raise StaleFixtureError(name, owner.name, state.run_state.value)
            ctx = context if context is not None else self.context(owner)
            return self._construct_into_cache(owner, state, name, ctx)

        if not state.active:
            raise StaleFixtureError(name, owner.name, state.run_state.value)

        ref = state.persisted.get(name)
        if ref is None:
            raise UnresolvedFixtureError(
                name, scope.name, reason="used before it was fabricated"
            )
        thing = self.store.fetch(ref.model, ref.identifier)
        state.cache[name] = thing
        logger.debug("fixture_refetched", scope=owner.name, fixture=name, identifier=ref.identifier)
        return thing

    def __repr__(self) -> str:
        return f"LifecycleController(store={self.store!r}, config={self._config!r})"
