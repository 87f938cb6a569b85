"""
Drives group runs for a linear sequence of tests.

A host framework calls :meth:`FabricationSession.enter_test` with the scope
chain of each test (outermost group first) and :meth:`leave_test` after it.
Between tests it calls :meth:`leave_groups` with the next test's chain, which
rolls back the runs of groups being exited, innermost first. New runs are
started outermost first when a test enters them. :meth:`close` rolls back
whatever is still open.
"""

from collections.abc import Sequence
from dataclasses import dataclass

from prefab.context import FabContext
from prefab.lifecycle import LifecycleController
from prefab.log import get_logger
from prefab.scope import Scope

logger = get_logger(__name__)


@dataclass
class ActiveRun:
    """A group run the session has started and not yet ended."""

    scope: Scope
    context: FabContext


class FabricationSession:
    """Stack of active group runs plus per-test bracketing."""

    def __init__(self, controller: LifecycleController) -> None:
        self.controller = controller
        self._active: list[ActiveRun] = []
        self._chain: list[Scope] = []
        self._test_transaction = False

    @property
    def active_scopes(self) -> list[Scope]:
        return [run.scope for run in self._active]

    def enter_test(self, chain: Sequence[Scope]) -> FabContext:
        """Prepare every scope in ``chain`` for the next test.

        Args:
            chain: The test's enclosing scopes, outermost first.

        Returns:
            The context the test should use.

        Raises:
            ConstructionError, HookError: If a group run that has to start
                for this test fails, or failed earlier for a previous test.
        """
        chain = list(chain)
        started = self._sync_runs(chain)
        self._chain = chain

        for scope in chain:
            self.controller.prepare_test(scope, fresh_run=any(s is scope for s in started))

        config = self.controller.config
        if config.transactional_tests or self.controller.per_test:
            self.controller.store.begin_transaction(joinable=False)
            self._test_transaction = True

        group_context = self._active[-1].context if self._active else None
        innermost = chain[-1] if chain else None
        if group_context is not None:
            test_context = group_context.fork(innermost)
        else:
            test_context = self.controller.context(innermost)

        if self.controller.per_test:
            try:
                for scope in chain:
                    self.controller.fabricate_for_test(scope, test_context.bind(scope))
            except Exception:
                self.leave_test()
                raise

        logger.debug("test_entered", scope=innermost.name if innermost else None)
        return test_context

    def leave_test(self) -> None:
        """Roll back everything the test wrote."""
        if self._test_transaction:
            self._test_transaction = False
            self.controller.store.rollback_transaction()
        for scope in self._chain:
            self.controller.finish_test(scope)

    def close(self) -> None:
        """End every active run, innermost first."""
        if self._test_transaction:
            self.leave_test()
        while self._active:
            run = self._active.pop()
            self.controller.end_run(run.scope)
        self._chain = []

    def leave_groups(self, next_chain: Sequence[Scope]) -> None:
        """End the runs of groups that do not enclose the next test.

        Called between tests, once the finished test has left, so that a
        group is rolled back before anything of the next group is set up.

        Args:
            next_chain: The next test's enclosing scopes, outermost first.
                Empty when no test follows.
        """
        if self._test_transaction:
            self.leave_test()
        shared = self._shared_depth(next_chain)
        while len(self._active) > shared:
            run = self._active.pop()
            self.controller.end_run(run.scope)
        self._chain = self._chain[:shared]

    def _shared_depth(self, chain: Sequence[Scope]) -> int:
        shared = 0
        for run, scope in zip(self._active, chain):
            if run.scope is not scope:
                break
            shared += 1
        return shared

    def _sync_runs(self, chain: list[Scope]) -> list[Scope]:
        shared = self._shared_depth(chain)
        while len(self._active) > shared:
            run = self._active.pop()
            self.controller.end_run(run.scope)

        for scope in chain[shared:]:
            for run in self._active:
                self.controller.check_run(run.scope)
            parent_context = self._active[-1].context if self._active else None
            if parent_context is not None:
                context = parent_context.fork(scope)
            else:
                context = self.controller.context(scope)
            # Pushed before starting so a failed run is still rolled back.
            self._active.append(ActiveRun(scope, context))
            self.controller.start_run(scope, context)
        return chain[shared:]
