"""
Composable before/after prefabrication hooks.

A Hook runs a predecessor, its own callbacks in registration order, then a
successor. Scopes build their before-hook as ``Hook(parent_before, NULL_HOOK)``
and their after-hook as ``Hook(NULL_HOOK, parent_after)``, so ancestor
setup always runs outside a descendant's setup and ancestor teardown-style
callbacks run after the descendant's.

The chains are rooted at two process-wide hooks, registered through
:func:`global_before_prefabrication` and :func:`global_after_prefabrication`.
"""

from collections.abc import Callable
from typing import Any, Protocol

from prefab.errors import ConstructionError, HookError

Callback = Callable[[Any], Any]


class Runnable(Protocol):
    """Anything that can take part in a hook chain."""

    def run(self, context: Any) -> None: ...


class NullHook:
    """Chain terminator; does nothing."""

    def run(self, context: Any) -> None:
        return None

    def __repr__(self) -> str:
        return "NULL_HOOK"


NULL_HOOK = NullHook()


class Hook:
    """A callback list wrapped by a predecessor and a successor.

    Example:
        >>> parent = Hook(NULL_HOOK, NULL_HOOK, label="parent")
        >>> child = Hook(parent, NULL_HOOK, label="child")
        >>> parent.add_callback(lambda ctx: ctx.append("a"))
        >>> child.add_callback(lambda ctx: ctx.append("b"))
        >>> events = []
        >>> child.run(events)
        >>> events
        ['a', 'b']
    """

    def __init__(
        self,
        predecessor: Runnable = NULL_HOOK,
        successor: Runnable = NULL_HOOK,
        callbacks: list[Callback] | None = None,
        label: str = "hook",
    ) -> None:
        """Initialize a hook.

        Args:
            predecessor: Runs before this hook's callbacks.
            successor: Runs after this hook's callbacks.
            callbacks: Callback list to use. The list is shared, not copied,
                so callbacks appended to it later are still run.
            label: Name used in error messages.
        """
        self.predecessor = predecessor
        self.successor = successor
        self.callbacks: list[Callback] = callbacks if callbacks is not None else []
        self.label = label

    def add_callback(self, callback: Callback) -> Callback:
        """Append a callback; returns it so this can be used as a decorator."""
        self.callbacks.append(callback)
        return callback

    def run(self, context: Any) -> None:
        """Run the chain with ``context`` as each callback's only argument.

        Raises:
            HookError: If any callback raises. Remaining callbacks, and the
                rest of the chain, are not run.
        """
        self.predecessor.run(context)
        for callback in list(self.callbacks):
            try:
                callback(context)
            except (ConstructionError, HookError):
                raise
            except Exception as exc:
                raise HookError(self.label, callback, exc) from exc
        self.successor.run(context)

    def __len__(self) -> int:
        return len(self.callbacks)

    def __repr__(self) -> str:
        return f"Hook({self.label!r}, {len(self.callbacks)} callbacks)"


# =============================================================================
# Process-wide hooks
# =============================================================================

_global_before = Hook(NULL_HOOK, NULL_HOOK, label="global before_prefabrication")
_global_after = Hook(NULL_HOOK, NULL_HOOK, label="global after_prefabrication")


def global_before_hook() -> Hook:
    """Root of every scope's before-hook chain."""
    return _global_before


def global_after_hook() -> Hook:
    """Root of every scope's after-hook chain."""
    return _global_after


def global_before_prefabrication(callback: Callback) -> Callback:
    """Register a callback to run before fabrication in every scope."""
    return _global_before.add_callback(callback)


def global_after_prefabrication(callback: Callback) -> Callback:
    """Register a callback to run after fabrication in every scope."""
    return _global_after.add_callback(callback)


def reset_global_hooks() -> None:
    """Drop all process-wide callbacks. Intended for test isolation."""
    _global_before.callbacks.clear()
    _global_after.callbacks.clear()
