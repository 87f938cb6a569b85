"""
Exceptions raised by the prefabrication machinery.

None of these are recovered internally: they propagate to the test
framework, which reports them against the test or group being run.
"""

from typing import Any


class PrefabError(Exception):
    """Base class for all prefab errors."""


# =============================================================================
# Configuration-time errors
# =============================================================================


class ConfigurationError(PrefabError, ValueError):
    """Raised for invalid declarations or configuration changes."""


class DuplicateFixtureError(ConfigurationError):
    """Raised when a fixture name is declared twice in the same scope."""

    def __init__(self, name: str, scope_name: str) -> None:
        self.name = name
        self.scope_name = scope_name
        super().__init__(f"Fixture '{name}' is already declared in scope '{scope_name}'")


# =============================================================================
# Run-time errors
# =============================================================================


class ConstructionError(PrefabError):
    """Raised when a fixture constructor fails during fabrication."""

    def __init__(self, name: str, scope_name: str, cause: BaseException) -> None:
        self.name = name
        self.scope_name = scope_name
        self.cause = cause
        super().__init__(
            f"Fabricating '{name}' in scope '{scope_name}' failed: "
            f"{type(cause).__name__}: {cause}"
        )


class HookError(PrefabError):
    """Raised when a before/after prefabrication callback fails."""

    def __init__(self, label: str, callback: Any, cause: BaseException) -> None:
        self.label = label
        self.callback_name = getattr(callback, "__qualname__", repr(callback))
        self.cause = cause
        super().__init__(
            f"{label} callback '{self.callback_name}' failed: {type(cause).__name__}: {cause}"
        )


class UnresolvedFixtureError(PrefabError, AttributeError):
    """Raised when a name resolves to no fixture in the scope chain.

    Subclasses AttributeError so ``hasattr(ctx, name)`` reports False for
    fixtures that are not visible from the current scope.
    """

    def __init__(self, name: str, scope_name: str | None, reason: str | None = None) -> None:
        self.name = name
        self.scope_name = scope_name
        where = f"scope '{scope_name}'" if scope_name else "the current context"
        message = f"No fixture '{name}' is visible from {where}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class StaleFixtureError(PrefabError, RuntimeError):
    """Raised when a fixture is accessed outside of its owning run."""

    def __init__(self, name: str, scope_name: str, state: str) -> None:
        self.name = name
        self.scope_name = scope_name
        self.state = state
        super().__init__(
            f"Fixture '{name}' of scope '{scope_name}' is not available: run is {state}"
        )


class RecordNotFoundError(PrefabError, LookupError):
    """Raised by object stores when a fetch by identifier finds nothing."""

    def __init__(self, model: type, identifier: Any) -> None:
        self.model = model
        self.identifier = identifier
        super().__init__(f"{model.__name__} with id {identifier!r} not found")
