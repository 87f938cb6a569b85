"""
prefab - Prefabricated fixtures for nested test groups.

Fixtures declared with ``fab`` are built once per group run inside a
transaction, re-fetched fresh for every test, and rolled back when the
group finishes.

Usage:
    class TestThings:
        owner = fab(lambda ctx: ctx.store.create(Owner, name="owner1"))

        def test_owner(self, prefab):
            assert prefab.owner.name == "owner1"
"""

from prefab.config import PrefabConfig, PrefabConfigLoader
from prefab.context import FabContext, current_context
from prefab.declarations import after_prefabrication, before_prefabrication, fab, scope_for
from prefab.errors import (
    ConfigurationError,
    ConstructionError,
    DuplicateFixtureError,
    HookError,
    PrefabError,
    RecordNotFoundError,
    StaleFixtureError,
    UnresolvedFixtureError,
)
from prefab.hooks import (
    Hook,
    global_after_prefabrication,
    global_before_prefabrication,
    reset_global_hooks,
)
from prefab.lifecycle import LifecycleController
from prefab.scope import FixtureDescriptor, PersistedRef, RunState, Scope, ScopeState
from prefab.session import FabricationSession
from prefab.stores import InMemoryStore, ObjectStore, Record

__version__ = "0.1.0"

__all__ = [
    # Declarations
    "fab",
    "before_prefabrication",
    "after_prefabrication",
    "scope_for",
    "global_before_prefabrication",
    "global_after_prefabrication",
    "reset_global_hooks",
    # Core
    "Hook",
    "Scope",
    "ScopeState",
    "FixtureDescriptor",
    "PersistedRef",
    "RunState",
    "LifecycleController",
    "FabricationSession",
    "FabContext",
    "current_context",
    # Configuration
    "PrefabConfig",
    "PrefabConfigLoader",
    # Stores
    "ObjectStore",
    "InMemoryStore",
    "Record",
    # Errors
    "PrefabError",
    "ConfigurationError",
    "DuplicateFixtureError",
    "ConstructionError",
    "HookError",
    "UnresolvedFixtureError",
    "StaleFixtureError",
    "RecordNotFoundError",
]
