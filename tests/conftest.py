"""Shared fixtures for the prefab test suite."""

from collections.abc import Iterator

import pytest

from prefab.config import PrefabConfig
from prefab.hooks import reset_global_hooks
from prefab.lifecycle import LifecycleController
from prefab.stores import InMemoryStore

pytest_plugins = ["pytester", "prefab.plugin"]


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def controller(store: InMemoryStore) -> LifecycleController:
    return LifecycleController(store, PrefabConfig())


@pytest.fixture
def clean_global_hooks() -> Iterator[None]:
    """Isolate tests that register process-wide callbacks."""
    reset_global_hooks()
    yield
    reset_global_hooks()
