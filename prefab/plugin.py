"""
pytest plugin wiring prefab into test collection and execution.

Test classes are groups: a class's scope is attached under the scope of the
class it is nested in. The autouse ``prefab`` fixture hands every test its
context, starting group runs as the test enters their classes. After each
test's teardown, runs of classes the next test is not in are rolled back, so
the next class's fixtures are set up outside them. Group runs still open at
the end of the session are rolled back when ``prefab_session`` is torn down.

Provide a store by overriding the session-scoped ``prefab_store`` fixture in
a conftest; the default is an empty :class:`~prefab.stores.InMemoryStore`.
"""

from collections.abc import Iterator

import pytest

from prefab.config import PrefabConfig, PrefabConfigLoader
from prefab.context import FabContext, context_scope
from prefab.declarations import scope_for
from prefab.errors import ConfigurationError
from prefab.lifecycle import LifecycleController
from prefab.log import configure_logging
from prefab.scope import Scope
from prefab.session import FabricationSession
from prefab.stores import InMemoryStore, ObjectStore

SESSION_KEY = pytest.StashKey[FabricationSession]()


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("prefab", "prefabricated fixtures")
    group.addoption(
        "--prefab-per-test",
        action="store_const",
        const=True,
        default=None,
        dest="prefab_fabricate_per_test",
        help="Construct prefabricated fixtures freshly for every test.",
    )
    group.addoption(
        "--prefab-reuse-initial",
        action="store_const",
        const=True,
        default=None,
        dest="prefab_reuse_initial_fabrication",
        help="Let the first test of a group reuse the fabricated objects.",
    )
    group.addoption(
        "--prefab-no-transactional-tests",
        action="store_const",
        const=False,
        default=None,
        dest="prefab_transactional_tests",
        help="Do not wrap each test in its own transaction.",
    )
    group.addoption(
        "--prefab-config",
        default=None,
        dest="prefab_config_path",
        help="YAML file with prefab settings.",
    )
    group.addoption(
        "--prefab-log-level",
        default=None,
        dest="prefab_log_level",
        help="Log prefab lifecycle events at this level (e.g. DEBUG).",
    )

    parser.addini(
        "prefab_fabricate_per_test",
        type="bool",
        default=False,
        help="Construct prefabricated fixtures freshly for every test.",
    )
    parser.addini(
        "prefab_reuse_initial_fabrication",
        type="bool",
        default=False,
        help="Let the first test of a group reuse the fabricated objects.",
    )
    parser.addini(
        "prefab_transactional_tests",
        type="bool",
        default=True,
        help="Wrap each test in its own transaction.",
    )
    parser.addini("prefab_config", default="", help="YAML file with prefab settings.")


def pytest_configure(config: pytest.Config) -> None:
    try:
        configure_logging(config.getoption("prefab_log_level", default=None) or "WARNING")
    except ConfigurationError as e:
        raise pytest.UsageError(str(e)) from e


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_teardown(item: pytest.Item, nextitem: pytest.Item | None) -> Iterator[None]:
    yield
    session = item.config.stash.get(SESSION_KEY, None)
    if session is not None:
        session.leave_groups(scope_chain(nextitem) if nextitem is not None else [])


def scope_chain(item: pytest.Item) -> list[Scope]:
    """Scopes of the classes enclosing ``item``, outermost first."""
    chain: list[Scope] = []
    parent: Scope | None = None
    for node in item.listchain():
        if isinstance(node, pytest.Class):
            scope = scope_for(node.obj)
            scope.attach(parent)
            chain.append(scope)
            parent = scope
    return chain


@pytest.fixture(scope="session")
def prefab_config(pytestconfig: pytest.Config) -> PrefabConfig:
    """Settings for this session."""
    return PrefabConfigLoader.from_pytest(pytestconfig)


@pytest.fixture(scope="session")
def prefab_store() -> ObjectStore:
    """Store fixtures are fabricated into. Override to use a real database."""
    return InMemoryStore()


@pytest.fixture(scope="session")
def prefab_session(
    pytestconfig: pytest.Config, prefab_store: ObjectStore, prefab_config: PrefabConfig
) -> Iterator[FabricationSession]:
    session = FabricationSession(LifecycleController(prefab_store, prefab_config))
    pytestconfig.stash[SESSION_KEY] = session
    try:
        yield session
    finally:
        del pytestconfig.stash[SESSION_KEY]
        session.close()


@pytest.fixture(autouse=True)
def prefab(
    request: pytest.FixtureRequest, prefab_session: FabricationSession
) -> Iterator[FabContext]:
    """Context of the running test: fixtures and scratch state by attribute."""
    ctx = prefab_session.enter_test(scope_chain(request.node))
    try:
        with context_scope(ctx):
            yield ctx
    finally:
        prefab_session.leave_test()
