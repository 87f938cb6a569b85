"""Build scope trees from test modules without running them."""

import importlib.util
import inspect
import sys
from pathlib import Path
from types import ModuleType

from prefab.declarations import scope_for
from prefab.scope import Scope

DEFAULT_CLASS_PREFIX = "Test"


def load_module(path: Path) -> ModuleType:
    """Import a Python file as a module."""
    module_name = f"prefab_discovered_{path.stem}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot load module from {path}")
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    sys.path.insert(0, str(path.parent))
    try:
        spec.loader.exec_module(module)
    finally:
        sys.path.remove(str(path.parent))
    return module


def _collect_class(cls: type, parent: Scope | None, prefix: str) -> Scope:
    scope = scope_for(cls)
    scope.attach(parent)
    for name, obj in vars(cls).items():
        if inspect.isclass(obj) and name.startswith(prefix):
            _collect_class(obj, scope, prefix)
    return scope


def collect_scopes(path: Path | str, prefix: str = DEFAULT_CLASS_PREFIX) -> list[Scope]:
    """Return the top-level scopes of the test classes in a module.

    Args:
        path: Test module to import.
        prefix: Class name prefix identifying test classes.

    Returns:
        One Scope per top-level test class, with nested classes attached
        as children.
    """
    path = Path(path).resolve()
    module = load_module(path)
    scopes: list[Scope] = []
    for name, obj in vars(module).items():
        if inspect.isclass(obj) and name.startswith(prefix) and obj.__module__ == module.__name__:
            scopes.append(_collect_class(obj, None, prefix))
    return scopes
