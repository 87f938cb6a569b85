"""
Configuration for the prefabrication lifecycle.

Settings are a frozen value threaded into the LifecycleController, so they
cannot change once a suite has started. They can come from pytest ini
options, a YAML file, or command-line flags (in increasing precedence).
"""

from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from prefab.errors import ConfigurationError

if TYPE_CHECKING:
    import pytest


class PrefabConfig(BaseModel):
    """Process-wide prefabrication switches.

    Example:
        >>> config = PrefabConfig(reuse_initial_fabrication=True)
        >>> config.fabricate_per_test
        False
    """

    model_config = {"frozen": True, "extra": "forbid"}

    fabricate_per_test: bool = Field(
        default=False,
        description="Construct every fixture freshly for each test instead of once per group",
    )
    reuse_initial_fabrication: bool = Field(
        default=False,
        description="Let the first test use the objects built during fabrication "
        "instead of re-fetching them",
    )
    transactional_tests: bool = Field(
        default=True,
        description="Run each test inside its own transaction, rolled back afterwards",
    )

    def to_yaml(self) -> str:
        """Serialize to YAML."""
        result: str = yaml.dump(
            self.model_dump(mode="json"),
            default_flow_style=False,
            sort_keys=False,
        )
        return result

    @classmethod
    def from_yaml(cls, yaml_str: str) -> "PrefabConfig":
        """Deserialize from YAML."""
        data = yaml.safe_load(yaml_str) or {}
        return cls.model_validate(data)


# Maps settings to (ini name, command-line dest).
PYTEST_OPTIONS: dict[str, tuple[str, str]] = {
    "fabricate_per_test": ("prefab_fabricate_per_test", "prefab_fabricate_per_test"),
    "reuse_initial_fabrication": (
        "prefab_reuse_initial_fabrication",
        "prefab_reuse_initial_fabrication",
    ),
    "transactional_tests": ("prefab_transactional_tests", "prefab_transactional_tests"),
}


class PrefabConfigLoader:
    """Build PrefabConfig values from files, dicts, and pytest options."""

    DEFAULT_FILENAME = "prefab.yaml"

    @classmethod
    def from_yaml(cls, path: str | Path) -> PrefabConfig:
        """
        Load configuration from a YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            PrefabConfig loaded from file
        """
        path = Path(path)
        if not path.exists():
            msg = f"Configuration file not found: {path}"
            raise FileNotFoundError(msg)

        with path.open() as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file {path} must contain a mapping")
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PrefabConfig:
        """
        Create configuration from a dictionary.

        Raises:
            ConfigurationError: On unknown keys or non-boolean values.
        """
        try:
            return PrefabConfig.model_validate(data)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid prefab configuration: {exc}") from exc

    @classmethod
    def from_pytest(cls, config: "pytest.Config") -> PrefabConfig:
        """
        Resolve configuration for a pytest session.

        Ini options are read first, then the YAML file named by
        ``--prefab-config`` or the ``prefab_config`` ini option, then any
        explicit command-line flags.
        """
        data: dict[str, Any] = {}
        for setting, (ini_name, _) in PYTEST_OPTIONS.items():
            data[setting] = config.getini(ini_name)

        config_path = config.getoption("prefab_config_path", default=None) or config.getini(
            "prefab_config"
        )
        if config_path:
            path = Path(config_path)
            if not path.is_absolute():
                path = Path(config.rootpath) / path
            data.update(cls.from_yaml(path).model_dump(exclude_unset=True))

        for setting, (_, dest) in PYTEST_OPTIONS.items():
            value = config.getoption(dest, default=None)
            if value is not None:
                data[setting] = value

        return cls.from_dict(data)

    @classmethod
    def generate_sample_config(cls) -> str:
        """
        Generate a sample YAML configuration file.

        Returns:
            YAML string for sample configuration
        """
        lines = ["# prefab configuration"]
        for name, field_info in PrefabConfig.model_fields.items():
            lines.append(f"# {field_info.description}")
            lines.append(yaml.dump({name: field_info.default}, default_flow_style=False).strip())
        return "\n".join(lines) + "\n"
