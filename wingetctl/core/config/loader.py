"""
Configuration loader — reads wingetctl.yml into a ToolConfig.

Lookup order: explicit path > WINGETCTL_CONFIG env var > walk up from
the working directory.  No file at all means defaults.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationInfo, field_validator

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "wingetctl.yml"
CONFIG_ENV_VAR = "WINGETCTL_CONFIG"


class ConfigError(Exception):
    """Raised when configuration is invalid or unreadable."""


# Observed across winget builds; not documented upstream and not exhaustive.
_DEFAULT_ALIASES: dict[str, list[str]] = {
    "name": ["Name", "name", "PackageName"],
    "id": ["Id", "id", "PackageIdentifier", "PackageId"],
    "version": ["Version", "InstalledVersion", "installedVersion"],
    "available": ["AvailableVersion", "Available", "sourceVersion"],
}


class FieldAliases(BaseModel):
    """JSON key aliases for each PackageRecord field, in lookup order.

    Configured entries extend the defaults; they never replace them.
    """

    name: list[str] = Field(default_factory=lambda: list(_DEFAULT_ALIASES["name"]))
    id: list[str] = Field(default_factory=lambda: list(_DEFAULT_ALIASES["id"]))
    version: list[str] = Field(default_factory=lambda: list(_DEFAULT_ALIASES["version"]))
    available: list[str] = Field(default_factory=lambda: list(_DEFAULT_ALIASES["available"]))

    @field_validator("name", "id", "version", "available", mode="after")
    @classmethod
    def _extend_defaults(cls, value: list[str], info: ValidationInfo) -> list[str]:
        merged = list(_DEFAULT_ALIASES[info.field_name])
        for alias in value:
            if alias and alias not in merged:
                merged.append(alias)
        return merged


class ToolConfig(BaseModel):
    """How to drive the tool."""

    executable: str = "winget"
    encoding: str = "utf-8"
    prefer_structured: bool = True
    field_aliases: FieldAliases = Field(default_factory=FieldAliases)


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for wingetctl.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to wingetctl.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_config(path: Path | None = None) -> ToolConfig:
    """Load and validate tool configuration.

    Args:
        path: Explicit path to wingetctl.yml. If None, uses the env var
            or searches upward; falls back to defaults.

    Returns:
        Validated ToolConfig.

    Raises:
        ConfigError: If an explicitly named file is missing, or any file
            found is invalid.
    """
    explicit = path is not None
    if path is None and os.environ.get(CONFIG_ENV_VAR):
        path = Path(os.environ[CONFIG_ENV_VAR])
        explicit = True
    if path is None:
        path = find_config_file()

    if path is None:
        logger.debug("No %s found, using defaults", CONFIG_FILE)
        return ToolConfig()

    if not path.is_file():
        if explicit:
            raise ConfigError(f"Config file not found: {path}")
        return ToolConfig()

    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return ToolConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # Allow everything to sit under a "winget" key or at the top level
    tool_data = data.get("winget", data)

    try:
        config = ToolConfig.model_validate(tool_data)
    except Exception as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    logger.info("Loaded config from %s (executable=%s)", path, config.executable)
    return config
