"""Where the backup daemon looks for storefront.yaml."""

from __future__ import annotations

import os
from pathlib import Path

from pydantic_settings import BaseSettings, YamlConfigSettingsSource

CONFIG_ENV_VAR = "STOREFRONT_CONFIG"


def config_search_paths() -> list[Path]:
    """Candidate files in priority order when STOREFRONT_CONFIG is unset."""
    return [
        Path.cwd() / "storefront.yaml",
        Path.cwd() / "storefront.yml",
        Path.home() / ".storefront" / "storefront.yaml",
        Path("/etc/storefront/storefront.yaml"),
    ]


def find_config_file() -> Path | None:
    """Return the YAML file to load, or None.

    An explicit STOREFRONT_CONFIG that names a missing file disables the
    search and yields None.
    """
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        path = Path(explicit).expanduser()
        return path if path.is_file() else None
    return next((p for p in config_search_paths() if p.is_file()), None)


def yaml_source(settings_cls: type[BaseSettings]) -> YamlConfigSettingsSource:
    # yaml_file=None makes the source contribute nothing
    return YamlConfigSettingsSource(settings_cls, yaml_file=find_config_file())
