"""
Ingestion settings (``esg_config.settings``).

Tunables that are not part of any section table: how far down a sheet the
header detector looks, how often the import pipeline is retried after a
commit conflict, and the provenance label used for list items without one.

Values come from ``settings.yaml`` next to this module, or from the YAML
file named by the ``ESG_INGESTION_SETTINGS`` environment variable.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path

from esg_config.loader import ConfigError, load_yaml_file

SETTINGS_ENV_VAR = "ESG_INGESTION_SETTINGS"
_DEFAULT_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass(frozen=True)
class IngestionSettings:
    header_search_rows: int = 15
    max_commit_attempts: int = 3
    default_source_label: str = "CSV Import"

    def __post_init__(self) -> None:
        if self.header_search_rows < 1:
            raise ConfigError("settings", "header_search_rows must be >= 1")
        if self.max_commit_attempts < 1:
            raise ConfigError("settings", "max_commit_attempts must be >= 1")


def load_settings(path: Path | None = None) -> IngestionSettings:
    """
    Load ingestion settings.

    Resolution order: explicit ``path``, then ``$ESG_INGESTION_SETTINGS``,
    then the packaged ``settings.yaml``. Unknown keys are rejected.
    """
    if path is None:
        env_path = os.environ.get(SETTINGS_ENV_VAR)
        path = Path(env_path) if env_path else _DEFAULT_SETTINGS_PATH

    data = load_yaml_file(path).get("ingestion", {})
    known = {f.name for f in fields(IngestionSettings)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(path.name, f"unknown settings {sorted(unknown)}")
    return IngestionSettings(**data)
