from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

from .executors import EXECUTORS

LOGGER = logging.getLogger(__name__)

CONFIG_ENV_VAR = "PIPE_RUN_CONFIG"
DEFAULT_CONFIG_NAME = "pipe-run.toml"
CONFIG_TABLE = "pipe-run"


@dataclass(frozen=True)
class RunSettings:
    executor: str = "batch"
    input_encoding: str = "ascii"
    output_encoding: str = "ascii"
    strict_width: bool = True

    def validated(self) -> "RunSettings":
        if self.executor not in EXECUTORS:
            allowed = ", ".join(sorted(EXECUTORS))
            raise ValueError(f"Unsupported executor '{self.executor}'. Allowed: {allowed}")
        for name in ("input_encoding", "output_encoding"):
            if not isinstance(getattr(self, name), str) or not getattr(self, name):
                raise ValueError(f"{name} must be a non-empty string")
        if not isinstance(self.strict_width, bool):
            raise ValueError("strict_width must be true or false")
        return self


_SETTING_NAMES = {item.name for item in fields(RunSettings)}


def _candidate_config_files(explicit: Path | None) -> list[Path]:
    if explicit is not None:
        return [explicit.expanduser()]

    candidates: list[Path] = []
    from_env = os.getenv(CONFIG_ENV_VAR)
    if from_env:
        candidates.append(Path(from_env).expanduser())
    candidates.append(Path.cwd() / DEFAULT_CONFIG_NAME)
    return candidates


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as handle:
            payload = tomllib.load(handle)
    except (tomllib.TOMLDecodeError, OSError) as error:
        LOGGER.warning("Unable to read config file %s: %s", path, error)
        return {}

    table = payload.get(CONFIG_TABLE, payload)
    if not isinstance(table, dict):
        LOGGER.warning("Config file %s: [%s] must be a table", path, CONFIG_TABLE)
        return {}

    values: dict[str, Any] = {}
    for key, value in table.items():
        normalized = key.replace("-", "_")
        if normalized in _SETTING_NAMES:
            values[normalized] = value
        else:
            LOGGER.warning("Config file %s: ignoring unknown setting %r", path, key)
    return values


def load_settings(config_path: Path | None = None, **overrides: Any) -> RunSettings:
    """Resolve settings: explicit overrides, then the first config file found, then defaults.

    ``None`` overrides are ignored so unset CLI flags fall through to the file.
    """
    settings = RunSettings()

    for candidate in _candidate_config_files(config_path):
        if not candidate.exists():
            if config_path is not None:
                LOGGER.warning("Config file %s not found, using defaults", candidate)
            continue
        file_values = _read_config_file(candidate)
        settings = replace(settings, **file_values)
        LOGGER.debug("Loaded settings from %s", candidate)
        break

    explicit = {key: value for key, value in overrides.items() if value is not None}
    unknown = set(explicit) - _SETTING_NAMES
    if unknown:
        raise TypeError(f"Unknown setting(s): {', '.join(sorted(unknown))}")
    return replace(settings, **explicit).validated()
