"""Configuration helpers for the spreadsheet export job."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

from exporter import app_paths


logger = logging.getLogger(__name__)


ENV_PREFIX = "EXPORTER"
ENV_SEPARATOR = "__"

DEFAULT_SETTINGS_PATH = os.getenv("EXPORTER_SETTINGS_PATH", "")
DEFAULT_CREDENTIALS_FILENAME = "service_account.json"
DEFAULT_TOKEN_CACHE_FILENAME = "token_cache.json"
DEFAULT_DATABASE_FILENAME = "storefront.db"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_MAX_ATTEMPTS = 5

# Nested JSON keys and the matching ``EXPORTER__...`` variable names.
_ENV_KEYS: Mapping[str, tuple] = {
    "SHEETS__SPREADSHEET_ID": ("sheets", "spreadsheet_id"),
    "SHEETS__CREDENTIAL_PATH": ("sheets", "credential_path"),
    "SHEETS__TOKEN_CACHE_PATH": ("sheets", "token_cache_path"),
    "SHEETS__MAX_ATTEMPTS": ("sheets", "max_attempts"),
    "DATABASE__PATH": ("database", "path"),
    "LOG_LEVEL": ("log_level",),
}


class SettingsError(Exception):
    """Raised when the exporter configuration is incomplete or unreadable."""


@dataclass
class ExporterSettings:
    spreadsheet_id: str
    credential_path: str
    token_cache_path: str
    database_path: str
    log_level: str = DEFAULT_LOG_LEVEL
    max_attempts: int = DEFAULT_MAX_ATTEMPTS

    def validate(self) -> "ExporterSettings":
        missing = []
        if not self.spreadsheet_id.strip():
            missing.append("sheets.spreadsheet_id")
        if not self.credential_path.strip():
            missing.append("sheets.credential_path")
        if missing:
            raise SettingsError(f"Missing configuration: {', '.join(missing)}")
        return self

    @property
    def logging_level(self) -> int:
        level = logging.getLevelName(self.log_level.upper())
        return level if isinstance(level, int) else logging.INFO


def _default_settings() -> Dict[str, Dict[str, object]]:
    return {
        "sheets": {
            "spreadsheet_id": "",
            "credential_path": str(app_paths.default_path(DEFAULT_CREDENTIALS_FILENAME)),
            "token_cache_path": str(app_paths.default_path(DEFAULT_TOKEN_CACHE_FILENAME)),
            "max_attempts": DEFAULT_MAX_ATTEMPTS,
        },
        "database": {"path": str(app_paths.default_path(DEFAULT_DATABASE_FILENAME))},
        "log_level": DEFAULT_LOG_LEVEL,
    }


def _read_settings_file(path: Path) -> Dict[str, object]:
    if not path.exists():
        logger.debug("Settings file %s not found, using defaults", path)
        return {}
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, json.JSONDecodeError) as exc:
        raise SettingsError(f"Could not read settings file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise SettingsError(f"Settings file {path} must contain a JSON object")
    return data


def _merge(defaults: Dict[str, object], overrides: Mapping[str, object]) -> Dict[str, object]:
    merged: Dict[str, object] = dict(defaults)
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            merged[key] = _merge(current, value)
        elif key in merged and not isinstance(value, (dict, list)):
            merged[key] = value
    return merged


def _apply_environment(data: Dict[str, object], environ: Mapping[str, str]) -> None:
    for suffix, path in _ENV_KEYS.items():
        value = environ.get(f"{ENV_PREFIX}{ENV_SEPARATOR}{suffix}")
        if value is None:
            continue
        target = data
        for part in path[:-1]:
            target = target.setdefault(part, {})  # type: ignore[assignment]
        target[path[-1]] = value


def _coerce_attempts(value: object) -> int:
    try:
        return max(1, min(5, int(value)))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return DEFAULT_MAX_ATTEMPTS


def _default_path() -> Path:
    if DEFAULT_SETTINGS_PATH:
        return Path(DEFAULT_SETTINGS_PATH)
    return app_paths.default_path("settings.json")


def load_exporter_settings(
    path: Optional[str] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> ExporterSettings:
    """Load settings from ``path`` and apply ``EXPORTER__*`` overrides."""

    settings_path = Path(path) if path else _default_path()
    data = _merge(_default_settings(), _read_settings_file(settings_path))
    _apply_environment(data, os.environ if environ is None else environ)

    sheets = data.get("sheets", {})
    database = data.get("database", {})
    if not isinstance(sheets, Mapping) or not isinstance(database, Mapping):
        raise SettingsError("'sheets' and 'database' sections must be objects")

    return ExporterSettings(
        spreadsheet_id=str(sheets.get("spreadsheet_id", "")).strip(),
        credential_path=str(sheets.get("credential_path", "")).strip(),
        token_cache_path=str(sheets.get("token_cache_path", "")).strip(),
        database_path=str(database.get("path", "")).strip(),
        log_level=str(data.get("log_level", DEFAULT_LOG_LEVEL)).strip() or DEFAULT_LOG_LEVEL,
        max_attempts=_coerce_attempts(sheets.get("max_attempts", DEFAULT_MAX_ATTEMPTS)),
    )


__all__ = [
    "ExporterSettings",
    "SettingsError",
    "load_exporter_settings",
]
