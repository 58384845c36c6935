"""Per-user directories for exporter settings, logs and token caches."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable

_APP_ENV_VARS: Iterable[str] = ("LOCALAPPDATA", "APPDATA")
_DATA_DIR_ENV = "EXPORTER_DATA_DIR"


def _detect_base_directory() -> Path:
    override = os.environ.get(_DATA_DIR_ENV)
    if override:
        return Path(override).expanduser().resolve()
    for env_var in _APP_ENV_VARS:
        value = os.environ.get(env_var)
        if value:
            return Path(value).expanduser().resolve() / "SheetsExporter"
    return Path.home().resolve() / ".sheets-exporter"


def app_dir() -> Path:
    return _detect_base_directory()


def ensure_directory(path: Path) -> Path:
    """Ensure that ``path`` exists, returning the :class:`~pathlib.Path`."""

    path.mkdir(parents=True, exist_ok=True)
    return path


def default_path(*parts: str) -> Path:
    """Return a path inside the data directory without creating anything."""

    return app_dir().joinpath(*parts)


def data_path(*parts: str) -> Path:
    """Return a path rooted inside the data directory, creating parent directories."""

    target = app_dir().joinpath(*parts)
    ensure_directory(target.parent)
    return target


__all__ = ["app_dir", "data_path", "default_path", "ensure_directory"]
