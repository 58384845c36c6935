"""Service account validation and access-token caching for the exporter."""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional, Tuple

__all__ = [
    "CredentialsFileInvalidError",
    "REQUIRED_FIELDS",
    "load_service_account_data",
    "load_cached_token",
    "store_cached_token",
]

logger = logging.getLogger(__name__)

TOKEN_CACHE_MODE = 0o600


class CredentialsFileInvalidError(Exception):
    """Raised when a service account JSON file is missing required data."""


REQUIRED_FIELDS: Iterable[str] = (
    "type",
    "project_id",
    "private_key_id",
    "private_key",
    "client_email",
    "client_id",
    "token_uri",
)


def _normalise_private_key(key: str) -> str:
    key = key.replace("\r\n", "\n").replace("\r", "\n")
    key = key.replace("\\n", "\n")
    if not key.endswith("\n"):
        key += "\n"
    return key


def _load_json(path: Path) -> Mapping[str, object]:
    try:
        with path.open("r", encoding="utf-8-sig") as handle:
            raw = handle.read()
    except OSError as exc:
        raise CredentialsFileInvalidError(f"Could not read JSON file: {exc}") from exc

    payload_text = raw.lstrip("\ufeff").strip()
    if not payload_text:
        raise CredentialsFileInvalidError("Service account JSON is empty.")

    try:
        payload = json.loads(payload_text)
    except json.JSONDecodeError as exc:
        raise CredentialsFileInvalidError(f"JSON parse error: {exc.msg}") from exc
    if not isinstance(payload, Mapping):
        raise CredentialsFileInvalidError("Service account JSON must be an object.")
    return payload


def _validate_payload(payload: Mapping[str, object]) -> Dict[str, object]:
    data: Dict[str, object] = dict(payload)
    missing: list[str] = []

    for field in REQUIRED_FIELDS:
        value = data.get(field)
        if not isinstance(value, str) or not value.strip():
            missing.append(field)

    if data.get("type") != "service_account":
        missing.append("type")

    if missing:
        ordered = ", ".join(sorted(dict.fromkeys(missing)))
        raise CredentialsFileInvalidError(f"JSON missing fields: {ordered}")

    data["private_key"] = _normalise_private_key(str(data["private_key"]))
    return data


def load_service_account_data(path: Path) -> Dict[str, object]:
    """Return validated service account data without modifying ``path``."""

    return _validate_payload(_load_json(path))


def load_cached_token(path: Optional[Path], *, now: Optional[datetime] = None) -> Optional[Tuple[str, datetime]]:
    """Return ``(token, expiry)`` from ``path`` when it is still valid.

    The expiry is returned as a naive UTC datetime, which is what
    ``google.auth`` compares against.
    """

    if path is None or not path.exists():
        return None
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        token = data["token"]
        expiry = datetime.fromisoformat(data["expiry"])
    except (OSError, ValueError, KeyError, TypeError):
        logger.warning("Ignoring unreadable token cache at %s", path)
        return None

    if expiry.tzinfo is not None:
        expiry = expiry.astimezone(timezone.utc).replace(tzinfo=None)
    current = (now or datetime.now(timezone.utc)).astimezone(timezone.utc).replace(tzinfo=None)
    if not token or expiry <= current:
        return None
    return str(token), expiry


def store_cached_token(path: Optional[Path], token: Optional[str], expiry: Optional[datetime]) -> None:
    """Persist an access token so the next run can skip the token exchange."""

    if path is None or not token or expiry is None:
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, TOKEN_CACHE_MODE)
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        # An existing cache keeps its old mode on open.
        os.chmod(path, TOKEN_CACHE_MODE)
        json.dump({"token": token, "expiry": expiry.isoformat()}, handle, indent=2)
    logger.debug("Cached access token until %s in %s", expiry.isoformat(), path)
