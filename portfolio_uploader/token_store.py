"""
Key-value persistence for the admin session token.

The transport never reaches for global storage; it is handed a
``TokenStore``.  ``MemoryTokenStore`` suits tests and one-off scripts,
``JsonFileStore`` persists across runs in the user's config directory.

The on-disk format uses a versioned envelope::

    {
        "version": 1,
        "values": {
            "adminToken": "eyJhbGciOi..."
        }
    }
"""

import json
import logging
from pathlib import Path
from typing import Protocol

from portfolio_uploader.config import config_dir

logger = logging.getLogger(__name__)

_STORE_FILENAME = "session.json"
_STORE_VERSION = 1


class TokenStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryTokenStore:
    """In-process store; forgotten when the process exits."""

    def __init__(self, values: dict[str, str] | None = None):
        self._values = dict(values or {})

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def remove(self, key: str) -> None:
        self._values.pop(key, None)


class JsonFileStore:
    """Store backed by a JSON file, written through on every change."""

    def __init__(self, path: Path | None = None):
        self._path = path or config_dir() / _STORE_FILENAME
        self._values = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        """
        Load stored values from disk.

        Returns an empty dict if the file is missing, corrupt, or has an
        unexpected version.
        """
        if not self._path.exists():
            logger.debug("No session store at %s, starting fresh", self._path)
            return {}

        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Failed to read session store (%s), starting fresh", exc)
            return {}

        if not isinstance(raw, dict) or raw.get("version") != _STORE_VERSION:
            logger.warning("Session store version mismatch or invalid format, starting fresh")
            return {}

        values = raw.get("values")
        if not isinstance(values, dict):
            logger.warning("Session store missing 'values' dict, starting fresh")
            return {}

        # Drop anything that is not a string pair
        return {k: v for k, v in values.items() if isinstance(k, str) and isinstance(v, str)}

    def _save(self) -> None:
        envelope = {"version": _STORE_VERSION, "values": self._values}
        try:
            self._path.write_text(json.dumps(envelope, indent=2, ensure_ascii=False), encoding="utf-8")
            logger.debug("Saved session store (%d keys) to %s", len(self._values), self._path)
        except OSError as exc:
            logger.error("Could not write session store to %s: %s", self._path, exc)

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value
        self._save()

    def remove(self, key: str) -> None:
        if self._values.pop(key, None) is not None:
            self._save()
