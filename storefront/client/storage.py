"""Durable key-value storage for client-resident state.

Values are opaque serialized strings; interpretation (versioning, schema)
belongs to :mod:`storefront.client.versioned`.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class PersistentStore(Protocol):
    """Synchronous durable key-value store."""

    def get(self, key: str) -> str | None:
        """Return the stored value or ``None`` when absent."""

    def set(self, key: str, value: str) -> None:
        """Durably store ``value`` under ``key``."""

    def remove(self, key: str) -> None:
        """Delete ``key``; removing an absent key is a no-op."""


def _validate_key(key: str) -> str:
    if not isinstance(key, str) or not _KEY_PATTERN.match(key):
        raise ValueError(f"Invalid storage key: {key!r}")
    return key


class FilePersistentStore:
    """One JSON file per key inside ``directory``.

    Writes go to a temporary sibling first and are swapped in with
    :func:`os.replace`, so a crash mid-write leaves the previous value intact.
    """

    def __init__(self, directory: Path | str, *, namespace: str = "storefront") -> None:
        self._directory = Path(directory)
        self._directory.mkdir(parents=True, exist_ok=True)
        self._namespace = _validate_key(namespace)

    @property
    def directory(self) -> Path:
        return self._directory

    def _path(self, key: str) -> Path:
        return self._directory / f"{self._namespace}.{_validate_key(key)}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Unable to read persisted key %s from %s: %s", key, path, exc)
            return None

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._directory, prefix=f".{path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class MemoryPersistentStore:
    """Process-local store for tests and ephemeral sessions."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._values.get(_validate_key(key))

    def set(self, key: str, value: str) -> None:
        self._values[_validate_key(key)] = value

    def remove(self, key: str) -> None:
        self._values.pop(_validate_key(key), None)

    def keys(self) -> list[str]:
        return sorted(self._values)


__all__ = ["FilePersistentStore", "MemoryPersistentStore", "PersistentStore"]
