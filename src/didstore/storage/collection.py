# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Directory-backed key/value collections for DID artifacts.

Each collection is one directory; each entry is one pretty-printed JSON file
named after the percent-encoded key.  Writes go through a temporary file in
the same directory followed by ``os.replace`` so a reader observes either
the previous or the complete new content.

Layout under the data directory::

    <method>-<mode>/pending/<quote(did)>.json
    <method>-<mode>/registered/<quote(did)>.json
    keys/<quote(did)>.keys.json
    meta/<quote(did)>.meta.json
    locks/<quote(resource)>.lock
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import quote, unquote

from ..core.exceptions import DeserializationError

logger = logging.getLogger(__name__)

DIR_MODE = 0o700
FILE_MODE = 0o600

PENDING = "pending"
REGISTERED = "registered"


def encode_key(key: str) -> str:
    """Percent-encode a key so it is safe as a single path component."""
    if not key:
        raise ValueError("Collection keys must be non-empty")
    encoded = quote(key, safe="")
    # Leading dots would collide with hidden and temporary files
    if encoded.startswith("."):
        encoded = "%2E" + encoded[1:]
    return encoded


def decode_key(name: str) -> str:
    """Exact inverse of :func:`encode_key`."""
    return unquote(name)


def ensure_dir(path: Path) -> None:
    """Create ``path`` and any missing parents with owner-only permissions."""
    missing = []
    current = path
    while not current.exists():
        missing.append(current)
        current = current.parent
    for directory in reversed(missing):
        directory.mkdir(mode=DIR_MODE, exist_ok=True)
        os.chmod(directory, DIR_MODE)


def atomic_write(path: Path, data: bytes, mode: int = FILE_MODE) -> None:
    """Replace ``path`` with ``data`` without exposing a partial file."""
    ensure_dir(path.parent)
    fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as tmp:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def dump_json(document: Any) -> bytes:
    return (json.dumps(document, indent=2, ensure_ascii=False) + "\n").encode("utf-8")


def load_json(path: Path) -> Any:
    """Parse a JSON file, mapping parse failures to DeserializationError."""
    raw = path.read_bytes()
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DeserializationError(str(path), str(e)) from e


class FileCollection:
    """Mapping from string key to a JSON document stored as one file per key."""

    def __init__(self, directory: str | Path, extension: str = ".json") -> None:
        self._dir = Path(directory)
        self._extension = extension

    @property
    def directory(self) -> Path:
        return self._dir

    @property
    def extension(self) -> str:
        return self._extension

    def path_for(self, key: str) -> Path:
        return self._dir / f"{encode_key(key)}{self._extension}"

    async def put(self, key: str, document: Any) -> Path:
        """Serialize ``document`` and atomically write it under ``key``."""
        path = self.path_for(key)
        atomic_write(path, dump_json(document))
        logger.debug(f"Stored {key} in {self._dir}")
        return path

    async def get(self, key: str) -> Any | None:
        """Return the stored document, or None if ``key`` is absent.

        Raises:
            DeserializationError: If the file exists but is not valid JSON.
        """
        path = self.path_for(key)
        try:
            return load_json(path)
        except FileNotFoundError:
            return None

    async def get_object(self, key: str) -> dict[str, Any] | None:
        """Like :meth:`get`, but the stored document must be a JSON object.

        Raises:
            DeserializationError: If the file is not valid JSON or not an object.
        """
        document = await self.get(key)
        if document is not None and not isinstance(document, dict):
            raise DeserializationError(str(self.path_for(key)), "not an object")
        return document

    async def exists(self, key: str) -> bool:
        return self.path_for(key).is_file()

    async def remove(self, key: str) -> bool:
        """Delete ``key``. Returns False if it was already absent."""
        try:
            self.path_for(key).unlink()
        except FileNotFoundError:
            return False
        logger.debug(f"Removed {key} from {self._dir}")
        return True

    async def list(self) -> list[str]:
        """Return all keys present, sorted."""
        if not self._dir.is_dir():
            return []
        keys = []
        for entry in self._dir.iterdir():
            name = entry.name
            if not entry.is_file() or name.startswith(".") or not name.endswith(self._extension):
                continue
            keys.append(decode_key(name[: -len(self._extension)]))
        return sorted(keys)


@dataclass(frozen=True)
class Area:
    """A ``<method>-<mode>`` directory holding pending/registered documents."""

    method: str
    mode: str
    path: Path


class StoreLayout:
    """Resolves the on-disk layout of all collections under ``data_dir``."""

    KEYS_DIR = "keys"
    META_DIR = "meta"
    LOCKS_DIR = "locks"

    def __init__(self, data_dir: str | Path) -> None:
        self._data_dir = Path(data_dir).expanduser()

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    @property
    def lock_dir(self) -> Path:
        return self._data_dir / self.LOCKS_DIR

    def area_dir(self, method: str, mode: str) -> Path:
        if not method or "-" in method or "/" in method:
            raise ValueError(f"Invalid DID method for storage area: {method!r}")
        if not mode or "/" in mode:
            raise ValueError(f"Invalid mode for storage area: {mode!r}")
        return self._data_dir / f"{method}-{mode}"

    def documents(self, method: str, mode: str, status: str) -> FileCollection:
        if status not in (PENDING, REGISTERED):
            raise ValueError(f"Unknown record status: {status!r}")
        return FileCollection(self.area_dir(method, mode) / status, ".json")

    def keys(self) -> FileCollection:
        return FileCollection(self._data_dir / self.KEYS_DIR, ".keys.json")

    def meta(self) -> FileCollection:
        return FileCollection(self._data_dir / self.META_DIR, ".meta.json")

    def areas(self) -> list[Area]:
        """Enumerate existing ``<method>-<mode>`` areas, sorted."""
        if not self._data_dir.is_dir():
            return []
        found = []
        for entry in sorted(self._data_dir.iterdir()):
            if not entry.is_dir() or "-" not in entry.name:
                continue
            method, mode = entry.name.split("-", 1)
            if (entry / PENDING).is_dir() or (entry / REGISTERED).is_dir():
                found.append(Area(method=method, mode=mode, path=entry))
        return found
