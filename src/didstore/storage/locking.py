# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Advisory locking across OS processes.

A lock on a resource is an exclusive ``portalocker`` lock on the file
``<lock_dir>/<quote(resource)>.lock``.  The kernel drops the lock when the
holding process exits, so a crashed holder never wedges the resource.

While held, the lock file carries a JSON record of the holder (PID, host,
acquisition time).  The record is diagnostic only; ownership is the OS
lock.  Lock files are truncated on release but never deleted, so every
contender always locks the same inode.

Policy: up to ``retries`` non-blocking attempts, ``retry_delay`` seconds
apart (100 x 0.1 s), then :class:`LockTimeoutError`.

Locks must be taken in a fixed order: an identifier lock first, then
:data:`CONFIG_RESOURCE`.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import socket
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import IO, TYPE_CHECKING

import portalocker

from ..core.exceptions import LockTimeoutError
from .collection import FILE_MODE, encode_key, ensure_dir

if TYPE_CHECKING:
    from ..core.config import StoreSettings

logger = logging.getLogger(__name__)

CONFIG_RESOURCE = "urn:did-client:config"


@dataclass
class LockHolder:
    """Who holds a lock, as recorded in the lock file."""

    pid: int
    host: str
    acquired_at: float

    def to_bytes(self) -> bytes:
        return json.dumps(asdict(self)).encode("utf-8")

    def __str__(self) -> str:
        return f"pid {self.pid}@{self.host}"

    @classmethod
    def read(cls, path: Path) -> LockHolder | None:
        """Read the holder record, or None if the lock is free or the file is gone."""
        try:
            data = json.loads(path.read_bytes().decode("utf-8"))
            return cls(
                pid=int(data["pid"]),
                host=str(data["host"]),
                acquired_at=float(data["acquired_at"]),
            )
        except (OSError, ValueError, KeyError, TypeError, UnicodeDecodeError):
            return None


class LockRelease:
    """Single-use capability that releases one acquired lock."""

    def __init__(self, service: LockService, resource: str, handle: IO[bytes]) -> None:
        self._service = service
        self._resource = resource
        self._handle = handle
        self._released = False

    @property
    def resource(self) -> str:
        return self._resource

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Release the lock.

        Raises:
            RuntimeError: If this capability was already used.
        """
        if self._released:
            raise RuntimeError(f"Lock on {self._resource} already released")
        self._released = True
        self._service._release(self._resource, self._handle)


class LockService:
    """Acquires exclusive advisory ownership of named resources."""

    def __init__(self, lock_dir: str | Path, retries: int = 100, retry_delay: float = 0.1) -> None:
        if retries < 1:
            raise ValueError("retries must be at least 1")
        self._lock_dir = Path(lock_dir)
        self._retries = retries
        self._retry_delay = retry_delay
        self._host = socket.gethostname()

    @classmethod
    def from_settings(cls, settings: StoreSettings) -> LockService:
        return cls(settings.lock_dir, retries=settings.lock_retries, retry_delay=settings.lock_retry_delay)

    @property
    def lock_dir(self) -> Path:
        return self._lock_dir

    def lock_path(self, resource: str) -> Path:
        return self._lock_dir / f"{encode_key(resource)}.lock"

    def holder(self, resource: str) -> LockHolder | None:
        """Current holder of ``resource`` as recorded in its lock file."""
        return LockHolder.read(self.lock_path(resource))

    async def acquire(self, resource: str) -> LockRelease:
        """Acquire the lock on ``resource``.

        Raises:
            LockTimeoutError: If the retry budget is exhausted.
        """
        path = self.lock_path(resource)
        ensure_dir(self._lock_dir)
        for attempt in range(1, self._retries + 1):
            handle = self._try_lock(path)
            if handle is not None:
                logger.debug(f"Locked {resource} (attempt {attempt})")
                return LockRelease(self, resource, handle)
            if attempt < self._retries:
                await asyncio.sleep(self._retry_delay)
        holder = LockHolder.read(path)
        logger.warning(f"Gave up locking {resource} after {self._retries} attempts (held by {holder or 'unknown'})")
        raise LockTimeoutError(resource, self._retries)

    @asynccontextmanager
    async def hold(self, resource: str) -> AsyncIterator[LockRelease]:
        """Hold the lock on ``resource`` for the body of an ``async with``."""
        release = await self.acquire(resource)
        try:
            yield release
        finally:
            if not release.released:
                release.release()

    # -- internals --

    def _try_lock(self, path: Path) -> IO[bytes] | None:
        handle = os.fdopen(os.open(path, os.O_RDWR | os.O_CREAT, FILE_MODE), "r+b")
        try:
            portalocker.lock(handle, portalocker.LOCK_EX | portalocker.LOCK_NB)
        except portalocker.LockException:
            handle.close()
            return None
        holder = LockHolder(pid=os.getpid(), host=self._host, acquired_at=time.time())
        handle.seek(0)
        handle.truncate()
        handle.write(holder.to_bytes())
        handle.flush()
        return handle

    def _release(self, resource: str, handle: IO[bytes]) -> None:
        try:
            handle.seek(0)
            handle.truncate()
            handle.flush()
            portalocker.unlock(handle)
        finally:
            handle.close()
        logger.debug(f"Unlocked {resource}")
