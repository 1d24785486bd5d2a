# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Ledger registrar collaborators.

The lifecycle manager talks to a ledger through :class:`LedgerRegistrar`:
``register`` and ``update`` either succeed or raise, ``get`` returns the
ledger's document or None when the ledger does not know the DID.

Implementations:
- :class:`HttpLedgerClient` for ledger nodes exposing ``/dids/`` over HTTPS
- :class:`InMemoryLedger` for tests and offline use
"""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any, Protocol
from urllib.parse import quote

import aiohttp

from ..core.config import default_hostname
from ..core.exceptions import LedgerError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class LedgerRegistrar(Protocol):
    """Remote ledger/registry collaborator."""

    name: str
    hostname: str | None

    async def register(self, document: dict[str, Any], keys: dict[str, Any] | None = None) -> None: ...
    async def update(self, document: dict[str, Any], keys: dict[str, Any] | None = None) -> None: ...
    async def get(self, did: str) -> dict[str, Any] | None: ...
    def for_hostname(self, hostname: str) -> LedgerRegistrar: ...


# =============================================================================
# HTTP CLIENT
# =============================================================================


class HttpLedgerClient:
    """Ledger registrar speaking JSON over HTTPS.

    Endpoints:
    - ``POST /dids/`` registers a document
    - ``PUT /dids/<did>`` updates a document
    - ``GET /dids/<did>`` fetches a document (404 = not found)
    """

    def __init__(
        self,
        hostname: str | None = None,
        mode: str = "test",
        ledger: str = "veres",
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.hostname = hostname or default_hostname(mode)
        self.mode = mode
        self.name = ledger
        self._timeout = timeout

    def for_hostname(self, hostname: str) -> HttpLedgerClient:
        """Same ledger, same mode, another node."""
        return HttpLedgerClient(hostname, mode=self.mode, ledger=self.name, timeout=self._timeout)

    @property
    def base_url(self) -> str:
        return f"https://{self.hostname}/dids/"

    def _did_url(self, did: str) -> str:
        return self.base_url + quote(did, safe=":")

    def _ssl(self) -> bool:
        # Local dev ledger nodes use self-signed certificates
        return self.mode != "dev"

    async def _send(self, method: str, url: str, document: dict[str, Any]) -> None:
        try:
            async with aiohttp.ClientSession() as session:
                async with session.request(
                    method,
                    url,
                    json=document,
                    ssl=self._ssl(),
                    timeout=aiohttp.ClientTimeout(total=self._timeout),
                ) as response:
                    if 200 <= response.status < 300:
                        logger.info(f"Ledger {self.hostname} accepted {document.get('id')} ({response.status})")
                        return
                    body = await response.text()
                    logger.error(f"Ledger {self.hostname} rejected {document.get('id')}: {response.status}")
                    raise LedgerError(
                        f"Ledger {self.hostname} returned {response.status}",
                        hostname=self.hostname,
                        status=response.status,
                        body=body,
                    )
        except aiohttp.ClientError as e:
            raise LedgerError(f"Network error talking to {self.hostname}: {e}", hostname=self.hostname) from e

    async def register(self, document: dict[str, Any], keys: dict[str, Any] | None = None) -> None:
        await self._send("POST", self.base_url, document)

    async def update(self, document: dict[str, Any], keys: dict[str, Any] | None = None) -> None:
        await self._send("PUT", self._did_url(document["id"]), document)

    async def get(self, did: str) -> dict[str, Any] | None:
        url = self._did_url(did)
        logger.debug(f"Retrieving remote DID document from {url}")
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    url,
                    headers={"Accept": "application/ld+json, application/json"},
                    ssl=self._ssl(),
                    timeout=aiohttp.ClientTimeout(total=self._timeout),
                ) as response:
                    if response.status == 200:
                        return await response.json(content_type=None)
                    if response.status == 404:
                        return None
                    body = await response.text()
                    raise LedgerError(
                        f"Ledger {self.hostname} returned {response.status}",
                        hostname=self.hostname,
                        status=response.status,
                        body=body,
                    )
        except aiohttp.ClientError as e:
            raise LedgerError(f"Network error talking to {self.hostname}: {e}", hostname=self.hostname) from e


# =============================================================================
# IN-MEMORY LEDGER
# =============================================================================


class InMemoryLedger:
    """Dict-backed ledger for tests and offline use."""

    def __init__(self, name: str = "memory", hostname: str | None = "ledger.invalid", delay: float = 0.0) -> None:
        self.name = name
        self.hostname = hostname
        self.delay = delay
        self.documents: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, str]] = []
        # Set to make the next register/update raise
        self.fail_with: Exception | None = None
        # Other nodes of this ledger, by hostname
        self.peers: dict[str, InMemoryLedger] = {}

    def for_hostname(self, hostname: str) -> InMemoryLedger:
        if hostname == self.hostname:
            return self
        if hostname not in self.peers:
            self.peers[hostname] = InMemoryLedger(self.name, hostname, self.delay)
        return self.peers[hostname]

    async def _pause(self) -> None:
        await asyncio.sleep(self.delay)

    def _maybe_fail(self) -> None:
        if self.fail_with is not None:
            error, self.fail_with = self.fail_with, None
            raise error

    async def register(self, document: dict[str, Any], keys: dict[str, Any] | None = None) -> None:
        self.calls.append(("register", document["id"]))
        await self._pause()
        self._maybe_fail()
        if document["id"] in self.documents:
            raise LedgerError(f"{document['id']} already registered", hostname=self.hostname, status=409)
        self.documents[document["id"]] = copy.deepcopy(document)

    async def update(self, document: dict[str, Any], keys: dict[str, Any] | None = None) -> None:
        self.calls.append(("update", document["id"]))
        await self._pause()
        self._maybe_fail()
        if document["id"] not in self.documents:
            raise LedgerError(f"{document['id']} not registered", hostname=self.hostname, status=404)
        self.documents[document["id"]] = copy.deepcopy(document)

    async def get(self, did: str) -> dict[str, Any] | None:
        self.calls.append(("get", did))
        await self._pause()
        document = self.documents.get(did)
        return copy.deepcopy(document) if document is not None else None
