# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Versioned config document holding per-DID notes.

The config is one JSON-LD flavoured file shared by every process of an
installation::

    {
      "@context": [...],
      "urn:did-client:config:version": "1",
      "urn:did-client:notes:auto": ["created", "ledger"],
      "dids": {"did:example:abc": {"name": "Alice"}}
    }

Writes keep a one-generation backup at ``<file>.old``.  All mutations run
under the config lock for the full load-modify-store sequence.
"""

from __future__ import annotations

import copy
import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..core.exceptions import DeserializationError, ReadOnlyModeError, UnsupportedSchemaVersionError
from .collection import atomic_write, dump_json, load_json
from .locking import CONFIG_RESOURCE, LockService
from .properties import PropertyBag, Scalar, check_property

logger = logging.getLogger(__name__)

CONFIG_VERSION = "1"
VERSION_KEY = "urn:did-client:config:version"
AUTO_NOTES_KEY = "urn:did-client:notes:auto"
DEFAULT_AUTO_NOTES = ("created", "ledger")

NOTES_CONTEXT: list[dict[str, Any]] = [
    {
        "@version": 1.1,
        "id": "@id",
        "type": "@type",
        "schema": "http://schema.org/",
        "xsd": "http://www.w3.org/2001/XMLSchema#",
        "name": "schema:name",
        "description": "schema:description",
        "url": "schema:url",
        "ledger": "urn:did-client:ledger",
        "ledgerMode": "urn:did-client:ledgerMode",
        "publishedHost": "urn:did-client:publishedHost",
        "log": {"@id": "urn:did-client:log", "@container": "@list"},
        "created": {"@id": "schema:dataCreated", "@type": "xsd:dateTime"},
        "modified": {"@id": "schema:dataModified", "@type": "xsd:dateTime"},
        "published": {"@id": "schema:dataPublished", "@type": "xsd:dateTime"},
        "dids": {"@id": "urn:did-client:did", "@container": "@id"},
    }
]

_KNOWN_KEYS = {"@context", VERSION_KEY, AUTO_NOTES_KEY, "dids"}


@dataclass
class ConfigDocument:
    """In-memory config: schema version, auto-notes list and per-DID notes."""

    dids: dict[str, PropertyBag] = field(default_factory=dict)
    auto_notes: list[str] = field(default_factory=lambda: list(DEFAULT_AUTO_NOTES))
    context: list[Any] = field(default_factory=lambda: copy.deepcopy(NOTES_CONTEXT))
    version: str = CONFIG_VERSION
    # Unknown top-level keys, preserved across load/store
    extra: dict[str, Any] = field(default_factory=dict)

    # -- queries --

    def identifiers(self) -> list[str]:
        return sorted(self.dids)

    def get(self, did: str) -> PropertyBag | None:
        return self.dids.get(did)

    def find(self, did: str, prop: str, value: Scalar) -> bool:
        bag = self.dids.get(did)
        return bag is not None and bag.has(prop, value)

    def is_auto(self, prop: str) -> bool:
        return prop in self.auto_notes

    # -- mutations (empty bags are pruned after each) --

    def add_value(self, did: str, prop: str, value: Scalar) -> bool:
        check_property(prop, "add")
        added = self.dids.setdefault(did, PropertyBag()).add(prop, value)
        self._prune(did)
        return added

    def add_many(self, did: str, properties: dict[str, Scalar]) -> None:
        for prop in properties:
            check_property(prop, "add")
        if not properties:
            return
        self.dids.setdefault(did, PropertyBag()).update(properties)

    def remove_value(self, did: str, prop: str, value: Scalar) -> bool:
        check_property(prop, "remove")
        bag = self.dids.get(did)
        removed = bag is not None and bag.remove(prop, value)
        self._prune(did)
        return removed

    def set_value(self, did: str, prop: str, value: Scalar) -> None:
        check_property(prop, "set")
        self.dids.setdefault(did, PropertyBag()).set(prop, value)

    def delete_property(self, did: str, prop: str) -> bool:
        bag = self.dids.get(did)
        deleted = bag is not None and bag.delete(prop)
        self._prune(did)
        return deleted

    def clear(self, did: str) -> bool:
        return self.dids.pop(did, None) is not None

    def _prune(self, did: str) -> bool:
        bag = self.dids.get(did)
        if bag is not None and len(bag) == 0:
            del self.dids[did]
            return True
        return False

    # -- serialisation --

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "@context": self.context,
            VERSION_KEY: self.version,
            AUTO_NOTES_KEY: list(self.auto_notes),
            "dids": {did: self.dids[did].to_json() for did in self.identifiers()},
        }
        data.update(self.extra)
        return data

    @classmethod
    def from_json(cls, data: Any, path: str = "<config>") -> ConfigDocument:
        """Build a document from parsed JSON.

        Raises:
            UnsupportedSchemaVersionError: If the version tag is not "1".
            DeserializationError: If the structure is not a config document.
        """
        if not isinstance(data, dict):
            raise DeserializationError(path, "config root is not an object")
        version = data.get(VERSION_KEY)
        if version != CONFIG_VERSION:
            raise UnsupportedSchemaVersionError(version, CONFIG_VERSION, path)
        dids = data.get("dids") or {}
        if not isinstance(dids, dict) or not all(isinstance(v, dict) for v in dids.values()):
            raise DeserializationError(path, "'dids' is not a map of property bags")
        auto = data.get(AUTO_NOTES_KEY, list(DEFAULT_AUTO_NOTES))
        return cls(
            dids={did: PropertyBag.from_json(bag) for did, bag in dids.items()},
            auto_notes=list(auto) if isinstance(auto, list) else [auto],
            context=data.get("@context", copy.deepcopy(NOTES_CONTEXT)),
            version=version,
            extra={k: v for k, v in data.items() if k not in _KNOWN_KEYS},
        )


class BackupResult(enum.StrEnum):
    """Outcome of the backup step before a config write."""

    BACKED_UP = "backed-up"
    NO_PRIOR_FILE = "no-prior-file"


class ConfigStore:
    """Single writer of the config file and its backup."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def backup_path(self) -> Path:
        return self._path.with_name(self._path.name + ".old")

    async def load(self) -> ConfigDocument:
        """Load the config, or a fresh default document if none exists."""
        try:
            data = load_json(self._path)
        except FileNotFoundError:
            logger.debug(f"No config at {self._path}, using defaults")
            return ConfigDocument()
        return ConfigDocument.from_json(data, str(self._path))

    def try_backup(self) -> BackupResult:
        """Copy the current config to ``<file>.old`` if there is one."""
        try:
            previous = self._path.read_bytes()
        except FileNotFoundError:
            return BackupResult.NO_PRIOR_FILE
        atomic_write(self.backup_path, previous)
        return BackupResult.BACKED_UP

    async def store(self, config: ConfigDocument) -> BackupResult:
        """Back up the existing file, then write ``config``."""
        backup = self.try_backup()
        atomic_write(self._path, dump_json(config.to_json()))
        logger.debug(f"Stored config at {self._path} ({backup})")
        return backup


# =============================================================================
# NOTES FACADE
# =============================================================================


@dataclass
class NotesRequest:
    """A batch of note operations, run in order: clear, add, remove, get, set, delete, find."""

    clear: bool = False
    add: tuple[str, Scalar] | None = None
    remove: tuple[str, Scalar] | None = None
    get: str | None = None
    set: tuple[str, Scalar] | None = None
    delete: str | None = None
    find: tuple[str, Scalar] | None = None

    @property
    def mutating(self) -> bool:
        return bool(self.clear or self.add or self.remove or self.set or self.delete)

    @property
    def empty(self) -> bool:
        return not (self.mutating or self.get or self.find)


@dataclass
class NotesResult:
    """Outcome of :meth:`NotesService.apply`."""

    # DID -> notes shown (a single property for ``get``, everything otherwise)
    shown: dict[str, dict[str, Any]] = field(default_factory=dict)
    # DIDs matching ``find``
    found: list[str] = field(default_factory=list)
    stored: bool = False


class NotesService:
    """CRUD over the per-DID notes held in the config document."""

    def __init__(self, store: ConfigStore, locks: LockService) -> None:
        self._store = store
        self._locks = locks

    @property
    def store(self) -> ConfigStore:
        return self._store

    async def get(self, did: str) -> PropertyBag | None:
        config = await self._store.load()
        return config.get(did)

    async def identifiers(self) -> list[str]:
        config = await self._store.load()
        return config.identifiers()

    async def find(self, prop: str, value: Scalar, did: str | None = None) -> list[str]:
        result = await self.apply(NotesRequest(find=(prop, value)), did=did)
        return result.found

    async def add_value(self, did: str | None, prop: str, value: Scalar, all_dids: bool = False) -> NotesResult:
        return await self.apply(NotesRequest(add=(prop, value)), did=did, all_dids=all_dids)

    async def remove_value(self, did: str | None, prop: str, value: Scalar, all_dids: bool = False) -> NotesResult:
        return await self.apply(NotesRequest(remove=(prop, value)), did=did, all_dids=all_dids)

    async def set_value(self, did: str | None, prop: str, value: Scalar, all_dids: bool = False) -> NotesResult:
        return await self.apply(NotesRequest(set=(prop, value)), did=did, all_dids=all_dids)

    async def delete_property(self, did: str | None, prop: str, all_dids: bool = False) -> NotesResult:
        return await self.apply(NotesRequest(delete=prop), did=did, all_dids=all_dids)

    async def clear(self, did: str | None, all_dids: bool = False) -> NotesResult:
        return await self.apply(NotesRequest(clear=True), did=did, all_dids=all_dids)

    async def add_many(self, did: str, properties: dict[str, Scalar]) -> None:
        """Add several notes to one DID in a single locked update."""
        if not did:
            raise ReadOnlyModeError()
        if not properties:
            return
        async with self._locks.hold(CONFIG_RESOURCE):
            config = await self._store.load()
            config.add_many(did, properties)
            await self._store.store(config)

    async def auto_notes(self) -> list[str]:
        config = await self._store.load()
        return list(config.auto_notes)

    async def apply(self, request: NotesRequest, did: str | None = None, all_dids: bool = False) -> NotesResult:
        """Run ``request`` against one DID, or against every DID when ``did`` is None.

        Raises:
            ReadOnlyModeError: If ``request`` mutates and neither ``did`` nor
                ``all_dids`` scopes it.
            ReservedPropertyError: If ``request`` touches ``id``; nothing is stored.
        """
        if request.mutating and not (did or all_dids):
            raise ReadOnlyModeError()

        if not request.mutating:
            config = await self._store.load()
            return self._run(config, request, did)

        async with self._locks.hold(CONFIG_RESOURCE):
            config = await self._store.load()
            result = self._run(config, request, did)
            if result.stored:
                await self._store.store(config)
        return result

    def _run(self, config: ConfigDocument, request: NotesRequest, did: str | None) -> NotesResult:
        result = NotesResult()
        targets = [did] if did else config.identifiers()
        changed = False
        for target in targets:
            logger.debug(f"notes: processing {target}")
            changed = self._run_one(config, target, request, result) or changed
        result.stored = changed
        return result

    def _run_one(self, config: ConfigDocument, did: str, request: NotesRequest, result: NotesResult) -> bool:
        changed = False
        if request.clear:
            changed = config.clear(did) or changed
        if request.add:
            changed = config.add_value(did, *request.add) or changed
        if request.remove:
            changed = config.remove_value(did, *request.remove) or changed
        if request.get:
            bag = config.get(did)
            if bag is not None and request.get in bag:
                result.shown[did] = {request.get: bag.to_json()[request.get]}
        if request.set:
            config.set_value(did, *request.set)
            changed = True
        if request.delete:
            changed = config.delete_property(did, request.delete) or changed
        if request.find and config.find(did, *request.find):
            result.found.append(did)
        if request.empty:
            bag = config.get(did)
            result.shown[did] = bag.to_json() if bag is not None else {}
        return changed
