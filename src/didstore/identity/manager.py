# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Identity lifecycle manager.

Orchestrates the document, key and metadata collections, the file locks
and the config notes to move identity records through their lifecycle:

    generate --> Pending --register--> Registered
                    |                      |
                 rotate_key            rotate_key (ledger update first)
                 add_key               add_key
                 add_service           add_service
                    |
                 remove

Every operation that touches an identifier holds that identifier's lock for
its whole read-modify-write sequence. Config notes are edited under the
config lock, always acquired after the identifier lock.

Example:
    >>> manager = IdentityManager.from_settings(get_settings())
    >>> result = await manager.generate(name="alice")
    >>> await manager.register(result.did)
    >>> [r.status for r in await manager.info(result.did)]
    [<RecordStatus.REGISTERED: 'registered'>]
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

from ..core.config import StoreSettings, mode_hostnames
from ..core.exceptions import (
    DeserializationError,
    DIDStoreError,
    KeyCollisionError,
    LedgerError,
    NotFoundError,
    PublishedRecordError,
    RecordExistsError,
    ServiceExistsError,
)
from ..core.logging import operation_context
from ..storage.collection import FileCollection, StoreLayout
from ..storage.locking import LockService
from ..storage.notes import ConfigStore, NotesService
from ..storage.properties import PropertyBag, Scalar
from .keys import (
    VERIFICATION_RELATIONSHIPS,
    DocumentGenerator,
    Ed25519DocumentGenerator,
    NewKey,
    export_key_material,
    parse_did,
    split_key_id,
    validate_did,
)
from .ledger import HttpLedgerClient, LedgerRegistrar
from .models import GenerateResult, IdentityRecord, LocationResult, RecordStatus

logger = logging.getLogger(__name__)

LOCATIONS = ("any", "local", "ledger", "both", "ledger-all", "all")


def _now() -> str:
    return datetime.now(UTC).isoformat(timespec="seconds").replace("+00:00", "Z")


@contextmanager
def _operation(operation: str, did: str | None = None) -> Iterator[None]:
    """Scope logging to ``operation`` and tag errors escaping it."""
    with operation_context(operation, did):
        try:
            yield
        except DIDStoreError as e:
            e.details.setdefault("operation", operation)
            if did:
                e.details.setdefault("did", did)
            raise
        except Exception as e:
            e.add_note(f"didstore: raised during {operation}" + (f" of {did}" if did else ""))
            raise


class RetiredKeys:
    """Key ids retired by rotation; they are never handed out again.

    Managers share :data:`PROCESS_RETIRED_KEYS` unless given their own.
    """

    def __init__(self) -> None:
        self._ids: set[str] = set()

    def __contains__(self, key_id: object) -> bool:
        return key_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def retire(self, key_id: str) -> None:
        self._ids.add(key_id)

    def clear(self) -> None:
        """Forget every retired id (for tests and long-lived tooling)."""
        self._ids.clear()


PROCESS_RETIRED_KEYS = RetiredKeys()


class IdentityManager:
    """Lifecycle operations over locally stored identity records."""

    def __init__(
        self,
        layout: StoreLayout,
        config_store: ConfigStore,
        locks: LockService,
        generator: DocumentGenerator,
        ledger: LedgerRegistrar,
        mode: str = "test",
        retired_keys: RetiredKeys | None = None,
    ) -> None:
        self._layout = layout
        self._locks = locks
        self._generator = generator
        self._ledger = ledger
        self._mode = mode
        self._notes = NotesService(config_store, locks)
        self._retired = PROCESS_RETIRED_KEYS if retired_keys is None else retired_keys

    @classmethod
    def from_settings(
        cls,
        settings: StoreSettings,
        generator: DocumentGenerator | None = None,
        ledger: LedgerRegistrar | None = None,
    ) -> IdentityManager:
        """Build a manager wired to the collections named by ``settings``."""
        if ledger is None:
            ledger = HttpLedgerClient(settings.resolved_hostname, mode=settings.mode, ledger=settings.ledger)
        return cls(
            layout=StoreLayout(settings.data_dir),
            config_store=ConfigStore(settings.config_file),
            locks=LockService.from_settings(settings),
            generator=generator or Ed25519DocumentGenerator(),
            ledger=ledger,
            mode=settings.mode,
        )

    @property
    def layout(self) -> StoreLayout:
        return self._layout

    @property
    def notes(self) -> NotesService:
        return self._notes

    @property
    def mode(self) -> str:
        return self._mode

    @property
    def retired_keys(self) -> RetiredKeys:
        return self._retired

    @property
    def ledger_tag(self) -> str:
        return f"{self._ledger.name}:{self._mode}"

    # -------------------------------------------------------------------------
    # Storage helpers
    # -------------------------------------------------------------------------

    def _documents(self, did: str, status: RecordStatus) -> FileCollection:
        return self._layout.documents(parse_did(did).method, self._mode, status.value)

    async def _locate(self, did: str) -> tuple[RecordStatus, dict[str, Any]] | None:
        """Find the document and its status; Registered wins if both exist."""
        for status in (RecordStatus.REGISTERED, RecordStatus.PENDING):
            document = await self._documents(did, status).get_object(did)
            if document is not None:
                return status, document
        return None

    async def _load_metadata(self, did: str) -> PropertyBag:
        return PropertyBag.from_json(await self._layout.meta().get_object(did))

    async def _exists(self, did: str) -> bool:
        if await self._locate(did) is not None:
            return True
        return await self._layout.keys().exists(did) or await self._layout.meta().exists(did)

    # -------------------------------------------------------------------------
    # Lifecycle operations
    # -------------------------------------------------------------------------

    async def generate(
        self,
        key_type: str = "ed25519",
        passphrase: str | None = None,
        name: str | None = None,
        description: str | None = None,
        auto_register: bool = False,
        seed: str | None = None,
    ) -> GenerateResult:
        """Generate a new Pending record, optionally registering it at once.

        Raises:
            RecordExistsError: If a record for the generated DID already exists.
            KeyCollisionError: If a generated key id was retired by rotation.
        """
        with _operation("generate"):
            generated = await self._generator.generate(key_type, seed=seed)
            did = validate_did(generated.did)

        with _operation("generate", did):
            for key_id in generated.key_pairs:
                if key_id in self._retired:
                    raise KeyCollisionError(key_id)

            async with self._locks.hold(did):
                if await self._exists(did):
                    raise RecordExistsError(did)

                created = _now()
                metadata = PropertyBag({"created": created})
                if name:
                    metadata.set("name", name)
                if description:
                    metadata.set("description", description)

                await self._layout.keys().put(did, export_key_material(did, generated.key_pairs, passphrase))
                await self._documents(did, RecordStatus.PENDING).put(did, generated.document)
                await self._layout.meta().put(did, metadata.to_json())

                notes: dict[str, Scalar] = {}
                if "created" in await self._notes.auto_notes():
                    notes["created"] = created
                if name:
                    notes["name"] = name
                if description:
                    notes["description"] = description
                await self._notes.add_many(did, notes)
                logger.info(f"Generated {did} ({key_type})")

                if auto_register:
                    await self._register_locked(did)

        return GenerateResult(
            document=generated.document,
            did=did,
            seed=generated.seed,
            registered=auto_register,
        )

    async def register(self, did: str) -> None:
        """Submit a Pending record to the ledger and mark it Registered.

        On ledger failure the record stays Pending and the ledger's error is
        raised unchanged.

        Raises:
            NotFoundError: If ``did`` is not in the Pending collection.
        """
        validate_did(did)
        with _operation("register", did):
            async with self._locks.hold(did):
                await self._register_locked(did)

    async def _register_locked(self, did: str) -> None:
        pending = self._documents(did, RecordStatus.PENDING)
        document = await pending.get_object(did)
        if document is None:
            raise NotFoundError("pending record", did)
        key_material = await self._layout.keys().get_object(did)
        if key_material is None:
            raise NotFoundError("key material", did)

        logger.info(f"Registering {did} with {self._ledger.name} ({self._ledger.hostname})")
        await self._ledger.register(document, keys=key_material)

        await self._documents(did, RecordStatus.REGISTERED).put(did, document)
        await pending.remove(did)
        try:
            await self._stamp(did)
        except Exception as e:
            e.add_note(f"{did} is registered but its metadata is not stamped; retry stamp_published({did!r})")
            raise
        logger.info(f"Registered {did}")

    async def _stamp(self, did: str) -> None:
        metadata = await self._load_metadata(did)
        metadata.set("published", _now())
        if self._ledger.hostname:
            metadata.set("publishedHost", self._ledger.hostname)
        metadata.set("ledger", self.ledger_tag)
        metadata.set("ledgerMode", self._mode)
        await self._layout.meta().put(did, metadata.to_json())

        if "ledger" in await self._notes.auto_notes():
            await self._notes.add_value(did, "ledger", self.ledger_tag)

    async def stamp_published(self, did: str) -> None:
        """Re-apply the published metadata of a Registered record.

        Repairs a ``register`` whose document moved but whose metadata
        stamp failed.
        """
        validate_did(did)
        with _operation("stamp_published", did):
            async with self._locks.hold(did):
                if not await self._documents(did, RecordStatus.REGISTERED).exists(did):
                    raise NotFoundError("registered record", did)
                await self._stamp(did)

    async def _commit(
        self,
        did: str,
        status: RecordStatus,
        updated: dict[str, Any],
        key_material: dict[str, Any],
        new_material: dict[str, Any] | None = None,
    ) -> None:
        """Write a mutated document, updating the ledger first if Registered."""
        if status is RecordStatus.REGISTERED:
            # Authorized by the keys the ledger currently holds
            await self._ledger.update(updated, keys=key_material)
        await self._documents(did, status).put(did, updated)
        if new_material is not None:
            await self._layout.keys().put(did, new_material)

    async def _locate_for_update(self, did: str) -> tuple[RecordStatus, dict[str, Any], dict[str, Any]]:
        located = await self._locate(did)
        if located is None:
            raise NotFoundError("record", did)
        status, document = located
        key_material = await self._layout.keys().get_object(did) or {"id": did, "keys": {}}
        return status, document, key_material

    async def _fresh_key(self, did: str, key_type: str, document: dict[str, Any], key_material: dict[str, Any]) -> NewKey:
        new_key = await self._generator.new_key(did, key_type)
        in_use = {m.get("id") for m in document.get("verificationMethod", [])} | set(key_material.get("keys", {}))
        if new_key.key_id in in_use or new_key.key_id in self._retired:
            raise KeyCollisionError(new_key.key_id)
        return new_key

    async def rotate_key(self, key_id: str, passphrase: str | None = None, key_type: str = "ed25519") -> dict[str, Any]:
        """Replace the key ``key_id`` with freshly generated key material.

        Registered records are updated on the ledger before anything is
        written locally; a ledger failure leaves local state untouched.

        Returns:
            The updated document.

        Raises:
            NotFoundError: If the record or the key is unknown.
            KeyCollisionError: If the new key id is already in use or retired.
        """
        did, _ = split_key_id(key_id)
        with _operation("rotate_key", did):
            async with self._locks.hold(did):
                status, document, key_material = await self._locate_for_update(did)

                methods = document.get("verificationMethod", [])
                index = next((i for i, m in enumerate(methods) if m.get("id") == key_id), None)
                if index is None:
                    raise NotFoundError("key", key_id)

                new_key = await self._fresh_key(did, key_type, document, key_material)

                updated = copy.deepcopy(document)
                updated["verificationMethod"][index] = new_key.verification_method
                for relationship in VERIFICATION_RELATIONSHIPS:
                    references = updated.get(relationship)
                    if isinstance(references, list):
                        updated[relationship] = [new_key.key_id if ref == key_id else ref for ref in references]

                new_material = copy.deepcopy(key_material)
                keys = new_material.setdefault("keys", {})
                keys.pop(key_id, None)
                keys[new_key.key_id] = new_key.key_pair.export(new_key.key_id, did, passphrase)

                await self._commit(did, status, updated, key_material, new_material)
                self._retired.retire(key_id)
                logger.info(f"Rotated {key_id} -> {new_key.key_id}")
                return updated

    async def add_key(
        self,
        did: str,
        purpose: str = "authentication",
        passphrase: str | None = None,
        key_type: str = "ed25519",
    ) -> dict[str, Any]:
        """Add a freshly generated key to the record for ``purpose``.

        Returns:
            The updated document.

        Raises:
            ValueError: If ``purpose`` is not a verification relationship.
            NotFoundError: If the record is unknown.
            KeyCollisionError: If the new key id is already in use or retired.
        """
        if purpose not in VERIFICATION_RELATIONSHIPS:
            raise ValueError(f"Unknown purpose {purpose!r}, expected one of {VERIFICATION_RELATIONSHIPS}")
        validate_did(did)
        with _operation("add_key", did):
            async with self._locks.hold(did):
                status, document, key_material = await self._locate_for_update(did)
                new_key = await self._fresh_key(did, key_type, document, key_material)

                updated = copy.deepcopy(document)
                updated.setdefault("verificationMethod", []).append(new_key.verification_method)
                updated.setdefault(purpose, []).append(new_key.key_id)

                new_material = copy.deepcopy(key_material)
                new_material.setdefault("keys", {})[new_key.key_id] = new_key.key_pair.export(
                    new_key.key_id, did, passphrase
                )

                await self._commit(did, status, updated, key_material, new_material)
                logger.info(f"Added {new_key.key_id} for {purpose}")
                return updated

    async def add_service(self, did: str, fragment: str, service_type: str, endpoint: str) -> dict[str, Any]:
        """Add a service endpoint ``<did>#<fragment>`` to the record.

        Returns:
            The updated document.

        Raises:
            ValueError: If ``fragment`` or ``endpoint`` is empty.
            NotFoundError: If the record is unknown.
            ServiceExistsError: If a service with that id is already listed.
        """
        if not fragment or not endpoint:
            raise ValueError("A service needs a fragment and an endpoint")
        validate_did(did)
        service_id = f"{did}#{fragment.lstrip('#')}"
        with _operation("add_service", did):
            async with self._locks.hold(did):
                status, document, key_material = await self._locate_for_update(did)
                services = document.get("service", [])
                if any(s.get("id") == service_id for s in services if isinstance(s, dict)):
                    raise ServiceExistsError(service_id)

                updated = copy.deepcopy(document)
                updated.setdefault("service", []).append(
                    {"id": service_id, "type": service_type, "serviceEndpoint": endpoint}
                )

                await self._commit(did, status, updated, key_material)
                logger.info(f"Added service {service_id} ({service_type})")
                return updated

    async def remove(self, did: str) -> None:
        """Delete a Pending record from every collection and clear its notes.

        Raises:
            PublishedRecordError: If the record has been published.
            NotFoundError: If nothing is stored for ``did``.
        """
        validate_did(did)
        with _operation("remove", did):
            async with self._locks.hold(did):
                metadata = await self._load_metadata(did)
                if "published" in metadata or await self._documents(did, RecordStatus.REGISTERED).exists(did):
                    raise PublishedRecordError(did)

                removed = [
                    await self._documents(did, RecordStatus.PENDING).remove(did),
                    await self._layout.keys().remove(did),
                    await self._layout.meta().remove(did),
                ]
                await self._notes.clear(did)
                if not any(removed):
                    raise NotFoundError("record", did)
                logger.info(f"Removed {did}")

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def status(self, did: str) -> RecordStatus | None:
        validate_did(did)
        located = await self._locate(did)
        return located[0] if located else None

    async def info(self, did: str, location: str = "any", hostnames: list[str] | None = None) -> list[LocationResult]:
        """Look ``did`` up locally and/or on ledger nodes.

        Locations:
        - ``local``: the local collections only
        - ``ledger``: the configured node, or each of ``hostnames``
        - ``any``: local, then the ledger only when not stored locally
        - ``both``: local and ledger
        - ``ledger-all``: ledger, plus every known node for the mode
        - ``all``: local plus ``ledger-all``

        Absence, corrupt local files and ledger errors are reported in the
        results, never raised. Ledger nodes are queried concurrently.
        """
        if location not in LOCATIONS:
            raise ValueError(f"Unknown location {location!r}, expected one of {LOCATIONS}")
        validate_did(did)
        results: list[LocationResult] = []
        with _operation("info", did):
            if location in ("any", "local", "both", "all"):
                results.append(await self._info_local(did))
                if location == "any" and results[0].found:
                    return results
            nodes = self._info_hostnames(location, hostnames or [])
            if nodes:
                logger.debug(f"Searching {did} on {nodes}")
                results.extend(await asyncio.gather(*(self._info_ledger(did, node) for node in nodes)))
        return results

    def _info_hostnames(self, location: str, hostnames: list[str]) -> list[str | None]:
        nodes: list[str | None] = []
        if location in ("any", "ledger", "both"):
            nodes = list(hostnames) or [self._ledger.hostname]
        elif location in ("ledger-all", "all"):
            try:
                known = mode_hostnames(self._mode)
            except ValueError:
                known = []
            nodes = [self._ledger.hostname, *known, *hostnames]
        return list(dict.fromkeys(nodes))

    async def _info_local(self, did: str) -> LocationResult:
        result = LocationResult(location="local", did=did)
        try:
            located = await self._locate(did)
            if located is None:
                return result
            result.status, result.document = located
            result.found = True
            result.filename = str(self._documents(did, result.status).path_for(did))
            result.metadata = await self._load_metadata(did)
        except DeserializationError as e:
            logger.warning(f"Unreadable local record for {did}: {e}")
            result.error = e.message
        return result

    async def _info_ledger(self, did: str, hostname: str | None) -> LocationResult:
        ledger = self._ledger if hostname == self._ledger.hostname else self._ledger.for_hostname(hostname)
        result = LocationResult(location="ledger", did=did, hostname=hostname)
        try:
            document = await ledger.get(did)
        except LedgerError as e:
            logger.warning(f"Ledger lookup on {hostname} failed for {did}: {e}")
            result.error = e.message
            return result
        if document is not None:
            result.found = True
            result.status = RecordStatus.REGISTERED
            result.document = document
        return result

    # -------------------------------------------------------------------------
    # Export / import
    # -------------------------------------------------------------------------

    async def load(self, did: str) -> IdentityRecord:
        """Load the full local record.

        Raises:
            NotFoundError: If no document is stored for ``did``.
        """
        validate_did(did)
        located = await self._locate(did)
        if located is None:
            raise NotFoundError("record", did)
        status, document = located
        return IdentityRecord(
            did=did,
            document=document,
            status=status,
            key_material=await self._layout.keys().get_object(did),
            metadata=await self._load_metadata(did),
        )

    async def export(self, did: str, private: bool = False) -> dict[str, Any]:
        """Public document, or ``{doc, keys, meta}`` with ``private=True``."""
        with _operation("export", did):
            record = await self.load(did)
        if not private:
            return record.document
        return {
            "doc": record.document,
            "keys": record.key_material,
            "meta": record.metadata.to_json(),
        }

    async def import_record(
        self,
        document: dict[str, Any],
        key_material: dict[str, Any],
        metadata: dict[str, Any] | None = None,
    ) -> IdentityRecord:
        """Store an externally produced document and keys as a Pending record.

        Raises:
            InvalidIdentifierError: If the document id is malformed.
            ValueError: If the key material belongs to another identifier.
            RecordExistsError: If a record for the identifier already exists.
        """
        did = validate_did(document.get("id"))
        with _operation("import", did):
            if key_material.get("id", did) != did:
                raise ValueError(f"Key material is for {key_material.get('id')}, not {did}")
            bag = PropertyBag.from_json(metadata)
            if "created" not in bag:
                bag.set("created", _now())

            async with self._locks.hold(did):
                if await self._exists(did):
                    raise RecordExistsError(did)
                await self._layout.keys().put(did, key_material)
                await self._documents(did, RecordStatus.PENDING).put(did, document)
                await self._layout.meta().put(did, bag.to_json())
            logger.info(f"Imported {did}")

        return IdentityRecord(
            did=did,
            document=document,
            status=RecordStatus.PENDING,
            key_material=key_material,
            metadata=bag,
        )
