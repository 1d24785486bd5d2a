# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Result and record types for the identity lifecycle manager."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

from ..storage.collection import PENDING, REGISTERED
from ..storage.properties import PropertyBag


class RecordStatus(enum.StrEnum):
    """Lifecycle status. Values are the document area directory names."""

    PENDING = PENDING
    REGISTERED = REGISTERED


@dataclass
class IdentityRecord:
    """Everything stored locally for one identifier."""

    did: str
    document: dict[str, Any]
    status: RecordStatus
    key_material: dict[str, Any] | None = None
    metadata: PropertyBag = field(default_factory=PropertyBag)

    @property
    def published(self) -> bool:
        return "published" in self.metadata

    def to_dict(self) -> dict[str, Any]:
        return {
            "did": self.did,
            "status": self.status.value,
            "document": self.document,
            "metadata": self.metadata.to_json(),
        }


@dataclass
class GenerateResult:
    """Outcome of ``generate`` (with or without auto registration)."""

    document: dict[str, Any]
    did: str
    seed: str | None = None
    registered: bool = False

    @property
    def status(self) -> RecordStatus:
        return RecordStatus.REGISTERED if self.registered else RecordStatus.PENDING


@dataclass
class LocationResult:
    """Lookup outcome for one location queried by ``info``.

    Absence and read errors are data here: ``found`` is False and
    ``error`` holds the reason when the lookup itself failed.
    """

    location: str
    did: str
    found: bool = False
    status: RecordStatus | None = None
    document: dict[str, Any] | None = None
    metadata: PropertyBag | None = None
    filename: str | None = None
    hostname: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"location": self.location, "did": self.did, "found": self.found}
        if self.status is not None:
            result["status"] = self.status.value
        if self.document is not None:
            result["document"] = self.document
        if self.metadata is not None:
            result["metadata"] = self.metadata.to_json()
        if self.filename is not None:
            result["filename"] = self.filename
        if self.hostname is not None:
            result["hostname"] = self.hostname
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass
class ListingEntry:
    did: str
    metadata: PropertyBag | None = None


@dataclass
class RecordListing:
    """Identifiers grouped by ``(method, mode)`` then status."""

    groups: dict[tuple[str, str], dict[RecordStatus, list[ListingEntry]]] = field(default_factory=dict)
    # did -> reason for records whose metadata could not be read
    errors: dict[str, str] = field(default_factory=dict)

    def add(self, method: str, mode: str, status: RecordStatus, entry: ListingEntry) -> None:
        group = self.groups.setdefault((method, mode), {s: [] for s in RecordStatus})
        group[status].append(entry)

    def identifiers(self, status: RecordStatus | None = None) -> list[str]:
        dids = []
        for group in self.groups.values():
            for entry_status, entries in group.items():
                if status is None or entry_status == status:
                    dids.extend(entry.did for entry in entries)
        return dids

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for (method, mode), group in sorted(self.groups.items()):
            result[f"{method}-{mode}"] = {
                status.value: [
                    {"id": e.did, **({"meta": e.metadata.to_json()} if e.metadata is not None else {})}
                    for e in entries
                ]
                for status, entries in group.items()
            }
        if self.errors:
            result["errors"] = dict(self.errors)
        return result
