# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Exception hierarchy for the local identity record store.

Every error raised by didstore derives from :class:`DIDStoreError` so that a
presentation layer can catch one type and render ``to_dict()``.  Lifecycle
operations add ``operation`` and ``did`` to ``details`` before an error
escapes them.
"""

from __future__ import annotations

from typing import Any


class DIDStoreError(Exception):
    """Base exception for all didstore errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(DIDStoreError):
    """Requested identifier is absent from the relevant collection.

    Raised when:
    - ``register`` targets an identifier with no Pending document
    - ``rotate_key`` targets an unknown record or key id
    - key material for a record is missing
    """

    def __init__(self, resource_type: str, resource_id: str):
        message = f"{resource_type} not found: {resource_id}"
        super().__init__(
            message,
            {"resource_type": resource_type, "resource_id": resource_id},
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ReservedPropertyError(DIDStoreError):
    """Attempt to add, remove or set the reserved ``id`` property."""

    def __init__(self, prop: str, action: str = "set"):
        super().__init__(f'Can not {action} "{prop}"', {"property": prop, "action": action})
        self.prop = prop
        self.action = action


class ReadOnlyModeError(DIDStoreError):
    """Notes mutation attempted without an identifier or the "all" scope."""

    def __init__(self, message: str = "readonly mode: specify DID or use all"):
        super().__init__(message)


class LockTimeoutError(DIDStoreError):
    """A lock could not be acquired within the retry budget."""

    def __init__(self, resource: str, attempts: int):
        super().__init__(
            f"Could not lock {resource} after {attempts} attempts",
            {"resource": resource, "attempts": attempts},
        )
        self.resource = resource
        self.attempts = attempts


class UnsupportedSchemaVersionError(DIDStoreError):
    """Config file carries a version tag this implementation does not read."""

    def __init__(self, found: Any, expected: str, path: str | None = None):
        details: dict[str, Any] = {"found": found, "expected": expected}
        if path:
            details["path"] = path
        super().__init__(f"Unknown config file version: {found!r} (expected {expected!r})", details)
        self.found = found
        self.expected = expected


class PublishedRecordError(DIDStoreError):
    """Attempt to remove a record that has been published to a ledger."""

    def __init__(self, did: str):
        super().__init__(f"DID {did} is published and can not be removed locally", {"did": did})
        self.did = did


class DeserializationError(DIDStoreError):
    """On-disk document exists but cannot be parsed."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Could not parse {path}: {reason}", {"path": path, "reason": reason})
        self.path = path
        self.reason = reason


class KeyCollisionError(DIDStoreError):
    """A generated key id already exists on the target document."""

    def __init__(self, key_id: str):
        super().__init__(f"The key already exists: {key_id}", {"key_id": key_id})
        self.key_id = key_id


class ServiceExistsError(DIDStoreError):
    """A service endpoint with this id is already on the document."""

    def __init__(self, service_id: str):
        super().__init__(f"The service already exists: {service_id}", {"service_id": service_id})
        self.service_id = service_id


class RecordExistsError(DIDStoreError):
    """A record with this identifier is already stored locally."""

    def __init__(self, did: str):
        super().__init__(f"DID {did} already exists", {"did": did})
        self.did = did


class InvalidIdentifierError(DIDStoreError):
    """Identifier failed format validation at the storage boundary."""

    def __init__(self, did: Any, reason: str = "malformed identifier"):
        super().__init__(f"Invalid DID {did!r}: {reason}", {"did": str(did), "reason": reason})
        self.did = did


class UnsupportedKeyTypeError(DIDStoreError):
    """The key generator does not know the requested key type."""

    def __init__(self, key_type: str, supported: list[str] | None = None):
        details: dict[str, Any] = {"key_type": key_type}
        if supported:
            details["supported"] = supported
        super().__init__(f"Unknown key type: {key_type}", details)
        self.key_type = key_type


class LedgerError(DIDStoreError):
    """A ledger collaborator returned a non-success response."""

    def __init__(
        self,
        message: str,
        hostname: str | None = None,
        status: int | None = None,
        body: Any = None,
    ):
        details: dict[str, Any] = {}
        if hostname:
            details["hostname"] = hostname
        if status is not None:
            details["status"] = status
        if body is not None:
            details["body"] = body
        super().__init__(message, details)
        self.hostname = hostname
        self.status = status
        self.body = body
