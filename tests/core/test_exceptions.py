"""Tests for didstore.core.exceptions."""

from __future__ import annotations

import pytest

from didstore.core.exceptions import (
    DeserializationError,
    DIDStoreError,
    InvalidIdentifierError,
    KeyCollisionError,
    LedgerError,
    LockTimeoutError,
    NotFoundError,
    PublishedRecordError,
    ReadOnlyModeError,
    RecordExistsError,
    ReservedPropertyError,
    ServiceExistsError,
    UnsupportedKeyTypeError,
    UnsupportedSchemaVersionError,
)


class TestHierarchy:
    @pytest.mark.parametrize(
        "error",
        [
            NotFoundError("record", "did:example:abc"),
            ReservedPropertyError("id"),
            ReadOnlyModeError(),
            LockTimeoutError("did:example:abc", 100),
            UnsupportedSchemaVersionError("2", "1"),
            PublishedRecordError("did:example:abc"),
            DeserializationError("/tmp/x.json", "Expecting value"),
            KeyCollisionError("did:example:abc#k1"),
            ServiceExistsError("did:example:abc#hub"),
            RecordExistsError("did:example:abc"),
            InvalidIdentifierError("nope"),
            UnsupportedKeyTypeError("rsa"),
            LedgerError("boom"),
        ],
    )
    def test_all_derive_from_base(self, error):
        assert isinstance(error, DIDStoreError)
        assert error.to_dict()["error"] == type(error).__name__


class TestToDict:
    def test_base_error(self):
        error = DIDStoreError("something failed", {"key": "value"})

        assert error.to_dict() == {
            "error": "DIDStoreError",
            "message": "something failed",
            "details": {"key": "value"},
        }
        assert str(error) == "something failed"

    def test_not_found_details(self):
        error = NotFoundError("pending record", "did:example:abc")

        assert error.message == "pending record not found: did:example:abc"
        assert error.details == {"resource_type": "pending record", "resource_id": "did:example:abc"}

    def test_reserved_property_message(self):
        error = ReservedPropertyError("id", "add")

        assert error.message == 'Can not add "id"'
        assert error.prop == "id"

    def test_readonly_message(self):
        assert ReadOnlyModeError().message == "readonly mode: specify DID or use all"

    def test_ledger_error_details(self):
        error = LedgerError("rejected", hostname="veres.one", status=400, body="bad proof")

        assert error.status == 400
        assert error.details == {"hostname": "veres.one", "status": 400, "body": "bad proof"}

    def test_ledger_error_omits_unknowns(self):
        assert LedgerError("network down").details == {}

    def test_lock_timeout_details(self):
        error = LockTimeoutError("urn:did-client:config", 100)

        assert error.details["resource"] == "urn:did-client:config"
        assert error.details["attempts"] == 100
