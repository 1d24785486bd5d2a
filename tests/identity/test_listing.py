"""Tests for didstore.identity.listing - grouping stored identifiers."""

from __future__ import annotations

import pytest

from didstore.identity.listing import RecordIndex
from didstore.identity.models import RecordStatus

EXAMPLE_DID = "did:example:abc"


@pytest.fixture
def index(layout) -> RecordIndex:
    return RecordIndex(layout)


async def _seed_store(layout) -> None:
    await layout.documents("v1", "test", "pending").put("did:v1:test:nym:a", {"id": "did:v1:test:nym:a"})
    await layout.documents("v1", "test", "registered").put("did:v1:test:nym:b", {"id": "did:v1:test:nym:b"})
    await layout.documents("v1", "live", "registered").put("did:v1:nym:c", {"id": "did:v1:nym:c"})
    await layout.documents("example", "test", "pending").put(EXAMPLE_DID, {"id": EXAMPLE_DID})
    await layout.meta().put("did:v1:test:nym:a", {"name": "Alice"})


class TestListRecords:
    async def test_empty_store(self, index):
        listing = await index.list_records()

        assert listing.groups == {}
        assert listing.identifiers() == []

    async def test_grouped_by_area_and_status(self, index, layout):
        await _seed_store(layout)

        listing = await index.list_records()

        assert sorted(listing.groups) == [("example", "test"), ("v1", "live"), ("v1", "test")]
        group = listing.groups[("v1", "test")]
        assert [e.did for e in group[RecordStatus.PENDING]] == ["did:v1:test:nym:a"]
        assert [e.did for e in group[RecordStatus.REGISTERED]] == ["did:v1:test:nym:b"]

    async def test_filter_by_method_and_mode(self, index, layout):
        await _seed_store(layout)

        assert sorted(await _dids(index, method="v1")) == ["did:v1:nym:c", "did:v1:test:nym:a", "did:v1:test:nym:b"]
        assert await _dids(index, method="v1", mode="live") == ["did:v1:nym:c"]
        assert await _dids(index, mode="test", method="example") == [EXAMPLE_DID]

    async def test_identifiers_by_status(self, index, layout):
        await _seed_store(layout)

        listing = await index.list_records()

        assert sorted(listing.identifiers(RecordStatus.REGISTERED)) == ["did:v1:nym:c", "did:v1:test:nym:b"]

    async def test_metadata_optional(self, index, layout):
        await _seed_store(layout)

        without = await index.list_records(method="v1", mode="test")
        with_meta = await index.list_records(method="v1", mode="test", with_metadata=True)

        assert without.groups[("v1", "test")][RecordStatus.PENDING][0].metadata is None
        entry = with_meta.groups[("v1", "test")][RecordStatus.PENDING][0]
        assert entry.metadata.first("name") == "Alice"

    async def test_corrupt_metadata_skipped_and_reported(self, index, layout):
        await _seed_store(layout)
        layout.meta().path_for("did:v1:test:nym:b").write_text("{oops")

        listing = await index.list_records(with_metadata=True)

        assert "did:v1:test:nym:b" in listing.errors
        assert "did:v1:test:nym:b" in listing.identifiers()
        assert len(listing.identifiers()) == 4

    @pytest.mark.parametrize("content", ["[1, 2]", "\"oops\"", "42"])
    async def test_non_object_metadata_skipped_and_reported(self, index, layout, content):
        await _seed_store(layout)
        layout.meta().path_for("did:v1:test:nym:a").write_text(content)

        listing = await index.list_records(with_metadata=True)

        assert "not an object" in listing.errors["did:v1:test:nym:a"]
        entry = listing.groups[("v1", "test")][RecordStatus.PENDING][0]
        assert entry.did == "did:v1:test:nym:a"
        assert entry.metadata is None
        assert len(listing.identifiers()) == 4

    async def test_lists_records_from_manager(self, index, manager):
        await manager.generate(name="Alice")

        listing = await index.list_records(with_metadata=True)

        (entry,) = listing.groups[("example", "test")][RecordStatus.PENDING]
        assert entry.did == EXAMPLE_DID
        assert entry.metadata.first("name") == "Alice"

    async def test_to_dict(self, index, layout):
        await _seed_store(layout)

        data = (await index.list_records(method="v1", mode="test", with_metadata=True)).to_dict()

        assert data == {
            "v1-test": {
                "pending": [{"id": "did:v1:test:nym:a", "meta": {"name": "Alice"}}],
                "registered": [{"id": "did:v1:test:nym:b", "meta": {}}],
            }
        }


async def _dids(index: RecordIndex, **filters) -> list[str]:
    return (await index.list_records(**filters)).identifiers()
