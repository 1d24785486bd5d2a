"""Tests for didstore.storage.notes - versioned config document and notes facade."""

from __future__ import annotations

import json

import pytest

from didstore.core.exceptions import (
    DeserializationError,
    LockTimeoutError,
    ReadOnlyModeError,
    ReservedPropertyError,
    UnsupportedSchemaVersionError,
)
from didstore.storage.locking import CONFIG_RESOURCE, LockService
from didstore.storage.notes import (
    AUTO_NOTES_KEY,
    VERSION_KEY,
    BackupResult,
    ConfigDocument,
    ConfigStore,
    NotesRequest,
    NotesService,
)

DID = "did:example:abc"
OTHER = "did:example:xyz"


# ============================================================================
# ConfigDocument
# ============================================================================


class TestConfigDocument:
    def test_defaults(self):
        config = ConfigDocument()

        assert config.version == "1"
        assert config.auto_notes == ["created", "ledger"]
        assert config.identifiers() == []

    def test_add_value_set_semantics(self):
        config = ConfigDocument()

        config.add_value(DID, "name", "Alice")
        config.add_value(DID, "name", "Alice")

        assert config.get(DID).values("name") == ["Alice"]

    def test_remove_last_value_prunes_identifier(self):
        config = ConfigDocument()
        config.add_value(DID, "name", "Alice")

        config.remove_value(DID, "name", "Alice")

        assert DID not in config.identifiers()

    def test_remove_from_unknown_identifier_leaves_no_placeholder(self):
        config = ConfigDocument()

        assert config.remove_value(DID, "name", "Alice") is False
        assert config.identifiers() == []

    def test_delete_property_prunes(self):
        config = ConfigDocument()
        config.set_value(DID, "name", "Alice")

        config.delete_property(DID, "name")

        assert config.get(DID) is None

    def test_find(self):
        config = ConfigDocument()
        config.add_value(DID, "tag", "a")

        assert config.find(DID, "tag", "a") is True
        assert config.find(DID, "tag", "b") is False
        assert config.find(OTHER, "tag", "a") is False

    @pytest.mark.parametrize("prop", ["id", "@id"])
    def test_reserved_add_and_set_rejected(self, prop):
        config = ConfigDocument()

        with pytest.raises(ReservedPropertyError):
            config.add_value(DID, prop, "x")
        with pytest.raises(ReservedPropertyError):
            config.set_value(DID, prop, "x")

        assert config.identifiers() == []

    def test_json_round_trip_preserves_unknown_keys(self):
        config = ConfigDocument()
        config.add_value(DID, "name", "Alice")
        data = config.to_json()
        data["urn:other:setting"] = {"x": 1}

        loaded = ConfigDocument.from_json(data)

        assert loaded.get(DID).values("name") == ["Alice"]
        assert loaded.to_json()["urn:other:setting"] == {"x": 1}

    def test_unknown_version_rejected(self):
        data = ConfigDocument().to_json()
        data[VERSION_KEY] = "2"

        with pytest.raises(UnsupportedSchemaVersionError) as exc_info:
            ConfigDocument.from_json(data)

        assert exc_info.value.found == "2"

    def test_missing_version_rejected(self):
        with pytest.raises(UnsupportedSchemaVersionError):
            ConfigDocument.from_json({"dids": {}})

    def test_malformed_dids_rejected(self):
        data = ConfigDocument().to_json()
        data["dids"] = {DID: "not a bag"}

        with pytest.raises(DeserializationError):
            ConfigDocument.from_json(data)

    def test_scalar_auto_notes_normalised(self):
        data = ConfigDocument().to_json()
        data[AUTO_NOTES_KEY] = "created"

        assert ConfigDocument.from_json(data).auto_notes == ["created"]


# ============================================================================
# ConfigStore
# ============================================================================


@pytest.fixture
def store(tmp_path) -> ConfigStore:
    return ConfigStore(tmp_path / "did" / "config.jsonld")


class TestConfigStore:
    @pytest.mark.asyncio
    async def test_load_missing_returns_default(self, store):
        config = await store.load()

        assert config.version == "1"
        assert config.identifiers() == []
        assert not store.path.exists()

    @pytest.mark.asyncio
    async def test_first_store_has_no_prior_file(self, store):
        result = await store.store(ConfigDocument())

        assert result is BackupResult.NO_PRIOR_FILE
        assert not store.backup_path.exists()
        assert json.loads(store.path.read_text())[VERSION_KEY] == "1"

    @pytest.mark.asyncio
    async def test_store_backs_up_previous_generation(self, store):
        first = ConfigDocument()
        first.add_value(DID, "name", "first")
        await store.store(first)
        second = ConfigDocument()
        second.add_value(DID, "name", "second")

        result = await store.store(second)

        assert result is BackupResult.BACKED_UP
        assert store.backup_path.name == "config.jsonld.old"
        assert json.loads(store.backup_path.read_text())["dids"][DID]["name"] == "first"
        assert (await store.load()).get(DID).values("name") == ["second"]

    def test_try_backup_without_file(self, store):
        assert store.try_backup() is BackupResult.NO_PRIOR_FILE

    @pytest.mark.asyncio
    async def test_load_rejects_other_version(self, store):
        store.path.parent.mkdir(parents=True)
        store.path.write_text(json.dumps({VERSION_KEY: "0", "dids": {}}))

        with pytest.raises(UnsupportedSchemaVersionError):
            await store.load()

    @pytest.mark.asyncio
    async def test_load_rejects_garbage(self, store):
        store.path.parent.mkdir(parents=True)
        store.path.write_text("][")

        with pytest.raises(DeserializationError):
            await store.load()

    @pytest.mark.asyncio
    async def test_single_values_stored_compact(self, store):
        config = ConfigDocument()
        config.add_value(DID, "name", "Alice")
        config.add_value(DID, "tag", "a")
        config.add_value(DID, "tag", "b")

        await store.store(config)

        assert json.loads(store.path.read_text())["dids"][DID] == {"name": "Alice", "tag": ["a", "b"]}


# ============================================================================
# NotesService
# ============================================================================


class TestNotesService:
    @pytest.mark.asyncio
    async def test_add_value_twice_keeps_one(self, notes):
        await notes.add_value(DID, "name", "Alice")
        await notes.add_value(DID, "name", "Alice")

        assert (await notes.get(DID)).values("name") == ["Alice"]

    @pytest.mark.asyncio
    async def test_duplicate_add_does_not_rewrite(self, notes):
        await notes.add_value(DID, "name", "Alice")

        result = await notes.add_value(DID, "name", "Alice")

        assert result.stored is False
        assert not notes.store.backup_path.exists()

    @pytest.mark.parametrize("prop", ["id", "@id"])
    @pytest.mark.asyncio
    async def test_reserved_property_leaves_config_unmodified(self, notes, prop):
        await notes.add_value(DID, "name", "Alice")
        before = notes.store.path.read_bytes()

        with pytest.raises(ReservedPropertyError):
            await notes.add_value(DID, prop, "x")
        with pytest.raises(ReservedPropertyError):
            await notes.set_value(DID, prop, "x")

        assert notes.store.path.read_bytes() == before

    @pytest.mark.asyncio
    async def test_add_then_clear(self, notes):
        await notes.add_value(DID, "description", "test")

        await notes.clear(DID)

        assert await notes.get(DID) is None
        assert DID not in await notes.identifiers()

    @pytest.mark.asyncio
    async def test_set_replaces(self, notes):
        await notes.add_value(DID, "tag", "a")
        await notes.add_value(DID, "tag", "b")

        await notes.set_value(DID, "tag", "c")

        assert (await notes.get(DID)).values("tag") == ["c"]

    @pytest.mark.asyncio
    async def test_remove_and_delete(self, notes):
        await notes.add_value(DID, "tag", "a")
        await notes.add_value(DID, "name", "Alice")

        await notes.remove_value(DID, "tag", "missing")
        await notes.remove_value(DID, "tag", "a")
        await notes.delete_property(DID, "name")

        assert await notes.get(DID) is None

    @pytest.mark.asyncio
    async def test_find_across_identifiers(self, notes):
        await notes.add_value(DID, "tag", "shared")
        await notes.add_value(OTHER, "tag", "shared")
        await notes.add_value(OTHER, "tag", "only")

        assert await notes.find("tag", "shared") == [DID, OTHER]
        assert await notes.find("tag", "only") == [OTHER]
        assert await notes.find("tag", "shared", did=DID) == [DID]

    @pytest.mark.asyncio
    async def test_add_many(self, notes):
        await notes.add_many(DID, {"name": "Alice", "created": "2026-01-01T00:00:00Z"})

        bag = await notes.get(DID)
        assert bag.first("name") == "Alice"
        assert bag.first("created") == "2026-01-01T00:00:00Z"

    @pytest.mark.asyncio
    async def test_auto_notes_default(self, notes):
        assert await notes.auto_notes() == ["created", "ledger"]


class TestReadOnlyGuard:
    @pytest.mark.parametrize(
        "request_",
        [
            NotesRequest(clear=True),
            NotesRequest(add=("name", "x")),
            NotesRequest(remove=("name", "x")),
            NotesRequest(set=("name", "x")),
            NotesRequest(delete="name"),
        ],
    )
    @pytest.mark.asyncio
    async def test_unscoped_mutation_rejected(self, notes, request_):
        await notes.add_value(DID, "name", "x")
        before = notes.store.path.read_bytes()

        with pytest.raises(ReadOnlyModeError):
            await notes.apply(request_)

        assert notes.store.path.read_bytes() == before

    @pytest.mark.asyncio
    async def test_all_scope_mutates_every_identifier(self, notes):
        await notes.add_value(DID, "tag", "a")
        await notes.add_value(OTHER, "tag", "b")

        result = await notes.set_value(None, "tag", "z", all_dids=True)

        assert result.stored is True
        assert (await notes.get(DID)).values("tag") == ["z"]
        assert (await notes.get(OTHER)).values("tag") == ["z"]

    @pytest.mark.asyncio
    async def test_unscoped_read_allowed(self, notes):
        await notes.add_value(DID, "name", "Alice")

        result = await notes.apply(NotesRequest())

        assert result.shown == {DID: {"name": "Alice"}}
        assert result.stored is False


class TestApplyOrder:
    @pytest.mark.asyncio
    async def test_clear_runs_before_add(self, notes):
        await notes.add_value(DID, "old", "x")

        await notes.apply(NotesRequest(clear=True, add=("name", "new")), did=DID)

        assert (await notes.get(DID)).to_json() == {"name": "new"}

    @pytest.mark.asyncio
    async def test_get_sees_add_but_not_later_set(self, notes):
        result = await notes.apply(
            NotesRequest(add=("tag", "a"), get="tag", set=("tag", "b")),
            did=DID,
        )

        assert result.shown == {DID: {"tag": "a"}}
        assert (await notes.get(DID)).values("tag") == ["b"]

    @pytest.mark.asyncio
    async def test_find_runs_after_delete(self, notes):
        await notes.add_value(DID, "tag", "a")

        result = await notes.apply(NotesRequest(delete="tag", find=("tag", "a")), did=DID)

        assert result.found == []

    @pytest.mark.asyncio
    async def test_show_single_unknown_identifier(self, notes):
        result = await notes.apply(NotesRequest(), did=DID)

        assert result.shown == {DID: {}}


class TestConfigLock:
    @pytest.mark.asyncio
    async def test_mutation_waits_for_config_lock(self, config_store, tmp_path):
        locks = LockService(tmp_path / "locks", retries=3, retry_delay=0.01)
        service = NotesService(config_store, locks)
        held = await locks.acquire(CONFIG_RESOURCE)

        with pytest.raises(LockTimeoutError):
            await service.add_value(DID, "name", "Alice")

        held.release()
        await service.add_value(DID, "name", "Alice")
        assert (await service.get(DID)).values("name") == ["Alice"]

    @pytest.mark.asyncio
    async def test_reads_do_not_lock(self, config_store, tmp_path):
        locks = LockService(tmp_path / "locks", retries=1, retry_delay=0.01)
        service = NotesService(config_store, locks)

        async with locks.hold(CONFIG_RESOURCE):
            assert await service.get(DID) is None
            assert await service.find("tag", "a") == []
