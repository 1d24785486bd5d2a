"""Global test fixtures for the didstore test suite."""

from __future__ import annotations

import os
from typing import Any

import pytest

from didstore.core.config import StoreSettings, clear_settings_cache
from didstore.identity.keys import DID_CONTEXTS, Ed25519DocumentGenerator, GeneratedDocument, NewKey
from didstore.identity.ledger import InMemoryLedger
from didstore.identity.manager import IdentityManager, RetiredKeys
from didstore.storage.collection import StoreLayout
from didstore.storage.locking import LockService
from didstore.storage.notes import ConfigStore, NotesService

EXAMPLE_DID = "did:example:abc"


# ============================================================================
# Environment
# ============================================================================


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all DIDSTORE_ environment variables."""
    for key in list(os.environ.keys()):
        if key.startswith("DIDSTORE_"):
            monkeypatch.delenv(key, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


# ============================================================================
# Storage
# ============================================================================


@pytest.fixture
def settings(tmp_path, clean_env) -> StoreSettings:
    return StoreSettings(
        data_dir=tmp_path / "dids",
        config_file=tmp_path / "did" / "config.jsonld",
        mode="test",
        ledger="veres",
        lock_retries=200,
        lock_retry_delay=0.01,
    )


@pytest.fixture
def layout(settings) -> StoreLayout:
    return StoreLayout(settings.data_dir)


@pytest.fixture
def locks(settings) -> LockService:
    return LockService.from_settings(settings)


@pytest.fixture
def config_store(settings) -> ConfigStore:
    return ConfigStore(settings.config_file)


@pytest.fixture
def notes(config_store, locks) -> NotesService:
    return NotesService(config_store, locks)


# ============================================================================
# Collaborators
# ============================================================================


class ExampleGenerator:
    """Generates single-key documents for a fixed ``did:example`` identifier."""

    method = "example"

    def __init__(self, did: str = EXAMPLE_DID) -> None:
        self.did = did
        self._keys = Ed25519DocumentGenerator(method="example")

    async def generate(self, key_type: str, seed: str | None = None) -> GeneratedDocument:
        key = await self._keys.new_key(self.did, key_type, seed=seed)
        document: dict[str, Any] = {
            "@context": list(DID_CONTEXTS),
            "id": self.did,
            "verificationMethod": [key.verification_method],
            "authentication": [key.key_id],
            "capabilityInvocation": [key.key_id],
        }
        return GeneratedDocument(document=document, key_pairs={key.key_id: key.key_pair}, seed=seed)

    async def new_key(self, controller: str, key_type: str, seed: str | None = None) -> NewKey:
        return await self._keys.new_key(controller, key_type, seed=seed)


@pytest.fixture
def generator() -> ExampleGenerator:
    return ExampleGenerator()


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger(name="veres", hostname="ledger.test")


@pytest.fixture
def manager(layout, config_store, locks, generator, ledger) -> IdentityManager:
    return IdentityManager(
        layout=layout,
        config_store=config_store,
        locks=locks,
        generator=generator,
        ledger=ledger,
        mode="test",
        retired_keys=RetiredKeys(),
    )


@pytest.fixture
def make_manager():
    """Factory for managers rooted in separate directories."""

    def _make(root, ledger: InMemoryLedger | None = None) -> IdentityManager:
        return IdentityManager(
            layout=StoreLayout(root / "dids"),
            config_store=ConfigStore(root / "did" / "config.jsonld"),
            locks=LockService(root / "dids" / "locks", retries=200, retry_delay=0.01),
            generator=ExampleGenerator(),
            ledger=ledger or InMemoryLedger(name="veres", hostname="ledger.test"),
            mode="test",
            retired_keys=RetiredKeys(),
        )

    return _make
