"""Identity lifecycle: key/document generation, ledger registrars and the manager."""

from .keys import (
    Ed25519DocumentGenerator,
    GeneratedDocument,
    KeyPair,
    generate_keypair,
    parse_did,
    validate_did,
)
from .ledger import HttpLedgerClient, InMemoryLedger, LedgerRegistrar
from .listing import RecordIndex
from .manager import PROCESS_RETIRED_KEYS, IdentityManager, RetiredKeys
from .models import (
    GenerateResult,
    IdentityRecord,
    ListingEntry,
    LocationResult,
    RecordListing,
    RecordStatus,
)

__all__ = [
    "Ed25519DocumentGenerator",
    "GenerateResult",
    "GeneratedDocument",
    "HttpLedgerClient",
    "IdentityManager",
    "IdentityRecord",
    "InMemoryLedger",
    "KeyPair",
    "LedgerRegistrar",
    "ListingEntry",
    "LocationResult",
    "PROCESS_RETIRED_KEYS",
    "RecordIndex",
    "RecordListing",
    "RecordStatus",
    "RetiredKeys",
    "generate_keypair",
    "parse_did",
    "validate_did",
]
