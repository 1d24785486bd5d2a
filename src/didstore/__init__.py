# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""didstore - local identity record store for decentralized identifiers.

Durably persists DID documents, exported key material and free-form notes
on local disk, serializes concurrent access with OS file locks, and
tracks each identifier's lifecycle:

  generate -> Pending -> register -> Registered

Layout (``DIDSTORE_DATA_DIR``, default ``~/.dids``):
  <method>-<mode>/pending/    documents not yet on the ledger
  <method>-<mode>/registered/ documents accepted by the ledger
  keys/                       exported key material
  meta/                       lifecycle metadata
  locks/                      lock files

The operator notes live in one versioned JSON-LD config file
(``DIDSTORE_CONFIG_FILE``, default ``~/.did/config.jsonld``).
"""

__version__ = "0.1.0"

from .core.exceptions import DIDStoreError
from .identity.listing import RecordIndex
from .identity.manager import IdentityManager
from .identity.models import RecordStatus
from .storage.notes import NotesRequest, NotesService

__all__ = [
    "DIDStoreError",
    "IdentityManager",
    "NotesRequest",
    "NotesService",
    "RecordIndex",
    "RecordStatus",
    "__version__",
]
