"""On-disk storage: collections, file locks and the versioned notes config."""

from .collection import FileCollection, StoreLayout, decode_key, encode_key
from .locking import CONFIG_RESOURCE, LockRelease, LockService
from .notes import (
    BackupResult,
    ConfigDocument,
    ConfigStore,
    NotesRequest,
    NotesResult,
    NotesService,
)
from .properties import PropertyBag

__all__ = [
    "BackupResult",
    "CONFIG_RESOURCE",
    "ConfigDocument",
    "ConfigStore",
    "FileCollection",
    "LockRelease",
    "LockService",
    "NotesRequest",
    "NotesResult",
    "NotesService",
    "PropertyBag",
    "StoreLayout",
    "decode_key",
    "encode_key",
]
