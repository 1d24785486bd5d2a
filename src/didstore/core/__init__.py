"""Core services: settings, logging and the error taxonomy."""

from .config import StoreSettings, clear_settings_cache, get_settings
from .exceptions import DIDStoreError

__all__ = [
    "DIDStoreError",
    "StoreSettings",
    "clear_settings_cache",
    "get_settings",
]
