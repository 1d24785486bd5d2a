"""Core configuration - centralized settings for the didstore package.

All environment-based configuration flows through this module.

Usage:
    from didstore.core.config import get_settings
    settings = get_settings()

    data_dir = settings.data_dir
    retries = settings.lock_retries
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Ledger hostnames used when no explicit hostname is configured
MODE_HOSTNAMES = {
    "dev": "genesis.veres.one.localhost:42443",
    "test": "genesis.testnet.veres.one",
    "live": "veres.one",
}

# Every node of the test network, queried by "all" lookups
TESTNET_HOSTNAMES = tuple(
    f"{nick}.bee.veres.one" for nick in ("alturas", "frankfurt", "genesis", "mumbai", "saopaulo", "singapore", "tokyo")
)


def default_hostname(mode: str) -> str:
    """Default ledger hostname for a mode (dev, test, live).

    Raises:
        ValueError: If the mode is unknown.
    """
    try:
        return MODE_HOSTNAMES[mode]
    except KeyError:
        raise ValueError(f"Unknown mode: {mode}") from None


def mode_hostnames(mode: str) -> list[str]:
    """Every known ledger node for a mode."""
    if mode == "test":
        return list(TESTNET_HOSTNAMES)
    return [default_hostname(mode)]


class StoreSettings(BaseSettings):
    """Settings for the local identity record store.

    Every field can be overridden with a ``DIDSTORE_`` environment variable.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ==========================================================================
    # STORAGE SETTINGS
    # ==========================================================================

    data_dir: Path = Field(
        default=Path.home() / ".dids",
        description="Root directory for document, key, metadata and lock collections",
        validation_alias="DIDSTORE_DATA_DIR",
    )
    config_file: Path = Field(
        default=Path.home() / ".did" / "config.jsonld",
        description="Versioned config/notes document",
        validation_alias="DIDSTORE_CONFIG_FILE",
    )

    # ==========================================================================
    # LEDGER SETTINGS
    # ==========================================================================

    mode: str = Field(
        default="test",
        description="Ledger mode: dev, test or live",
        validation_alias="DIDSTORE_MODE",
    )
    ledger: str = Field(
        default="veres",
        description="Ledger name recorded in notes and metadata",
        validation_alias="DIDSTORE_LEDGER",
    )
    ledger_hostname: str | None = Field(
        default=None,
        description="Ledger node hostname override (default derived from mode)",
        validation_alias="DIDSTORE_LEDGER_HOSTNAME",
    )

    # ==========================================================================
    # LOCK SETTINGS
    # ==========================================================================

    lock_retries: int = Field(
        default=100,
        ge=1,
        description="Lock acquisition attempts before LockTimeoutError",
        validation_alias="DIDSTORE_LOCK_RETRIES",
    )
    lock_retry_delay: float = Field(
        default=0.1,
        ge=0,
        description="Seconds between lock attempts",
        validation_alias="DIDSTORE_LOCK_RETRY_DELAY",
    )

    # ==========================================================================
    # LOGGING SETTINGS
    # ==========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
        validation_alias="DIDSTORE_LOG_LEVEL",
    )
    log_format: str = Field(
        default="",
        description="Log format: 'json', 'text', or '' (auto-detect)",
        validation_alias="DIDSTORE_LOG_FORMAT",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (optional)",
        validation_alias="DIDSTORE_LOG_FILE",
    )

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def lock_dir(self) -> Path:
        """Directory holding lock files."""
        return self.data_dir.expanduser() / "locks"

    @property
    def resolved_hostname(self) -> str:
        """Ledger hostname, falling back to the mode default.

        Raises:
            ValueError: If the mode is unknown and no hostname is configured.
        """
        return self.ledger_hostname or default_hostname(self.mode)


# ==========================================================================
# GLOBAL SETTINGS INSTANCE (lazy loaded)
# ==========================================================================

_settings: StoreSettings | None = None


def get_settings() -> StoreSettings:
    """Get the global settings instance.

    Returns:
        The singleton StoreSettings instance.
    """
    global _settings
    if _settings is None:
        _settings = StoreSettings()
    return _settings


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    global _settings
    _settings = None
