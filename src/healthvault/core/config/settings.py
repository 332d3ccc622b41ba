"""Application settings loaded from environment variables."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """HealthVault server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Loopback by default: the vault tools expose decrypted health data.
    hv_host: str = "127.0.0.1"
    hv_port: int = 8011
    hv_log_level: str = "info"
    hv_allow_insecure_bind: bool = False

    # Storage
    data_dir: str = "~/.healthvault"
    secret_store_dir: str = "~/.healthvault/keys"
    export_dir: str = "~/HealthVault Exports"

    # Export encryption (PBKDF2-HMAC-SHA256 iterations)
    kdf_iterations: int = 600_000

    # Health feed
    health_feed: Literal["mock", "apple_health"] = "mock"
    apple_health_export_path: str = ""

    # Authentication (device-secret fallback; empty refuses every unlock)
    device_secret: str = ""

    @property
    def encrypted_db_path(self) -> Path:
        return Path(self.data_dir).expanduser() / "vault.sqlite.enc"

    @property
    def working_db_path(self) -> Path:
        return Path(self.data_dir).expanduser() / "tmp" / "vault_decrypted.sqlite"


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
