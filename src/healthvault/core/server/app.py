"""HealthVault MCP Server — application factory.

This module provides:
- build_services() to open the vault and wire the storage/export services
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import atexit
import logging
from dataclasses import dataclass

from fastmcp import FastMCP

from healthvault.core.config.settings import Settings, get_settings
from healthvault.core.crypto.kdf import PasswordKeyDerivation
from healthvault.core.storage.encrypted_store import EncryptedStore
from healthvault.core.storage.key_vault import FileSecretStore, KeyVault, SecretStore
from healthvault.core.storage.queue import StorageQueue
from healthvault.core.storage.repository import MetricRepository
from healthvault.domains.health.connectors import HealthFeed
from healthvault.domains.health.connectors.apple_health import AppleHealthFeed
from healthvault.domains.health.connectors.providers import MockHealthFeed
from healthvault.domains.health.export.codec import ExportCodec
from healthvault.domains.health.export.service import ExportService
from healthvault.domains.health.sync import HealthSync
from healthvault.domains.health.tools.export_tools import register_export_tools
from healthvault.domains.health.tools.vault_tools import register_vault_tools

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


@dataclass
class VaultServices:
    """Everything the tools operate on, built once per server."""

    settings: Settings
    store: EncryptedStore
    repository: MetricRepository
    queue: StorageQueue
    health_feed: HealthFeed
    health_sync: HealthSync
    export_service: ExportService

    def shutdown(self) -> None:
        """Seal the vault and stop the storage queue."""
        try:
            self.store.lock()
        finally:
            self.queue.shutdown()


def _create_feed(settings: Settings) -> HealthFeed:
    if settings.health_feed == "apple_health":
        feed = AppleHealthFeed(settings.apple_health_export_path)
        if feed.is_connected():
            logger.info("Using Apple Health export feed")
            return feed
        logger.warning(
            "Apple Health export not found at %r; falling back to mock feed",
            settings.apple_health_export_path,
        )
    return MockHealthFeed()


def build_services(
    settings: Settings,
    *,
    secret_store_override: SecretStore | None = None,
    health_feed_override: HealthFeed | None = None,
) -> VaultServices:
    """Open the encrypted vault (left LOCKED) and wire sync and export around it.

    Raises:
        SecretStoreUnavailable: If a new vault cannot get its key.
        DiskIOFailure: If the vault directories cannot be prepared.
    """
    secret_store = secret_store_override or FileSecretStore(settings.secret_store_dir)
    store = EncryptedStore(
        KeyVault(secret_store), settings.encrypted_db_path, settings.working_db_path
    )
    store.add_listener(lambda state: logger.info("Vault state changed: %s", state.value))
    repository = MetricRepository(store)
    queue = StorageQueue()
    logger.info("Encrypted vault ready: %s", settings.encrypted_db_path)

    health_feed = health_feed_override or _create_feed(settings)
    codec = ExportCodec(kdf=PasswordKeyDerivation(settings.kdf_iterations))

    return VaultServices(
        settings=settings,
        store=store,
        repository=repository,
        queue=queue,
        health_feed=health_feed,
        health_sync=HealthSync(health_feed, repository, queue=queue),
        export_service=ExportService(repository, codec, settings.export_dir),
    )


def create_app(
    *,
    settings_override: Settings | None = None,
    secret_store_override: SecretStore | None = None,
    health_feed_override: HealthFeed | None = None,
    services: VaultServices | None = None,
) -> FastMCP:
    """Create and configure the HealthVault MCP server.

    This is the main application factory. It:
    1. Creates the FastMCP server instance
    2. Builds the vault services unless ``services`` is given
    3. Registers all tools
    """
    if services is None:
        services = build_services(
            settings_override or get_settings(),
            secret_store_override=secret_store_override,
            health_feed_override=health_feed_override,
        )
    settings = services.settings
    store = services.store

    # --- Server instance ---
    server = FastMCP(
        "HealthVault",
        instructions=(
            "HealthVault — encrypted on-device health metric vault. "
            "Unlock the vault with the device secret, sync or record metrics, "
            "and export password-encrypted reports that are safe to share. "
            "Lock the vault when finished."
        ),
    )

    if not settings.device_secret:
        logger.warning("No DEVICE_SECRET configured; unlock_vault will refuse every request")

    # --- Register tools ---
    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        return {
            "status": "ok",
            "server": "HealthVault",
            "version": VERSION,
            "vault_state": store.state.value,
            "health_feed": services.health_feed.data_source,
            "export_dir": str(services.export_service.export_dir),
        }

    register_vault_tools(
        server,
        store,
        services.repository,
        services.health_sync,
        services.queue,
        device_secret=settings.device_secret,
    )
    logger.info("Vault tools registered")

    register_export_tools(server, services.export_service, services.queue)
    logger.info("Export tools registered")

    return server


# Module-level instance for FastMCP discovery (``fastmcp run ...app.py:mcp``).
# Lazy: only created when this attribute is requested (not when tests import create_app).
# The vault is sealed when that process exits.
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        services = build_services(get_settings())
        atexit.register(services.shutdown)
        mcp = create_app(services=services)
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
