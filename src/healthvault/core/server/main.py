"""HealthVault server entry point — ``python -m healthvault.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from healthvault.core.config.settings import get_settings
from healthvault.core.server.app import build_services, create_app

logger = logging.getLogger(__name__)


def _is_loopback_host(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def run() -> None:
    """Start the HealthVault MCP server with Streamable HTTP transport.

    The vault is sealed again when the server stops, whether it exits
    normally, on a signal, or with an error.
    """
    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.hv_log_level.upper(), logging.INFO))

    # Unlocked vault tools return decrypted health data to any caller.
    if not settings.hv_allow_insecure_bind and not _is_loopback_host(settings.hv_host):
        raise RuntimeError(
            "Refusing to bind HealthVault to a non-loopback host. "
            "Set HV_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )

    services = build_services(settings)
    mcp = create_app(services=services)
    logger.info(
        "Starting HealthVault server on %s:%d (data dir %s)",
        settings.hv_host,
        settings.hv_port,
        settings.data_dir,
    )
    try:
        mcp.run(
            transport="streamable-http",
            host=settings.hv_host,
            port=settings.hv_port,
        )
    finally:
        services.shutdown()
        logger.info("Vault sealed; server stopped")


if __name__ == "__main__":
    run()
