"""MCP tools for the vault lifecycle and metric data.

Unlocking requires the device secret; every other data tool refuses to run
while the vault is locked. All blocking storage work goes through the
storage queue.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from healthvault.core.auth.gate import DeviceSecretAuthenticator, authenticate_and_unlock
from healthvault.core.crypto.errors import VaultError
from healthvault.core.storage.models import MetricRecord
from healthvault.domains.health.tools.common import (
    error_response,
    invalid_argument,
    parse_datetime,
    record_to_dict,
)

if TYPE_CHECKING:
    from healthvault.core.storage.encrypted_store import EncryptedStore
    from healthvault.core.storage.queue import StorageQueue
    from healthvault.core.storage.repository import MetricRepository
    from healthvault.domains.health.sync import HealthSync

logger = logging.getLogger(__name__)


def register_vault_tools(
    mcp: FastMCP,
    store: EncryptedStore,
    repository: MetricRepository,
    health_sync: HealthSync,
    queue: StorageQueue,
    device_secret: str = "",
) -> None:
    """Register vault lifecycle and metric tools on the MCP server."""

    @mcp.tool
    async def vault_status(ctx: Context) -> str:
        """Report whether the vault is locked, and how many records it holds."""
        status: dict = {"state": store.state.value}
        if store.is_unlocked:
            status["record_count"] = await queue.run(repository.count)
        return json.dumps(status)

    @mcp.tool
    async def unlock_vault(ctx: Context, device_secret_attempt: str) -> str:
        """Unlock the encrypted vault after verifying the device secret.

        Args:
            device_secret_attempt: The device secret configured for this server.
        """
        authenticator = DeviceSecretAuthenticator(device_secret, device_secret_attempt)
        try:
            unlocked = await authenticate_and_unlock(
                store, authenticator, reason="Unlock HealthVault", queue=queue
            )
        except VaultError as exc:
            logger.warning("Unlock failed: %s", type(exc).__name__)
            return error_response(exc)
        if not unlocked:
            return json.dumps({
                "status": "denied",
                "state": store.state.value,
                "message": "Authentication failed.",
            })
        return json.dumps({"status": "unlocked", "state": store.state.value})

    @mcp.tool
    async def lock_vault(ctx: Context) -> str:
        """Seal the vault to disk and remove the decrypted working copy."""
        try:
            await queue.run(store.lock)
        except VaultError as exc:
            return error_response(exc)
        return json.dumps({"status": "locked", "state": store.state.value})

    @mcp.tool
    async def sync_health_data(ctx: Context, days: int = 7) -> str:
        """Import recent steps, sleep and heart-rate samples into the vault.

        Args:
            days: How many days back to import (default: 7).
        """
        if days < 1:
            return invalid_argument("days must be at least 1.")
        try:
            result = await health_sync.sync(days=days)
        except VaultError as exc:
            return error_response(exc)
        return json.dumps({
            "status": "synced",
            "synced_at": result.synced_at.isoformat(),
            "inserted": result.inserted,
            "total": result.total,
            "from_apple_watch": result.from_watch_count,
        })

    @mcp.tool
    async def record_metric(
        ctx: Context,
        kind: str,
        value: float,
        start: str,
        end: str = "",
        unit: str = "",
        source: str = "manual",
    ) -> str:
        """Store a single health metric in the vault.

        Args:
            kind: Metric kind, e.g. 'steps', 'sleep_hours', 'heart_rate'.
            value: Numeric value.
            start: Sample start (ISO 8601).
            end: Sample end (ISO 8601); omit for a point sample.
            unit: Unit of measurement (e.g., 'count', 'hr', 'count/min').
            source: Device or app the value came from.
        """
        try:
            record = MetricRecord(
                kind=kind,
                value=value,
                unit=unit or None,
                start=parse_datetime(start),
                end=parse_datetime(end) if end else None,
                source=source or None,
                recorded_at=datetime.now(timezone.utc),
            )
        except ValueError as exc:
            return invalid_argument(str(exc))
        try:
            saved = await queue.run(repository.insert, record)
        except VaultError as exc:
            return error_response(exc)
        return json.dumps({"status": "saved", "record": record_to_dict(saved)})

    @mcp.tool
    async def query_metrics(
        ctx: Context,
        start: str,
        end: str,
        kind: str = "",
    ) -> str:
        """List stored metrics that start on/after ``start`` and end on/before ``end``.

        Point samples (no end) are included whenever they start in range.

        Args:
            start: Lower bound on the sample start (ISO 8601).
            end: Upper bound on the sample end (ISO 8601).
            kind: Optional metric kind filter.
        """
        try:
            range_start = parse_datetime(start)
            range_end = parse_datetime(end)
        except ValueError as exc:
            return invalid_argument(str(exc))
        try:
            records = await queue.run(repository.fetch, kind or None, range_start, range_end)
        except VaultError as exc:
            return error_response(exc)
        return json.dumps({
            "status": "ok",
            "count": len(records),
            "records": [record_to_dict(r) for r in records],
        })
