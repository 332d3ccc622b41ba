"""MCP tools for zero-knowledge exports.

Encrypted exports can be shared through untrusted channels; only someone
with the export password can open them.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from healthvault.core.crypto.errors import VaultError
from healthvault.domains.health.export.renderers import ExportFormat
from healthvault.domains.health.tools.common import (
    error_response,
    invalid_argument,
    parse_datetime,
)

if TYPE_CHECKING:
    from healthvault.core.storage.queue import StorageQueue
    from healthvault.domains.health.export.service import ExportService

logger = logging.getLogger(__name__)


def register_export_tools(
    mcp: FastMCP,
    export_service: ExportService,
    queue: StorageQueue,
) -> None:
    """Register export and open tools on the MCP server."""

    @mcp.tool
    async def export_encrypted_report(
        ctx: Context,
        start: str,
        end: str,
        password: str,
        format: str = "csv",
        title: str = "HealthVault Report",
    ) -> str:
        """Export metrics for a date range as a password-encrypted file.

        Args:
            start: Range start (ISO 8601).
            end: Range end (ISO 8601).
            password: Password needed to open the export. It is not stored.
            format: 'csv' or 'pdf'.
            title: Report title (PDF only).
        """
        try:
            fmt = ExportFormat(format.lower())
            range_start = parse_datetime(start)
            range_end = parse_datetime(end)
        except ValueError as exc:
            return invalid_argument(str(exc))
        if not password:
            return invalid_argument("password must not be empty.")
        try:
            path = await queue.run(
                export_service.export_encrypted, range_start, range_end, password, fmt, title
            )
        except VaultError as exc:
            return error_response(exc)
        return json.dumps({"status": "exported", "path": str(path), "format": fmt.value})

    @mcp.tool
    async def export_plain_csv(ctx: Context, start: str, end: str) -> str:
        """Export metrics for a date range as an UNENCRYPTED CSV for local use.

        Args:
            start: Range start (ISO 8601).
            end: Range end (ISO 8601).
        """
        try:
            range_start = parse_datetime(start)
            range_end = parse_datetime(end)
        except ValueError as exc:
            return invalid_argument(str(exc))
        try:
            path = await queue.run(export_service.export_plain_csv, range_start, range_end)
        except VaultError as exc:
            return error_response(exc)
        return json.dumps({"status": "exported", "path": str(path), "format": "csv"})

    @mcp.tool
    async def open_encrypted_export(ctx: Context, path: str, password: str) -> str:
        """Decrypt a HealthVault export file (.csv.enc or .pdf.enc).

        CSV content is returned as text, PDF content as base64.

        Args:
            path: Path to the encrypted export file.
            password: The password chosen when the file was exported.
        """
        if not password:
            return invalid_argument("password must not be empty.")
        try:
            opened = await queue.run(export_service.open_file, path, password)
        except VaultError as exc:
            return error_response(exc)

        body: dict = {
            "status": "opened",
            "format": opened.format.value,
            "media_type": opened.media_type,
            "size_bytes": len(opened.data),
        }
        if opened.format is ExportFormat.CSV:
            body["content"] = opened.data.decode("utf-8", errors="replace")
        else:
            body["content_base64"] = base64.b64encode(opened.data).decode("ascii")
        return json.dumps(body)
