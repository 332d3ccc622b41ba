"""Helpers shared by the HealthVault MCP tools."""

from __future__ import annotations

import json
from datetime import datetime

from healthvault.core.crypto.errors import (
    AuthenticationFailed,
    DiskIOFailure,
    MalformedEnvelope,
    SecretStoreUnavailable,
    StoreLocked,
    VaultError,
)
from healthvault.core.storage.models import MetricRecord, ensure_utc

# User-facing guidance per error class, most specific first.
_GUIDANCE: list[tuple[type[VaultError], str]] = [
    (SecretStoreUnavailable, "Cannot access secure storage."),
    (AuthenticationFailed, "Wrong password, or the data has been tampered with."),
    (MalformedEnvelope, "Not a valid HealthVault file."),
    (StoreLocked, "The vault is locked. Unlock it first."),
    (DiskIOFailure, "A file could not be read or written."),
]


def error_response(exc: VaultError) -> str:
    """JSON error body naming the error class so clients can pick a remedy."""
    message = next(
        (text for cls, text in _GUIDANCE if isinstance(exc, cls)),
        "Vault operation failed.",
    )
    return json.dumps({
        "status": "error",
        "error_type": type(exc).__name__,
        "message": message,
        "detail": str(exc),
    })


def invalid_argument(message: str) -> str:
    return json.dumps({
        "status": "error",
        "error_type": "InvalidArgument",
        "message": message,
    })


def parse_datetime(value: str) -> datetime:
    """Parse an ISO 8601 date or datetime; naive values are taken as UTC.

    Raises:
        ValueError: If the value is not ISO 8601.
    """
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(value))


def record_to_dict(record: MetricRecord) -> dict:
    return {
        "id": record.id,
        "kind": record.kind,
        "value": record.value,
        "unit": record.unit,
        "start": record.start.isoformat(),
        "end": record.end.isoformat() if record.end is not None else None,
        "source": record.source,
        "recorded_at": record.recorded_at.isoformat(),
    }
