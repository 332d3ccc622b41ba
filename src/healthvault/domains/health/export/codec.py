"""Zero-knowledge export codec.

Artifact format::

    salt(32) || nonce(12) || ciphertext || tag(16)

The key is derived from a user password with PBKDF2 and a fresh salt per
export; the password is never stored or transmitted. Anyone holding the file
without the password learns nothing beyond its length.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

from healthvault.core.crypto.cipher import MIN_ENVELOPE_SIZE, AuthenticatedCipher
from healthvault.core.crypto.errors import MalformedEnvelope
from healthvault.core.crypto.kdf import SALT_SIZE, PasswordKeyDerivation
from healthvault.core.storage.models import MetricRecord
from healthvault.domains.health.export.renderers import (
    ExportFormat,
    render_csv,
    render_pdf,
    sniff_format,
)

logger = logging.getLogger(__name__)

MIN_ARTIFACT_SIZE = SALT_SIZE + MIN_ENVELOPE_SIZE
DEFAULT_TITLE = "HealthVault Report"


@dataclass(frozen=True)
class OpenedExport:
    """Decrypted export payload plus its sniffed format."""

    data: bytes
    format: ExportFormat

    @property
    def media_type(self) -> str:
        return self.format.media_type


class ExportCodec:
    """Encrypts rendered reports under a password and opens them again.

    Usage::

        codec = ExportCodec()
        artifact = codec.export(records, "correct horse")
        payload = codec.open(artifact, "correct horse")
    """

    def __init__(
        self,
        kdf: PasswordKeyDerivation | None = None,
        cipher: AuthenticatedCipher | None = None,
    ) -> None:
        self._kdf = kdf or PasswordKeyDerivation()
        self._cipher = cipher or AuthenticatedCipher()

    def render(
        self,
        records: Sequence[MetricRecord],
        fmt: ExportFormat = ExportFormat.CSV,
        *,
        title: str = DEFAULT_TITLE,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> bytes:
        """Render records in ``fmt`` without encrypting them.

        The PDF date-range line defaults to the first and last record start.
        """
        if fmt is ExportFormat.PDF:
            starts = [r.start for r in records]
            range_start = start or (min(starts) if starts else datetime.now(timezone.utc))
            range_end = end or (max(starts) if starts else range_start)
            return render_pdf(records, title, range_start, range_end)
        return render_csv(records)

    def export(
        self,
        records: Sequence[MetricRecord],
        password: str,
        fmt: ExportFormat = ExportFormat.CSV,
        **render_options,
    ) -> bytes:
        """Render ``records`` and seal them under ``password``.

        Returns:
            ``salt || nonce || ciphertext || tag``.
        """
        payload = self.render(records, fmt, **render_options)
        return self.export_payload(payload, password)

    def export_payload(self, payload: bytes, password: str) -> bytes:
        """Seal arbitrary payload bytes under ``password``."""
        salt = self._kdf.new_salt()
        key = self._kdf.derive(password, salt)
        logger.debug("Sealing export payload (%d bytes)", len(payload))
        return salt + self._cipher.seal(payload, key)

    def open(self, artifact: bytes, password: str) -> bytes:
        """Decrypt an artifact produced by :meth:`export`.

        Raises:
            MalformedEnvelope: If the artifact is too short to be an export.
                Checked before the (slow) key derivation.
            AuthenticationFailed: Wrong password or tampered artifact.
        """
        if len(artifact) < MIN_ARTIFACT_SIZE:
            raise MalformedEnvelope(
                f"Not a valid export file: expected at least {MIN_ARTIFACT_SIZE} bytes, "
                f"got {len(artifact)}"
            )
        salt = artifact[:SALT_SIZE]
        key = self._kdf.derive(password, salt)
        return self._cipher.open(artifact[SALT_SIZE:], key)

    def open_document(self, artifact: bytes, password: str) -> OpenedExport:
        """Decrypt an artifact and sniff whether it holds a PDF or CSV."""
        data = self.open(artifact, password)
        return OpenedExport(data=data, format=sniff_format(data))
