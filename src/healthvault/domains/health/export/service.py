"""Export files: encrypted reports, plain CSV, and opening received files."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from healthvault.core.crypto.errors import DiskIOFailure
from healthvault.core.storage.models import ensure_utc
from healthvault.core.storage.repository import MetricRepository
from healthvault.domains.health.export.codec import DEFAULT_TITLE, ExportCodec, OpenedExport
from healthvault.domains.health.export.renderers import ExportFormat, render_csv

logger = logging.getLogger(__name__)

FILE_PREFIX = "HealthVault"
ENCRYPTED_SUFFIX = ".enc"


def export_file_name(start: datetime, end: datetime, fmt: ExportFormat, encrypted: bool = True) -> str:
    """``HealthVault_<start>_<end>.<fmt>[.enc]`` with dates as YYYY-MM-DD."""
    name = (
        f"{FILE_PREFIX}_{ensure_utc(start):%Y-%m-%d}_{ensure_utc(end):%Y-%m-%d}{fmt.suffix}"
    )
    return name + ENCRYPTED_SUFFIX if encrypted else name


class ExportService:
    """Writes reports for a date range into the user-visible export directory.

    The file suffix is advisory only; opening a file sniffs the decrypted
    content to decide whether it is a PDF or CSV.
    """

    def __init__(
        self,
        repository: MetricRepository,
        codec: ExportCodec,
        export_dir: str | Path,
    ) -> None:
        self._repo = repository
        self._codec = codec
        self._export_dir = Path(export_dir).expanduser()

    @property
    def export_dir(self) -> Path:
        return self._export_dir

    def export_encrypted(
        self,
        start: datetime,
        end: datetime,
        password: str,
        fmt: ExportFormat = ExportFormat.CSV,
        title: str = DEFAULT_TITLE,
    ) -> Path:
        """Export records in ``[start, end]`` encrypted under ``password``.

        Raises:
            StoreLocked: If the vault is locked.
            DiskIOFailure: If the file cannot be written.
        """
        records = self._repo.fetch(None, start, end)
        artifact = self._codec.export(records, password, fmt, title=title, start=start, end=end)
        path = self._write(export_file_name(start, end, fmt), artifact)
        logger.info("Wrote encrypted %s export with %d records", fmt.value, len(records))
        return path

    def export_plain_csv(self, start: datetime, end: datetime) -> Path:
        """Export records in ``[start, end]`` as unencrypted CSV for local use."""
        records = self._repo.fetch(None, start, end)
        path = self._write(
            export_file_name(start, end, ExportFormat.CSV, encrypted=False),
            render_csv(records),
        )
        logger.info("Wrote plain CSV export with %d records", len(records))
        return path

    def open_file(self, path: str | Path, password: str) -> OpenedExport:
        """Read and decrypt an export file.

        Raises:
            DiskIOFailure: If the file cannot be read.
            MalformedEnvelope: If the file is not a valid export.
            AuthenticationFailed: Wrong password or tampered file.
        """
        try:
            artifact = Path(path).expanduser().read_bytes()
        except OSError as exc:
            raise DiskIOFailure(f"Cannot read export file: {exc}") from exc
        return self._codec.open_document(artifact, password)

    def _write(self, name: str, data: bytes) -> Path:
        path = self._export_dir / name
        try:
            self._export_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise DiskIOFailure(f"Cannot write export file: {exc}") from exc
        return path
