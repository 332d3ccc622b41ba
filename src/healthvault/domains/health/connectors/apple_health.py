"""Apple Health feed — reads samples from an exported Health data XML.

Users export via iOS Health app → Share → Export Health Data → produces
export.xml. This feed parses that XML to implement HealthFeed.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from healthvault.core.storage.models import ensure_utc
from healthvault.domains.health.connectors import HealthSample
from healthvault.domains.health.connectors.apple_health_parser import (
    AppleHealthParseError,
    parse_apple_health_export,
)

logger = logging.getLogger(__name__)


class AppleHealthFeed:
    """HealthFeed backed by an Apple Health XML export.

    The whole export is parsed once and kept until the file changes on disk
    (detected by its modification time and size). Range requests filter the
    parsed samples, so repeated syncs never grow the cache.

    Usage::

        feed = AppleHealthFeed("/path/to/export.xml")
        if feed.is_connected():
            steps = await feed.fetch_samples("steps", start, end)
    """

    def __init__(self, export_path: str) -> None:
        self._export_path = export_path
        self._parsed_version: tuple[int, int] | None = None
        self._samples: dict[str, list[HealthSample]] = {}

    def is_connected(self) -> bool:
        """Check if the export file exists."""
        return bool(self._export_path) and Path(self._export_path).expanduser().exists()

    async def fetch_samples(
        self, kind: str, start: datetime, end: datetime
    ) -> list[HealthSample]:
        """Return parsed samples of ``kind`` starting within the range.

        Raises:
            AppleHealthParseError: If the export is missing or invalid.
        """
        start = ensure_utc(start)
        end = ensure_utc(end)
        samples = self._load().get(kind, [])
        return [s for s in samples if start <= s.start <= end]

    def _load(self) -> dict[str, list[HealthSample]]:
        path = Path(self._export_path).expanduser()
        try:
            stat = path.stat()
        except OSError as exc:
            raise AppleHealthParseError(f"Export file not found: {path}") from exc

        version = (stat.st_mtime_ns, stat.st_size)
        if version != self._parsed_version:
            logger.info("Parsing Apple Health export %s", path)
            self._samples = parse_apple_health_export(path)
            self._parsed_version = version
        return self._samples

    @property
    def data_source(self) -> str:
        return "apple_health"
