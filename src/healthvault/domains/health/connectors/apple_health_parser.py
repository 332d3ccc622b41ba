"""Apple Health XML export parser.

Parses the ``export.xml`` file produced by Apple Health (iOS → Share → Export
Health Data) into HealthSample lists. Uses iterparse so large exports are
processed incrementally.

HealthKit type mappings:
- HKQuantityTypeIdentifierStepCount → steps (count)
- HKQuantityTypeIdentifierHeartRate → heart_rate (count/min)
- HKCategoryTypeIdentifierSleepAnalysis → sleep_hours (asleep + in-bed, in hours)
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from collections import defaultdict
from datetime import datetime
from pathlib import Path

from healthvault.core.storage.models import MetricKind, ensure_utc
from healthvault.domains.health.connectors import HealthSample

logger = logging.getLogger(__name__)

_STEPS = "HKQuantityTypeIdentifierStepCount"
_HR = "HKQuantityTypeIdentifierHeartRate"
_SLEEP = "HKCategoryTypeIdentifierSleepAnalysis"

_QUANTITY_KINDS = {
    _STEPS: (MetricKind.STEPS, "count"),
    _HR: (MetricKind.HEART_RATE, "count/min"),
}

# Sleep category values counted as sleep time (awake periods are skipped)
_SLEEP_VALUES = {
    "HKCategoryValueSleepAnalysisInBed",
    "HKCategoryValueSleepAnalysisAsleep",
    "HKCategoryValueSleepAnalysisAsleepUnspecified",
    "HKCategoryValueSleepAnalysisAsleepCore",
    "HKCategoryValueSleepAnalysisAsleepDeep",
    "HKCategoryValueSleepAnalysisAsleepREM",
}


class AppleHealthParseError(Exception):
    """Raised when parsing Apple Health export XML fails."""


def _parse_date(date_str: str) -> datetime:
    """Parse Apple Health date format: '2025-12-01 08:30:00 -0500'."""
    try:
        return datetime.strptime(date_str, "%Y-%m-%d %H:%M:%S %z")
    except ValueError:
        # Fallback for ISO format
        return ensure_utc(datetime.fromisoformat(date_str))


def _in_range(moment: datetime, start: datetime | None, end: datetime | None) -> bool:
    return (start is None or moment >= start) and (end is None or moment <= end)


def parse_apple_health_export(
    export_path: str | Path,
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict[str, list[HealthSample]]:
    """Parse an Apple Health export.xml into samples grouped by metric kind.

    Only samples whose start lies within ``[start, end]`` are kept; an
    omitted bound is open. Records with unparseable dates or values are
    skipped.

    Raises:
        AppleHealthParseError: If the file is missing or is not valid XML.
    """
    path = Path(export_path).expanduser()
    if not path.exists():
        raise AppleHealthParseError(f"Export file not found: {path}")

    start = ensure_utc(start) if start is not None else None
    end = ensure_utc(end) if end is not None else None
    samples: dict[str, list[HealthSample]] = defaultdict(list)

    try:
        for _event, elem in ET.iterparse(str(path), events=("end",)):
            if elem.tag != "Record":
                continue

            rec_type = elem.get("type", "")
            try:
                if rec_type in _QUANTITY_KINDS:
                    kind, unit = _QUANTITY_KINDS[rec_type]
                    s = _parse_date(elem.get("startDate", ""))
                    e = _parse_date(elem.get("endDate", "")) if elem.get("endDate") else None
                    if _in_range(s, start, end):
                        samples[kind].append(HealthSample(
                            value=float(elem.get("value", "")),
                            unit=elem.get("unit") or unit,
                            start=s,
                            end=e if e is not None and e >= s else None,
                            source=elem.get("sourceName"),
                        ))
                elif rec_type == _SLEEP and elem.get("value") in _SLEEP_VALUES:
                    s = _parse_date(elem.get("startDate", ""))
                    e = _parse_date(elem.get("endDate", ""))
                    if _in_range(s, start, end) and e >= s:
                        samples[MetricKind.SLEEP_HOURS].append(HealthSample(
                            value=(e - s).total_seconds() / 3600,
                            unit="hr",
                            start=s,
                            end=e,
                            source=elem.get("sourceName"),
                        ))
            except (ValueError, TypeError):
                pass
            elem.clear()
    except ET.ParseError as exc:
        raise AppleHealthParseError(f"Invalid XML: {exc}") from exc

    for kind_samples in samples.values():
        kind_samples.sort(key=lambda sample: sample.start)

    logger.info(
        "Parsed Apple Health export: %s",
        ", ".join(f"{kind}={len(items)}" for kind, items in sorted(samples.items())) or "no samples",
    )
    return dict(samples)
