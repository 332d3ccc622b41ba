"""Report renderers: turn a record set into CSV text or a paginated PDF.

Rendering is pure formatting with no I/O; the export codec encrypts whatever
bytes come out of here.
"""

from __future__ import annotations

import csv
import io
from collections import defaultdict
from collections.abc import Sequence
from datetime import datetime
from enum import Enum

from healthvault.core.storage.models import MetricRecord, ensure_utc

CSV_HEADER = ("type", "value", "unit", "start_date", "end_date", "source")

PDF_MAGIC = b"%PDF"


class ExportFormat(Enum):
    CSV = "csv"
    PDF = "pdf"

    @property
    def media_type(self) -> str:
        return "application/pdf" if self is ExportFormat.PDF else "text/csv"

    @property
    def suffix(self) -> str:
        return f".{self.value}"


def sniff_format(data: bytes) -> ExportFormat:
    """Best-effort detection of a decrypted payload's format."""
    return ExportFormat.PDF if data.startswith(PDF_MAGIC) else ExportFormat.CSV


def _iso(value: datetime | None) -> str:
    if value is None:
        return ""
    return ensure_utc(value).isoformat().replace("+00:00", "Z")


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------

def render_csv(records: Sequence[MetricRecord]) -> bytes:
    """Render records as UTF-8 CSV, one row per record, ISO-8601 timestamps."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for r in records:
        writer.writerow([
            r.kind,
            repr(r.value),
            r.unit or "",
            _iso(r.start),
            _iso(r.end),
            r.source or "",
        ])
    return buf.getvalue().encode("utf-8")


# ---------------------------------------------------------------------------
# PDF
# ---------------------------------------------------------------------------

_PAGE_WIDTH = 612  # US Letter, points
_PAGE_HEIGHT = 792
_MARGIN = 50
_LINE_HEIGHT = 18

_TITLE_SIZE = 18
_HEADER_SIZE = 12
_BODY_SIZE = 10


def _pdf_escape(text: str) -> str:
    text = text.encode("latin-1", "replace").decode("latin-1")
    return text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def _display_date(value: datetime) -> str:
    return ensure_utc(value).strftime("%b %d, %Y %H:%M")


class _PageLayout:
    """Top-down line placement with automatic page breaks."""

    def __init__(self) -> None:
        self.pages: list[list[str]] = []
        self.y = 0.0
        self.new_page()

    def new_page(self) -> None:
        self.pages.append([])
        self.y = _MARGIN

    def ensure_room(self, lines: float) -> None:
        if self.y > _PAGE_HEIGHT - _MARGIN - _LINE_HEIGHT * lines:
            self.new_page()

    def draw(self, text: str, font: str, size: int) -> None:
        baseline = _PAGE_HEIGHT - self.y - size
        self.pages[-1].append(
            f"BT /{font} {size} Tf {_MARGIN} {baseline:.2f} Td ({_pdf_escape(text)}) Tj ET"
        )


def render_pdf(
    records: Sequence[MetricRecord],
    title: str,
    start: datetime,
    end: datetime,
) -> bytes:
    """Render a paginated PDF report with records grouped by kind."""
    layout = _PageLayout()
    layout.draw(title, "F2", _TITLE_SIZE)
    layout.y += _LINE_HEIGHT * 1.5
    layout.draw(f"{_display_date(start)} - {_display_date(end)}", "F1", _BODY_SIZE)
    layout.y += _LINE_HEIGHT * 2

    grouped: dict[str, list[MetricRecord]] = defaultdict(list)
    for r in records:
        grouped[r.kind].append(r)

    for kind in sorted(grouped):
        layout.ensure_room(2)
        layout.draw(kind, "F2", _HEADER_SIZE)
        layout.y += _LINE_HEIGHT
        for r in grouped[kind]:
            layout.ensure_room(1)
            line = f"  {_display_date(r.start)}  {r.value:g} {r.unit or ''}".rstrip()
            layout.draw(line, "F1", _BODY_SIZE)
            layout.y += _LINE_HEIGHT
        layout.y += _LINE_HEIGHT * 0.5

    return _build_pdf(layout.pages)


def _build_pdf(pages: list[list[str]]) -> bytes:
    """Assemble a PDF 1.4 file using the standard Helvetica fonts."""
    # Object numbers: 1 catalog, 2 page tree, 3/4 fonts, then page/content pairs.
    objects: list[bytes] = []
    page_refs = [f"{5 + 2 * i} 0 R" for i in range(len(pages))]

    objects.append(b"<< /Type /Catalog /Pages 2 0 R >>")
    objects.append(
        f"<< /Type /Pages /Kids [{' '.join(page_refs)}] /Count {len(pages)} >>".encode("ascii")
    )
    objects.append(b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>")
    objects.append(b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica-Bold >>")

    for i, operations in enumerate(pages):
        content_num = 6 + 2 * i
        objects.append(
            (
                "<< /Type /Page /Parent 2 0 R "
                f"/MediaBox [0 0 {_PAGE_WIDTH} {_PAGE_HEIGHT}] "
                "/Resources << /Font << /F1 3 0 R /F2 4 0 R >> >> "
                f"/Contents {content_num} 0 R >>"
            ).encode("ascii")
        )
        stream = "\n".join(operations).encode("latin-1")
        objects.append(
            f"<< /Length {len(stream)} >>\nstream\n".encode("ascii")
            + stream
            + b"\nendstream"
        )

    out = bytearray(b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\n")
    offsets: list[int] = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += f"{number} 0 obj\n".encode("ascii") + body + b"\nendobj\n"

    xref_offset = len(out)
    out += f"xref\n0 {len(objects) + 1}\n".encode("ascii")
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += f"{offset:010d} 00000 n \n".encode("ascii")
    out += (
        f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\n"
        f"startxref\n{xref_offset}\n%%EOF\n"
    ).encode("ascii")
    return bytes(out)
