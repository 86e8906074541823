"""
CSV exporter — Writes the calendar permission report.

The file is truncated and given a header when a run starts, then each
record is appended as it is produced.
"""

from __future__ import annotations

import csv
import re
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from ..errors import ValidationError

REPORT_FIELDS = [
    "Mailbox Name",
    "Email Address",
    "Mailbox Type",
    "Calendar Name",
    "Shared To",
    "Access Rights",
    "Sharing Permission Flags",
    "User Type",
]

CSV_PATH_RE = re.compile(r"\.csv$", re.IGNORECASE)


def validate_report_path(value: str | Path) -> Path:
    """Accept any path ending in .csv; the directory is not checked."""
    text = str(value).strip().strip('"')
    if not text or not CSV_PATH_RE.search(text):
        raise ValidationError(f"Report path must end in .csv: '{text}'")
    return Path(text).expanduser()


class CsvReportSink:
    """Single-writer, append-only CSV sink."""

    def __init__(self, path: Path, fields: Iterable[str] = REPORT_FIELDS):
        self.path = Path(path)
        self.fields = list(fields)
        self.rows_written = 0

    def reset(self) -> None:
        """Discard prior content and write the header."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", newline="", encoding="utf-8") as fh:
            csv.writer(fh).writerow(self.fields)
        self.rows_written = 0

    def append(self, row: list[Any]) -> None:
        with open(self.path, "a", newline="", encoding="utf-8") as fh:
            csv.writer(fh).writerow(row)
        self.rows_written += 1


async def export_calendar_report(
    report: Any,
    path: Path,
    progress: Any = None,
    on_mailbox: Optional[Callable[[Any], None]] = None,
) -> CsvReportSink:
    """
    Run `report` (a CalendarPermissionReport) into a fresh CSV at `path`.

    Returns:
        The sink, with rows_written set.
    """
    sink = CsvReportSink(path)
    sink.reset()
    async for record in report.generate(progress, on_mailbox=on_mailbox):
        sink.append(record.as_row())
    return sink
