"""Reporting package — CSV permission report and JSON audit log."""

from .csv_export import REPORT_FIELDS, CsvReportSink, export_calendar_report, validate_report_path
from .json_export import export_audit_log

__all__ = [
    "REPORT_FIELDS",
    "CsvReportSink",
    "export_calendar_report",
    "validate_report_path",
    "export_audit_log",
]
