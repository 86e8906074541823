"""Compliance search package — filter building and search/export lifecycle."""

from .models import (
    ExportFormat,
    ExportJob,
    ExportState,
    QueryFilter,
    SearchCheck,
    SearchJob,
    SearchState,
    SearchTarget,
)
from .query import build_filter, build_search_filter, parse_date_range, parse_yes_no, resolve_identities
from .orchestrator import SearchOrchestrator

__all__ = [
    "ExportFormat",
    "ExportJob",
    "ExportState",
    "QueryFilter",
    "SearchCheck",
    "SearchJob",
    "SearchState",
    "SearchTarget",
    "build_filter",
    "build_search_filter",
    "parse_date_range",
    "parse_yes_no",
    "resolve_identities",
    "SearchOrchestrator",
]
