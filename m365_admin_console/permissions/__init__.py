"""Calendar permission package — verified changes and tenant-wide reporting."""

from .models import (
    ACCESS_RIGHTS,
    EXTERNAL_USER_PREFIX,
    BulkChangeResult,
    GranteeType,
    PermissionOperation,
    ReportProgress,
    ReportRecord,
    VerificationResult,
    calendar_path,
    classify_grantee,
)
from .verifier import PermissionVerifier
from .report import CalendarPermissionReport

__all__ = [
    "ACCESS_RIGHTS",
    "EXTERNAL_USER_PREFIX",
    "BulkChangeResult",
    "GranteeType",
    "PermissionOperation",
    "ReportProgress",
    "ReportRecord",
    "VerificationResult",
    "calendar_path",
    "classify_grantee",
    "PermissionVerifier",
    "CalendarPermissionReport",
]
