"""Remote administration service — interface and Exchange Online implementation."""

from .base import RemoteAdminService
from .exchange import ExchangeAdminService
from .models import (
    DEFAULT_GRANTEE,
    ExportAction,
    FolderMeta,
    MailboxIdentity,
    PermissionGrant,
    SearchInfo,
)

__all__ = [
    "RemoteAdminService",
    "ExchangeAdminService",
    "DEFAULT_GRANTEE",
    "ExportAction",
    "FolderMeta",
    "MailboxIdentity",
    "PermissionGrant",
    "SearchInfo",
]
