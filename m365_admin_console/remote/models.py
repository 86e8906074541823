"""
Records exchanged with the remote administration service.
"""

from __future__ import annotations

from dataclasses import dataclass


DEFAULT_GRANTEE = "Default"
ANONYMOUS_GRANTEE = "Anonymous"


@dataclass(frozen=True)
class MailboxIdentity:
    """A resolved mailbox."""
    identity: str
    display_name: str = ""
    primary_smtp_address: str = ""
    recipient_type_details: str = ""

    @property
    def address(self) -> str:
        return self.primary_smtp_address or self.identity


@dataclass(frozen=True)
class SearchInfo:
    """A compliance search as reported by the service."""
    name: str
    status: str = ""
    exchange_locations: tuple[str, ...] = ()
    content_match_query: str = ""
    items: int = 0
    size: int = 0


@dataclass(frozen=True)
class ExportAction:
    """An export action attached to a compliance search."""
    name: str
    search_name: str = ""
    status: str = ""
    export_format: str = ""


@dataclass(frozen=True)
class PermissionGrant:
    """One entry of a mailbox folder's permission list."""
    folder_path: str                       # e.g. user@contoso.com:\Calendar
    grantee: str                           # display name, address or "Default"
    access_rights: tuple[str, ...] = ()
    sharing_flags: tuple[str, ...] = ()

    @property
    def mailbox(self) -> str:
        return self.folder_path.split(":", 1)[0]

    def is_for(self, grantee: str) -> bool:
        return self.grantee.lower() == grantee.lower()


@dataclass(frozen=True)
class FolderMeta:
    """Folder statistics entry returned for a mailbox."""
    name: str
    folder_path: str = ""
    folder_type: str = ""
    container_class: str = ""
    identity: str = ""
