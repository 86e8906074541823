"""
Remote administration service — Abstract interface consumed by the consoles.
The query builder, orchestrator, verifier and report aggregator only ever
talk to the tenant through this contract.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator, Sequence

from .models import ExportAction, FolderMeta, MailboxIdentity, PermissionGrant, SearchInfo


class RemoteAdminService(ABC):
    """
    Operations the consoles need from the tenant.

    Lookups raise RemoteLookupError when the object does not exist.
    Mutating calls raise RemoteSubmissionError when they are rejected.
    """

    # ── Directory ───────────────────────────────────────────────────────────

    @abstractmethod
    async def resolve_identity(self, address: str) -> MailboxIdentity:
        raise NotImplementedError

    @abstractmethod
    def list_mailboxes(self) -> AsyncIterator[MailboxIdentity]:
        """Enumerate every mailbox, without a result size cap."""
        raise NotImplementedError

    # ── Compliance search ───────────────────────────────────────────────────

    @abstractmethod
    async def create_search(self, name: str, locations: Sequence[str], query: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def start_search(self, name: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get_search(self, name: str) -> SearchInfo:
        raise NotImplementedError

    @abstractmethod
    def list_searches(self) -> AsyncIterator[SearchInfo]:
        raise NotImplementedError

    @abstractmethod
    async def submit_export(self, search_name: str, export_format: str, options: dict) -> ExportAction:
        raise NotImplementedError

    @abstractmethod
    def list_export_actions(self) -> AsyncIterator[ExportAction]:
        raise NotImplementedError

    # ── Folder permissions ──────────────────────────────────────────────────

    @abstractmethod
    async def get_folder_permissions(self, folder_path: str) -> list[PermissionGrant]:
        raise NotImplementedError

    @abstractmethod
    async def add_folder_permission(
        self,
        folder_path: str,
        grantee: str,
        access_rights: Sequence[str],
        sharing_flags: Sequence[str] = (),
    ) -> None:
        raise NotImplementedError

    @abstractmethod
    async def set_folder_permission(
        self,
        folder_path: str,
        grantee: str,
        access_rights: Sequence[str],
        sharing_flags: Sequence[str] = (),
    ) -> None:
        raise NotImplementedError

    @abstractmethod
    async def remove_folder_permission(self, folder_path: str, grantee: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get_folder_statistics(self, mailbox: str, scope: str = "Calendar") -> list[FolderMeta]:
        raise NotImplementedError
