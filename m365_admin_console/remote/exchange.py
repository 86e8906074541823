"""
Exchange Online implementation of RemoteAdminService.
Maps each operation onto an Exchange / Security & Compliance cmdlet.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Sequence

from ..errors import RemoteError, RemoteLookupError, RemoteSubmissionError
from ..exchange.client import CmdletError, ExchangeAdminClient
from ..safety.guardian import CmdletViolation
from .base import RemoteAdminService
from .models import ExportAction, FolderMeta, MailboxIdentity, PermissionGrant, SearchInfo

logger = logging.getLogger("m365_admin_console.remote.exchange")


class ExchangeAdminService(RemoteAdminService):
    """
    Cmdlet-backed admin service.

    `exchange` talks to the Exchange Online endpoint (mailboxes, folders);
    `compliance` talks to the Security & Compliance endpoint (searches).
    """

    def __init__(self, exchange: ExchangeAdminClient, compliance: ExchangeAdminClient):
        self.exchange = exchange
        self.compliance = compliance

    # ── Invocation helpers ──────────────────────────────────────────────────

    async def _read(self, client: ExchangeAdminClient, cmdlet: str, parameters: dict) -> list[dict]:
        try:
            return await client.invoke(cmdlet, parameters)
        except CmdletError as e:
            if e.not_found:
                raise RemoteLookupError(e.message) from e
            raise RemoteError(str(e)) from e

    async def _stream(self, client: ExchangeAdminClient, cmdlet: str, parameters: dict):
        try:
            async for item in client.invoke_stream(cmdlet, parameters):
                yield item
        except CmdletError as e:
            raise RemoteError(str(e)) from e

    async def _write(self, client: ExchangeAdminClient, cmdlet: str, parameters: dict) -> list[dict]:
        try:
            return await client.invoke(cmdlet, parameters)
        except (CmdletError, CmdletViolation) as e:
            raise RemoteSubmissionError(str(e)) from e

    # ── Directory ───────────────────────────────────────────────────────────

    async def resolve_identity(self, address: str) -> MailboxIdentity:
        rows = await self._read(self.exchange, "Get-Mailbox", {"Identity": address})
        if not rows:
            raise RemoteLookupError(f"Mailbox not found: {address}")
        return _mailbox(rows[0])

    async def list_mailboxes(self) -> AsyncIterator[MailboxIdentity]:
        async for row in self._stream(self.exchange, "Get-Mailbox", {"ResultSize": "Unlimited"}):
            yield _mailbox(row)

    # ── Compliance search ───────────────────────────────────────────────────

    async def create_search(self, name: str, locations: Sequence[str], query: str) -> None:
        params: dict[str, Any] = {"Name": name, "ExchangeLocation": list(locations)}
        if query:
            params["ContentMatchQuery"] = query
        await self._write(self.compliance, "New-ComplianceSearch", params)

    async def start_search(self, name: str) -> None:
        await self._write(self.compliance, "Start-ComplianceSearch", {"Identity": name})

    async def get_search(self, name: str) -> SearchInfo:
        rows = await self._read(self.compliance, "Get-ComplianceSearch", {"Identity": name})
        if not rows:
            raise RemoteLookupError(f"Compliance search not found: {name}")
        return _search(rows[0])

    async def list_searches(self) -> AsyncIterator[SearchInfo]:
        async for row in self._stream(self.compliance, "Get-ComplianceSearch", {}):
            yield _search(row)

    async def submit_export(self, search_name: str, export_format: str, options: dict) -> ExportAction:
        params: dict[str, Any] = {
            "SearchName": search_name,
            "Export": True,
            "Format": "FxStream",
            "ExchangeArchiveFormat": export_format,
            "Confirm": False,
        }
        params.update(options)
        rows = await self._write(self.compliance, "New-ComplianceSearchAction", params)
        if rows:
            return _export(rows[0])
        return ExportAction(
            name=f"{search_name}_Export",
            search_name=search_name,
            export_format=export_format,
        )

    async def list_export_actions(self) -> AsyncIterator[ExportAction]:
        async for row in self._stream(self.compliance, "Get-ComplianceSearchAction", {"Export": True}):
            yield _export(row)

    # ── Folder permissions ──────────────────────────────────────────────────

    async def get_folder_permissions(self, folder_path: str) -> list[PermissionGrant]:
        rows = await self._read(
            self.exchange, "Get-MailboxFolderPermission", {"Identity": folder_path}
        )
        return [_grant(folder_path, row) for row in rows]

    async def add_folder_permission(
        self,
        folder_path: str,
        grantee: str,
        access_rights: Sequence[str],
        sharing_flags: Sequence[str] = (),
    ) -> None:
        await self._write(
            self.exchange,
            "Add-MailboxFolderPermission",
            _permission_params(folder_path, grantee, access_rights, sharing_flags),
        )

    async def set_folder_permission(
        self,
        folder_path: str,
        grantee: str,
        access_rights: Sequence[str],
        sharing_flags: Sequence[str] = (),
    ) -> None:
        await self._write(
            self.exchange,
            "Set-MailboxFolderPermission",
            _permission_params(folder_path, grantee, access_rights, sharing_flags),
        )

    async def remove_folder_permission(self, folder_path: str, grantee: str) -> None:
        await self._write(
            self.exchange,
            "Remove-MailboxFolderPermission",
            {"Identity": folder_path, "User": grantee, "Confirm": False},
        )

    async def get_folder_statistics(self, mailbox: str, scope: str = "Calendar") -> list[FolderMeta]:
        rows = await self._read(
            self.exchange,
            "Get-MailboxFolderStatistics",
            {"Identity": mailbox, "FolderScope": scope},
        )
        return [
            FolderMeta(
                name=row.get("Name", ""),
                folder_path=row.get("FolderPath", ""),
                folder_type=row.get("FolderType", "") or "",
                container_class=row.get("ContainerClass", "") or "",
                identity=row.get("Identity", ""),
            )
            for row in rows
        ]


# ---------------------------------------------------------------------------
# Row conversion
# ---------------------------------------------------------------------------

def _as_list(value: Any, drop_none: bool = False) -> tuple[str, ...]:
    """Cmdlet output serialises multi-valued fields as lists or comma strings."""
    if value is None:
        return ()
    if isinstance(value, str):
        value = value.split(",")
    items = tuple(str(v).strip() for v in value if v and str(v).strip())
    if drop_none:
        items = tuple(v for v in items if v != "None")
    return items


def _mailbox(row: dict) -> MailboxIdentity:
    return MailboxIdentity(
        identity=row.get("Identity") or row.get("Alias", ""),
        display_name=row.get("DisplayName", ""),
        primary_smtp_address=row.get("PrimarySmtpAddress", ""),
        recipient_type_details=row.get("RecipientTypeDetails", ""),
    )


def _search(row: dict) -> SearchInfo:
    return SearchInfo(
        name=row.get("Name", ""),
        status=row.get("Status", ""),
        exchange_locations=_as_list(row.get("ExchangeLocation")),
        content_match_query=row.get("ContentMatchQuery") or "",
        items=int(row.get("Items") or 0),
        size=int(row.get("Size") or 0),
    )


def _export(row: dict) -> ExportAction:
    return ExportAction(
        name=row.get("Name", ""),
        search_name=row.get("SearchName", ""),
        status=row.get("Status", ""),
        export_format=row.get("ExchangeArchiveFormat", "") or "",
    )


def _grant(folder_path: str, row: dict) -> PermissionGrant:
    user = row.get("User")
    if isinstance(user, dict):
        user = user.get("DisplayName") or user.get("Identity", "")
    return PermissionGrant(
        folder_path=folder_path,
        grantee=str(user or ""),
        access_rights=_as_list(row.get("AccessRights")),
        sharing_flags=_as_list(row.get("SharingPermissionFlags"), drop_none=True),
    )


def _permission_params(
    folder_path: str,
    grantee: str,
    access_rights: Sequence[str],
    sharing_flags: Sequence[str],
) -> dict:
    params: dict[str, Any] = {
        "Identity": folder_path,
        "User": grantee,
        "AccessRights": list(access_rights),
        "Confirm": False,
    }
    if sharing_flags:
        params["SharingPermissionFlags"] = ",".join(sharing_flags)
    return params
