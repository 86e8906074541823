"""
Calendar permission console — menu loop over the permission verifier and
the tenant-wide report.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..compliance.query import resolve_identities
from ..errors import RemoteError, ValidationError
from ..permissions.models import (
    ACCESS_RIGHTS,
    PermissionOperation,
    SHARING_FLAG_ROLE,
    ReportProgress,
    VerificationResult,
    calendar_path,
)
from ..permissions.report import CalendarPermissionReport, calendar_folders
from ..permissions.verifier import SPECIAL_GRANTEES, PermissionVerifier
from ..remote.base import RemoteAdminService
from ..remote.models import DEFAULT_GRANTEE, MailboxIdentity
from ..reporting.csv_export import export_calendar_report, validate_report_path
from .prompts import Prompter, fail, info, ok, warn

logger = logging.getLogger("m365_admin_console.console.calendar")

MENU_OPTIONS = [
    "View calendar permissions",
    "Add or change a calendar permission",
    "Remove a calendar permission",
    "Change the Default calendar permission for all mailboxes",
    "Export calendar permission report (CSV)",
    "Exit",
]


class CalendarConsole:
    def __init__(
        self,
        service: RemoteAdminService,
        prompter: Optional[Prompter] = None,
    ):
        self.service = service
        self.verifier = PermissionVerifier(service)
        self.report = CalendarPermissionReport(service)
        self.prompter = prompter or Prompter()

    async def run(self):
        actions = {
            1: self.view_permissions,
            2: self.add_or_change,
            3: self.remove_permission,
            4: self.change_default_for_all,
            5: self.export_report,
        }
        while True:
            choice = self.prompter.choose("CALENDAR PERMISSIONS", MENU_OPTIONS)
            if choice == len(MENU_OPTIONS):
                return
            try:
                await actions[choice]()
            except RemoteError as e:
                fail(f"The remote service reported an error: {e}")
            self.prompter.pause()

    # ── Input helpers ───────────────────────────────────────────────────────

    async def _resolve_one(self, address: str) -> MailboxIdentity:
        return (await resolve_identities(self.service, [address]))[0]

    async def _grantee(self, value: str) -> str:
        if value.lower() in SPECIAL_GRANTEES:
            return value.capitalize()
        return (await self._resolve_one(value)).address

    async def ask_calendar(self) -> str:
        """Ask for a mailbox, then pick one of its calendars when it has several."""
        mailbox = await self.prompter.ask_until_valid_async("Mailbox", self._resolve_one)
        folders = calendar_folders(await self.service.get_folder_statistics(mailbox.address))
        if len(folders) == 1:
            return calendar_path(mailbox.address, folders[0].folder_path)
        choice = self.prompter.choose(
            f"CALENDARS IN {mailbox.address}",
            [f.folder_path for f in folders],
        )
        return calendar_path(mailbox.address, folders[choice - 1].folder_path)

    def ask_rights(self) -> tuple[str, ...]:
        choice = self.prompter.choose("ACCESS RIGHTS", list(ACCESS_RIGHTS))
        return (ACCESS_RIGHTS[choice - 1],)

    def ask_sharing_flags(self, rights: tuple[str, ...]) -> tuple[str, ...]:
        if rights != (SHARING_FLAG_ROLE,):
            return ()
        if not self.prompter.ask_yes_no("Make this user a delegate?"):
            return ()
        if self.prompter.ask_yes_no("Allow the delegate to see private items?"):
            return ("Delegate", "CanViewPrivateItems")
        return ("Delegate",)

    def show_result(self, result: VerificationResult):
        if result.error:
            fail(f"The change was rejected: {result.error}")
        elif result.readback_error:
            warn(f"The change was submitted but {result.folder_path} could not be read back to verify it.")
            info(f"Requested: {', '.join(result.desired) or 'no entry'}")
            info(f"Read-back error: {result.readback_error}")
        elif result.succeeded:
            ok(f"Verified: {result.grantee} on {result.folder_path} "
               f"({result.operation.value}) -> {', '.join(result.observed) or 'no entry'}")
        else:
            warn(f"The call succeeded but the change could not be verified on {result.folder_path}.")
            info(f"Requested: {', '.join(result.desired) or 'no entry'}")
            info(f"Observed:  {', '.join(result.observed) or 'no entry'}")

    # ── Actions ─────────────────────────────────────────────────────────────

    async def view_permissions(self):
        path = await self.ask_calendar()
        grants = await self.verifier.list_permissions(path)
        info(f"Permissions on {path}:")
        for grant in grants:
            flags = ",".join(grant.sharing_flags) or "-"
            info(f"  {grant.grantee:<40s} {','.join(grant.access_rights):<20s} {flags}")
        if not grants:
            warn("No permission entries found.")

    async def add_or_change(self):
        path = await self.ask_calendar()
        grantee = await self.prompter.ask_until_valid_async(
            "Grant access to (address or Default)", self._grantee
        )
        rights = self.ask_rights()
        flags = self.ask_sharing_flags(rights)
        if not self.prompter.ask_yes_no(f"Give {grantee} {rights[0]} on {path}?"):
            warn("Change cancelled.")
            return
        try:
            result = await self.verifier.apply_and_verify(path, grantee, rights, flags)
        except ValidationError as e:
            fail(str(e))
            return
        self.show_result(result)

    async def remove_permission(self):
        path = await self.ask_calendar()
        grantee = self.prompter.ask_non_empty("Remove access for (address or display name)")
        if not self.prompter.ask_yes_no(f"Remove {grantee} from {path}?"):
            warn("Removal cancelled.")
            return
        result = await self.verifier.remove(path, grantee)
        if result.operation == PermissionOperation.NONE:
            ok(f"{grantee} had no entry on {path}; nothing to remove.")
        else:
            self.show_result(result)

    async def change_default_for_all(self):
        rights = self.ask_rights()
        info("Enumerating mailboxes (user, shared, room and equipment)...")
        mailboxes = [mb async for mb in self.service.list_mailboxes()]
        if not mailboxes:
            warn("No mailboxes found.")
            return
        if not self.prompter.ask_yes_no(
            f"Set the {DEFAULT_GRANTEE} calendar permission to {rights[0]} on {len(mailboxes)} mailboxes?"
        ):
            warn("Change cancelled.")
            return

        result = await self.verifier.apply_default_to_all(rights, mailboxes)
        info(f"Applied to {result.applied}/{result.total} mailboxes.")
        for address, error in result.failures:
            fail(f"{address}: {error}")
        if result.sample:
            warn("Only the first mailbox is read back to verify the change.")
            self.show_result(result.sample)

    async def export_report(self):
        path = self.prompter.ask_until_valid("Report file (.csv)", validate_report_path)
        if path.exists() and not self.prompter.ask_yes_no(f"{path} exists. Overwrite it?"):
            warn("Report cancelled.")
            return

        def _progress(p: ReportProgress):
            print(f"\r  Mailboxes: {p.mailboxes}  Calendars: {p.folders}  "
                  f"Entries: {p.records}  External: {p.external}", end="", flush=True)

        progress = ReportProgress()
        sink = await export_calendar_report(self.report, path, progress, on_mailbox=_progress)
        print()
        ok(f"Report written to {path.resolve()} ({sink.rows_written} rows).")
        if progress.failures:
            warn(f"{len(progress.failures)} mailbox(es) could not be read and are missing from the report:")
            for address, error in progress.failures:
                fail(f"{address}: {error}")
