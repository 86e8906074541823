"""
Shared fixtures: an in-memory tenant behind the RemoteAdminService contract.
"""

from __future__ import annotations

from typing import Optional, Sequence

import pytest

from m365_admin_console.errors import RemoteError, RemoteLookupError, RemoteSubmissionError
from m365_admin_console.remote.base import RemoteAdminService
from m365_admin_console.remote.models import (
    ExportAction,
    FolderMeta,
    MailboxIdentity,
    PermissionGrant,
    SearchInfo,
)


ROOT_FOLDER = FolderMeta(name="Calendar", folder_path="/Calendar", folder_type="Calendar")


class FakeAdminService(RemoteAdminService):
    """
    Tenant state kept in dicts. Every call is appended to `calls` as
    (method, first_argument) so tests can assert what reached the tenant.
    """

    def __init__(self):
        self.mailboxes: dict[str, MailboxIdentity] = {}
        self.searches: dict[str, SearchInfo] = {}
        self.exports: list[ExportAction] = []
        self.permissions: dict[str, list[PermissionGrant]] = {}
        self.folders: dict[str, list[FolderMeta]] = {}
        self.calls: list[tuple[str, str]] = []

        # Failure knobs
        self.fail_create = False
        self.fail_start = False
        self.fail_export = False
        self.lose_search_after_start = False
        self.status_after_start = "InProgress"
        self.rejected_paths: set[str] = set()
        self.ignored_paths: set[str] = set()
        self.unreachable: set[str] = set()
        self.unreadable_after_write: set[str] = set()    # folder paths
        self.unreadable_mailboxes: set[str] = set()
        self.written: set[str] = set()

    # ── Seeding ─────────────────────────────────────────────────────────────

    def add_mailbox(self, address: str, display_name: str, kind: str = "UserMailbox") -> MailboxIdentity:
        mailbox = MailboxIdentity(
            identity=address.split("@")[0],
            display_name=display_name,
            primary_smtp_address=address,
            recipient_type_details=kind,
        )
        self.mailboxes[address.lower()] = mailbox
        return mailbox

    def grant(self, path: str, grantee: str, rights: Sequence[str], flags: Sequence[str] = ()):
        self.permissions.setdefault(path, []).append(
            PermissionGrant(path, grantee, tuple(rights), tuple(flags))
        )

    def method_calls(self, method: str) -> list[str]:
        return [arg for name, arg in self.calls if name == method]

    def _display(self, grantee: str) -> str:
        mailbox = self.mailboxes.get(grantee.lower())
        return mailbox.display_name if mailbox else grantee

    def _index(self, path: str, grantee: str) -> Optional[int]:
        wanted = {grantee.lower(), self._display(grantee).lower()}
        for i, grant in enumerate(self.permissions.get(path, [])):
            if grant.grantee.lower() in wanted:
                return i
        return None

    # ── Directory ───────────────────────────────────────────────────────────

    async def resolve_identity(self, address: str) -> MailboxIdentity:
        self.calls.append(("resolve_identity", address))
        if address.lower() in self.unreachable:
            raise RemoteSubmissionError("The service is unavailable.")
        try:
            return self.mailboxes[address.lower()]
        except KeyError:
            raise RemoteLookupError(f"The operation couldn't be performed because '{address}' couldn't be found.")

    async def list_mailboxes(self):
        self.calls.append(("list_mailboxes", ""))
        for mailbox in self.mailboxes.values():
            yield mailbox

    # ── Compliance search ───────────────────────────────────────────────────

    async def create_search(self, name, locations, query):
        self.calls.append(("create_search", name))
        if self.fail_create:
            raise RemoteSubmissionError("New-ComplianceSearch failed (400): invalid location")
        self.searches[name] = SearchInfo(
            name=name,
            status="NotStarted",
            exchange_locations=tuple(locations),
            content_match_query=query,
        )

    async def start_search(self, name):
        self.calls.append(("start_search", name))
        if self.fail_start or name not in self.searches:
            raise RemoteSubmissionError(f"Start-ComplianceSearch failed (400): {name}")
        info = self.searches[name]
        self.searches[name] = SearchInfo(
            name=name,
            status=self.status_after_start,
            exchange_locations=info.exchange_locations,
            content_match_query=info.content_match_query,
        )
        if self.lose_search_after_start:
            del self.searches[name]

    async def get_search(self, name):
        self.calls.append(("get_search", name))
        try:
            return self.searches[name]
        except KeyError:
            raise RemoteLookupError(f"Compliance search '{name}' couldn't be found.")

    async def list_searches(self):
        self.calls.append(("list_searches", ""))
        for info in self.searches.values():
            yield info

    async def submit_export(self, search_name, export_format, options):
        self.calls.append(("submit_export", search_name))
        self.last_export_options = dict(options, ExchangeArchiveFormat=export_format)
        if self.fail_export:
            raise RemoteSubmissionError("New-ComplianceSearchAction failed (403): access denied")
        action = ExportAction(
            name=f"{search_name}_Export",
            search_name=search_name,
            status="Starting",
            export_format=export_format,
        )
        self.exports.append(action)
        return action

    async def list_export_actions(self):
        self.calls.append(("list_export_actions", ""))
        for action in self.exports:
            yield action

    # ── Folder permissions ──────────────────────────────────────────────────

    def _check_write(self, path: str) -> bool:
        self.written.add(path)
        if path in self.rejected_paths:
            raise RemoteSubmissionError(f"Folder permission change rejected for {path}")
        return path not in self.ignored_paths

    async def get_folder_permissions(self, folder_path):
        self.calls.append(("get_folder_permissions", folder_path))
        if folder_path in self.unreadable_after_write and folder_path in self.written:
            raise RemoteError("Get-MailboxFolderPermission failed (500): transient")
        return list(self.permissions.get(folder_path, []))

    async def add_folder_permission(self, folder_path, grantee, access_rights, sharing_flags=()):
        self.calls.append(("add_folder_permission", folder_path))
        if self._check_write(folder_path):
            self.grant(folder_path, self._display(grantee), access_rights, sharing_flags)

    async def set_folder_permission(self, folder_path, grantee, access_rights, sharing_flags=()):
        self.calls.append(("set_folder_permission", folder_path))
        if not self._check_write(folder_path):
            return
        index = self._index(folder_path, grantee)
        if index is None:
            raise RemoteSubmissionError(f"There is no existing permission entry for {grantee}.")
        entry = self.permissions[folder_path][index]
        self.permissions[folder_path][index] = PermissionGrant(
            folder_path, entry.grantee, tuple(access_rights), tuple(sharing_flags)
        )

    async def remove_folder_permission(self, folder_path, grantee):
        self.calls.append(("remove_folder_permission", folder_path))
        if not self._check_write(folder_path):
            return
        index = self._index(folder_path, grantee)
        if index is None:
            raise RemoteSubmissionError(f"{grantee} isn't in the access list.")
        del self.permissions[folder_path][index]

    async def get_folder_statistics(self, mailbox, scope="Calendar"):
        self.calls.append(("get_folder_statistics", mailbox))
        if mailbox.lower() in self.unreadable_mailboxes:
            raise RemoteLookupError(f"The specified mailbox {mailbox} doesn't exist.")
        return list(self.folders.get(mailbox.lower(), [ROOT_FOLDER]))


@pytest.fixture
def service() -> FakeAdminService:
    fake = FakeAdminService()
    fake.add_mailbox("alice@contoso.com", "Alice Adams")
    fake.add_mailbox("bob@contoso.com", "Bob Brown")
    fake.add_mailbox("carol@contoso.com", "Carol Chen")
    fake.add_mailbox("rooms-101@contoso.com", "Room 101", kind="RoomMailbox")
    return fake


def _scripted(answers: Sequence[str]):
    remaining = iter(answers)

    def _input(prompt: str) -> str:
        try:
            return next(remaining)
        except StopIteration:
            raise AssertionError(f"Unexpected prompt: {prompt!r}")

    return _input


@pytest.fixture
def scripted():
    """Factory for input functions that return canned answers in order."""
    return _scripted
