"""
Calendar permission report — Walks every mailbox and every calendar folder
and yields one record per permission entry.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Callable, Optional

from ..errors import RemoteError
from ..remote.base import RemoteAdminService
from ..remote.models import FolderMeta, MailboxIdentity
from .models import (
    CALENDAR_CONTAINER_CLASS,
    CALENDAR_FOLDER_TYPE,
    NO_SHARING_FLAGS,
    GranteeType,
    ReportProgress,
    ReportRecord,
    calendar_path,
    classify_grantee,
)

logger = logging.getLogger("m365_admin_console.permissions.report")

ROOT_CALENDAR = FolderMeta(
    name="Calendar",
    folder_path="/Calendar",
    folder_type=CALENDAR_FOLDER_TYPE,
)


def is_calendar_folder(folder: FolderMeta) -> bool:
    return (
        folder.folder_type == CALENDAR_FOLDER_TYPE
        or folder.container_class == CALENDAR_CONTAINER_CLASS
    )


def calendar_folders(folders: list[FolderMeta]) -> list[FolderMeta]:
    """The root Calendar plus every folder typed as a calendar, deduplicated by path."""
    selected: dict[str, FolderMeta] = {}
    for folder in folders:
        if is_calendar_folder(folder):
            selected.setdefault(folder.folder_path.lower(), folder)
    if not any(f.folder_type == CALENDAR_FOLDER_TYPE for f in selected.values()):
        selected = {ROOT_CALENDAR.folder_path.lower(): ROOT_CALENDAR, **selected}
    return list(selected.values())


class CalendarPermissionReport:
    """Aggregates calendar permissions for every mailbox in the tenant."""

    def __init__(self, service: RemoteAdminService):
        self.service = service

    async def records_for_mailbox(
        self,
        mailbox: MailboxIdentity,
        progress: ReportProgress,
    ) -> AsyncIterator[ReportRecord]:
        folders = calendar_folders(await self.service.get_folder_statistics(mailbox.address))
        for folder in folders:
            progress.folders += 1
            path = calendar_path(mailbox.address, folder.folder_path)
            for grant in await self.service.get_folder_permissions(path):
                shared_to, user_type = classify_grantee(grant.grantee)
                if user_type == GranteeType.EXTERNAL:
                    progress.external += 1
                progress.records += 1
                yield ReportRecord(
                    mailbox_name=mailbox.display_name,
                    email_address=mailbox.primary_smtp_address,
                    mailbox_type=mailbox.recipient_type_details,
                    calendar_name=folder.name,
                    shared_to=shared_to,
                    access_rights=",".join(grant.access_rights),
                    sharing_flags=",".join(grant.sharing_flags) or NO_SHARING_FLAGS,
                    user_type=user_type,
                )

    async def generate(
        self,
        progress: Optional[ReportProgress] = None,
        on_mailbox: Optional[Callable[[ReportProgress], None]] = None,
    ) -> AsyncIterator[ReportRecord]:
        """
        Yield records for every mailbox, updating `progress` as it goes.

        A mailbox whose folders or permissions cannot be read is recorded in
        `progress.failures` and the walk moves on to the next one.
        """
        progress = progress if progress is not None else ReportProgress()
        async for mailbox in self.service.list_mailboxes():
            try:
                async for record in self.records_for_mailbox(mailbox, progress):
                    yield record
            except RemoteError as e:
                progress.failures.append((mailbox.address, str(e)))
                logger.error(f"Report: skipped {mailbox.address}: {e}")
            progress.mailboxes += 1
            logger.debug(f"Report: processed {mailbox.address} ({progress.records} records so far)")
            if on_mailbox:
                on_mailbox(progress)
