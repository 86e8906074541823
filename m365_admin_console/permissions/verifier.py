"""
Permission change verifier — Applies calendar folder permission changes and
confirms them by reading the folder's permission list back.

The service does not guarantee that a successful mutating call is reflected
in the permission list, so every change is followed by a read-back.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from ..errors import RemoteError, RemoteLookupError, RemoteSubmissionError
from ..remote.base import RemoteAdminService
from ..remote.models import ANONYMOUS_GRANTEE, DEFAULT_GRANTEE, MailboxIdentity, PermissionGrant
from .models import (
    BulkChangeResult,
    PermissionOperation,
    VerificationResult,
    calendar_path,
    normalize_rights,
    normalize_sharing_flags,
    same_rights,
)

logger = logging.getLogger("m365_admin_console.permissions.verifier")

SPECIAL_GRANTEES = {DEFAULT_GRANTEE.lower(), ANONYMOUS_GRANTEE.lower()}


class PermissionVerifier:
    """Reads, changes and verifies calendar folder permissions."""

    def __init__(self, service: RemoteAdminService):
        self.service = service

    async def grantee_names(self, grantee: str) -> set[str]:
        """
        Every name the permission list may use for `grantee`.
        Permission entries show display names, operators type addresses.
        """
        names = {grantee.lower()}
        if grantee.lower() in SPECIAL_GRANTEES:
            return names
        try:
            identity = await self.service.resolve_identity(grantee)
        except RemoteLookupError:
            return names
        for name in (identity.identity, identity.display_name, identity.primary_smtp_address):
            if name:
                names.add(name.lower())
        return names

    async def find_entry(self, folder_path: str, grantee: str) -> Optional[PermissionGrant]:
        names = await self.grantee_names(grantee)
        for grant in await self.service.get_folder_permissions(folder_path):
            if grant.grantee.lower() in names:
                return grant
        return None

    async def list_permissions(self, folder_path: str) -> list[PermissionGrant]:
        return await self.service.get_folder_permissions(folder_path)

    async def read_back(self, result: VerificationResult) -> Optional[PermissionGrant]:
        """
        Look up the grantee's entry after an accepted change. A failed lookup
        is stored on `result.readback_error` and leaves it unverified.
        """
        try:
            return await self.find_entry(result.folder_path, result.grantee)
        except RemoteError as e:
            result.readback_error = str(e)
            result.verified = False
            logger.warning(f"Could not read back {result.grantee} on {result.folder_path}: {e}")
            return None

    async def apply_and_verify(
        self,
        folder_path: str,
        grantee: str,
        rights: Sequence[str],
        sharing_flags: Sequence[str] = (),
    ) -> VerificationResult:
        """
        Add the entry if the grantee has none, otherwise modify it, then read
        it back. A mismatch is returned as verified=False with the observed
        rights; a rejected call is returned with `error` set.
        """
        desired = normalize_rights(rights)
        flags = normalize_sharing_flags(sharing_flags, desired)

        current = await self.find_entry(folder_path, grantee)
        operation = PermissionOperation.MODIFY if current else PermissionOperation.ADD
        result = VerificationResult(
            folder_path=folder_path,
            grantee=grantee,
            operation=operation,
            desired=desired,
        )

        try:
            if operation == PermissionOperation.ADD:
                await self.service.add_folder_permission(folder_path, grantee, desired, flags)
            else:
                await self.service.set_folder_permission(folder_path, grantee, desired, flags)
        except RemoteSubmissionError as e:
            result.error = str(e)
            result.observed = current.access_rights if current else ()
            logger.error(f"{operation.value} of {grantee} on {folder_path} rejected: {e}")
            return result

        observed = await self.read_back(result)
        if result.readback_error:
            return result
        result.observed = observed.access_rights if observed else ()
        result.verified = observed is not None and same_rights(result.observed, desired)
        if not result.verified:
            logger.warning(
                f"Unverified {operation.value} on {folder_path}: wanted {desired}, "
                f"observed {result.observed}"
            )
        return result

    async def remove(self, folder_path: str, grantee: str) -> VerificationResult:
        """
        Remove the grantee's entry. No entry means nothing to do, which
        counts as success.
        """
        current = await self.find_entry(folder_path, grantee)
        if current is None:
            return VerificationResult(
                folder_path=folder_path,
                grantee=grantee,
                operation=PermissionOperation.NONE,
                verified=True,
            )

        result = VerificationResult(
            folder_path=folder_path,
            grantee=grantee,
            operation=PermissionOperation.REMOVE,
        )
        try:
            await self.service.remove_folder_permission(folder_path, grantee)
        except RemoteSubmissionError as e:
            result.error = str(e)
            result.observed = current.access_rights
            logger.error(f"Removal of {grantee} from {folder_path} rejected: {e}")
            return result

        remaining = await self.read_back(result)
        if result.readback_error:
            return result
        result.observed = remaining.access_rights if remaining else ()
        result.verified = remaining is None
        return result

    async def apply_default_to_all(
        self,
        rights: Sequence[str],
        mailboxes: Optional[Sequence[MailboxIdentity]] = None,
    ) -> BulkChangeResult:
        """
        Set the Default entry on every mailbox's root calendar.

        Only the first mailbox of the list is read back afterwards; the rest
        are counted as applied when the call was accepted.
        """
        desired = normalize_rights(rights)
        if mailboxes is None:
            mailboxes = [mb async for mb in self.service.list_mailboxes()]

        result = BulkChangeResult(desired=desired, total=len(mailboxes))
        for mailbox in mailboxes:
            path = calendar_path(mailbox.address)
            try:
                await self.service.set_folder_permission(path, DEFAULT_GRANTEE, desired)
                result.applied += 1
            except RemoteError as e:
                result.failures.append((mailbox.address, str(e)))
                logger.error(f"Default permission change failed for {mailbox.address}: {e}")

        if mailboxes:
            sample = VerificationResult(
                folder_path=calendar_path(mailboxes[0].address),
                grantee=DEFAULT_GRANTEE,
                operation=PermissionOperation.MODIFY,
                desired=desired,
            )
            entry = await self.read_back(sample)
            if not sample.readback_error:
                sample.observed = entry.access_rights if entry else ()
                sample.verified = entry is not None and same_rights(sample.observed, desired)
            result.sample = sample
        return result
