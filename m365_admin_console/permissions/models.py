"""
Calendar permission data models — access rights, verification results and
report records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

from ..errors import ValidationError

# Exchange folder permission roles, in descending order of access
ACCESS_RIGHTS = (
    "Owner",
    "PublishingEditor",
    "Editor",
    "PublishingAuthor",
    "Author",
    "NonEditingAuthor",
    "Reviewer",
    "Contributor",
    "AvailabilityOnly",
    "LimitedDetails",
    "None",
)

SHARING_FLAGS = ("Delegate", "CanViewPrivateItems")
# Sharing flags can only accompany this role
SHARING_FLAG_ROLE = "Editor"

EXTERNAL_USER_PREFIX = "ExchangePublishedUser."
NO_SHARING_FLAGS = "-"

CALENDAR_FOLDER_TYPE = "Calendar"
CALENDAR_CONTAINER_CLASS = "IPF.Appointment"


def calendar_path(mailbox: str, folder_path: str = "/Calendar") -> str:
    """Build a folder identity such as user@contoso.com:\\Calendar\\Team."""
    return mailbox + ":" + folder_path.replace("/", "\\")


def normalize_rights(rights: Sequence[str]) -> tuple[str, ...]:
    """Validate role names case-insensitively and return canonical casing."""
    canonical = {r.lower(): r for r in ACCESS_RIGHTS}
    cleaned = [r.strip() for r in rights if r and r.strip()]
    if not cleaned:
        raise ValidationError("At least one access right is required.")
    result = []
    for right in cleaned:
        if right.lower() not in canonical:
            raise ValidationError(
                f"Unknown access right '{right}'. Choose one of: {', '.join(ACCESS_RIGHTS)}"
            )
        result.append(canonical[right.lower()])
    return tuple(result)


def normalize_sharing_flags(flags: Sequence[str], rights: Sequence[str]) -> tuple[str, ...]:
    canonical = {f.lower(): f for f in SHARING_FLAGS}
    cleaned = [f.strip() for f in flags if f and f.strip() and f.strip().lower() != "none"]
    if not cleaned:
        return ()
    if tuple(rights) != (SHARING_FLAG_ROLE,):
        raise ValidationError(f"Sharing permission flags require the {SHARING_FLAG_ROLE} role.")
    result = []
    for flag in cleaned:
        if flag.lower() not in canonical:
            raise ValidationError(
                f"Unknown sharing flag '{flag}'. Choose from: {', '.join(SHARING_FLAGS)}"
            )
        result.append(canonical[flag.lower()])
    if "CanViewPrivateItems" in result and "Delegate" not in result:
        raise ValidationError("CanViewPrivateItems requires the Delegate flag.")
    return tuple(result)


def same_rights(a: Sequence[str], b: Sequence[str]) -> bool:
    return {r.lower() for r in a} == {r.lower() for r in b}


class PermissionOperation(str, Enum):
    ADD = "add"
    MODIFY = "modify"
    REMOVE = "remove"
    NONE = "none"          # Removal requested but no entry existed


class GranteeType(str, Enum):
    MEMBER = "Member"
    EXTERNAL = "External/Unauthorized"


@dataclass
class VerificationResult:
    """
    Outcome of a permission change.

    error set           -> the mutating call itself was rejected
    readback_error set  -> the call succeeded but the read-back failed
    verified False      -> the call succeeded but the read-back disagrees
    """
    folder_path: str
    grantee: str
    operation: PermissionOperation
    desired: tuple[str, ...] = ()
    observed: tuple[str, ...] = ()
    verified: bool = False
    error: str = ""
    readback_error: str = ""

    @property
    def succeeded(self) -> bool:
        return self.verified and not self.error

    @property
    def mismatch(self) -> bool:
        return not self.error and not self.readback_error and not self.verified


@dataclass
class BulkChangeResult:
    """Outcome of a tenant-wide Default permission change."""
    desired: tuple[str, ...]
    total: int = 0
    applied: int = 0
    failures: list[tuple[str, str]] = field(default_factory=list)
    sample: Optional[VerificationResult] = None


@dataclass(frozen=True)
class ReportRecord:
    mailbox_name: str
    email_address: str
    mailbox_type: str
    calendar_name: str
    shared_to: str
    access_rights: str
    sharing_flags: str
    user_type: GranteeType

    def as_row(self) -> list[str]:
        return [
            self.mailbox_name,
            self.email_address,
            self.mailbox_type,
            self.calendar_name,
            self.shared_to,
            self.access_rights,
            self.sharing_flags,
            self.user_type.value,
        ]


def classify_grantee(display_name: str) -> tuple[str, GranteeType]:
    """Strip the published-user prefix and classify the grantee."""
    if display_name.startswith(EXTERNAL_USER_PREFIX):
        return display_name[len(EXTERNAL_USER_PREFIX):], GranteeType.EXTERNAL
    return display_name, GranteeType.MEMBER


@dataclass
class ReportProgress:
    """Counters for operator feedback while a report runs."""
    mailboxes: int = 0
    folders: int = 0
    records: int = 0
    external: int = 0
    failures: list[tuple[str, str]] = field(default_factory=list)   # (mailbox, error)
