"""
Compliance search data models — filters, targets, search and export jobs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

from ..errors import ValidationError


class SearchState(str, Enum):
    UNSUBMITTED = "Unsubmitted"
    CREATED = "Created"
    STARTED = "Started"
    CONFIRMED = "Confirmed"
    FAILED_TO_START = "FailedToStart"


class SearchCheck(str, Enum):
    """Outcome of the post-start existence check."""
    FOUND = "Found"
    FOUND_BUT_MISMATCHED = "FoundButMismatched"
    NOT_FOUND = "NotFound"


class ExportFormat(str, Enum):
    PER_USER_PST = "PerUserPst"
    SINGLE_PST = "SinglePst"
    SINGLE_FOLDER_PST = "SingleFolderPst"
    INDIVIDUAL_MESSAGE = "IndividualMessage"
    PER_USER_ZIP = "PerUserZip"
    SINGLE_ZIP = "SingleZip"

    @classmethod
    def parse(cls, value: "ExportFormat | str") -> "ExportFormat":
        """Accept an enum member or its exact name; reject everything else."""
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value == value:
                return member
        allowed = ", ".join(m.value for m in cls)
        raise ValidationError(f"Unsupported export format '{value}'. Choose one of: {allowed}")


class ExportState(str, Enum):
    SUBMITTED = "Submitted"
    SUBMISSION_FAILED = "SubmissionFailed"


@dataclass
class QueryFilter:
    """
    Ordered clause collection. Clauses are joined with no separator;
    each clause carries its own parentheses. Empty means no restriction.
    """
    date: Optional[str] = None
    participants: list[str] = field(default_factory=list)
    kinds: list[str] = field(default_factory=list)
    raw: Optional[str] = None

    @property
    def clauses(self) -> list[str]:
        ordered = [self.date] if self.date else []
        ordered.extend(self.participants)
        ordered.extend(self.kinds)
        if self.raw:
            ordered.append(self.raw)
        return ordered

    def render(self) -> str:
        return "".join(self.clauses)

    def __str__(self) -> str:
        return self.render()

    @property
    def is_empty(self) -> bool:
        return not self.clauses


@dataclass
class SearchTarget:
    """One mailbox, or an ordered list of mailboxes deduplicated by entry."""
    identities: list[str]
    multi: bool = False

    @classmethod
    def single(cls, identity: str) -> "SearchTarget":
        return cls([identity], multi=False)

    @classmethod
    def many(cls, identities: Sequence[str]) -> "SearchTarget":
        seen: set[str] = set()
        unique = []
        for identity in identities:
            key = identity.lower()
            if key not in seen:
                seen.add(key)
                unique.append(identity)
        return cls(unique, multi=True)

    @property
    def locations(self) -> list[str]:
        return list(self.identities)


@dataclass
class SearchJob:
    name: str
    target: SearchTarget
    filter: QueryFilter
    state: SearchState = SearchState.UNSUBMITTED
    status: str = ""
    check: Optional[SearchCheck] = None
    error: str = ""
    history: list[SearchState] = field(default_factory=list)

    def __post_init__(self):
        if not self.history:
            self.history.append(self.state)

    def advance(self, state: SearchState):
        self.state = state
        self.history.append(state)

    @property
    def succeeded(self) -> bool:
        return self.state == SearchState.CONFIRMED


@dataclass
class ExportJob:
    search_name: str
    export_format: ExportFormat
    state: ExportState = ExportState.SUBMITTED
    action_name: str = ""
    error: str = ""
    guidance: str = ""

    @property
    def succeeded(self) -> bool:
        return self.state == ExportState.SUBMITTED
