"""
Query builder — Assembles compliance search filters (KQL) from operator input.

Clause order is fixed: date, participant (or sender/recipient pairs), kind,
raw. Nothing is returned until every input has validated.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional, Sequence

from ..errors import RemoteError, RemoteLookupError, ValidationError
from ..remote.base import RemoteAdminService
from ..remote.models import MailboxIdentity
from .models import QueryFilter, SearchTarget

logger = logging.getLogger("m365_admin_console.compliance.query")

NOT_APPLICABLE = "n/a"

_DATE = r"\d{4}-(0[1-9]|1[0-2])-(0[1-9]|[12]\d|3[01])"
# Syntactic only: 2023-02-30 passes
DATE_RANGE_RE = re.compile(rf"^{_DATE}\.\.{_DATE}$")
YES_NO_RE = re.compile(r"^(y|yes|n|no)$", re.IGNORECASE)

KIND_EMAIL = "email"
KIND_IM = "im"


def parse_date_range(value: str) -> Optional[str]:
    """
    Return the date clause for `value`, or None for the n/a token.
    Raises ValidationError for anything else.
    """
    value = value.strip()
    if value.lower() == NOT_APPLICABLE:
        return None
    if DATE_RANGE_RE.match(value):
        return f"(Date={value})"
    raise ValidationError(
        f"Invalid date range '{value}'. Use YYYY-MM-DD..YYYY-MM-DD or {NOT_APPLICABLE}."
    )


def parse_yes_no(value: str) -> bool:
    value = value.strip()
    if not YES_NO_RE.match(value):
        raise ValidationError("Please answer y or n.")
    return value[0].lower() == "y"


def participant_clauses(identities: Sequence[str], multi: bool = False) -> list[str]:
    """
    Single-target: one Participants clause per identity.
    Multi-target: a From and a To clause per identity, identity order kept.
    """
    if not multi:
        return [f"(Participants:{i})" for i in identities]
    clauses = []
    for identity in identities:
        clauses.append(f"(From:{identity})")
        clauses.append(f"(To:{identity})")
    return clauses


def kind_clauses(email: bool = False, instant_message: bool = False) -> list[str]:
    clauses = []
    if email:
        clauses.append(f"(kind:{KIND_EMAIL})")
    if instant_message:
        clauses.append(f"(kind:{KIND_IM})")
    return clauses


def build_filter(
    date_range: str,
    identities: Sequence[str] = (),
    email: bool = False,
    instant_message: bool = False,
    raw_clause: Optional[str] = None,
    multi: bool = False,
) -> QueryFilter:
    """
    Build a filter from already-resolved identities.

    `raw_clause` is appended verbatim. It bypasses all validation and
    can produce a query the service rejects or interprets unexpectedly.
    """
    date = parse_date_range(date_range)
    return QueryFilter(
        date=date,
        participants=participant_clauses(identities, multi=multi),
        kinds=kind_clauses(email=email, instant_message=instant_message),
        raw=raw_clause or None,
    )


async def resolve_identities(
    service: RemoteAdminService,
    addresses: Iterable[str],
) -> list[MailboxIdentity]:
    """
    Resolve every address against the mailbox directory.
    Raises ValidationError naming the first address that does not resolve.
    """
    resolved = []
    for address in addresses:
        address = address.strip()
        if not address:
            raise ValidationError("Mailbox identity cannot be empty.")
        try:
            resolved.append(await service.resolve_identity(address))
        except RemoteLookupError:
            raise ValidationError(f"Mailbox '{address}' was not found.")
        except RemoteError as e:
            raise ValidationError(f"Mailbox '{address}' could not be resolved: {e}")
    logger.debug(f"Resolved {len(resolved)} mailbox identities")
    return resolved


async def build_search_filter(
    service: RemoteAdminService,
    date_range: str,
    addresses: Sequence[str] = (),
    email: bool = False,
    instant_message: bool = False,
    raw_clause: Optional[str] = None,
    multi: bool = False,
) -> QueryFilter:
    """Validate the date range, resolve addresses, then build the filter."""
    parse_date_range(date_range)
    addresses = [a.strip() for a in addresses]
    if multi:
        addresses = SearchTarget.many(addresses).identities
    await resolve_identities(service, addresses)
    return build_filter(
        date_range,
        addresses,
        email=email,
        instant_message=instant_message,
        raw_clause=raw_clause,
        multi=multi,
    )
