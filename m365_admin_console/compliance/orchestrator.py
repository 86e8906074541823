"""
Search/export orchestrator — Drives compliance search and export lifecycles.

Search: Unsubmitted -> Created -> Started -> Confirmed | FailedToStart
Export: Submitted | SubmissionFailed

Success is judged by reading the search back after starting it, not by the
return value of the start call. Nothing is retried automatically.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Optional

from ..config import DEFAULT_SETTLE_SECONDS, MIN_SETTLE_SECONDS
from ..errors import RemoteError, RemoteLookupError, RemoteSubmissionError, ValidationError
from ..remote.base import RemoteAdminService
from ..remote.models import ExportAction, SearchInfo
from .models import (
    ExportFormat,
    ExportJob,
    ExportState,
    QueryFilter,
    SearchCheck,
    SearchJob,
    SearchState,
    SearchTarget,
)

logger = logging.getLogger("m365_admin_console.compliance.orchestrator")

EXPORT_SCOPE = "BothIndexedAndUnindexedItems"
# Statuses a freshly started search may legitimately report
STARTED_STATUSES = {"Starting", "InProgress", "Completed"}

MANUAL_EXPORT_GUIDANCE = (
    "The export can still be started manually from the Microsoft Purview "
    "compliance portal (Content search > select the search > Export results)."
)
MANUAL_SEARCH_GUIDANCE = (
    "Check the search in the Microsoft Purview compliance portal and start it "
    "manually, or re-run this option with a new search name."
)


class SearchOrchestrator:
    """Creates, starts, lists and exports compliance searches."""

    def __init__(
        self,
        service: RemoteAdminService,
        settle_seconds: float = DEFAULT_SETTLE_SECONDS,
    ):
        self.service = service
        self.settle_seconds = max(MIN_SETTLE_SECONDS, settle_seconds)

    async def ensure_unique_name(self, name: str) -> str:
        """Reject empty names and names already used by an existing search."""
        name = name.strip()
        if not name:
            raise ValidationError("Search name cannot be empty.")
        try:
            await self.service.get_search(name)
        except RemoteLookupError:
            return name
        raise ValidationError(f"A compliance search named '{name}' already exists.")

    async def check_search(self, name: str) -> tuple[SearchCheck, Optional[SearchInfo]]:
        """
        Look the search up after starting it.
        A failed lookup is NOT_FOUND; a present search with an unexpected
        status is FOUND_BUT_MISMATCHED.
        """
        try:
            info = await self.service.get_search(name)
        except RemoteError as e:
            logger.warning(f"Post-start lookup of '{name}' failed: {e}")
            return SearchCheck.NOT_FOUND, None
        if info.status and info.status not in STARTED_STATUSES:
            return SearchCheck.FOUND_BUT_MISMATCHED, info
        return SearchCheck.FOUND, info

    async def create_and_start(
        self,
        name: str,
        target: SearchTarget,
        query: QueryFilter,
    ) -> SearchJob:
        """
        Create the search, wait for it to settle, start it, then confirm it
        exists. Remote rejections are returned on the job, never raised.
        """
        job = SearchJob(name=name, target=target, filter=query)

        try:
            await self.service.create_search(name, target.locations, query.render())
            job.advance(SearchState.CREATED)
            logger.info(f"Compliance search '{name}' created")

            await asyncio.sleep(self.settle_seconds)

            await self.service.start_search(name)
            job.advance(SearchState.STARTED)
            logger.info(f"Compliance search '{name}' started")
        except RemoteSubmissionError as e:
            job.advance(SearchState.FAILED_TO_START)
            job.error = f"{e} {MANUAL_SEARCH_GUIDANCE}"
            logger.error(f"Compliance search '{name}' failed: {e}")
            return job

        job.check, info = await self.check_search(name)
        if job.check == SearchCheck.NOT_FOUND:
            job.advance(SearchState.FAILED_TO_START)
            job.error = f"Search '{name}' could not be found after starting. {MANUAL_SEARCH_GUIDANCE}"
            return job

        job.advance(SearchState.CONFIRMED)
        job.status = info.status if info else ""
        if job.check == SearchCheck.FOUND_BUT_MISMATCHED:
            logger.warning(f"Search '{name}' exists but reports status '{job.status}'")
        return job

    async def list_existing_jobs(self) -> AsyncIterator[tuple[int, SearchInfo]]:
        """Yield (number, search) pairs; numbering starts at 1 per listing."""
        number = 0
        async for info in self.service.list_searches():
            number += 1
            yield number, info

    async def list_exports(self) -> AsyncIterator[tuple[int, ExportAction]]:
        number = 0
        async for action in self.service.list_export_actions():
            number += 1
            yield number, action

    async def submit_export(self, search_name: str, export_format: ExportFormat | str) -> ExportJob:
        """
        Submit an export of a search's results.
        The format is validated before any remote call; remote failures are
        returned as SubmissionFailed with manual-action guidance.
        """
        fmt = ExportFormat.parse(export_format)
        job = ExportJob(search_name=search_name, export_format=fmt)
        options = {"EnableDedupe": True, "Scope": EXPORT_SCOPE}

        try:
            action = await self.service.submit_export(search_name, fmt.value, options)
        except RemoteError as e:
            job.state = ExportState.SUBMISSION_FAILED
            job.error = str(e)
            job.guidance = MANUAL_EXPORT_GUIDANCE
            logger.error(f"Export of '{search_name}' failed: {e}")
            return job

        job.action_name = action.name
        logger.info(f"Export '{action.name}' submitted as {fmt.value}")
        return job
