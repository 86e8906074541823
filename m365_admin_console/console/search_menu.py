"""
Compliance search console — menu loop over the query builder and the
search/export orchestrator.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from ..compliance.models import ExportFormat, QueryFilter, SearchState, SearchTarget
from ..compliance.orchestrator import SearchOrchestrator
from ..compliance.query import build_search_filter, parse_date_range, resolve_identities
from ..errors import RemoteError, ValidationError
from ..remote.base import RemoteAdminService
from ..remote.models import MailboxIdentity, SearchInfo
from .prompts import Prompter, fail, info, ok, parse_choice, warn

logger = logging.getLogger("m365_admin_console.console.search")

MENU_OPTIONS = [
    "Create a single-mailbox search",
    "Create a multi-mailbox search",
    "List existing searches",
    "Export search results",
    "List export jobs",
    "Exit",
]

FORMAT_DESCRIPTIONS = {
    ExportFormat.PER_USER_PST: "One PST file per mailbox",
    ExportFormat.SINGLE_PST: "One PST file for all mailboxes",
    ExportFormat.SINGLE_FOLDER_PST: "One PST file with a single root folder",
    ExportFormat.INDIVIDUAL_MESSAGE: "Individual message files",
    ExportFormat.PER_USER_ZIP: "One ZIP file per mailbox",
    ExportFormat.SINGLE_ZIP: "One ZIP file for all mailboxes",
}


class SearchConsole:
    def __init__(
        self,
        service: RemoteAdminService,
        orchestrator: SearchOrchestrator,
        prompter: Optional[Prompter] = None,
    ):
        self.service = service
        self.orchestrator = orchestrator
        self.prompter = prompter or Prompter()

    async def run(self):
        actions = {
            1: self.single_mailbox_search,
            2: self.multi_mailbox_search,
            3: self.list_searches,
            4: self.export_results,
            5: self.list_exports,
        }
        while True:
            choice = self.prompter.choose("COMPLIANCE SEARCH", MENU_OPTIONS)
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

    async def ask_mailbox(self, prompt: str) -> MailboxIdentity:
        return await self.prompter.ask_until_valid_async(prompt, self._resolve_one)

    async def ask_search_name(self) -> str:
        return await self.prompter.ask_until_valid_async(
            "Search name", self.orchestrator.ensure_unique_name
        )

    def ask_filter_options(self) -> tuple[str, bool, bool, Optional[str]]:
        date_range = self.prompter.ask_until_valid(
            "Date range (YYYY-MM-DD..YYYY-MM-DD or n/a)",
            _date_range,
        )
        email = self.prompter.ask_yes_no("Include email messages?")
        instant_message = self.prompter.ask_yes_no("Include instant messages?")
        raw_clause = None
        if self.prompter.ask_yes_no("Add a custom KQL clause?"):
            warn("Custom clauses are sent verbatim and are NOT validated.")
            raw_clause = self.prompter.ask("Custom clause") or None
        return date_range, email, instant_message, raw_clause

    async def ask_query(self, addresses: Sequence[str], multi: bool = False) -> Optional[QueryFilter]:
        date_range, email, instant_message, raw_clause = self.ask_filter_options()
        try:
            return await build_search_filter(
                self.service,
                date_range,
                addresses,
                email=email,
                instant_message=instant_message,
                raw_clause=raw_clause,
                multi=multi,
            )
        except ValidationError as e:
            fail(str(e))
            return None

    # ── Actions ─────────────────────────────────────────────────────────────

    async def single_mailbox_search(self):
        name = await self.ask_search_name()
        mailbox = await self.ask_mailbox("Mailbox to search")
        participants = [mailbox.address]
        while self.prompter.ask_yes_no("Add another participant to the filter?"):
            extra = await self.ask_mailbox("Participant address")
            participants.append(extra.address)

        query = await self.ask_query(participants)
        if query is not None:
            await self._confirm_and_start(name, SearchTarget.single(mailbox.address), query)

    async def multi_mailbox_search(self):
        name = await self.ask_search_name()
        addresses: list[str] = []
        info("Enter the mailboxes to search, one per prompt. Leave blank to finish.")
        while True:
            address = self.prompter.ask(f"Mailbox #{len(addresses) + 1}")
            if not address:
                if addresses:
                    break
                fail("At least one mailbox is required.")
                continue
            try:
                mailbox = await self._resolve_one(address)
            except ValidationError as e:
                fail(str(e))
                continue
            addresses.append(mailbox.address)

        target = SearchTarget.many(addresses)
        query = await self.ask_query(target.identities, multi=True)
        if query is not None:
            await self._confirm_and_start(name, target, query)

    async def _confirm_and_start(self, name: str, target: SearchTarget, query: QueryFilter):
        info(f"Search name: {name}")
        info(f"Mailboxes:   {', '.join(target.locations)}")
        info(f"Query:       {query.render() or '(no restriction)'}")
        if not self.prompter.ask_yes_no("Create and start this search?"):
            warn("Search cancelled.")
            return

        info(f"Creating search (waiting {self.orchestrator.settle_seconds:g}s before starting)...")
        job = await self.orchestrator.create_and_start(name, target, query)
        if job.state == SearchState.CONFIRMED:
            ok(f"Search '{name}' is running (status: {job.status or 'unknown'}).")
        else:
            fail(f"Search '{name}' failed to start. {job.error}")

    async def _collect_searches(self) -> list[SearchInfo]:
        searches = []
        async for number, search in self.orchestrator.list_existing_jobs():
            info(f"{number:>3}. {search.name:<40s} {search.status:<12s} {search.items} items")
            searches.append(search)
        return searches

    async def list_searches(self):
        if not await self._collect_searches():
            warn("No compliance searches found.")

    async def export_results(self):
        searches = await self._collect_searches()
        if not searches:
            warn("No compliance searches found.")
            return
        number = self.prompter.ask_until_valid(
            "Search number to export", lambda v: parse_choice(v, len(searches))
        )
        search = searches[number - 1]

        formats = list(ExportFormat)
        choice = self.prompter.choose(
            "EXPORT FORMAT",
            [f"{f.value:<18s} {FORMAT_DESCRIPTIONS[f]}" for f in formats],
        )
        fmt = formats[choice - 1]
        if not self.prompter.ask_yes_no(f"Export '{search.name}' as {fmt.value}?"):
            warn("Export cancelled.")
            return

        job = await self.orchestrator.submit_export(search.name, fmt)
        if job.succeeded:
            ok(f"Export '{job.action_name}' submitted.")
        else:
            fail(f"Export of '{search.name}' was not submitted: {job.error}")
            info(job.guidance)

    async def list_exports(self):
        found = False
        async for number, action in self.orchestrator.list_exports():
            found = True
            info(f"{number:>3}. {action.name:<40s} {action.status:<12s} {action.export_format}")
        if not found:
            warn("No export jobs found.")


def _date_range(value: str) -> str:
    parse_date_range(value)
    return value.strip()
