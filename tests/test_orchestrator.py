"""
Search/export orchestrator tests
"""

from types import SimpleNamespace

import pytest

from m365_admin_console.compliance import orchestrator as orchestrator_module
from m365_admin_console.compliance.models import (
    ExportFormat,
    ExportState,
    SearchCheck,
    SearchState,
    SearchTarget,
)
from m365_admin_console.compliance.orchestrator import EXPORT_SCOPE, SearchOrchestrator
from m365_admin_console.compliance.query import build_filter, build_search_filter
from m365_admin_console.config import MIN_SETTLE_SECONDS
from m365_admin_console.errors import ValidationError


@pytest.fixture
def sleeps(monkeypatch):
    recorded = []

    async def _sleep(seconds):
        recorded.append(seconds)

    monkeypatch.setattr(orchestrator_module, "asyncio", SimpleNamespace(sleep=_sleep))
    return recorded


@pytest.fixture
def orchestrator(service):
    return SearchOrchestrator(service, settle_seconds=7)


def _query():
    return build_filter("2023-01-01..2023-12-31", ["alice@contoso.com"], email=True)


@pytest.mark.asyncio
async def test_create_and_start_confirms(service, orchestrator, sleeps):
    job = await orchestrator.create_and_start(
        "Case1", SearchTarget.single("alice@contoso.com"), _query()
    )

    assert job.state == SearchState.CONFIRMED
    assert job.succeeded
    assert job.check == SearchCheck.FOUND
    assert job.status == "InProgress"
    assert sleeps == [7]
    assert [name for name, _ in service.calls] == ["create_search", "start_search", "get_search"]
    assert service.searches["Case1"].content_match_query == _query().render()
    assert service.searches["Case1"].exchange_locations == ("alice@contoso.com",)


@pytest.mark.asyncio
async def test_search_missing_after_start_failed_to_start(service, orchestrator, sleeps):
    service.lose_search_after_start = True
    job = await orchestrator.create_and_start(
        "Case2", SearchTarget.single("alice@contoso.com"), _query()
    )
    assert job.state == SearchState.FAILED_TO_START
    assert job.check == SearchCheck.NOT_FOUND
    assert "Case2" in job.error


@pytest.mark.asyncio
async def test_unexpected_status_still_confirmed(service, orchestrator, sleeps):
    service.status_after_start = "Stopped"
    job = await orchestrator.create_and_start(
        "Case3", SearchTarget.single("alice@contoso.com"), _query()
    )
    assert job.state == SearchState.CONFIRMED
    assert job.check == SearchCheck.FOUND_BUT_MISMATCHED
    assert job.status == "Stopped"


@pytest.mark.asyncio
async def test_rejected_create_never_starts(service, orchestrator, sleeps):
    service.fail_create = True
    job = await orchestrator.create_and_start(
        "Case4", SearchTarget.single("alice@contoso.com"), _query()
    )
    assert job.state == SearchState.FAILED_TO_START
    assert "invalid location" in job.error
    assert service.method_calls("start_search") == []
    assert sleeps == []


@pytest.mark.asyncio
async def test_rejected_start_keeps_created_search(service, orchestrator, sleeps):
    service.fail_start = True
    job = await orchestrator.create_and_start(
        "Case5", SearchTarget.single("alice@contoso.com"), _query()
    )
    assert job.state == SearchState.FAILED_TO_START
    assert "Case5" in service.searches


@pytest.mark.asyncio
async def test_unique_name(service, orchestrator, sleeps):
    await orchestrator.create_and_start("Case1", SearchTarget.single("alice@contoso.com"), _query())

    with pytest.raises(ValidationError, match="already exists"):
        await orchestrator.ensure_unique_name("Case1")
    with pytest.raises(ValidationError):
        await orchestrator.ensure_unique_name("   ")
    assert await orchestrator.ensure_unique_name(" Case9 ") == "Case9"


@pytest.mark.asyncio
async def test_listing_numbers_restart_at_one(service, orchestrator, sleeps):
    for name in ("A", "B", "C"):
        await orchestrator.create_and_start(name, SearchTarget.single("alice@contoso.com"), _query())

    first = [(n, s.name) async for n, s in orchestrator.list_existing_jobs()]
    second = [n async for n, _ in orchestrator.list_existing_jobs()]
    assert first == [(1, "A"), (2, "B"), (3, "C")]
    assert second == [1, 2, 3]


@pytest.mark.asyncio
async def test_invalid_export_format_makes_no_remote_call(service, orchestrator):
    with pytest.raises(ValidationError, match="Unsupported export format"):
        await orchestrator.submit_export("Case1", "Pst")
    assert service.calls == []


@pytest.mark.asyncio
async def test_export_submitted_with_fixed_options(service, orchestrator):
    job = await orchestrator.submit_export("Case1", "PerUserPst")

    assert job.state == ExportState.SUBMITTED
    assert job.export_format == ExportFormat.PER_USER_PST
    assert job.action_name == "Case1_Export"
    assert service.last_export_options == {
        "EnableDedupe": True,
        "Scope": EXPORT_SCOPE,
        "ExchangeArchiveFormat": "PerUserPst",
    }

    listed = [(n, a.name) async for n, a in orchestrator.list_exports()]
    assert listed == [(1, "Case1_Export")]


@pytest.mark.asyncio
async def test_export_failure_returns_guidance(service, orchestrator):
    service.fail_export = True
    job = await orchestrator.submit_export("Case1", ExportFormat.SINGLE_ZIP)

    assert job.state == ExportState.SUBMISSION_FAILED
    assert not job.succeeded
    assert "access denied" in job.error
    assert "manually" in job.guidance


@pytest.mark.asyncio
async def test_case1_end_to_end(service, orchestrator, sleeps):
    service.add_mailbox("user@tenant.com", "Tenant User")

    query = await build_search_filter(
        service, "2023-01-01..2023-06-30", ["user@tenant.com"], email=True
    )
    job = await orchestrator.create_and_start("Case1", SearchTarget.single("user@tenant.com"), query)

    assert query.render() == "(Date=2023-01-01..2023-06-30)(Participants:user@tenant.com)(kind:email)"
    assert job.history == [
        SearchState.UNSUBMITTED,
        SearchState.CREATED,
        SearchState.STARTED,
        SearchState.CONFIRMED,
    ]


@pytest.mark.asyncio
async def test_failed_start_history(service, orchestrator, sleeps):
    service.fail_start = True
    job = await orchestrator.create_and_start("Case6", SearchTarget.single("alice@contoso.com"), _query())
    assert job.history == [SearchState.UNSUBMITTED, SearchState.CREATED, SearchState.FAILED_TO_START]


@pytest.mark.asyncio
async def test_zero_settle_wait_is_raised_to_floor(service, sleeps):
    orchestrator = SearchOrchestrator(service, settle_seconds=0)
    await orchestrator.create_and_start("Case7", SearchTarget.single("alice@contoso.com"), _query())
    assert sleeps == [MIN_SETTLE_SECONDS]
