"""
Permission change verifier tests
"""

import pytest

from m365_admin_console.errors import ValidationError
from m365_admin_console.permissions.models import PermissionOperation, calendar_path
from m365_admin_console.permissions.verifier import PermissionVerifier

ALICE_CAL = "alice@contoso.com:\\Calendar"


@pytest.fixture
def verifier(service):
    for address in ("alice@contoso.com", "bob@contoso.com", "carol@contoso.com", "rooms-101@contoso.com"):
        service.grant(calendar_path(address), "Default", ["AvailabilityOnly"])
        service.grant(calendar_path(address), "Anonymous", ["None"])
    return PermissionVerifier(service)


def test_calendar_path_uses_backslashes():
    assert calendar_path("alice@contoso.com") == ALICE_CAL
    assert calendar_path("alice@contoso.com", "/Calendar/Team") == "alice@contoso.com:\\Calendar\\Team"


@pytest.mark.asyncio
async def test_add_when_grantee_has_no_entry(service, verifier):
    result = await verifier.apply_and_verify(ALICE_CAL, "bob@contoso.com", ["reviewer"])

    assert result.operation == PermissionOperation.ADD
    assert result.succeeded
    assert result.desired == ("Reviewer",)
    assert result.observed == ("Reviewer",)
    assert service.method_calls("add_folder_permission") == [ALICE_CAL]


@pytest.mark.asyncio
async def test_modify_matches_entry_by_display_name(service, verifier):
    service.grant(ALICE_CAL, "Bob Brown", ["Reviewer"])

    result = await verifier.apply_and_verify(ALICE_CAL, "bob@contoso.com", ["Editor"], ["Delegate"])

    assert result.operation == PermissionOperation.MODIFY
    assert result.succeeded
    assert service.method_calls("add_folder_permission") == []
    entry = [g for g in service.permissions[ALICE_CAL] if g.grantee == "Bob Brown"][0]
    assert entry.sharing_flags == ("Delegate",)


@pytest.mark.asyncio
async def test_accepted_but_ignored_change_is_a_mismatch(service, verifier):
    service.ignored_paths.add(ALICE_CAL)

    result = await verifier.apply_and_verify(ALICE_CAL, "bob@contoso.com", ["Author"])

    assert not result.verified
    assert result.mismatch
    assert result.error == ""
    assert result.observed == ()


@pytest.mark.asyncio
async def test_rejected_change_reports_error(service, verifier):
    service.rejected_paths.add(ALICE_CAL)

    result = await verifier.apply_and_verify(ALICE_CAL, "Default", ["Reviewer"])

    assert result.operation == PermissionOperation.MODIFY
    assert "rejected" in result.error
    assert not result.mismatch
    assert result.observed == ("AvailabilityOnly",)


@pytest.mark.asyncio
async def test_invalid_input_rejected_before_any_call(service, verifier):
    with pytest.raises(ValidationError):
        await verifier.apply_and_verify(ALICE_CAL, "bob@contoso.com", ["Superuser"])
    with pytest.raises(ValidationError, match="Editor"):
        await verifier.apply_and_verify(ALICE_CAL, "bob@contoso.com", ["Reviewer"], ["Delegate"])
    with pytest.raises(ValidationError, match="Delegate"):
        await verifier.apply_and_verify(ALICE_CAL, "bob@contoso.com", ["Editor"], ["CanViewPrivateItems"])
    assert service.calls == []


@pytest.mark.asyncio
async def test_none_role_is_a_real_right(service, verifier):
    result = await verifier.apply_and_verify(ALICE_CAL, "Default", ["None"])
    assert result.succeeded
    assert result.observed == ("None",)


@pytest.mark.asyncio
async def test_remove_without_entry_is_a_no_op(service, verifier):
    result = await verifier.remove(ALICE_CAL, "carol@contoso.com")

    assert result.operation == PermissionOperation.NONE
    assert result.succeeded
    assert service.method_calls("remove_folder_permission") == []


@pytest.mark.asyncio
async def test_remove_verified_by_read_back(service, verifier):
    service.grant(ALICE_CAL, "Carol Chen", ["Reviewer"])

    result = await verifier.remove(ALICE_CAL, "carol@contoso.com")

    assert result.operation == PermissionOperation.REMOVE
    assert result.succeeded
    assert result.observed == ()


@pytest.mark.asyncio
async def test_remove_ignored_is_unverified(service, verifier):
    service.grant(ALICE_CAL, "Carol Chen", ["Reviewer"])
    service.ignored_paths.add(ALICE_CAL)

    result = await verifier.remove(ALICE_CAL, "Carol Chen")

    assert result.mismatch
    assert result.observed == ("Reviewer",)


@pytest.mark.asyncio
async def test_default_change_verifies_first_mailbox_only(service, verifier):
    service.rejected_paths.add(calendar_path("bob@contoso.com"))

    result = await verifier.apply_default_to_all(["LimitedDetails"])

    assert result.total == 4
    assert result.applied == 3
    assert result.failures[0][0] == "bob@contoso.com"
    assert result.sample.folder_path == ALICE_CAL
    assert result.sample.succeeded
    assert service.method_calls("get_folder_permissions") == [ALICE_CAL]
    # every mailbox type is covered, rooms included
    assert calendar_path("rooms-101@contoso.com") in service.method_calls("set_folder_permission")


@pytest.mark.asyncio
async def test_default_change_sample_mismatch(service, verifier):
    service.ignored_paths.add(ALICE_CAL)

    result = await verifier.apply_default_to_all(["Reviewer"])

    assert result.applied == 4
    assert result.sample.mismatch
    assert result.sample.observed == ("AvailabilityOnly",)


@pytest.mark.asyncio
async def test_failed_read_back_keeps_the_change(service, verifier):
    service.unreadable_after_write.add(ALICE_CAL)

    result = await verifier.apply_and_verify(ALICE_CAL, "Default", ["Reviewer"])

    assert result.error == ""
    assert "transient" in result.readback_error
    assert not result.verified
    assert not result.mismatch
    assert result.observed == ()
    assert service.permissions[ALICE_CAL][0].access_rights == ("Reviewer",)


@pytest.mark.asyncio
async def test_failed_read_back_after_remove(service, verifier):
    service.grant(ALICE_CAL, "Carol Chen", ["Reviewer"])
    service.unreadable_after_write.add(ALICE_CAL)

    result = await verifier.remove(ALICE_CAL, "Carol Chen")

    assert result.operation == PermissionOperation.REMOVE
    assert result.readback_error
    assert not result.succeeded


@pytest.mark.asyncio
async def test_default_change_survives_failed_sample_read_back(service, verifier):
    service.unreadable_after_write.add(ALICE_CAL)
    service.rejected_paths.add(calendar_path("carol@contoso.com"))

    result = await verifier.apply_default_to_all(["Reviewer"])

    assert result.total == 4
    assert result.applied == 3
    assert [address for address, _ in result.failures] == ["carol@contoso.com"]
    assert result.sample.folder_path == ALICE_CAL
    assert result.sample.readback_error
    assert not result.sample.verified
