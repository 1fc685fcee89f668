"""
Unit tests for the membership sync service (upsert engine)
"""

import httpx
import pytest
from sqlmodel import select

from member_directory.core.exceptions import MissingIdentifierError
from member_directory.models.member import Member, MemberStatus
from member_directory.models.tenant import Tenant
from member_directory.models.waitlist_response import WaitlistResponse, WaitlistStatus
from member_directory.services.extraction import parse_timestamp
from member_directory.services.membership_sync import MembershipOutcome, MembershipSyncService
from member_directory.services.whop import WhopAPIClient


# Fixtures
@pytest.fixture
def service(session):
    return MembershipSyncService(session)


def membership_payload(**overrides):
    payload = {
        "id": "mem_1",
        "user_id": "user_1",
        "user": {"id": "user_1", "email": "a@example.com", "username": "ada", "name": "Ada"},
        "created_at": 1700000000,
    }
    payload.update(overrides)
    return payload


async def load_members(session, tenant_id):
    result = await session.exec(
        select(Member)
        .where(Member.tenant_id == tenant_id)
        .execution_options(populate_existing=True)
    )
    return result.all()


async def load_member(session, tenant_id, member_id):
    members = [m for m in await load_members(session, tenant_id) if m.member_id == member_id]
    assert len(members) == 1
    return members[0]


# Activation

@pytest.mark.asyncio
async def test_became_valid_creates_member_and_tenant(service, session):
    result = await service.apply_membership_event("biz_1", "membership.went_valid", membership_payload())

    assert result.outcome == MembershipOutcome.CREATED
    assert result.to_dict() == {
        "action": "created",
        "tenant_id": "biz_1",
        "member_id": "user_1",
        "membership_id": "mem_1",
    }

    member = await load_member(session, "biz_1", "user_1")
    assert member.membership_id == "mem_1"
    assert member.email == "a@example.com"
    assert member.status == MemberStatus.ACTIVE.value
    assert member.joined_at.replace(tzinfo=None) == parse_timestamp(1700000000).replace(tzinfo=None)

    tenant = await session.get(Tenant, "biz_1")
    assert tenant.display_name == "biz_1 Community"


@pytest.mark.asyncio
async def test_redelivery_is_idempotent(service, session):
    first = await service.apply_membership_event("biz_1", "membership_went_valid", membership_payload())
    second = await service.apply_membership_event("biz_1", "membership_went_valid", membership_payload())

    assert first.outcome == MembershipOutcome.CREATED
    assert second.outcome == MembershipOutcome.UPDATED
    assert len(await load_members(session, "biz_1")) == 1


@pytest.mark.asyncio
async def test_missing_profile_fields_keep_stored_values(service, session):
    await service.apply_membership_event("biz_1", "membership_went_valid", membership_payload())
    await service.apply_membership_event(
        "biz_1",
        "membership.updated",
        {"id": "mem_1", "user_id": "user_1", "user": {"id": "user_1", "name": "Ada L."}},
    )

    member = await load_member(session, "biz_1", "user_1")
    assert member.email == "a@example.com"
    assert member.username == "ada"
    assert member.display_name == "Ada L."


@pytest.mark.asyncio
async def test_custom_fields_merge_across_deliveries(service, session):
    await service.apply_membership_event(
        "biz_1", "membership_went_valid", membership_payload(custom_fields={"q1": "a"})
    )
    await service.apply_membership_event(
        "biz_1", "membership.updated", membership_payload(metadata={"q2": "b"})
    )

    member = await load_member(session, "biz_1", "user_1")
    assert member.custom_fields == {"q1": "a", "q2": "b"}


@pytest.mark.asyncio
async def test_custom_fields_from_two_locations_in_one_payload(service, session):
    await service.apply_membership_event(
        "biz_1",
        "membership_went_valid",
        membership_payload(custom_fields={"q1": "a"}, metadata={"q2": "b"}),
    )
    member = await load_member(session, "biz_1", "user_1")
    assert member.custom_fields == {"q1": "a", "q2": "b"}


@pytest.mark.asyncio
async def test_unknown_joined_at_does_not_overwrite_stored_value(service, session):
    await service.apply_membership_event("biz_1", "membership_went_valid", membership_payload())
    await service.apply_membership_event(
        "biz_1", "membership_went_valid", membership_payload(created_at="not-a-date")
    )

    member = await load_member(session, "biz_1", "user_1")
    assert member.joined_at.replace(tzinfo=None) == parse_timestamp(1700000000).replace(tzinfo=None)


# Deactivation

@pytest.mark.asyncio
async def test_became_invalid_retains_profile(service, session):
    await service.apply_membership_event(
        "biz_1", "membership_went_valid", membership_payload(custom_fields={"q1": "a"})
    )
    result = await service.apply_membership_event("biz_1", "membership.went_invalid", {"id": "mem_1"})

    assert result.outcome == MembershipOutcome.DEACTIVATED
    member = await load_member(session, "biz_1", "user_1")
    assert member.status == MemberStatus.INACTIVE.value
    assert member.email == "a@example.com"
    assert member.username == "ada"
    assert member.custom_fields == {"q1": "a"}


@pytest.mark.asyncio
async def test_became_invalid_by_member_id(service, session):
    await service.apply_membership_event("biz_1", "membership_went_valid", membership_payload())
    result = await service.apply_membership_event(
        "biz_1", "membership_deactivated", {"user": {"id": "user_1"}}
    )

    assert result.outcome == MembershipOutcome.DEACTIVATED
    member = await load_member(session, "biz_1", "user_1")
    assert member.status == MemberStatus.INACTIVE.value


@pytest.mark.asyncio
async def test_deactivating_unknown_member_is_ignored(service, session):
    result = await service.apply_membership_event("biz_1", "membership.went_invalid", {"id": "mem_404"})

    assert result.outcome == MembershipOutcome.IGNORED
    assert result.reason == "member_not_found"
    assert await load_members(session, "biz_1") == []


@pytest.mark.asyncio
async def test_deactivation_is_scoped_to_tenant(service, session):
    await service.apply_membership_event("biz_1", "membership_went_valid", membership_payload())
    result = await service.apply_membership_event("biz_2", "membership.went_invalid", {"id": "mem_1"})

    assert result.outcome == MembershipOutcome.IGNORED
    member = await load_member(session, "biz_1", "user_1")
    assert member.status == MemberStatus.ACTIVE.value


@pytest.mark.asyncio
async def test_update_does_not_reactivate(service, session):
    await service.apply_membership_event("biz_1", "membership_went_valid", membership_payload())
    await service.apply_membership_event("biz_1", "membership.went_invalid", {"id": "mem_1"})
    await service.apply_membership_event("biz_1", "membership.updated", membership_payload())

    member = await load_member(session, "biz_1", "user_1")
    assert member.status == MemberStatus.INACTIVE.value


@pytest.mark.asyncio
async def test_rejoin_with_new_membership_reuses_row(service, session):
    await service.apply_membership_event("biz_1", "membership_went_valid", membership_payload())
    await service.apply_membership_event("biz_1", "membership.went_invalid", {"id": "mem_1"})
    result = await service.apply_membership_event(
        "biz_1", "membership_went_valid", membership_payload(id="mem_2")
    )

    assert result.outcome == MembershipOutcome.UPDATED
    members = await load_members(session, "biz_1")
    assert len(members) == 1
    assert members[0].membership_id == "mem_2"
    assert members[0].status == MemberStatus.ACTIVE.value


# Ignored and rejected events

@pytest.mark.asyncio
async def test_update_for_unknown_member_is_ignored(service, session):
    result = await service.apply_membership_event("biz_1", "membership.updated", membership_payload())

    assert result.outcome == MembershipOutcome.IGNORED
    assert result.processed is False
    assert await load_members(session, "biz_1") == []


@pytest.mark.asyncio
async def test_unhandled_event_kind(service):
    result = await service.apply_membership_event("biz_1", "payment.succeeded", membership_payload())

    assert result.outcome == MembershipOutcome.IGNORED
    assert result.reason == "unhandled_event:payment.succeeded"


@pytest.mark.asyncio
async def test_missing_member_id_raises(service, session):
    with pytest.raises(MissingIdentifierError) as exc_info:
        await service.apply_membership_event("biz_1", "membership_went_valid", {"id": "mem_1"})

    assert exc_info.value.missing == ["member_id"]
    assert await load_members(session, "biz_1") == []


@pytest.mark.asyncio
async def test_same_member_in_two_tenants(service, session):
    await service.apply_membership_event("biz_1", "membership_went_valid", membership_payload())
    await service.apply_membership_event(
        "biz_2", "membership_went_valid", membership_payload(id="mem_2")
    )

    assert len(await load_members(session, "biz_1")) == 1
    assert len(await load_members(session, "biz_2")) == 1


# Enrichment

@pytest.mark.asyncio
async def test_enrichment_fills_missing_fields(session):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/memberships/mem_1")
        assert request.headers["Authorization"] == "Bearer test-key"
        return httpx.Response(
            200,
            json={
                "id": "mem_1",
                "user": {"id": "user_1", "username": "from_api"},
                "custom_fields_responses": {"Team": "Blue"},
            },
        )

    client = WhopAPIClient(api_key="test-key", transport=httpx.MockTransport(handler))
    service = MembershipSyncService(session, whop_client=client)
    try:
        await service.apply_membership_event(
            "biz_1", "membership_went_valid", {"id": "mem_1", "user_id": "user_1"}
        )
    finally:
        await client.aclose()

    member = await load_member(session, "biz_1", "user_1")
    assert member.username == "from_api"
    assert member.custom_fields == {"Team": "Blue"}


@pytest.mark.asyncio
async def test_enrichment_failure_falls_back_to_webhook_data(session):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"error": "unavailable"})

    client = WhopAPIClient(api_key="test-key", transport=httpx.MockTransport(handler))
    service = MembershipSyncService(session, whop_client=client)
    try:
        result = await service.apply_membership_event(
            "biz_1", "membership_went_valid", membership_payload()
        )
    finally:
        await client.aclose()

    assert result.outcome == MembershipOutcome.CREATED
    member = await load_member(session, "biz_1", "user_1")
    assert member.email == "a@example.com"


# Waitlist fallback

@pytest.mark.asyncio
async def test_waitlist_answers_used_when_no_custom_fields(service, session):
    session.add(Tenant(tenant_id="biz_1", display_name="Acme"))
    session.add(WaitlistResponse(tenant_id="biz_1", user_id="user_1", responses={"Why?": "Fun"}))
    await session.commit()

    await service.apply_membership_event("biz_1", "membership_went_valid", membership_payload())

    member = await load_member(session, "biz_1", "user_1")
    assert member.custom_fields == {"Why?": "Fun"}

    result = await session.exec(select(WaitlistResponse).execution_options(populate_existing=True))
    assert result.one().status == WaitlistStatus.APPROVED.value


@pytest.mark.asyncio
async def test_waitlist_ignored_when_payload_has_custom_fields(service, session):
    session.add(Tenant(tenant_id="biz_1", display_name="Acme"))
    session.add(WaitlistResponse(tenant_id="biz_1", user_email="a@example.com", responses={"Why?": "Fun"}))
    await session.commit()

    await service.apply_membership_event(
        "biz_1", "membership_went_valid", membership_payload(custom_fields={"q1": "a"})
    )

    member = await load_member(session, "biz_1", "user_1")
    assert member.custom_fields == {"q1": "a"}


@pytest.mark.asyncio
async def test_membership_id_owned_by_other_tenant_is_not_written(service, session):
    await service.apply_membership_event("biz_1", "membership_went_valid", membership_payload())
    result = await service.apply_membership_event(
        "biz_2",
        "membership_went_valid",
        membership_payload(user_id="user_9", user={"id": "user_9", "email": "z@example.com"}),
    )

    assert result.outcome == MembershipOutcome.IGNORED
    assert result.reason == "membership_conflict"
    assert await load_members(session, "biz_2") == []
    assert await session.get(Tenant, "biz_2") is None

    member = await load_member(session, "biz_1", "user_1")
    assert member.email == "a@example.com"
