"""
Membership sync service

Applies Whop membership events to the members table. Every write is a single
INSERT ... ON CONFLICT DO UPDATE, so redelivered webhooks converge on one row:

- optional profile columns keep their old value when the new one is NULL
- custom_fields are merged over the stored mapping
- status and membership_data are replaced
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import func, literal_column, or_, update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
import structlog

from member_directory.core.database import dialect_insert
from member_directory.core.exceptions import MissingIdentifierError
from member_directory.core.timeutils import utcnow
from member_directory.models.member import Member, MemberStatus
from member_directory.models.tenant import Tenant
from member_directory.models.waitlist_response import WaitlistResponse, WaitlistStatus
from member_directory.services.extraction import (
    MemberFields,
    MembershipTransition,
    extract_member_fields,
    normalize_event_kind,
)
from member_directory.services.tenants import ensure_tenant
from member_directory.services.whop import WhopAPIClient

logger = structlog.get_logger(__name__)


class MembershipOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DEACTIVATED = "deactivated"
    IGNORED = "ignored"


@dataclass
class MembershipEventResult:
    """What applying one event did"""
    outcome: MembershipOutcome
    tenant_id: str
    member_id: Optional[str] = None
    membership_id: Optional[str] = None
    reason: Optional[str] = None

    @property
    def processed(self) -> bool:
        return self.outcome != MembershipOutcome.IGNORED

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "action": self.outcome.value,
            "tenant_id": self.tenant_id,
            "member_id": self.member_id,
            "membership_id": self.membership_id,
        }
        if self.reason:
            data["reason"] = self.reason
        return data


@dataclass
class _ExistingMember:
    id: int
    member_id: str
    membership_id: Optional[str]
    status: str


class MembershipSyncService:
    """Normalize Whop membership events into member rows"""

    def __init__(self, session: AsyncSession, whop_client: Optional[WhopAPIClient] = None):
        """
        Args:
            session: Session the writes are executed and committed on
            whop_client: Optional client for membership enrichment
        """
        self.session = session
        self.whop_client = whop_client

    async def apply_membership_event(
        self,
        tenant_id: str,
        event_kind: Optional[str],
        payload: Mapping[str, Any],
    ) -> MembershipEventResult:
        """Apply one event for an already-resolved tenant"""
        transition = normalize_event_kind(event_kind)
        if transition is None:
            logger.info("Ignoring unhandled webhook event", event_kind=event_kind, tenant_id=tenant_id)
            return MembershipEventResult(
                MembershipOutcome.IGNORED,
                tenant_id,
                reason=f"unhandled_event:{event_kind}",
            )

        if transition == MembershipTransition.BECAME_INVALID:
            return await self._deactivate(tenant_id, payload)
        return await self._activate_or_refresh(tenant_id, transition, payload)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def _activate_or_refresh(
        self,
        tenant_id: str,
        transition: MembershipTransition,
        payload: Mapping[str, Any],
    ) -> MembershipEventResult:
        webhook_fields = extract_member_fields(payload)
        enrichment = await self._enrich(tenant_id, webhook_fields.membership_id)
        fields = extract_member_fields(payload, enrichment) if enrichment else webhook_fields

        if not fields.member_id:
            logger.warning(
                "Membership event without a member id",
                tenant_id=tenant_id,
                membership_id=fields.membership_id,
            )
            raise MissingIdentifierError(["member_id"])

        existing = await self._find_existing(tenant_id, fields.member_id, fields.membership_id)

        if transition == MembershipTransition.UPDATED and existing is None:
            logger.info(
                "Ignoring update for unknown member",
                tenant_id=tenant_id,
                member_id=fields.member_id,
            )
            return MembershipEventResult(
                MembershipOutcome.IGNORED,
                tenant_id,
                member_id=fields.member_id,
                membership_id=fields.membership_id,
                reason="member_not_found",
            )

        await ensure_tenant(self.session, tenant_id)

        waitlist = await self._find_waitlist_response(tenant_id, fields)
        if waitlist is not None and not fields.custom_fields:
            fields.custom_fields = dict(waitlist.responses or {})
            logger.info("Using local waitlist responses", tenant_id=tenant_id, member_id=fields.member_id)

        activate = transition == MembershipTransition.BECAME_VALID
        written = await self._upsert_member(tenant_id, fields, payload, existing, activate=activate)
        if not written:
            await self.session.rollback()
            logger.warning(
                "Membership id belongs to another tenant",
                tenant_id=tenant_id,
                member_id=fields.member_id,
                membership_id=fields.membership_id,
            )
            return MembershipEventResult(
                MembershipOutcome.IGNORED,
                tenant_id,
                member_id=fields.member_id,
                membership_id=fields.membership_id,
                reason="membership_conflict",
            )

        if waitlist is not None and waitlist.status != WaitlistStatus.APPROVED.value:
            waitlist.status = WaitlistStatus.APPROVED.value
            self.session.add(waitlist)

        await self.session.commit()

        outcome = MembershipOutcome.CREATED if existing is None else MembershipOutcome.UPDATED
        logger.info(
            "Member synced",
            outcome=outcome.value,
            tenant_id=tenant_id,
            member_id=fields.member_id,
            membership_id=fields.membership_id,
            custom_field_count=len(fields.custom_fields),
        )
        return MembershipEventResult(
            outcome,
            tenant_id,
            member_id=fields.member_id,
            membership_id=fields.membership_id,
        )

    async def _deactivate(self, tenant_id: str, payload: Mapping[str, Any]) -> MembershipEventResult:
        fields = extract_member_fields(payload)
        if not fields.member_id and not fields.membership_id:
            logger.warning("Deactivation event without identifiers", tenant_id=tenant_id)
            raise MissingIdentifierError(["member_id", "membership_id"])

        now = utcnow()
        updated = 0
        if fields.membership_id:
            updated = await self._set_status(
                tenant_id,
                Member.membership_id == fields.membership_id,
                MemberStatus.INACTIVE,
                now,
            )
        if not updated and fields.member_id:
            updated = await self._set_status(
                tenant_id,
                Member.member_id == fields.member_id,
                MemberStatus.INACTIVE,
                now,
            )

        if not updated:
            await self.session.rollback()
            logger.info(
                "Deactivation for unknown member",
                tenant_id=tenant_id,
                member_id=fields.member_id,
                membership_id=fields.membership_id,
            )
            return MembershipEventResult(
                MembershipOutcome.IGNORED,
                tenant_id,
                member_id=fields.member_id,
                membership_id=fields.membership_id,
                reason="member_not_found",
            )

        await ensure_tenant(self.session, tenant_id)
        await self.session.commit()
        logger.info(
            "Member deactivated",
            tenant_id=tenant_id,
            member_id=fields.member_id,
            membership_id=fields.membership_id,
        )
        return MembershipEventResult(
            MembershipOutcome.DEACTIVATED,
            tenant_id,
            member_id=fields.member_id,
            membership_id=fields.membership_id,
        )

    # ------------------------------------------------------------------
    # Store access
    # ------------------------------------------------------------------

    async def _set_status(self, tenant_id: str, condition, status: MemberStatus, now) -> int:
        result = await self.session.execute(
            update(Member)
            .where(Member.tenant_id == tenant_id, condition)
            .values(status=status.value, updated_at=now)
        )
        return result.rowcount or 0

    async def _find_existing(
        self,
        tenant_id: str,
        member_id: str,
        membership_id: Optional[str],
    ) -> Optional[_ExistingMember]:
        """Existing row for this membership, else for this member"""
        conditions = [Member.member_id == member_id]
        if membership_id:
            conditions.append(Member.membership_id == membership_id)

        result = await self.session.exec(
            select(Member.id, Member.member_id, Member.membership_id, Member.status)
            .where(Member.tenant_id == tenant_id, or_(*conditions))
        )
        rows = [_ExistingMember(*row) for row in result.all()]
        if membership_id:
            for row in rows:
                if row.membership_id == membership_id:
                    return row
        return rows[0] if rows else None

    async def _find_waitlist_response(
        self,
        tenant_id: str,
        fields: MemberFields,
    ) -> Optional[WaitlistResponse]:
        conditions = []
        if fields.member_id:
            conditions.append(WaitlistResponse.user_id == fields.member_id)
        if fields.email:
            conditions.append(WaitlistResponse.user_email == fields.email)
        if not conditions:
            return None

        result = await self.session.exec(
            select(WaitlistResponse)
            .where(WaitlistResponse.tenant_id == tenant_id, or_(*conditions))
            .order_by(WaitlistResponse.submitted_at.desc())
            .limit(1)
        )
        return result.first()

    def _conflict_target(
        self,
        fields: MemberFields,
        existing: Optional[_ExistingMember],
    ) -> Tuple[List, str]:
        table = Member.__table__
        if fields.membership_id and (existing is None or existing.membership_id == fields.membership_id):
            return [table.c.membership_id], "membership_id"
        # Unknown membership id for a known member: a re-join under a new membership
        return [table.c.tenant_id, table.c.member_id], "tenant_member"

    def _merged_custom_fields(self, excluded_value):
        """SQL expression merging incoming custom fields over the stored ones"""
        stored = Member.__table__.c.custom_fields
        dialect_name = self.session.bind.dialect.name
        if dialect_name == "postgresql":
            return func.coalesce(stored, literal_column("'{}'::jsonb")).op("||")(excluded_value)
        return func.json_patch(func.coalesce(stored, literal_column("'{}'")), excluded_value)

    async def _upsert_member(
        self,
        tenant_id: str,
        fields: MemberFields,
        payload: Mapping[str, Any],
        existing: Optional[_ExistingMember],
        activate: bool,
    ) -> bool:
        """Execute the upsert; False when the conflicting row belongs to another tenant"""
        table = Member.__table__
        now = utcnow()
        status = MemberStatus.ACTIVE.value if activate or existing is None else existing.status

        stmt = dialect_insert(self.session, table).values(
            tenant_id=tenant_id,
            member_id=fields.member_id,
            membership_id=fields.membership_id,
            email=fields.email,
            display_name=fields.display_name,
            username=fields.username,
            avatar_url=fields.avatar_url,
            custom_fields=fields.custom_fields,
            membership_data=dict(payload),
            status=status,
            joined_at=fields.joined_at,
            updated_at=now,
        )
        excluded = stmt.excluded

        set_ = {
            column: func.coalesce(excluded[column], table.c[column])
            for column in ("membership_id", "email", "display_name", "username", "avatar_url")
        }
        set_["custom_fields"] = self._merged_custom_fields(excluded.custom_fields)
        set_["membership_data"] = excluded.membership_data
        set_["updated_at"] = excluded.updated_at
        if activate:
            set_["status"] = excluded.status
        if fields.joined_at_known:
            set_["joined_at"] = excluded.joined_at

        index_elements, target = self._conflict_target(fields, existing)
        stmt = stmt.on_conflict_do_update(
            index_elements=index_elements,
            set_=set_,
            # A membership id never moves between tenants
            where=(table.c.tenant_id == excluded.tenant_id),
        ).returning(table.c.id)
        result = await self.session.execute(stmt)
        row_id = result.scalar_one_or_none()
        logger.debug("Member upsert executed", tenant_id=tenant_id, conflict_target=target, member_row=row_id)
        return row_id is not None

    async def _enrich(self, tenant_id: str, membership_id: Optional[str]) -> Optional[Dict[str, Any]]:
        """Fetch the membership record; None on any failure"""
        if self.whop_client is None or not membership_id:
            return None

        tenant = await self.session.get(Tenant, tenant_id)
        api_key = tenant.api_key if tenant is not None else None
        record = await self.whop_client.get_membership(membership_id, api_key=api_key)
        if record is None:
            logger.info("Continuing with webhook data only", tenant_id=tenant_id, membership_id=membership_id)
        return record
