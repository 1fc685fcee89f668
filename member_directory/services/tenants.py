"""
Tenant registry operations
"""

from typing import Any, Dict, Optional
import re

from sqlalchemy import func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
import structlog

from member_directory.core.database import dialect_insert
from member_directory.core.timeutils import utcnow
from member_directory.models.tenant import Tenant, TenantStatus

logger = structlog.get_logger(__name__)

_SLUG_CLEANUP = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    return _SLUG_CLEANUP.sub("-", value.strip().lower()).strip("-")


def local_tenant_id(slug: str) -> str:
    """Synthesized id for a tenant that is only known by slug"""
    return f"local_{slugify(slug)}"


async def find_tenant(session: AsyncSession, ref: str) -> Optional[Tenant]:
    """Find a tenant by id, then by slug, then by display name"""
    ref = (ref or "").strip()
    if not ref:
        return None

    tenant = await session.get(Tenant, ref)
    if tenant is not None:
        return tenant

    result = await session.exec(select(Tenant).where(Tenant.slug == slugify(ref)))
    tenant = result.first()
    if tenant is not None:
        return tenant

    result = await session.exec(
        select(Tenant).where(func.lower(Tenant.display_name) == ref.lower())
    )
    return result.first()


async def most_recently_active_tenant(session: AsyncSession) -> Optional[Tenant]:
    result = await session.exec(
        select(Tenant)
        .where(Tenant.status == TenantStatus.ACTIVE.value)
        .order_by(Tenant.last_activity.desc())
        .limit(1)
    )
    return result.first()


async def ensure_tenant(session: AsyncSession, tenant_id: str) -> None:
    """Create the tenant row if missing and bump last_activity"""
    now = utcnow()
    stmt = dialect_insert(session, Tenant.__table__).values(
        tenant_id=tenant_id,
        display_name=f"{tenant_id} Community",
        status=TenantStatus.ACTIVE.value,
        is_app_install=False,
        custom_questions=[],
        branding={},
        installed_at=now,
        last_activity=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[Tenant.__table__.c.tenant_id],
        set_={"last_activity": now},
    )
    await session.execute(stmt)


async def upsert_tenant(session: AsyncSession, values: Dict[str, Any]) -> Tenant:
    """
    Insert or update a tenant from install/register data

    Only keys present in ``values`` are written on conflict, so a later
    install does not wipe branding set at registration.
    """
    now = utcnow()
    tenant_id = values["tenant_id"]
    insert_values = {
        "display_name": f"{tenant_id} Community",
        "status": TenantStatus.ACTIVE.value,
        "is_app_install": False,
        "custom_questions": [],
        "branding": {},
        "installed_at": now,
        **values,
        "last_activity": now,
    }
    stmt = dialect_insert(session, Tenant.__table__).values(**insert_values)
    update_columns = {
        key: stmt.excluded[key]
        for key in values
        if key != "tenant_id"
    }
    update_columns["last_activity"] = now
    stmt = stmt.on_conflict_do_update(
        index_elements=[Tenant.__table__.c.tenant_id],
        set_=update_columns,
    )
    await session.execute(stmt)
    await session.commit()

    result = await session.exec(
        select(Tenant)
        .where(Tenant.tenant_id == tenant_id)
        .execution_options(populate_existing=True)
    )
    tenant = result.one()
    logger.info("Tenant upserted", tenant_id=tenant_id, fields=sorted(values))
    return tenant
