"""
Directory read endpoints polled by the front end
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
import structlog

from member_directory.core.dependencies import get_session, get_tenant_resolver
from member_directory.core.tenant_resolver import TenantResolver
from member_directory.models.member import Member, MemberStatus
from member_directory.schemas.member import DirectoryResponse, MemberRead
from member_directory.services.tenants import find_tenant

logger = structlog.get_logger(__name__)
router = APIRouter()

AUTO_TENANT = "auto"


async def list_directory(
    session: AsyncSession,
    tenant_id: str,
    member_status: MemberStatus,
) -> DirectoryResponse:
    result = await session.exec(
        select(Member)
        .where(
            Member.tenant_id == tenant_id,
            Member.status == member_status.value,
        )
        .order_by(Member.joined_at.desc(), Member.id.desc())
    )
    members = [MemberRead.model_validate(member) for member in result.all()]
    return DirectoryResponse(tenant_id=tenant_id, members=members, count=len(members))


@router.get("/directory/{tenant_id}", response_model=DirectoryResponse)
async def get_directory(
    tenant_id: str,
    member_status: MemberStatus = Query(MemberStatus.ACTIVE, alias="status"),
    session: AsyncSession = Depends(get_session),
):
    """Members of a tenant, newest first"""
    return await list_directory(session, tenant_id, member_status)


@router.get("/members/{tenant_ref}", response_model=DirectoryResponse)
async def get_members(
    tenant_ref: str,
    request: Request,
    member_status: MemberStatus = Query(MemberStatus.ACTIVE, alias="status"),
    resolver: TenantResolver = Depends(get_tenant_resolver),
    session: AsyncSession = Depends(get_session),
):
    """
    Members of a tenant given by id or slug

    ``auto`` resolves the tenant from headers, query string, referer and
    finally the most recently active tenant.
    """
    candidate = tenant_ref.strip()
    if candidate.lower() == AUTO_TENANT:
        resolution = await resolver.resolve_for_read(request, session)
        if resolution is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Tenant could not be resolved",
            )
        candidate = resolution.tenant_id

    tenant = await find_tenant(session, candidate)
    tenant_id = tenant.tenant_id if tenant is not None else candidate
    logger.debug("Serving members", tenant_ref=tenant_ref, tenant_id=tenant_id)
    return await list_directory(session, tenant_id, member_status)
