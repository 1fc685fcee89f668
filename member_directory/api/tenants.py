"""
Tenant API endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel.ext.asyncio.session import AsyncSession
import structlog

from member_directory.core.dependencies import get_session
from member_directory.schemas.tenant import TenantInstall, TenantRead, TenantRegister
from member_directory.services.tenants import (
    find_tenant,
    local_tenant_id,
    slugify,
    upsert_tenant,
)

logger = structlog.get_logger(__name__)
router = APIRouter()


async def _save(session: AsyncSession, values: dict) -> TenantRead:
    try:
        tenant = await upsert_tenant(session, values)
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error("Failed to save tenant", tenant_id=values.get("tenant_id"), error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save tenant",
        )
    return TenantRead.from_tenant(tenant)


@router.post("/install", response_model=TenantRead)
async def install_app(
    install: TenantInstall,
    session: AsyncSession = Depends(get_session),
):
    """Record a Whop app installation"""
    company_id = (install.company_id or "").strip()
    slug = slugify(install.slug) if install.slug else None
    tenant_id = company_id or local_tenant_id(slug)

    values = {
        "tenant_id": tenant_id,
        "installation_id": install.installation_id,
        "is_app_install": True,
    }
    if install.api_key:
        values["api_key"] = install.api_key
    if install.name:
        values["display_name"] = install.name
    if slug:
        values["slug"] = slug

    logger.info("App installation", tenant_id=tenant_id)
    return await _save(session, values)


@router.post("/register", response_model=TenantRead)
async def register_tenant(
    registration: TenantRegister,
    session: AsyncSession = Depends(get_session),
):
    """Manual tenant registration"""
    company_id = (registration.whop_company_id or "").strip()
    slug = slugify(registration.slug) if registration.slug else None
    tenant_id = company_id or local_tenant_id(slug)

    values = {
        "tenant_id": tenant_id,
        "display_name": registration.group_name,
        "api_key": registration.api_key,
        "custom_questions": registration.custom_questions,
        "branding": registration.branding,
    }
    if registration.webhook_secret:
        values["webhook_secret"] = registration.webhook_secret
    if slug:
        values["slug"] = slug

    logger.info("Manual tenant registration", tenant_id=tenant_id)
    return await _save(session, values)


@router.get("/{tenant_ref}", response_model=TenantRead)
async def get_tenant(
    tenant_ref: str,
    session: AsyncSession = Depends(get_session),
):
    """Get tenant by id or slug"""
    tenant = await find_tenant(session, tenant_ref)
    if not tenant:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Tenant not found"
        )
    return TenantRead.from_tenant(tenant)
