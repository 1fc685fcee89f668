"""
FastAPI dependencies

The database and Whop client are created by the application factory and
live on ``app.state``; handlers receive them through these dependencies.
"""

from typing import AsyncIterator, Optional

from fastapi import Depends, Request
from sqlmodel.ext.asyncio.session import AsyncSession

from member_directory.core.config import Settings, get_settings
from member_directory.core.tenant_resolver import TenantResolver
from member_directory.services.membership_sync import MembershipSyncService
from member_directory.services.whop import WhopAPIClient


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    """Dependency to get database session"""
    async with request.app.state.db.session_maker() as session:
        yield session


def get_whop_client(request: Request) -> Optional[WhopAPIClient]:
    return getattr(request.app.state, "whop_client", None)


def get_tenant_resolver(settings: Settings = Depends(get_app_settings)) -> TenantResolver:
    return TenantResolver(tenant_header=settings.TENANT_HEADER)


def get_membership_sync_service(
    session: AsyncSession = Depends(get_session),
    whop_client: Optional[WhopAPIClient] = Depends(get_whop_client),
) -> MembershipSyncService:
    return MembershipSyncService(session, whop_client=whop_client)
