"""
Waitlist API endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel.ext.asyncio.session import AsyncSession
import structlog

from member_directory.core.dependencies import get_session
from member_directory.models.waitlist_response import WaitlistResponse
from member_directory.schemas.waitlist import WaitlistRead, WaitlistSubmission
from member_directory.services.tenants import find_tenant

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/{tenant_ref}", response_model=WaitlistRead, status_code=status.HTTP_201_CREATED)
async def submit_waitlist_response(
    tenant_ref: str,
    submission: WaitlistSubmission,
    session: AsyncSession = Depends(get_session),
):
    """Store waitlist answers until the membership webhook arrives"""
    tenant = await find_tenant(session, tenant_ref)
    if not tenant:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Tenant not found"
        )

    response = WaitlistResponse(
        tenant_id=tenant.tenant_id,
        user_id=submission.user_id,
        user_email=submission.user_email,
        responses=submission.responses,
    )
    session.add(response)
    await session.commit()
    await session.refresh(response)

    logger.info("Waitlist response stored", tenant_id=tenant.tenant_id, waitlist_id=response.id)
    return response
