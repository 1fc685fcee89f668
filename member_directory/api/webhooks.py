"""
Webhook receiver for Whop membership events

Error taxonomy:
  signature missing/invalid           -> 401 (checked before the body is parsed)
  invalid JSON / envelope             -> 400
  no tenant found in the request      -> 400 (never guessed on writes)
  member/membership ids missing       -> 400, nothing written
  store failure                       -> 500
  unrecognized event kind             -> 200, ignored
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel.ext.asyncio.session import AsyncSession
import json
import structlog

from member_directory.core.config import Settings
from member_directory.core.dependencies import (
    get_app_settings,
    get_membership_sync_service,
    get_session,
    get_tenant_resolver,
)
from member_directory.core.exceptions import (
    MalformedPayloadError,
    MissingIdentifierError,
    SignatureVerificationError,
    TenantUnresolvedError,
)
from member_directory.core.signatures import verify_webhook_signature
from member_directory.core.tenant_resolver import TenantResolver
from member_directory.schemas.webhook import parse_webhook_body
from member_directory.services.membership_sync import MembershipSyncService
from member_directory.services.tenants import find_tenant

logger = structlog.get_logger(__name__)
router = APIRouter()


async def _store_failure(session: AsyncSession, error: SQLAlchemyError, **context) -> HTTPException:
    await session.rollback()
    logger.error("Webhook processing failed", error=str(error), **context)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal server error",
    )


async def _signing_secret(
    request: Request,
    settings: Settings,
    resolver: TenantResolver,
    session: AsyncSession,
) -> Optional[str]:
    """Secret of the tenant named by headers or query, else WEBHOOK_SECRET"""
    named = resolver.resolve_request(request)
    if named is not None:
        tenant = await find_tenant(session, named.tenant_id)
        if tenant is not None and tenant.webhook_secret:
            return tenant.webhook_secret
    return settings.WEBHOOK_SECRET or None


@router.post("/webhook")
@router.post("/webhook/whop")
async def receive_webhook(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    resolver: TenantResolver = Depends(get_tenant_resolver),
    service: MembershipSyncService = Depends(get_membership_sync_service),
    session: AsyncSession = Depends(get_session),
):
    """
    Handle a Whop webhook delivery

    Flow:
    1. Verify the signature when a tenant or global secret is configured
    2. Parse the envelope
    3. Resolve the tenant (headers, query, body, referer; no store fallback)
    4. Apply the membership event
    """
    raw_body = await request.body()

    try:
        secret = await _signing_secret(request, settings, resolver, session)
    except SQLAlchemyError as e:
        raise await _store_failure(session, e, stage="signing_secret")

    if secret:
        try:
            verify_webhook_signature(
                request.headers,
                raw_body,
                secret,
                tolerance_seconds=settings.WEBHOOK_TOLERANCE_SECONDS,
            )
        except SignatureVerificationError as e:
            logger.warning("Webhook signature rejected", reason=e.reason)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid signature",
            )
    else:
        logger.debug("Webhook signature verification disabled (no secret)")

    try:
        body = json.loads(raw_body or b"null")
        envelope = parse_webhook_body(body)
    except (ValueError, MalformedPayloadError) as e:
        logger.warning("Malformed webhook body", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Malformed webhook payload",
        )

    try:
        resolution = resolver.resolve_for_write(request, body=body)
    except TenantUnresolvedError as e:
        logger.warning("No company ID found in webhook", event_kind=envelope.event_kind)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )

    tenant_id = resolution.tenant_id
    try:
        known = await find_tenant(session, resolution.tenant_id)
        if known is not None:
            tenant_id = known.tenant_id
        logger.info(
            "Processing webhook",
            event_kind=envelope.event_kind,
            tenant_id=tenant_id,
            tenant_source=resolution.source,
            data_shape=envelope.data.shape,
        )
        result = await service.apply_membership_event(
            tenant_id,
            envelope.event_kind,
            envelope.data_mapping(),
        )
    except MissingIdentifierError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )
    except SQLAlchemyError as e:
        raise await _store_failure(session, e, tenant_id=tenant_id)

    return {
        "success": True,
        "status": "processed" if result.processed else "ignored",
        "result": result.to_dict(),
    }
