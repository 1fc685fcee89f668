"""
Tenant resolution for multi-tenant isolation

Whop does not pin down where the company id travels, so a request is searched
in a fixed priority order: headers, query string, webhook body, Referer URL
and, for read paths only, the most recently active tenant in the store.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Pattern, Sequence, Tuple
from urllib.parse import unquote
import re

from fastapi import Request
from sqlmodel.ext.asyncio.session import AsyncSession
import structlog

from member_directory.core.config import get_settings
from member_directory.core.exceptions import TenantUnresolvedError
from member_directory.services.extraction import lookup_path

logger = structlog.get_logger(__name__)


TENANT_HEADERS: Tuple[str, ...] = (
    "X-Tenant-ID",
    "X-Whop-Company-Id",
    "X-Company-Id",
    "X-Business-Id",
)

TENANT_QUERY_PARAMS: Tuple[str, ...] = (
    "company_id",
    "companyId",
    "business_id",
    "biz",
    "tenant_id",
)

_BODY_FIELDS = ("company_id", "companyId", "business_id", "biz_id", "tenant_id")


def _paths(prefix: str, names: Sequence[str]) -> Tuple[str, ...]:
    return tuple(f"{prefix}.{name}" if prefix else name for name in names)


# Outermost object first, then progressively deeper ones
TENANT_BODY_PATHS: Tuple[str, ...] = (
    *_paths("", _BODY_FIELDS),
    *_paths("data", _BODY_FIELDS),
    "data.company",
    "data.company.id",
    *_paths("data.product", _BODY_FIELDS),
    *_paths("data.membership", _BODY_FIELDS),
    *_paths("data.plan", _BODY_FIELDS),
)

REFERER_PATTERNS: Tuple[Tuple[str, Pattern[str]], ...] = (
    # acme.partner.example; the first label needs a letter, so IP hosts never match
    ("subdomain", re.compile(r"^https?://([a-z0-9-]*[a-z][a-z0-9-]*)\.[a-z0-9-]+(?:\.[a-z0-9-]+)+(?::\d+)?(?:[/?#]|$)", re.IGNORECASE)),
    # whop.com/hub/biz_123
    ("path", re.compile(r"/(?:hub|company|companies|biz|business|businesses|joined|dashboard)/([A-Za-z0-9_-]+)", re.IGNORECASE)),
    # ?company_id=biz_123
    ("query", re.compile(r"[?&](?:company_id|companyId|business_id|biz|tenant_id)=([^&#]+)")),
    # bare biz_ token anywhere
    ("token", re.compile(r"\b(biz_[A-Za-z0-9]+)\b")),
)

PLACEHOLDER_SEGMENTS = frozenset({
    "www", "app", "apps", "api", "dash", "dashboard", "hub", "admin",
    "static", "cdn", "localhost", "undefined", "null",
})


@dataclass(frozen=True)
class TenantResolution:
    """A resolved tenant id and where it came from"""
    tenant_id: str
    source: str


def _candidate(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    text = str(value).strip()
    return text or None


def tenant_from_referer(referer: Optional[str]) -> Optional[TenantResolution]:
    """First non-placeholder capture across the referer patterns"""
    referer = _candidate(referer)
    if referer is None:
        return None
    for name, pattern in REFERER_PATTERNS:
        for match in pattern.finditer(referer):
            value = _candidate(unquote(match.group(1)))
            if value is None or value.lower() in PLACEHOLDER_SEGMENTS:
                continue
            return TenantResolution(value, f"referer:{name}")
    return None


class TenantResolver:
    """Resolve the tenant for a request from headers, query, body and referer"""

    def __init__(self, tenant_header: Optional[str] = None):
        header = tenant_header or get_settings().TENANT_HEADER
        names = [header, *TENANT_HEADERS]
        # Keep priority order, drop duplicates
        self.header_names = tuple(dict.fromkeys(name.lower() for name in names))

    def resolve(
        self,
        headers: Mapping[str, str],
        query: Optional[Mapping[str, str]] = None,
        body: Optional[Mapping[str, Any]] = None,
        referer: Optional[str] = None,
    ) -> Optional[TenantResolution]:
        """Pure resolution over request parts; None means unresolved"""
        lowered = {key.lower(): value for key, value in headers.items()}

        for name in self.header_names:
            value = _candidate(lowered.get(name))
            if value:
                return TenantResolution(value, f"header:{name}")

        for name in TENANT_QUERY_PARAMS:
            value = _candidate((query or {}).get(name))
            if value:
                return TenantResolution(value, f"query:{name}")

        if isinstance(body, Mapping):
            for path in TENANT_BODY_PATHS:
                value = _candidate(lookup_path(body, path))
                if value:
                    return TenantResolution(value, f"body:{path}")

        if referer is None:
            referer = lowered.get("referer")
        return tenant_from_referer(referer)

    def resolve_request(
        self,
        request: Request,
        body: Optional[Mapping[str, Any]] = None,
    ) -> Optional[TenantResolution]:
        return self.resolve(
            headers=request.headers,
            query=request.query_params,
            body=body,
            referer=request.headers.get("referer"),
        )

    def resolve_for_write(
        self,
        request: Request,
        body: Optional[Mapping[str, Any]] = None,
    ) -> TenantResolution:
        """Resolution for write paths; raises TenantUnresolvedError instead of guessing"""
        resolution = self.resolve_request(request, body=body)
        if resolution is None:
            raise TenantUnresolvedError("No company ID found")
        logger.debug("Tenant resolved", tenant_id=resolution.tenant_id, source=resolution.source)
        return resolution

    async def resolve_for_read(
        self,
        request: Request,
        session: AsyncSession,
    ) -> Optional[TenantResolution]:
        """
        Resolution for read paths

        Falls back to the most recently active tenant. Never use this on a
        write path.
        """
        from member_directory.services.tenants import most_recently_active_tenant

        resolution = self.resolve_request(request)
        if resolution is not None:
            logger.debug("Tenant resolved", tenant_id=resolution.tenant_id, source=resolution.source)
            return resolution

        tenant = await most_recently_active_tenant(session)
        if tenant is None:
            logger.info("Tenant could not be resolved and no tenants are known")
            return None

        logger.info("Tenant resolved by fallback", tenant_id=tenant.tenant_id)
        return TenantResolution(tenant.tenant_id, "fallback:last_activity")
