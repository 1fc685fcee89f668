"""
Pydantic schemas for tenant install/registration
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Any, Dict, List, Optional
from datetime import datetime


class TenantInstall(BaseModel):
    """Whop app installation callback"""
    company_id: Optional[str] = Field(default=None, max_length=255)
    slug: Optional[str] = Field(default=None, max_length=255)
    installation_id: Optional[str] = Field(default=None, max_length=255)
    api_key: Optional[str] = Field(default=None, max_length=512)
    name: Optional[str] = Field(default=None, max_length=255)

    @model_validator(mode="after")
    def _require_identifier(self):
        if not (self.company_id or "").strip() and not (self.slug or "").strip():
            raise ValueError("company_id or slug is required")
        return self


class TenantRegister(BaseModel):
    """Manual tenant registration"""
    whop_company_id: Optional[str] = Field(default=None, max_length=255)
    slug: Optional[str] = Field(default=None, max_length=255)
    group_name: str = Field(..., min_length=1, max_length=255)
    api_key: Optional[str] = Field(default=None, max_length=512)
    webhook_secret: Optional[str] = Field(default=None, max_length=512)
    custom_questions: List[Any] = Field(default_factory=list)
    branding: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _require_identifier(self):
        if not (self.whop_company_id or "").strip() and not (self.slug or "").strip():
            raise ValueError("whop_company_id or slug is required")
        return self


class TenantRead(BaseModel):
    """Tenant as returned by the API; secrets are never echoed"""
    model_config = ConfigDict(from_attributes=True)

    tenant_id: str
    display_name: str
    slug: Optional[str] = None
    status: str
    installation_id: Optional[str] = None
    is_app_install: bool
    has_api_key: bool = False
    has_webhook_secret: bool = False
    custom_questions: List[Any] = Field(default_factory=list)
    branding: Dict[str, Any] = Field(default_factory=dict)
    installed_at: datetime
    last_activity: datetime

    @classmethod
    def from_tenant(cls, tenant) -> "TenantRead":
        return cls(
            tenant_id=tenant.tenant_id,
            display_name=tenant.display_name,
            slug=tenant.slug,
            status=tenant.status,
            installation_id=tenant.installation_id,
            is_app_install=bool(tenant.is_app_install),
            has_api_key=bool(tenant.api_key),
            has_webhook_secret=bool(tenant.webhook_secret),
            custom_questions=tenant.custom_questions or [],
            branding=tenant.branding or {},
            installed_at=tenant.installed_at,
            last_activity=tenant.last_activity,
        )
