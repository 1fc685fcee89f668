"""
Tenant model - one Whop company installation
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import Column, DateTime, String
from datetime import datetime
from enum import Enum
from typing import Optional

from member_directory.core.database import JSONType
from member_directory.core.timeutils import utcnow


class TenantStatus(str, Enum):
    """Installation status"""
    ACTIVE = "active"
    INACTIVE = "inactive"


class Tenant(SQLModel, table=True):
    """Tenant model for multi-tenant architecture"""

    __tablename__ = "tenants"

    # Whop company id (biz_...), a slug, or local_<slug> when only a slug is known
    tenant_id: str = Field(primary_key=True, max_length=255)
    display_name: str = Field(index=True, max_length=255)
    slug: Optional[str] = Field(
        default=None,
        sa_column=Column(String(255), unique=True, index=True, nullable=True),
    )
    status: str = Field(
        default=TenantStatus.ACTIVE.value,
        sa_column=Column(String(20), nullable=False, index=True, default=TenantStatus.ACTIVE.value),
    )

    # Installation
    api_key: Optional[str] = Field(default=None, max_length=512)
    # Overrides WEBHOOK_SECRET when the tenant is named outside the body
    webhook_secret: Optional[str] = Field(default=None, max_length=512)
    installation_id: Optional[str] = Field(default=None, max_length=255)
    is_app_install: bool = Field(default=False)

    # Directory configuration
    custom_questions: Optional[list] = Field(default_factory=list, sa_column=Column(JSONType))
    branding: Optional[dict] = Field(default_factory=dict, sa_column=Column(JSONType))

    # Timestamps
    installed_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, default=utcnow),
    )
    last_activity: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True, default=utcnow),
    )
