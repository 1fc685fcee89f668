"""
Member model - one user's membership in a tenant's directory
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint
from datetime import datetime
from enum import Enum
from typing import Optional

from member_directory.core.database import JSONType
from member_directory.core.timeutils import utcnow


class MemberStatus(str, Enum):
    """Directory visibility of a member"""
    ACTIVE = "active"
    INACTIVE = "inactive"


class Member(SQLModel, table=True):
    """Member row, unique per (tenant_id, member_id) and per membership_id"""

    __tablename__ = "members"
    __table_args__ = (
        UniqueConstraint("tenant_id", "member_id", name="uq_members_tenant_member"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tenant_id: str = Field(
        sa_column=Column(
            String(255),
            ForeignKey("tenants.tenant_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )
    )

    # Whop identifiers
    member_id: str = Field(max_length=255, index=True)
    membership_id: Optional[str] = Field(
        default=None,
        sa_column=Column(String(255), unique=True, nullable=True),
    )

    # Profile (coalesced on conflict)
    email: Optional[str] = Field(default=None, max_length=255)
    display_name: Optional[str] = Field(default=None, max_length=255)
    username: Optional[str] = Field(default=None, max_length=255)
    avatar_url: Optional[str] = Field(default=None, max_length=1024)

    # Custom field answers, label -> answer
    custom_fields: Optional[dict] = Field(default_factory=dict, sa_column=Column(JSONType))
    # Latest raw event data object
    membership_data: Optional[dict] = Field(default=None, sa_column=Column(JSONType))

    status: str = Field(
        default=MemberStatus.ACTIVE.value,
        sa_column=Column(String(20), nullable=False, index=True, default=MemberStatus.ACTIVE.value),
    )

    # Timestamps
    joined_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True, default=utcnow),
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow),
    )
