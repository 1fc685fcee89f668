"""
Waitlist response model
Answers submitted before a membership is approved, used when Whop has none
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import Column, DateTime, ForeignKey, String
from datetime import datetime
from enum import Enum
from typing import Optional

from member_directory.core.database import JSONType
from member_directory.core.timeutils import utcnow


class WaitlistStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"


class WaitlistResponse(SQLModel, table=True):
    """Locally collected waitlist answers for a tenant"""

    __tablename__ = "waitlist_responses"

    id: Optional[int] = Field(default=None, primary_key=True)
    tenant_id: str = Field(
        sa_column=Column(
            String(255),
            ForeignKey("tenants.tenant_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )
    )
    user_id: Optional[str] = Field(default=None, max_length=255, index=True)
    user_email: Optional[str] = Field(default=None, max_length=255, index=True)
    responses: dict = Field(default_factory=dict, sa_column=Column(JSONType, nullable=False))
    status: str = Field(
        default=WaitlistStatus.PENDING.value,
        sa_column=Column(String(20), nullable=False, default=WaitlistStatus.PENDING.value),
    )
    submitted_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, default=utcnow),
    )
