"""
Pydantic schemas for directory responses
"""

from pydantic import BaseModel, ConfigDict, field_validator
from typing import Any, Dict, List, Optional
from datetime import datetime

from member_directory.models.member import MemberStatus


class MemberRead(BaseModel):
    """One directory entry"""
    model_config = ConfigDict(from_attributes=True)

    member_id: str
    membership_id: Optional[str] = None
    email: Optional[str] = None
    display_name: Optional[str] = None
    username: Optional[str] = None
    avatar_url: Optional[str] = None
    custom_fields: Dict[str, Any] = {}
    status: MemberStatus
    joined_at: datetime
    updated_at: datetime

    @field_validator("custom_fields", mode="before")
    @classmethod
    def _empty_custom_fields(cls, value):
        return value or {}


class DirectoryResponse(BaseModel):
    """Members of one tenant filtered by status"""
    tenant_id: str
    members: List[MemberRead]
    count: int
