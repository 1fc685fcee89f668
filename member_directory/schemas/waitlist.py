"""
Pydantic schemas for waitlist submissions
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Any, Dict, Optional
from datetime import datetime


class WaitlistSubmission(BaseModel):
    user_id: Optional[str] = Field(default=None, max_length=255)
    user_email: Optional[str] = Field(default=None, max_length=255)
    responses: Dict[str, Any]

    @model_validator(mode="after")
    def _require_identity(self):
        if not self.user_id and not self.user_email:
            raise ValueError("user_id or user_email is required")
        return self


class WaitlistRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tenant_id: str
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    responses: Dict[str, Any]
    status: str
    submitted_at: datetime
