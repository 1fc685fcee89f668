"""
Pydantic schemas for Whop webhook bodies

The ``data`` object is a tagged union of the shapes observed from Whop, tried
left to right, with an untyped catch-all at the end.
"""

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from typing import Any, Dict, Literal, Optional, Union

from member_directory.core.exceptions import MalformedPayloadError


class WhopUser(BaseModel):
    """Nested user object"""
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    email: Optional[str] = None
    username: Optional[str] = None
    name: Optional[str] = None


class MembershipData(BaseModel):
    """Membership record: data.id is a mem_ id"""
    model_config = ConfigDict(extra="allow")

    shape: Literal["membership"] = "membership"
    id: str = Field(pattern=r"^mem_")
    user_id: Optional[str] = None
    user: Optional[WhopUser] = None
    company_id: Optional[str] = None


class MemberData(BaseModel):
    """Member record carrying a nested user and no membership id"""
    model_config = ConfigDict(extra="allow")

    shape: Literal["member"] = "member"
    user: WhopUser
    company_id: Optional[str] = None


class UntypedData(BaseModel):
    """Anything else that is still a JSON object"""
    model_config = ConfigDict(extra="allow")

    shape: Literal["untyped"] = "untyped"


WebhookData = Union[MembershipData, MemberData, UntypedData]


class WebhookEnvelope(BaseModel):
    """Top-level webhook body"""
    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    action: Optional[str] = None
    event: Optional[str] = None
    event_type: Optional[str] = None
    data: WebhookData = Field(default_factory=UntypedData, union_mode="left_to_right")

    @property
    def event_kind(self) -> Optional[str]:
        for kind in (self.type, self.action, self.event, self.event_type):
            if kind and kind.strip():
                return kind.strip()
        return None

    def data_mapping(self) -> Dict[str, Any]:
        """The data object as a plain dict, extras included"""
        return self.data.model_dump(exclude={"shape"})


def parse_webhook_body(body: Any) -> WebhookEnvelope:
    """Validate a decoded webhook body, raising MalformedPayloadError"""
    if not isinstance(body, dict):
        raise MalformedPayloadError("Webhook body must be a JSON object")
    try:
        envelope = WebhookEnvelope.model_validate(body)
    except ValidationError as e:
        raise MalformedPayloadError(f"Invalid webhook envelope: {e.error_count()} errors") from e
    if envelope.event_kind is None:
        raise MalformedPayloadError("Webhook body has no event type")
    return envelope
