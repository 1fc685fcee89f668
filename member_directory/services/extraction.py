"""
Member attribute extraction from Whop payloads

Whop does not send one fixed shape: user details can be nested under ``user``
or ``member`` or flattened onto the data object, and custom field answers show
up under several keys at once. Extraction is driven by the tables below, one
ordered list of candidate paths per logical field.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union
import json

import structlog

from member_directory.core.timeutils import utcnow

logger = structlog.get_logger(__name__)


class MembershipTransition(str, Enum):
    """Canonical effect of a webhook event on a member row"""
    BECAME_VALID = "became_valid"
    BECAME_INVALID = "became_invalid"
    UPDATED = "updated"


# Event kind spellings observed from Whop -> canonical transition
EVENT_TRANSITIONS: Dict[str, MembershipTransition] = {
    "membership_went_valid": MembershipTransition.BECAME_VALID,
    "membership.went_valid": MembershipTransition.BECAME_VALID,
    "membership_activated": MembershipTransition.BECAME_VALID,
    "membership.activated": MembershipTransition.BECAME_VALID,
    "app_membership_went_valid": MembershipTransition.BECAME_VALID,
    "app_membership.went_valid": MembershipTransition.BECAME_VALID,
    "membership_went_invalid": MembershipTransition.BECAME_INVALID,
    "membership.went_invalid": MembershipTransition.BECAME_INVALID,
    "membership_deactivated": MembershipTransition.BECAME_INVALID,
    "membership.deactivated": MembershipTransition.BECAME_INVALID,
    "membership_expired": MembershipTransition.BECAME_INVALID,
    "membership.expired": MembershipTransition.BECAME_INVALID,
    "app_membership_went_invalid": MembershipTransition.BECAME_INVALID,
    "app_membership.went_invalid": MembershipTransition.BECAME_INVALID,
    "membership_updated": MembershipTransition.UPDATED,
    "membership.updated": MembershipTransition.UPDATED,
    "membership_metadata_updated": MembershipTransition.UPDATED,
    "membership.metadata_updated": MembershipTransition.UPDATED,
    "app_membership.updated": MembershipTransition.UPDATED,
}


# A candidate is a dotted path, or a tuple of paths whose values are joined
# with a space (first_name + last_name).
Candidate = Union[str, Tuple[str, ...]]

FIELD_CANDIDATES: Dict[str, Tuple[Candidate, ...]] = {
    "member_id": ("user_id", "user.id", "member.user_id", "member.user.id", "member_id"),
    "membership_id": ("membership_id", "membership.id", "id"),
    "email": ("user.email", "email", "user_email", "member.email", "member.user.email"),
    "display_name": (
        "name",
        "display_name",
        "user.name",
        "user.display_name",
        "member.name",
        ("first_name", "last_name"),
        ("user.first_name", "user.last_name"),
        "user.username",
    ),
    "username": ("user.username", "username", "member.username", "member.user.username"),
    "avatar_url": (
        "user.profile_pic_url",
        "user.profile_picture.url",
        "user.avatar_url",
        "profile_pic_url",
        "avatar_url",
    ),
    "joined_at": ("joined_at", "created_at", "membership.created_at", "member.created_at"),
}

# Every populated location is merged, in this order
CUSTOM_FIELD_CANDIDATES: Tuple[str, ...] = (
    "custom_fields",
    "custom_fields_responses",
    "custom_fields_responses_v2",
    "membership.custom_fields_responses",
    "metadata",
    "waitlist_responses",
)

# Year 2000 as epoch seconds / milliseconds
MIN_EPOCH_SECONDS = 946684800
MIN_EPOCH_MILLISECONDS = MIN_EPOCH_SECONDS * 1000
MIN_PLAUSIBLE_YEAR = 2000


def normalize_event_kind(kind: Optional[str]) -> Optional[MembershipTransition]:
    """Map a raw event kind to its transition, None when unrecognized"""
    if not isinstance(kind, str):
        return None
    return EVENT_TRANSITIONS.get(kind.strip().lower())


def lookup_path(payload: Any, path: str) -> Any:
    """Follow a dotted path through nested mappings, None when any hop is missing"""
    current = payload
    for key in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
        if current is None:
            return None
    return current


def _clean(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    text = str(value).strip()
    return text or None


def first_candidate(sources: Sequence[Mapping], candidates: Sequence[Candidate]) -> Optional[str]:
    """First non-empty value across sources, candidates tried in order per source"""
    for source in sources:
        for candidate in candidates:
            if isinstance(candidate, tuple):
                parts = [_clean(lookup_path(source, path)) for path in candidate]
                joined = " ".join(part for part in parts if part)
                if joined:
                    return joined
                continue
            value = _clean(lookup_path(source, candidate))
            if value is not None:
                return value
    return None


def _raw_candidate(sources: Sequence[Mapping], candidates: Sequence[Candidate]) -> Any:
    for source in sources:
        for candidate in candidates:
            if isinstance(candidate, tuple):
                continue
            value = lookup_path(source, candidate)
            if value is not None and value != "":
                return value
    return None


def _as_mapping(value: Any) -> Optional[dict]:
    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, str) and value.strip().startswith("{"):
        try:
            decoded = json.loads(value)
        except ValueError:
            return None
        if isinstance(decoded, dict):
            return decoded
    return None


def merge_custom_fields(sources: Sequence[Mapping]) -> dict:
    """Shallow-merge every mapping found at a custom field location"""
    merged: dict = {}
    for source in sources:
        for path in CUSTOM_FIELD_CANDIDATES:
            mapping = _as_mapping(lookup_path(source, path))
            if mapping:
                merged.update(mapping)
    return merged


def _from_number(value: float) -> Optional[datetime]:
    if value < MIN_EPOCH_SECONDS:
        return None
    if value > MIN_EPOCH_MILLISECONDS:
        value = value / 1000.0
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def parse_timestamp(raw: Any) -> Optional[datetime]:
    """Parse epoch seconds, epoch milliseconds or ISO-8601; None if implausible"""
    if raw is None or isinstance(raw, bool):
        return None

    parsed: Optional[datetime] = None
    if isinstance(raw, (int, float)):
        parsed = _from_number(float(raw))
    elif isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        try:
            parsed = _from_number(float(text))
        except ValueError:
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                return None
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            parsed = parsed.astimezone(timezone.utc)
    elif isinstance(raw, datetime):
        parsed = raw if raw.tzinfo else raw.replace(tzinfo=timezone.utc)

    if parsed is None or parsed.year < MIN_PLAUSIBLE_YEAR:
        return None
    return parsed


def normalize_timestamp(raw: Any) -> datetime:
    """Like parse_timestamp, but falls back to the current time"""
    parsed = parse_timestamp(raw)
    if parsed is None:
        if raw not in (None, ""):
            logger.info("Discarding implausible timestamp", raw=str(raw)[:64])
        return utcnow()
    return parsed


@dataclass
class MemberFields:
    """Normalized member attributes extracted from one event"""

    member_id: Optional[str] = None
    membership_id: Optional[str] = None
    email: Optional[str] = None
    display_name: Optional[str] = None
    username: Optional[str] = None
    avatar_url: Optional[str] = None
    custom_fields: dict = field(default_factory=dict)
    joined_at: datetime = field(default_factory=utcnow)
    # False when joined_at is the current-time fallback
    joined_at_known: bool = False


def extract_member_fields(payload: Mapping, enrichment: Optional[Mapping] = None) -> MemberFields:
    """
    Extract member attributes from a webhook data object

    Scalar fields are searched independently, webhook first and the enrichment
    record second. Custom fields merge every populated location across both.
    """
    sources = [payload]
    if enrichment:
        sources.append(enrichment)

    fields = MemberFields(
        member_id=first_candidate(sources, FIELD_CANDIDATES["member_id"]),
        # Only the webhook names the membership being delivered
        membership_id=first_candidate([payload], FIELD_CANDIDATES["membership_id"]),
        email=first_candidate(sources, FIELD_CANDIDATES["email"]),
        display_name=first_candidate(sources, FIELD_CANDIDATES["display_name"]),
        username=first_candidate(sources, FIELD_CANDIDATES["username"]),
        avatar_url=first_candidate(sources, FIELD_CANDIDATES["avatar_url"]),
        custom_fields=merge_custom_fields(sources),
    )

    # "id" on a member-shaped payload is a user id, not a membership id
    if fields.membership_id and fields.membership_id == fields.member_id:
        fields.membership_id = None

    raw_joined = _raw_candidate(sources, FIELD_CANDIDATES["joined_at"])
    fields.joined_at = normalize_timestamp(raw_joined)
    fields.joined_at_known = parse_timestamp(raw_joined) is not None

    return fields
