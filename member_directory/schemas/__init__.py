"""
Schemas for API responses and requests
"""

from member_directory.schemas.member import DirectoryResponse, MemberRead
from member_directory.schemas.tenant import TenantInstall, TenantRead, TenantRegister
from member_directory.schemas.waitlist import WaitlistRead, WaitlistSubmission
from member_directory.schemas.webhook import WebhookEnvelope, parse_webhook_body

__all__ = [
    "DirectoryResponse",
    "MemberRead",
    "TenantInstall",
    "TenantRead",
    "TenantRegister",
    "WaitlistRead",
    "WaitlistSubmission",
    "WebhookEnvelope",
    "parse_webhook_body",
]
