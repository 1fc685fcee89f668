"""
Domain exceptions raised by the resolver, sync service and Whop client
"""


class MemberDirectoryError(Exception):
    """Base class for errors surfaced to API callers"""
    pass


class TenantUnresolvedError(MemberDirectoryError):
    """No tenant identifier could be found for a write request"""
    pass


class MalformedPayloadError(MemberDirectoryError):
    """Webhook body is not a JSON object with the expected envelope"""
    pass


class SignatureVerificationError(MemberDirectoryError):
    """Webhook signature headers are missing or do not match"""

    def __init__(self, reason: str):
        super().__init__(f"Webhook signature rejected: {reason}")
        self.reason = reason


class MissingIdentifierError(MemberDirectoryError):
    """Payload lacks the ids needed to address a member row"""

    def __init__(self, missing: list[str]):
        super().__init__(f"Missing required identifiers: {', '.join(missing)}")
        self.missing = missing


class WhopAPIError(Exception):
    """Whop API request failed (non-2xx, network error, bad JSON)"""
    pass
