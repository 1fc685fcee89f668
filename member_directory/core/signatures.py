"""
Webhook signature verification (Standard Webhooks scheme used by Whop)

signed content: "{webhook-id}.{webhook-timestamp}.{raw body}"
signature:      base64(HMAC-SHA256(secret, signed content)), "v1,<sig>" entries
"""

from typing import List, Mapping, Optional
import base64
import binascii
import hashlib
import hmac
import re
import time

from member_directory.core.exceptions import SignatureVerificationError

SECRET_PREFIX = "whsec_"
_VERSIONED = re.compile(r"^v\d+[,=](.*)$")


def _decode_b64(value: str) -> bytes:
    for decoder in (base64.b64decode, base64.urlsafe_b64decode):
        try:
            return decoder(value)
        except (binascii.Error, ValueError):
            continue
    return b""


def secret_candidates(secret: str) -> List[bytes]:
    """
    Key bytes to try for a configured secret

    Dashboards hand out raw strings, SDK examples use whsec_<base64>; both
    interpretations are accepted.
    """
    secret = (secret or "").strip()
    if not secret:
        return []

    candidates = [secret.encode("utf-8")]
    encoded = secret[len(SECRET_PREFIX):] if secret.startswith(SECRET_PREFIX) else secret
    decoded = _decode_b64(encoded)
    if decoded and decoded not in candidates:
        candidates.append(decoded)
    return candidates


def parse_signatures(header: str) -> List[str]:
    """Split "v1,sig1 v1,sig2" into bare signatures"""
    signatures = []
    for token in (header or "").split():
        match = _VERSIONED.match(token)
        if match:
            token = match.group(1)
        token = token.strip()
        if token:
            signatures.append(token)
    return signatures


def sign_payload(secret: bytes, webhook_id: str, timestamp: str, body: bytes) -> str:
    signed_content = f"{webhook_id}.{timestamp}.".encode("utf-8") + body
    digest = hmac.new(secret, signed_content, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def verify_webhook_signature(
    headers: Mapping[str, str],
    body: bytes,
    secret: str,
    tolerance_seconds: int = 300,
    now: Optional[float] = None,
) -> None:
    """Raise SignatureVerificationError unless the request is signed with secret"""
    lowered = {key.lower(): value for key, value in headers.items()}
    webhook_id = (lowered.get("webhook-id") or "").strip()
    timestamp = (lowered.get("webhook-timestamp") or "").strip()
    signature_header = (lowered.get("webhook-signature") or "").strip()

    if not webhook_id or not timestamp or not signature_header:
        raise SignatureVerificationError("missing_headers")

    try:
        sent_at = int(float(timestamp))
    except (ValueError, OverflowError):
        raise SignatureVerificationError("bad_timestamp")

    current = int(now if now is not None else time.time())
    if tolerance_seconds > 0 and abs(current - sent_at) > tolerance_seconds:
        raise SignatureVerificationError("timestamp_out_of_range")

    keys = secret_candidates(secret)
    if not keys:
        raise SignatureVerificationError("missing_secret")

    signatures = parse_signatures(signature_header)
    for key in keys:
        expected = sign_payload(key, webhook_id, timestamp, body)
        for signature in signatures:
            if hmac.compare_digest(expected, signature):
                return

    raise SignatureVerificationError("signature_mismatch")
