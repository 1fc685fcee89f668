"""
Unit tests for webhook signature verification
"""

import base64

import pytest

from member_directory.core.exceptions import SignatureVerificationError
from member_directory.core.signatures import (
    parse_signatures,
    secret_candidates,
    sign_payload,
    verify_webhook_signature,
)

NOW = 1_700_000_000
BODY = b'{"type":"membership.went_valid"}'


def headers_for(secret: bytes, body: bytes = BODY, timestamp: int = NOW, webhook_id: str = "msg_1"):
    signature = sign_payload(secret, webhook_id, str(timestamp), body)
    return {
        "webhook-id": webhook_id,
        "webhook-timestamp": str(timestamp),
        "webhook-signature": f"v1,{signature}",
    }


def test_secret_candidates_decode_whsec_prefix():
    encoded = base64.b64encode(b"raw-key").decode()
    candidates = secret_candidates(f"whsec_{encoded}")
    assert b"raw-key" in candidates
    assert candidates[0] == f"whsec_{encoded}".encode()


def test_secret_candidates_empty():
    assert secret_candidates("") == []
    assert secret_candidates(None) == []


def test_parse_signatures_keeps_base64_padding():
    assert parse_signatures("v1,abc= v1,def==") == ["abc=", "def=="]
    assert parse_signatures("v1=xyz=") == ["xyz="]
    assert parse_signatures("") == []


def test_valid_signature_with_raw_secret():
    verify_webhook_signature(headers_for(b"plain-secret"), BODY, "plain-secret", now=NOW)


def test_valid_signature_with_whsec_secret():
    encoded = base64.b64encode(b"decoded-key").decode()
    verify_webhook_signature(headers_for(b"decoded-key"), BODY, f"whsec_{encoded}", now=NOW)


def test_any_of_several_signatures_matches():
    headers = headers_for(b"plain-secret")
    headers["webhook-signature"] = "v1,bm90LWl0 " + headers["webhook-signature"]
    verify_webhook_signature(headers, BODY, "plain-secret", now=NOW)


def test_header_names_are_case_insensitive():
    headers = {key.title(): value for key, value in headers_for(b"plain-secret").items()}
    verify_webhook_signature(headers, BODY, "plain-secret", now=NOW)


@pytest.mark.parametrize(
    "mutate,reason",
    [
        (lambda h: h.pop("webhook-id"), "missing_headers"),
        (lambda h: h.update({"webhook-timestamp": "yesterday"}), "bad_timestamp"),
        (lambda h: h.update({"webhook-timestamp": "inf"}), "bad_timestamp"),
        (lambda h: h.update({"webhook-signature": "v1,AAAA"}), "signature_mismatch"),
    ],
)
def test_rejections(mutate, reason):
    headers = headers_for(b"plain-secret")
    mutate(headers)
    with pytest.raises(SignatureVerificationError) as exc_info:
        verify_webhook_signature(headers, BODY, "plain-secret", now=NOW)
    assert exc_info.value.reason == reason


def test_tampered_body_rejected():
    with pytest.raises(SignatureVerificationError) as exc_info:
        verify_webhook_signature(headers_for(b"plain-secret"), BODY + b" ", "plain-secret", now=NOW)
    assert exc_info.value.reason == "signature_mismatch"


def test_timestamp_outside_tolerance():
    headers = headers_for(b"plain-secret", timestamp=NOW - 301)
    with pytest.raises(SignatureVerificationError) as exc_info:
        verify_webhook_signature(headers, BODY, "plain-secret", tolerance_seconds=300, now=NOW)
    assert exc_info.value.reason == "timestamp_out_of_range"


def test_missing_secret():
    with pytest.raises(SignatureVerificationError) as exc_info:
        verify_webhook_signature(headers_for(b"x"), BODY, "", now=NOW)
    assert exc_info.value.reason == "missing_secret"
