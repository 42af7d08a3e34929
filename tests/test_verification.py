import json

import pytest

from membercert.crypto_utils import compute_security_artifacts
from membercert.errors import InvalidPayloadError, MissingFieldError
from membercert.verification import (
    build_verification_payload,
    build_verification_url,
    parse_payload,
    payload_to_json,
    verify_payload,
)

ORIGIN = "https://portal.example.org"


def test_verification_url_format():
    assert build_verification_url(ORIGIN, "abc123") == "https://portal.example.org/verify/abc123"


def test_verification_url_strips_trailing_slash():
    assert build_verification_url(ORIGIN + "/", "abc123") == "https://portal.example.org/verify/abc123"


def test_verification_url_requires_origin():
    with pytest.raises(MissingFieldError):
        build_verification_url("", "abc123")


def test_payload_fields(certificate):
    payload = build_verification_payload(certificate, "AFSA", ORIGIN)
    artifacts = compute_security_artifacts(certificate, "AFSA")

    assert payload.model_dump() == {
        "url": "https://portal.example.org/verify/abc123",
        "token": "abc123",
        "memberNumber": "AFSA-001",
        "issueDate": "2024-01-01",
        "expiryDate": "2025-01-01",
        "institution": "AFSA",
        "hash": artifacts.hash,
        "serial": "AFSA-001-LQU5M2O0-85",
    }


def test_payload_passes_dates_through_verbatim(certificate):
    odd = certificate.model_copy(update={"signed_date": "2024-01-01T09:30:00Z", "valid_until": "2025-01-01T00:00:00.000Z"})
    payload = build_verification_payload(odd, "AFSA", ORIGIN)
    assert payload.issueDate == "2024-01-01T09:30:00Z"
    assert payload.expiryDate == "2025-01-01T00:00:00.000Z"


def test_payload_json_key_order_and_types(certificate):
    text = payload_to_json(build_verification_payload(certificate, "AFSA", ORIGIN))
    decoded = json.loads(text)

    assert list(decoded) == [
        "url", "token", "memberNumber", "issueDate", "expiryDate", "institution", "hash", "serial",
    ]
    assert all(isinstance(v, str) for v in decoded.values())
    assert " " not in text


def test_parse_payload_accepts_text_bytes_and_dicts(certificate):
    payload = build_verification_payload(certificate, "AFSA", ORIGIN)
    text = payload_to_json(payload)

    assert parse_payload(text) == payload
    assert parse_payload(text.encode()) == payload
    assert parse_payload(json.loads(text)) == payload


@pytest.mark.parametrize("bad", ["not json", "[1, 2]", '{"url": "x"}', b"\x00", b"\xff\xfe"])
def test_parse_payload_rejects_garbage(bad):
    with pytest.raises(InvalidPayloadError):
        parse_payload(bad)


def test_verify_accepts_matching_payload(certificate):
    scanned = payload_to_json(build_verification_payload(certificate, "AFSA", ORIGIN))

    result = verify_payload(scanned, certificate, "AFSA", ORIGIN)

    assert result.valid
    assert result.mismatches == []


def test_verify_flags_tampered_fields(certificate):
    scanned = build_verification_payload(certificate, "AFSA", ORIGIN).model_dump()
    scanned["expiryDate"] = "2030-01-01"
    scanned["hash"] = "0" * 64

    result = verify_payload(scanned, certificate, "AFSA", ORIGIN)

    assert not result.valid
    assert result.mismatches == ["expiryDate", "hash"]


def test_verify_detects_record_changed_after_issue(certificate):
    scanned = payload_to_json(build_verification_payload(certificate, "AFSA", ORIGIN))
    extended = certificate.model_copy(update={"valid_until": "2026-01-01"})

    result = verify_payload(scanned, extended, "AFSA", ORIGIN)

    assert not result.valid
    assert set(result.mismatches) == {"expiryDate", "hash"}


def test_verify_rejects_whitespace_padded_fields(certificate):
    payload = build_verification_payload(certificate, "AFSA", ORIGIN).model_dump()
    payload["token"] = " abc123 "

    result = verify_payload(payload, certificate, "AFSA", ORIGIN)

    assert result.valid is False
    assert result.mismatches == ["token"]
