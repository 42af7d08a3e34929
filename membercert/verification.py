"""
Verification payloads: what the QR code carries, and how a scanned payload
is checked against the canonical certificate record.
"""
import json
import secrets

import structlog
from pydantic import ValidationError

from membercert.crypto_utils import compute_security_artifacts
from membercert.errors import InvalidPayloadError, MissingFieldError
from membercert.models import VerificationPayload, VerificationResult

logger = structlog.get_logger(__name__)


def build_verification_url(origin, token):
    """Verification URL for a token: {origin}/verify/{token}."""
    if not origin or not str(origin).strip():
        raise MissingFieldError("origin")
    if not token:
        raise MissingFieldError("token")
    return f"{str(origin).strip().rstrip('/')}/verify/{token}"


def build_verification_payload(certificate, abbreviation, origin, artifacts=None):
    """
    Assemble the payload a verifier must be able to rebuild.

    Dates are passed through exactly as the certificate stores them.
    """
    if artifacts is None:
        artifacts = compute_security_artifacts(certificate, abbreviation)
    return VerificationPayload(
        url=build_verification_url(origin, certificate.token),
        token=certificate.token,
        memberNumber=certificate.member_number,
        issueDate=certificate.signed_date,
        expiryDate=certificate.valid_until,
        institution=abbreviation,
        hash=artifacts.hash,
        serial=artifacts.serial,
    )


def payload_to_json(payload):
    """Compact JSON, keys in schema order. This string is the QR content."""
    return json.dumps(payload.model_dump(), separators=(",", ":"), ensure_ascii=False)


def parse_payload(data):
    """Parse a scanned payload (JSON text, bytes or mapping)."""
    if isinstance(data, (bytes, bytearray)):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidPayloadError(f"Payload is not UTF-8: {e}") from e
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise InvalidPayloadError(f"Payload is not JSON: {e}") from e
    if not isinstance(data, dict):
        raise InvalidPayloadError("Payload must be a JSON object")
    try:
        return VerificationPayload.model_validate(data)
    except ValidationError as e:
        raise InvalidPayloadError(f"Payload does not match the schema: {e}") from e


def verify_payload(scanned, certificate, abbreviation, origin):
    """
    Compare a scanned payload against the one rebuilt from the canonical record.

    Every field must match exactly. A match proves the payload was produced
    from these fields, not that the institution issued it.
    """
    scanned = parse_payload(scanned)
    expected = build_verification_payload(certificate, abbreviation, origin)

    mismatches = []
    for field, expected_value in expected.model_dump().items():
        actual = getattr(scanned, field)
        if field == "hash":
            same = secrets.compare_digest(actual.encode(), expected_value.encode())
        else:
            same = actual == expected_value
        if not same:
            mismatches.append(field)

    if mismatches:
        logger.warning("payload_mismatch", token=certificate.token, fields=mismatches)
    return VerificationResult(valid=not mismatches, mismatches=mismatches, expected=expected)
