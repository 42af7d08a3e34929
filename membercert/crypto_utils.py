"""
Integrity hashing and serial numbers for certificates.

The digest is unkeyed: anyone who knows the field order can recompute it.
It is tamper evidence for honest verifiers, not a signature.
"""
import hashlib
from datetime import datetime, timezone

from membercert.errors import CertificateGenerationError, MissingFieldError
from membercert.models import SecurityArtifacts

BASE36_DIGITS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
CHECKSUM_MODULUS = 97


def _require(field, value):
    if value is None or not str(value).strip():
        raise MissingFieldError(field)
    return str(value)


def compute_certificate_hash(certificate, abbreviation):
    """
    Compute the SHA-256 integrity hash of a certificate.

    The canonical string is the concatenation, with no delimiters, of:
    abbreviation, member number, valid_from, valid_until, token.

    Returns 64 lowercase hex characters.
    """
    canonical = "".join([
        _require("abbreviation", abbreviation),
        _require("member_number", certificate.member_number),
        _require("valid_from", certificate.valid_from),
        _require("valid_until", certificate.valid_until),
        _require("token", certificate.token),
    ])
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def to_base36(value):
    """Render an integer in upper-case base 36."""
    if value < 0:
        return "-" + to_base36(-value)
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(BASE36_DIGITS[rem])
    return "".join(reversed(digits))


def issue_timestamp_ms(issue_date):
    """
    Epoch milliseconds of an ISO issue date.

    Date-only strings are UTC midnight; naive datetimes are read as UTC.
    """
    text = _require("signed_date", issue_date)
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError as e:
        raise CertificateGenerationError(f"Unparseable issue date: {text!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    # integer arithmetic keeps sub-second precision exact
    delta = parsed - datetime(1970, 1, 1, tzinfo=timezone.utc)
    return (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000


def member_checksum(member_number):
    """
    Sum of character codes modulo 97, as two digits.

    Codes are UTF-16 code units, so a character outside the BMP counts as
    its two surrogates. Serials issued by the web portal sum the same way.
    """
    units = _require("member_number", member_number).encode("utf-16-le")
    total = sum(int.from_bytes(units[i:i + 2], "little") for i in range(0, len(units), 2))
    return f"{total % CHECKSUM_MODULUS:02d}"


def generate_serial_number(member_number, issue_date):
    """
    Build the human-readable serial "{member}-{dateHash}-{checksum}".

    dateHash is the issue date's epoch-millisecond timestamp in base 36.
    """
    member_number = _require("member_number", member_number)
    date_hash = to_base36(issue_timestamp_ms(issue_date))
    return f"{member_number}-{date_hash}-{member_checksum(member_number)}"


def compute_security_artifacts(certificate, abbreviation):
    """Hash and serial for a certificate; same inputs, same outputs."""
    return SecurityArtifacts(
        hash=compute_certificate_hash(certificate, abbreviation),
        serial=generate_serial_number(certificate.member_number, certificate.signed_date),
    )
