import hashlib

import pytest

from membercert.crypto_utils import (
    compute_certificate_hash,
    compute_security_artifacts,
    generate_serial_number,
    issue_timestamp_ms,
    member_checksum,
    to_base36,
)
from membercert.errors import MissingFieldError
from membercert.models import CertificateRecord


def test_hash_matches_known_vector(certificate):
    digest = compute_certificate_hash(certificate, "AFSA")

    expected = hashlib.sha256(b"AFSAAFSA-0012024-01-012025-01-01abc123").hexdigest()
    assert digest == expected
    assert digest == "6acde00c3a916cdf43321aaa79502f545c4b0bd5dfa4c89be943e43733e3a55c"


def test_hash_is_64_lowercase_hex(certificate):
    digest = compute_certificate_hash(certificate, "AFSA")
    assert len(digest) == 64
    assert digest == digest.lower()
    int(digest, 16)


def test_hash_and_serial_are_deterministic(certificate):
    first = compute_security_artifacts(certificate, "AFSA")
    for _ in range(5):
        assert compute_security_artifacts(certificate, "AFSA") == first


@pytest.mark.parametrize("field,value", [
    ("member_number", "AFSA-002"),
    ("valid_from", "2024-01-02"),
    ("valid_until", "2025-01-02"),
    ("token", "abc124"),
])
def test_hash_changes_when_any_identity_field_changes(certificate, field, value):
    mutated = certificate.model_copy(update={field: value})
    assert compute_certificate_hash(mutated, "AFSA") != compute_certificate_hash(certificate, "AFSA")


def test_hash_changes_with_abbreviation(certificate):
    assert compute_certificate_hash(certificate, "AFSB") != compute_certificate_hash(certificate, "AFSA")


def test_hash_ignores_display_fields(certificate):
    renamed = certificate.model_copy(update={"name": "Someone Else", "status": "Expired"})
    assert compute_certificate_hash(renamed, "AFSA") == compute_certificate_hash(certificate, "AFSA")


@pytest.mark.parametrize("field", ["member_number", "valid_from", "valid_until", "token"])
def test_hash_rejects_blank_fields(certificate, field):
    blank = certificate.model_copy(update={field: ""})
    with pytest.raises(MissingFieldError) as exc:
        compute_certificate_hash(blank, "AFSA")
    assert exc.value.field == field


def test_hash_rejects_blank_abbreviation(certificate):
    with pytest.raises(MissingFieldError):
        compute_certificate_hash(certificate, "  ")


def test_serial_matches_known_vector():
    # 2024-01-01T00:00:00Z is 1704067200000 ms, LQU5M2O0 in base 36;
    # the character codes of "AFSA-001" sum to 473, and 473 % 97 == 85
    assert generate_serial_number("AFSA-001", "2024-01-01") == "AFSA-001-LQU5M2O0-85"


def test_base36():
    assert to_base36(0) == "0"
    assert to_base36(35) == "Z"
    assert to_base36(36) == "10"
    assert to_base36(1704067200000) == "LQU5M2O0"


@pytest.mark.parametrize("value,expected", [
    ("2024-01-01", 1704067200000),
    ("2024-01-01T00:00:00Z", 1704067200000),
    ("2024-01-01T00:00:00.250Z", 1704067200250),
    ("2024-01-01T02:00:00+02:00", 1704067200000),
    ("2024-01-01T00:00:00", 1704067200000),
])
def test_issue_timestamp_ms(value, expected):
    assert issue_timestamp_ms(value) == expected


def test_different_issue_dates_give_different_serials():
    assert generate_serial_number("AFSA-001", "2024-01-01") != generate_serial_number("AFSA-001", "2024-02-01")
    assert generate_serial_number("AFSA-001", "2024-02-01") == "AFSA-001-LS2G9HC0-85"


@pytest.mark.parametrize("member_number", [
    "A", "AFSA-001", "AFSA-999", "ZZZZZZZZZZZZ", "0", "m-42", "Ünïcødé-7", "x" * 200,
])
def test_checksum_is_two_digits_in_range(member_number):
    checksum = member_checksum(member_number)
    assert len(checksum) == 2
    assert checksum.isdigit()
    assert 0 <= int(checksum) <= 96


def test_checksum_is_zero_padded():
    # "a" is 97, so the sum of one "a" is exactly the modulus
    assert member_checksum("a") == "00"
    assert member_checksum("b") == "01"


def test_serial_requires_member_number():
    with pytest.raises(MissingFieldError):
        generate_serial_number("", "2024-01-01")


def test_artifacts_use_signed_date_for_serial(certificate_data):
    cert = CertificateRecord(**{**certificate_data, "signed_date": "2024-02-01"})
    artifacts = compute_security_artifacts(cert, "AFSA")
    assert artifacts.serial == "AFSA-001-LS2G9HC0-85"


def test_identity_fields_are_hashed_verbatim(certificate_data):
    padded = CertificateRecord(**{**certificate_data, "token": " abc123 "})
    plain = CertificateRecord(**certificate_data)

    assert padded.token == " abc123 "
    assert compute_certificate_hash(padded, "AFSA") != compute_certificate_hash(plain, "AFSA")


def test_checksum_counts_utf16_code_units():
    # U+1F600 is the surrogate pair D83D DE00: 55357 + 56832 = 112189
    assert member_checksum("\U0001F600") == "57"
