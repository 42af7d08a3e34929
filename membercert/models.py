"""
Records that flow through the certificate pipeline.

CertificateRecord and InstitutionRecord come from the caller; every other
model here is derived from them and rebuilt on each generation.
"""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from membercert.errors import CertificateGenerationError, MissingFieldError


# at least one non-space character; values are otherwise kept verbatim
NON_BLANK = r"^\s*\S"
BLANK_ERRORS = ("missing", "string_too_short", "string_pattern_mismatch")


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True)


class PaymentInfo(_Record):
    amount_paid: str = ""
    payment_method: str = ""
    transaction_number: str = ""
    status: str = ""


class CertificateRecord(_Record):
    """One issued membership certificate.

    Dates stay in the string form the caller supplied them in; hashing and
    payload building both read them verbatim.
    """

    name: str = Field(min_length=1, pattern=NON_BLANK)
    member_number: str = Field(min_length=1, pattern=NON_BLANK)
    membership_term: str = ""
    signed_date: str = Field(min_length=1, pattern=NON_BLANK)
    valid_from: str = Field(min_length=1, pattern=NON_BLANK)
    valid_until: str = Field(min_length=1, pattern=NON_BLANK)
    token: str = Field(min_length=1, pattern=NON_BLANK)
    status: str = "Active"
    payment: Optional[PaymentInfo] = None


class InstitutionRecord(_Record):
    name: str = Field(min_length=1, pattern=NON_BLANK)
    abbreviation: str = Field(min_length=1, pattern=NON_BLANK)
    president_name: str = ""
    logo: Optional[str] = None
    signature: Optional[str] = None
    stamp: Optional[str] = None


class SecurityArtifacts(_Record):
    hash: str
    serial: str


class VerificationPayload(_Record):
    """What the QR code carries. Field order is the serialized key order."""

    url: str
    token: str
    memberNumber: str
    issueDate: str
    expiryDate: str
    institution: str
    hash: str
    serial: str


class VerificationResult(_Record):
    valid: bool
    mismatches: list[str] = Field(default_factory=list)
    expected: VerificationPayload


class LoadedImage(_Record):
    """A decoded image re-encoded as PNG, with its natural pixel size."""

    data: bytes
    width: int = Field(gt=0)
    height: int = Field(gt=0)

    def scaled_height(self, target_width):
        return self.height / self.width * target_width


class InstitutionImages(_Record):
    logo: Optional[LoadedImage] = None
    signature: Optional[LoadedImage] = None
    stamp: Optional[LoadedImage] = None


class DocumentArtifact(_Record):
    content: bytes
    filename: str
    verification_url: str
    token: str
    artifacts: SecurityArtifacts


def coerce_record(model, value):
    """
    Accept either a model instance or a raw mapping and return the model.

    Validation failures become MissingFieldError when a field is absent or
    blank, CertificateGenerationError otherwise.
    """
    if isinstance(value, model):
        return value
    if value is None:
        raise CertificateGenerationError(f"{model.__name__} is required")
    try:
        return model.model_validate(value)
    except ValidationError as e:
        for err in e.errors():
            blank = err["type"] in BLANK_ERRORS or err.get("input") is None
            if blank and err["loc"]:
                raise MissingFieldError(str(err["loc"][0])) from e
        raise CertificateGenerationError(f"Invalid {model.__name__}: {e}") from e
