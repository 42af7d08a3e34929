"""
Exceptions raised by the certificate pipeline.
"""


class CertificateError(Exception):
    """Base class for every error raised by membercert."""


class CertificateGenerationError(CertificateError):
    """A fatal failure: no document is produced."""


class MissingFieldError(CertificateGenerationError):
    """A required identity field is absent or blank."""

    def __init__(self, field, message=None):
        self.field = field
        super().__init__(message or f"Missing required field: {field}")


class ImageLoadError(CertificateError):
    """An optional image could not be fetched or decoded."""


class InvalidPayloadError(CertificateError):
    """A scanned verification payload could not be parsed."""
