"""
Compose a membership certificate PDF.

generate_certificate() runs the whole pipeline: validate the records, derive
the hash and serial, build the verification payload and its QR code, load the
institution images, then lay the page out on a rendering surface. Bytes are
only produced once every step has succeeded.
"""
import asyncio
from datetime import datetime

import structlog

from membercert import __version__, config
from membercert.crypto_utils import compute_security_artifacts
from membercert.errors import CertificateError, CertificateGenerationError
from membercert.image_loader import load_institution_images
from membercert.models import (
    CertificateRecord,
    DocumentArtifact,
    InstitutionImages,
    InstitutionRecord,
    coerce_record,
)
from membercert.qr_generator import generate_qr_code, qr_to_bytes
from membercert.security_layers import draw_security_layers
from membercert.surface import FitzSurface, hex_to_rgb
from membercert.verification import build_verification_payload, payload_to_json

logger = structlog.get_logger(__name__)

BLACK = (0, 0, 0)
GREY = (0.39, 0.39, 0.39)
LIGHT_GREY = (0.59, 0.59, 0.59)
RULE_GREY = (0.78, 0.78, 0.78)
BADGE_GREEN = (0.13, 0.77, 0.37)
BADGE_FILL = (0.86, 0.99, 0.91)
BADGE_TEXT = (0.09, 0.64, 0.29)

TITLE = "CERTIFICATE OF MEMBERSHIP"
DISCLAIMER = "This is a digitally generated certificate. Scan the QR code to verify its authenticity."

# Layout in millimetres on A4 landscape; every slot is fixed so a missing
# image leaves the rest of the page where it was.
LOGO_WIDTH = 24
LOGO_TOP = 16
SIGNATURE_WIDTH = 35
STAMP_WIDTH = 30
QR_SIZE = 32
FOOTER_RULE_OFFSET = 40       # from the bottom edge
FOOTER_COLUMN_OFFSET = 70     # left/right column centres from the page edges
SMALL_PRINT_OFFSET = 18       # from the bottom edge


def format_display_date(value):
    """'2024-01-01' -> 'January 1, 2024'. Unparseable values are shown as is."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return value
    return f"{parsed:%B} {parsed.day}, {parsed.year}"


def hash_excerpt(digest, head=16, tail=8):
    return f"{digest[:head]}...{digest[-tail:]}"


# ─────────────────────────────────────────────────────────────
# Page sections
# ─────────────────────────────────────────────────────────────

def _draw_border(surface, width, height, brand):
    surface.rect(8, 8, width - 16, height - 16, color=brand, width=1.0)
    surface.rect(12, 12, width - 24, height - 24, color=RULE_GREY, width=0.2)


def _draw_header(surface, width, certificate, institution, images, brand):
    if images.logo:
        logo_height = images.logo.scaled_height(LOGO_WIDTH)
        surface.image(images.logo.data, (width - LOGO_WIDTH) / 2, LOGO_TOP, LOGO_WIDTH, logo_height)

    surface.text(width / 2, 48, institution.name.upper(), size=12, bold=True, color=brand, align="center")

    surface.text(width - 20, 20, f"Certificate No: {certificate.member_number}",
                 size=9, color=GREY, align="right")
    surface.text(width - 20, 25, f"Issued: {format_display_date(certificate.signed_date)}",
                 size=9, color=GREY, align="right")


def _draw_title(surface, width, brand):
    surface.text(width / 2, 62, TITLE, size=30, font="times", bold=True, color=BLACK, align="center")
    surface.line(60, 66, width - 60, 66, color=brand, width=0.5)


def _draw_body(surface, width, certificate, institution, brand):
    cx = width / 2
    surface.text(cx, 80, "This is to certify that", size=14, color=BLACK, align="center")
    surface.text(cx, 92, certificate.name, size=26, font="times", bold=True, color=brand, align="center")
    surface.text(cx, 100, f"Member No: {certificate.member_number}", size=12, color=GREY, align="center")
    surface.text(cx, 110, "is a registered member in good standing of", size=14, color=BLACK, align="center")
    surface.text(cx, 119, f"{institution.name.upper()} ({institution.abbreviation})",
                 size=16, bold=True, color=brand, align="center")

    term = certificate.membership_term or "current"
    surface.text(
        cx, 129,
        f"for the {term} membership term, valid from "
        f"{format_display_date(certificate.valid_from)} until "
        f"{format_display_date(certificate.valid_until)}.",
        size=12, color=BLACK, align="center",
    )

    # Status badge
    badge_w, badge_h = 30, 7
    surface.rect(cx - badge_w / 2, 133, badge_w, badge_h,
                 color=BADGE_GREEN, fill=BADGE_FILL, width=0.3, radius=1)
    surface.text(cx, 137.8, certificate.status, size=10, bold=True, color=BADGE_TEXT, align="center")


def _draw_footer(surface, width, height, certificate, institution, images, qr_png):
    rule_y = height - FOOTER_RULE_OFFSET
    left = FOOTER_COLUMN_OFFSET
    right = width - FOOTER_COLUMN_OFFSET

    # ── Left: signature ──
    if images.signature:
        sig_height = images.signature.scaled_height(SIGNATURE_WIDTH)
        surface.image(images.signature.data, left - SIGNATURE_WIDTH / 2, rule_y - sig_height - 2,
                      SIGNATURE_WIDTH, sig_height)
    surface.line(left - 20, rule_y, left + 20, rule_y, color=BLACK, width=0.3)
    surface.text(left, rule_y + 4, "Authorized Signature", size=9, bold=True, color=BLACK, align="center")
    surface.text(left, rule_y + 8, institution.president_name, size=8, color=BLACK, align="center")
    surface.text(left, rule_y + 12, f"Date: {format_display_date(certificate.signed_date)}",
                 size=8, color=BLACK, align="center")

    # ── Centre: QR ──
    surface.image(qr_png, (width - QR_SIZE) / 2, rule_y - QR_SIZE + 8, QR_SIZE, QR_SIZE)

    # ── Right: stamp ──
    if images.stamp:
        stamp_height = images.stamp.scaled_height(STAMP_WIDTH)
        surface.image(images.stamp.data, right - STAMP_WIDTH / 2, rule_y - stamp_height - 2,
                      STAMP_WIDTH, stamp_height)
    surface.line(right - 20, rule_y, right + 20, rule_y, color=BLACK, width=0.3)
    surface.text(right, rule_y + 4, "Official Stamp", size=9, bold=True, color=BLACK, align="center")


def _draw_small_print(surface, width, height, certificate, artifacts, verification_url):
    y = height - SMALL_PRINT_OFFSET
    surface.text(16, y, f"Serial: {artifacts.serial}", size=6, font="courier", color=LIGHT_GREY)
    surface.text(width - 16, y, f"SHA-256: {hash_excerpt(artifacts.hash)}",
                 size=6, font="courier", color=LIGHT_GREY, align="right")

    surface.text(width / 2, y, DISCLAIMER, size=7, color=LIGHT_GREY, align="center")
    surface.text(width / 2, y + 3, verification_url, size=6, color=LIGHT_GREY, align="center")

    payment = certificate.payment
    if payment and payment.status == "Completed":
        surface.text(
            width / 2, y - 3,
            f"Payment: {payment.amount_paid} via {payment.payment_method} | Ref: {payment.transaction_number}",
            size=6, color=LIGHT_GREY, align="center",
        )


def build_metadata(certificate, institution, artifacts):
    """Document info fields; keywords carry token, member number and hash."""
    return {
        "title": f"Certificate of Membership - {certificate.name}",
        "subject": f"{institution.name} membership certificate {artifacts.serial}",
        "author": institution.name,
        "keywords": ",".join([certificate.token, certificate.member_number, artifacts.hash]),
        "creator": "membercert",
        "producer": f"membercert {__version__}",
    }


def compose_certificate(surface, certificate, institution, images, artifacts,
                        verification_url, qr_png, brand_color=None):
    """
    Draw the full certificate onto surface, back to front.

    images may have any slot set to None; only that slot's image is skipped.
    """
    brand = hex_to_rgb(brand_color or config.BRAND_COLOR)
    width, height = surface.width, surface.height

    draw_security_layers(surface, width, height, institution, brand_color=brand)
    _draw_border(surface, width, height, brand)
    _draw_header(surface, width, certificate, institution, images, brand)
    _draw_title(surface, width, brand)
    _draw_body(surface, width, certificate, institution, brand)
    _draw_footer(surface, width, height, certificate, institution, images, qr_png)
    _draw_small_print(surface, width, height, certificate, artifacts, verification_url)

    surface.set_metadata(build_metadata(certificate, institution, artifacts))


def default_filename(certificate):
    safe = "".join(c if c.isalnum() or c in "_-" else "_" for c in certificate.member_number)
    return f"Certificate-{safe}.pdf"


async def agenerate_certificate(certificate, institution, origin, filename=None, *,
                                images=None, transport=None, image_timeout=None,
                                surface_factory=FitzSurface, brand_color=None):
    """
    Generate one certificate document.

    certificate and institution may be records or plain mappings. origin is
    the scheme and host verification URLs are built on. Pass images to skip
    fetching; otherwise logo, signature and stamp are loaded concurrently.

    Raises CertificateGenerationError (or MissingFieldError) and returns
    nothing when a required value is missing or any non-image step fails.
    """
    certificate = coerce_record(CertificateRecord, certificate)
    institution = coerce_record(InstitutionRecord, institution)

    artifacts = compute_security_artifacts(certificate, institution.abbreviation)
    payload = build_verification_payload(certificate, institution.abbreviation, origin, artifacts)

    try:
        qr_png = qr_to_bytes(generate_qr_code(payload_to_json(payload)))
    except Exception as e:
        raise CertificateGenerationError(f"QR encoding failed: {e}") from e

    if images is None:
        images = await load_institution_images(institution, timeout=image_timeout, transport=transport)
    elif not isinstance(images, InstitutionImages):
        images = InstitutionImages(**images)

    try:
        with surface_factory() as surface:
            compose_certificate(surface, certificate, institution, images, artifacts,
                                payload.url, qr_png, brand_color=brand_color)
            content = surface.to_bytes()
    except CertificateError:
        raise
    except Exception as e:
        raise CertificateGenerationError(f"Certificate generation failed: {str(e)}") from e

    logger.info(
        "certificate_generated",
        member_number=certificate.member_number,
        serial=artifacts.serial,
        images=[slot for slot, img in images if img is not None],
        size=len(content),
    )
    return DocumentArtifact(
        content=content,
        filename=filename or default_filename(certificate),
        verification_url=payload.url,
        token=certificate.token,
        artifacts=artifacts,
    )


def generate_certificate(certificate, institution, origin, filename=None, **kwargs):
    """Blocking wrapper around agenerate_certificate()."""
    return asyncio.run(agenerate_certificate(certificate, institution, origin, filename, **kwargs))
