import base64
import struct
import zlib
from io import BytesIO

import httpx
import pytest
from PIL import Image

from membercert.models import CertificateRecord, InstitutionRecord, LoadedImage
from membercert.image_loader import decode_image


def png_bytes(width=40, height=20, color=(200, 30, 30)):
    buf = BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


def oversized_png(width=30000, height=30000):
    """A PNG whose header declares a size past Pillow's decompression-bomb limit."""
    def chunk(kind, body):
        return struct.pack(">I", len(body)) + kind + body + struct.pack(">I", zlib.crc32(kind + body))

    ihdr = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", ihdr) + chunk(b"IDAT", zlib.compress(b"")) + chunk(b"IEND", b"")


@pytest.fixture
def certificate_data():
    return {
        "name": "Amina Osei",
        "member_number": "AFSA-001",
        "membership_term": "2024",
        "signed_date": "2024-01-01",
        "valid_from": "2024-01-01",
        "valid_until": "2025-01-01",
        "token": "abc123",
        "status": "Active",
    }


@pytest.fixture
def certificate(certificate_data):
    return CertificateRecord(**certificate_data)


@pytest.fixture
def institution_data():
    return {
        "name": "African Forensic Sciences Association",
        "abbreviation": "AFSA",
        "president_name": "Dr. K. Mensah",
    }


@pytest.fixture
def institution(institution_data):
    return InstitutionRecord(**institution_data)


@pytest.fixture
def logo_png():
    return png_bytes(60, 30)


@pytest.fixture
def bomb_png():
    return oversized_png()


@pytest.fixture
def loaded_image(logo_png):
    return decode_image(logo_png)


@pytest.fixture
def data_url(logo_png):
    return "data:image/png;base64," + base64.b64encode(logo_png).decode()


@pytest.fixture
def image_transport(logo_png):
    """Serves a PNG under /ok/, 404s under /missing/, garbage under /broken/,
    a decompression bomb under /huge/."""
    requested = []

    def handler(request):
        requested.append(str(request.url))
        path = request.url.path
        if path.startswith("/ok/"):
            return httpx.Response(200, content=logo_png, headers={"content-type": "image/png"})
        if path.startswith("/broken/"):
            return httpx.Response(200, content=b"not an image")
        if path.startswith("/huge/"):
            return httpx.Response(200, content=oversized_png())
        if path.startswith("/slow/"):
            raise httpx.ReadTimeout("timed out", request=request)
        return httpx.Response(404)

    transport = httpx.MockTransport(handler)
    transport.requested = requested
    return transport


@pytest.fixture
def full_images(loaded_image):
    return {"logo": loaded_image, "signature": loaded_image, "stamp": loaded_image}


@pytest.fixture
def image_factory():
    def make(width, height):
        return LoadedImage(data=png_bytes(width, height), width=width, height=height)
    return make
