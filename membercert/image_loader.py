"""
Fetch institution images (logo, signature, stamp) for embedding.

Every image is optional. A failed fetch or decode is logged and the slot is
left empty; it never aborts a certificate.
"""
import asyncio
import base64
import binascii
from io import BytesIO

import httpx
import structlog
from PIL import Image, UnidentifiedImageError

from membercert import config
from membercert.errors import ImageLoadError
from membercert.models import InstitutionImages, LoadedImage

logger = structlog.get_logger(__name__)

IMAGE_SLOTS = ("logo", "signature", "stamp")


def decode_image(raw):
    """
    Decode raw image bytes and re-encode them as PNG.

    Returns a LoadedImage carrying the natural pixel size.
    """
    try:
        with Image.open(BytesIO(raw)) as img:
            img.load()
            width, height = img.size
            if img.mode not in ("RGB", "RGBA", "L", "LA"):
                img = img.convert("RGBA")
            buf = BytesIO()
            img.save(buf, format="PNG")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise ImageLoadError(f"Could not decode image: {e}") from e
    return LoadedImage(data=buf.getvalue(), width=width, height=height)


def _read_data_url(url):
    header, _, payload = url.partition(",")
    if ";base64" not in header:
        raise ImageLoadError("Only base64 data URLs are supported")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageLoadError(f"Bad base64 data URL: {e}") from e


async def _read_url(client, url, timeout=None):
    if url.startswith("data:"):
        return _read_data_url(url)
    try:
        response = await asyncio.wait_for(client.get(url), timeout)
        response.raise_for_status()
    except asyncio.TimeoutError as e:
        raise ImageLoadError(f"Timed out fetching {url}") from e
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise ImageLoadError(f"Could not fetch {url}: {e}") from e
    return response.content


async def fetch_image(client, url, slot="image", timeout=None):
    """Fetch and decode one image. Returns None when anything goes wrong."""
    if not url:
        return None
    try:
        image = decode_image(await _read_url(client, url, timeout))
    except ImageLoadError as e:
        logger.warning("image_load_failed", slot=slot, url=url[:120], error=str(e))
        return None
    except Exception as e:
        # one bad image must not take the other slots down with it
        logger.warning("image_load_failed", slot=slot, url=url[:120], error=repr(e), exc_info=True)
        return None
    logger.debug("image_loaded", slot=slot, width=image.width, height=image.height)
    return image


async def load_institution_images(institution, timeout=None, transport=None):
    """
    Load the logo, signature and stamp concurrently.

    timeout applies to each request; a timed-out image counts as absent.
    """
    if timeout is None:
        timeout = config.IMAGE_FETCH_TIMEOUT
    async with httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        transport=transport,
        follow_redirects=True,
    ) as client:
        results = await asyncio.gather(*(
            fetch_image(client, getattr(institution, slot), slot=slot, timeout=timeout)
            for slot in IMAGE_SLOTS
        ))
    return InstitutionImages(**dict(zip(IMAGE_SLOTS, results)))
