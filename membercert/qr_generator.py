"""
QR code generation for certificate verification.
"""
from io import BytesIO

import qrcode
from PIL import Image, ImageDraw, ImageFont

# The caption disc covers the code's centre; H-level correction (~30% of
# codewords) is what keeps the code readable underneath it.
ERROR_CORRECTION = qrcode.constants.ERROR_CORRECT_H
CAPTION_DIAMETER_RATIO = 0.24
DEFAULT_CAPTION = ("Scan to", "verify")


def generate_qr_code(data, size_pixels=400, caption=DEFAULT_CAPTION,
                     fill_color="black", back_color="white"):
    """
    Generate a QR code image with a caption disc in its centre.

    Returns: PIL Image object (RGB, size_pixels square)
    """
    qr = qrcode.QRCode(
        version=None,  # Smallest version that fits the payload
        error_correction=ERROR_CORRECTION,
        box_size=10,
        border=2,
    )
    qr.add_data(data)
    qr.make(fit=True)

    img = qr.make_image(fill_color=fill_color, back_color=back_color).get_image().convert("RGB")

    # Nearest keeps module edges sharp
    img = img.resize((size_pixels, size_pixels), Image.NEAREST)

    if caption:
        _draw_caption(img, caption, back_color, fill_color)

    return img


def _draw_caption(img, lines, disc_color, text_color):
    """Paint a filled disc at the centre and centre the caption lines in it."""
    size = img.width
    radius = int(size * CAPTION_DIAMETER_RATIO / 2)
    cx = cy = size // 2

    draw = ImageDraw.Draw(img)
    draw.ellipse((cx - radius, cy - radius, cx + radius, cy + radius), fill=disc_color)

    font = ImageFont.load_default(size=max(8, radius // 3))
    boxes = [draw.textbbox((0, 0), line, font=font) for line in lines]
    line_heights = [b[3] - b[1] for b in boxes]
    gap = max(1, radius // 10)
    y = cy - (sum(line_heights) + gap * (len(lines) - 1)) / 2

    for line, box, height in zip(lines, boxes, line_heights):
        width = box[2] - box[0]
        draw.text((cx - width / 2 - box[0], y - box[1]), line, fill=text_color, font=font)
        y += height + gap


def qr_to_bytes(qr_image):
    """Convert PIL Image to bytes for embedding in PDF."""
    buf = BytesIO()
    qr_image.save(buf, format='PNG')
    buf.seek(0)
    return buf.read()
