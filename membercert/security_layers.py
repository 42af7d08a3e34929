"""
Visual anti-forgery layers drawn behind the certificate content.

None of these carry data a verifier can check. They make casual copying and
reprinting harder to pass off; their absence proves nothing.

Each pass is stateless and takes the surface, the page size in millimetres
and the institution record.
"""
import math

WATERMARK_SUFFIX = "VERIFIED"
WATERMARK_SIZE = 48           # pt
WATERMARK_STEP = 45.0         # mm between rows
WATERMARK_ANGLE = 45.0
WATERMARK_COLOR = (0.92, 0.92, 0.92)

MICROPRINT_SIZE = 1.4         # pt
MICROPRINT_COLOR = (0.45, 0.45, 0.45)
MICROPRINT_MARGIN = 10.0      # mm, baseline offset from the top and bottom edges

HOLOGRAM_SPACING = 12.0       # mm
HOLOGRAM_INSET = 16.0         # mm
HOLOGRAM_DOT_RADIUS = 0.5     # mm
HOLOGRAM_OPACITY = 0.08

GUILLOCHE_WAVES = 24
GUILLOCHE_AMPLITUDE = 2.5     # mm
GUILLOCHE_WAVELENGTH = 18.0   # mm
GUILLOCHE_SAMPLE_STEP = 1.5   # mm
GUILLOCHE_INSET = 20.0        # mm
GUILLOCHE_OPACITY = 0.12
GUILLOCHE_LINE_WIDTH = 0.1    # mm
# Band centres measured from the top and from the bottom of the page
GUILLOCHE_HEADER_OFFSET = 70.0
GUILLOCHE_FOOTER_OFFSET = 54.0


def draw_watermark(surface, width, height, institution, **_):
    """Outlined diagonal "{ABBR} VERIFIED" rows down the full page height."""
    label = f"{institution.abbreviation.upper()} {WATERMARK_SUFFIX}"
    rows = int(height // WATERMARK_STEP) + 1
    for row in range(rows + 1):
        y = row * WATERMARK_STEP
        # alternate rows shift sideways so the tiles interlock
        x = width / 2 + (WATERMARK_STEP if row % 2 else -WATERMARK_STEP)
        surface.text(
            x, y, label,
            size=WATERMARK_SIZE,
            bold=True,
            color=WATERMARK_COLOR,
            align="center",
            angle=WATERMARK_ANGLE,
            outline=True,
        )


def microprint_line(phrase, surface, span):
    """Repeat phrase until it fills span millimetres, trimmed to fit."""
    unit_width = surface.text_width(phrase, size=MICROPRINT_SIZE)
    if unit_width <= 0:
        return phrase
    text = phrase * (int(span // unit_width) + 1)
    while text and surface.text_width(text, size=MICROPRINT_SIZE) > span:
        # trim by whole characters in proportion to the overshoot
        excess = surface.text_width(text, size=MICROPRINT_SIZE) - span
        per_char = unit_width / len(phrase)
        text = text[:-max(1, int(excess / per_char))]
    return text


def draw_microprint_border(surface, width, height, institution, **_):
    """A hairline-sized repeated phrase along the top and bottom margins."""
    phrase = f"{institution.name.upper()}  AUTHENTIC MEMBERSHIP CERTIFICATE  "
    inset = MICROPRINT_MARGIN + 2
    text = microprint_line(phrase, surface, width - 2 * inset)
    for y in (MICROPRINT_MARGIN + MICROPRINT_SIZE / 4, height - MICROPRINT_MARGIN + MICROPRINT_SIZE / 4):
        surface.text(inset, y, text, size=MICROPRINT_SIZE, color=MICROPRINT_COLOR)


def draw_holographic_pattern(surface, width, height, institution, brand_color=(0, 0.71, 0.65), **_):
    """A faint grid of dots joined by short diagonal strokes."""
    stroke = HOLOGRAM_SPACING / 3
    y = HOLOGRAM_INSET
    row = 0
    while y <= height - HOLOGRAM_INSET:
        x = HOLOGRAM_INSET + (HOLOGRAM_SPACING / 2 if row % 2 else 0.0)
        while x <= width - HOLOGRAM_INSET:
            surface.circle(x, y, HOLOGRAM_DOT_RADIUS, fill=brand_color, opacity=HOLOGRAM_OPACITY)
            surface.line(
                x, y, x + stroke, y + stroke,
                color=brand_color, width=0.1, opacity=HOLOGRAM_OPACITY,
            )
            x += HOLOGRAM_SPACING
        y += HOLOGRAM_SPACING
        row += 1


def guilloche_wave(center_y, index, x_start, x_end):
    """Sample points of one phase-shifted sine trace."""
    phase = index * 2 * math.pi / GUILLOCHE_WAVES
    # amplitudes breathe slightly so neighbouring traces cross
    amplitude = GUILLOCHE_AMPLITUDE * (0.6 + 0.4 * math.cos(phase))
    points = []
    steps = int((x_end - x_start) / GUILLOCHE_SAMPLE_STEP)
    for i in range(steps + 1):
        x = x_start + i * GUILLOCHE_SAMPLE_STEP
        y = center_y + amplitude * math.sin(2 * math.pi * x / GUILLOCHE_WAVELENGTH + phase)
        points.append((x, y))
    return points


def draw_guilloche_bands(surface, width, height, institution, brand_color=(0, 0.71, 0.65), **_):
    """Interwoven sine traces below the header and above the footer."""
    for center_y in (GUILLOCHE_HEADER_OFFSET, height - GUILLOCHE_FOOTER_OFFSET):
        for index in range(GUILLOCHE_WAVES):
            surface.polyline(
                guilloche_wave(center_y, index, GUILLOCHE_INSET, width - GUILLOCHE_INSET),
                color=brand_color,
                width=GUILLOCHE_LINE_WIDTH,
                opacity=GUILLOCHE_OPACITY,
            )


SECURITY_LAYERS = (
    draw_watermark,
    draw_microprint_border,
    draw_holographic_pattern,
    draw_guilloche_bands,
)


def draw_security_layers(surface, width, height, institution, brand_color=(0, 0.71, 0.65)):
    """Run every layer, back to front."""
    for layer in SECURITY_LAYERS:
        layer(surface, width, height, institution, brand_color=brand_color)
