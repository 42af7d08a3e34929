"""
Rendering surfaces.

The composer and the security layers draw through this small interface, in
millimetres with the origin at the top-left corner of the page. FitzSurface
renders a real PDF with PyMuPDF; RecordingSurface only records the calls.
"""
from dataclasses import dataclass, field

import fitz

MM = 72 / 25.4  # points per millimetre

A4_LANDSCAPE = (297.0, 210.0)

# (family, bold) -> PDF base-14 font
_FITZ_FONTS = {
    ("helvetica", False): "helv",
    ("helvetica", True): "hebo",
    ("times", False): "tiro",
    ("times", True): "tibo",
    ("courier", False): "cour",
    ("courier", True): "cobo",
}


def hex_to_rgb(value):
    """'#00B5A5' -> (0.0, 0.709..., 0.647...)"""
    value = value.lstrip("#")
    if len(value) != 6:
        raise ValueError(f"Expected a #RRGGBB colour, got {value!r}")
    return tuple(int(value[i:i + 2], 16) / 255.0 for i in (0, 2, 4))


class Surface:
    """Drawing primitives shared by every backend."""

    width = A4_LANDSCAPE[0]
    height = A4_LANDSCAPE[1]

    def text(self, x, y, text, *, size=12, font="helvetica", bold=False,
             color=(0, 0, 0), align="left", angle=0.0, outline=False, opacity=1.0):
        """Draw text with its baseline at y. align is left, center or right."""
        raise NotImplementedError

    def text_width(self, text, *, size=12, font="helvetica", bold=False):
        """Width of text in millimetres."""
        raise NotImplementedError

    def line(self, x1, y1, x2, y2, *, color=(0, 0, 0), width=0.3, opacity=1.0):
        raise NotImplementedError

    def polyline(self, points, *, color=(0, 0, 0), width=0.3, opacity=1.0):
        raise NotImplementedError

    def rect(self, x, y, w, h, *, color=(0, 0, 0), fill=None, width=0.3, radius=0.0):
        raise NotImplementedError

    def circle(self, cx, cy, r, *, color=None, fill=(0, 0, 0), width=0.0, opacity=1.0):
        raise NotImplementedError

    def image(self, data, x, y, w, h):
        """Place PNG bytes into the box (x, y, w, h)."""
        raise NotImplementedError

    def new_page(self):
        raise NotImplementedError

    def set_metadata(self, metadata):
        raise NotImplementedError

    def to_bytes(self):
        raise NotImplementedError

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


class FitzSurface(Surface):
    """PyMuPDF-backed surface producing a PDF document."""

    def __init__(self, width=A4_LANDSCAPE[0], height=A4_LANDSCAPE[1]):
        self.width = width
        self.height = height
        self.doc = fitz.open()
        self.page = None
        self.new_page()

    @staticmethod
    def _pt(x, y):
        return fitz.Point(x * MM, y * MM)

    def new_page(self):
        self.page = self.doc.new_page(width=self.width * MM, height=self.height * MM)

    def text_width(self, text, *, size=12, font="helvetica", bold=False):
        fontname = _FITZ_FONTS[(font, bold)]
        return fitz.get_text_length(text, fontname=fontname, fontsize=size) / MM

    def text(self, x, y, text, *, size=12, font="helvetica", bold=False,
             color=(0, 0, 0), align="left", angle=0.0, outline=False, opacity=1.0):
        fontname = _FITZ_FONTS[(font, bold)]
        width = self.text_width(text, size=size, font=font, bold=bold)
        offset = {"left": 0.0, "center": width / 2, "right": width}[align]

        pivot = self._pt(x, y)
        # Render mode 1 strokes glyph outlines without filling them
        kwargs = dict(
            fontsize=size,
            color=color,
            fontname=fontname,
            render_mode=1 if outline else 0,
            fill_opacity=opacity,
            stroke_opacity=opacity,
        )
        if angle:
            kwargs["morph"] = (pivot, fitz.Matrix(angle))
        self.page.insert_text(self._pt(x - offset, y), text, **kwargs)

    def line(self, x1, y1, x2, y2, *, color=(0, 0, 0), width=0.3, opacity=1.0):
        self.page.draw_line(
            self._pt(x1, y1), self._pt(x2, y2),
            color=color, width=width * MM, stroke_opacity=opacity,
        )

    def polyline(self, points, *, color=(0, 0, 0), width=0.3, opacity=1.0):
        self.page.draw_polyline(
            [self._pt(x, y) for x, y in points],
            color=color, width=width * MM, stroke_opacity=opacity,
        )

    def rect(self, x, y, w, h, *, color=(0, 0, 0), fill=None, width=0.3, radius=0.0):
        box = fitz.Rect(x * MM, y * MM, (x + w) * MM, (y + h) * MM)
        kwargs = {}
        if radius:
            # PyMuPDF takes the corner radius relative to the shorter side
            kwargs["radius"] = min(0.5, radius / min(w, h))
        self.page.draw_rect(box, color=color, fill=fill, width=width * MM, **kwargs)

    def circle(self, cx, cy, r, *, color=None, fill=(0, 0, 0), width=0.0, opacity=1.0):
        self.page.draw_circle(
            self._pt(cx, cy), r * MM,
            color=color, fill=fill, width=width * MM,
            fill_opacity=opacity, stroke_opacity=opacity,
        )

    def image(self, data, x, y, w, h):
        box = fitz.Rect(x * MM, y * MM, (x + w) * MM, (y + h) * MM)
        self.page.insert_image(box, stream=data, keep_proportion=True)

    def set_metadata(self, metadata):
        self.doc.set_metadata(metadata)

    def to_bytes(self):
        return self.doc.tobytes(garbage=3, deflate=True)

    def close(self):
        if self.doc is not None:
            self.doc.close()
            self.doc = None


@dataclass
class Operation:
    name: str
    args: tuple
    kwargs: dict = field(default_factory=dict)


class RecordingSurface(Surface):
    """Records every drawing call instead of rendering it."""

    # Helvetica's average advance is close to half the font size
    CHAR_WIDTH_RATIO = 0.5

    def __init__(self, width=A4_LANDSCAPE[0], height=A4_LANDSCAPE[1]):
        self.width = width
        self.height = height
        self.operations = []
        self.metadata = {}
        self.pages = 1

    def _record(self, name, *args, **kwargs):
        self.operations.append(Operation(name, args, kwargs))

    def text_width(self, text, *, size=12, font="helvetica", bold=False):
        return len(text) * size * self.CHAR_WIDTH_RATIO / MM

    def text(self, x, y, text, **kwargs):
        self._record("text", x, y, text, **kwargs)

    def line(self, x1, y1, x2, y2, **kwargs):
        self._record("line", x1, y1, x2, y2, **kwargs)

    def polyline(self, points, **kwargs):
        self._record("polyline", tuple(points), **kwargs)

    def rect(self, x, y, w, h, **kwargs):
        self._record("rect", x, y, w, h, **kwargs)

    def circle(self, cx, cy, r, **kwargs):
        self._record("circle", cx, cy, r, **kwargs)

    def image(self, data, x, y, w, h):
        self._record("image", data, x, y, w, h)

    def new_page(self):
        self.pages += 1
        self._record("new_page")

    def set_metadata(self, metadata):
        self.metadata = dict(metadata)

    def to_bytes(self):
        return repr([(op.name, op.args, sorted(op.kwargs.items())) for op in self.operations]).encode()

    def named(self, name):
        return [op for op in self.operations if op.name == name]

    def texts(self):
        return [op.args[2] for op in self.named("text")]

