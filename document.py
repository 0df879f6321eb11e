"""
document.py — PyMuPDF adapters for the two document collaborators

DocumentSource is the read side (page count, rasterizing, positioned text runs),
MutableDocument the write side (draw rectangles, text and images, serialize).

Pages are 1-based. Every coordinate crossing these classes is in native
space (bottom-left origin, Y up); the Y flip into PyMuPDF's top-left page
coordinates happens here and nowhere else.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import fitz  # PyMuPDF
from PyQt6.QtGui import QImage

from coords import fitz_to_native_point, native_to_fitz_point, native_to_fitz_rect
from errors import ExtractionFailed, MarkupError, RenderFailed
from models import int_to_hex

logger = logging.getLogger(__name__)

_BOLD_FLAG = 1 << 4


def fitz_pixmap_to_qimage(pix: fitz.Pixmap) -> QImage:
    """Convert fitz.Pixmap to QImage."""
    fmt = QImage.Format.Format_RGB888 if pix.n == 3 else QImage.Format.Format_RGBA8888
    img = QImage(pix.samples, pix.width, pix.height, pix.stride, fmt)
    return img.copy()  # copy to detach from fitz memory


def rasterize_page(page: fitz.Page, scale: float) -> QImage:
    pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
    return fitz_pixmap_to_qimage(pix)


@dataclass
class TextRun:
    """One positioned text span. (x, y) is the baseline origin in native space."""
    text: str
    x: float
    y: float
    font_size: float          # native points
    color: str = "#000000"
    bold: bool = False
    font: str = ""
    # (x0, y0, x1, y1) ink box in native space, ascent and descent included
    bbox: Optional[tuple[float, float, float, float]] = None


# ─────────────────────────────────────────────
# Read side
# ─────────────────────────────────────────────

class DocumentSource:
    """Decoded, read-only view of a document."""

    def __init__(self, doc: fitz.Document, data: bytes):
        self._doc = doc
        self._data = data

    @classmethod
    def decode(cls, data: bytes) -> "DocumentSource":
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as e:
            raise MarkupError(f"cannot open document: {e}") from e
        return cls(doc, data)

    @property
    def data(self) -> bytes:
        return self._data

    @property
    def page_count(self) -> int:
        return self._doc.page_count

    def _page(self, page: int) -> fitz.Page:
        if not 1 <= page <= self._doc.page_count:
            raise IndexError(f"page {page} out of range 1..{self._doc.page_count}")
        return self._doc[page - 1]

    def page_height(self, page: int) -> float:
        return self._page(page).rect.height

    def page_width(self, page: int) -> float:
        return self._page(page).rect.width

    def rasterize(self, page: int, scale: float) -> QImage:
        try:
            return rasterize_page(self._page(page), scale)
        except IndexError:
            raise
        except Exception as e:
            raise RenderFailed(f"page {page}: {e}") from e

    def rasterize_png(self, page: int, scale: float) -> bytes:
        try:
            pix = self._page(page).get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
            return pix.tobytes("png")
        except IndexError:
            raise
        except Exception as e:
            raise RenderFailed(f"page {page}: {e}") from e

    def plain_text(self, page: int) -> str:
        return self._page(page).get_text("text")

    def sample_background(self, page: int, bbox: tuple[float, float, float, float]) -> Optional[str]:
        """Page color just above a native box, as '#rrggbb'. None when the
        strip falls outside the page or cannot be rendered."""
        try:
            fpage = self._page(page)
            r = native_to_fitz_rect(bbox, fpage.rect.height)
            cx = (r.x0 + r.x1) / 2
            # Thin strip above the ink so the glyphs themselves are not sampled
            sample_rect = fitz.Rect(cx - 1, r.y0 - 2, cx + 1, r.y0 - 0.5) & fpage.rect
            if sample_rect.is_empty:
                return None
            pix = fpage.get_pixmap(matrix=fitz.Matrix(1, 1), clip=sample_rect, alpha=False)
        except IndexError:
            raise
        except Exception as e:
            logger.debug(f"Background sample failed on page {page}: {e}")
            return None
        if pix.width <= 0 or pix.height <= 0 or pix.n < 3:
            return None
        s = pix.samples
        return "#{:02x}{:02x}{:02x}".format(s[0], s[1], s[2])

    def text_runs(self, page: int) -> list[TextRun]:
        """Positioned spans of a page, in reading order."""
        try:
            fpage = self._page(page)
            height = fpage.rect.height
            text_dict = fpage.get_text("dict")
        except IndexError:
            raise
        except Exception as e:
            raise ExtractionFailed(page, str(e)) from e

        runs = []
        for block in text_dict.get("blocks", []):
            if block.get("type") != 0:
                continue
            for line in block.get("lines", []):
                for span in line.get("spans", []):
                    nx, ny = fitz_to_native_point(span["origin"], height)
                    bbox = None
                    if "bbox" in span:
                        fx0, fy0, fx1, fy1 = span["bbox"]
                        bbox = (fx0, height - fy1, fx1, height - fy0)
                    runs.append(TextRun(
                        text=span.get("text", ""),
                        x=nx,
                        y=ny,
                        font_size=span.get("size", 12.0),
                        color=int_to_hex(span.get("color", 0)),
                        bold=bool(span.get("flags", 0) & _BOLD_FLAG),
                        font=span.get("font", ""),
                        bbox=bbox,
                    ))
        return runs

    def close(self):
        if self._doc:
            self._doc.close()
            self._doc = None


# ─────────────────────────────────────────────
# Write side
# ─────────────────────────────────────────────

class MutablePage:
    def __init__(self, page: fitz.Page):
        self._page = page

    @property
    def height(self) -> float:
        return self._page.rect.height

    def draw_rectangle(self, rect: tuple[float, float, float, float],
                       stroke: Optional[tuple[float, float, float]] = None,
                       fill: Optional[tuple[float, float, float]] = None,
                       width: float = 1.0, opacity: float = 1.0):
        self._page.draw_rect(
            native_to_fitz_rect(rect, self.height),
            color=stroke,
            fill=fill,
            width=width if stroke else 0,
            fill_opacity=opacity,
            stroke_opacity=opacity,
            overlay=True,
        )

    def draw_text(self, text: str, pos: tuple[float, float], fontname: str,
                  fontsize: float, color: tuple[float, float, float]):
        self._page.insert_text(
            native_to_fitz_point(pos, self.height),
            text,
            fontname=fontname,
            fontsize=fontsize,
            color=color,
            render_mode=0,
        )

    def draw_polyline(self, points: list[tuple[float, float]],
                      color: tuple[float, float, float], width: float):
        self._page.draw_polyline(
            [native_to_fitz_point(p, self.height) for p in points],
            color=color,
            width=width,
            lineCap=1,
            lineJoin=1,
            overlay=True,
        )

    def draw_image(self, image: bytes, rect: tuple[float, float, float, float]):
        self._page.insert_image(
            native_to_fitz_rect(rect, self.height),
            stream=image,
            keep_proportion=False,
        )


class MutableDocument:
    def __init__(self, doc: fitz.Document):
        self._doc = doc

    @classmethod
    def load(cls, data: bytes) -> "MutableDocument":
        return cls(fitz.open(stream=data, filetype="pdf"))

    @property
    def page_count(self) -> int:
        return self._doc.page_count

    def page(self, page: int) -> MutablePage:
        if not 1 <= page <= self._doc.page_count:
            raise IndexError(f"page {page} out of range 1..{self._doc.page_count}")
        return MutablePage(self._doc[page - 1])

    def serialize(self) -> bytes:
        # no_new_id keeps identical input → identical output
        return self._doc.tobytes(garbage=3, deflate=True, no_new_id=True)

    def close(self):
        if self._doc:
            self._doc.close()
            self._doc = None
