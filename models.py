"""
models.py — Markup elements (closed tagged variant) and the per-page ElementStore

All geometry is kept in display space. For every kind, (x, y) is the
bottom-left anchor of the element's box: the text baseline for text, the
bottom edge for boxes and signatures. `height` extends above the anchor and
`descent` below it (non-zero only for text that reaches under its baseline).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import ClassVar, Iterator, Optional
from uuid import uuid4

import fitz  # PyMuPDF
from PyQt6.QtCore import QObject, pyqtSignal

from errors import EmptyContent, InvalidGeometry


# ─────────────────────────────────────────────
# Colors & fonts
# ─────────────────────────────────────────────

def hex_to_rgb(color_hex: str) -> tuple[float, float, float]:
    """Returns RGB tuple 0.0–1.0 for PyMuPDF."""
    h = color_hex.lstrip("#")
    if len(h) == 3:
        h = "".join(c * 2 for c in h)
    try:
        r = int(h[0:2], 16) / 255.0
        g = int(h[2:4], 16) / 255.0
        b = int(h[4:6], 16) / 255.0
        return (r, g, b)
    except ValueError:
        return (0.0, 0.0, 0.0)


def int_to_hex(color_int: int) -> str:
    """sRGB integer as reported by PyMuPDF spans → '#rrggbb'."""
    return "#{:06x}".format(color_int & 0xFFFFFF)


# family → (regular, bold) base-14 names
_FITZ_FONTS = {
    "helv": ("helv", "hebo"),
    "tiro": ("tiro", "tibo"),
    "cour": ("cour", "cobo"),
}

_ITALIC_FONTS = {"tiit", "heit", "coit", "tibi", "hebi", "cobi"}


def family_from_font_name(font_name: str) -> str:
    """Best-effort family for a font name found in a document."""
    low = font_name.lower()
    if "cour" in low or "mono" in low:
        return "cour"
    if "times" in low or "tiro" in low or ("serif" in low and "sans" not in low):
        return "tiro"
    return "helv"


def resolve_fitz_font(family: str, weight: str = "normal", text: str = "") -> str:
    """PyMuPDF built-in font name for a family/weight. CJK text → 'korea'."""
    if any(ord(c) > 0x2E7F for c in text):
        return "korea"
    if family in _ITALIC_FONTS:
        return family
    regular, bold = _FITZ_FONTS.get(family, _FITZ_FONTS["helv"])
    return bold if weight == "bold" else regular


@lru_cache(maxsize=32)
def _font(fontname: str) -> fitz.Font:
    return fitz.Font(fontname)


def text_descent(fontname: str, fontsize: float) -> float:
    """Depth of the font below the baseline at fontsize."""
    return max(-_font(fontname).descender, 0.0) * fontsize


def measure_text(text: str, fontname: str, fontsize: float) -> float:
    """Advance width of text at fontsize, in the same unit as fontsize."""
    if not text:
        return 0.0
    width = _font(fontname).text_length(text, fontsize=fontsize)
    if width <= 0:
        width = len(text) * fontsize * 0.5
    return width


# ─────────────────────────────────────────────
# Element kinds
# ─────────────────────────────────────────────

class ElementKind(Enum):
    EXTRACTED_TEXT = "extracted_text"
    USER_TEXT = "user_text"
    RECTANGLE = "rectangle"
    HIGHLIGHT = "highlight"
    STROKE = "stroke"
    SIGNATURE = "signature"


class SignatureSource(Enum):
    RASTER = "raster"
    TYPED = "typed"


@dataclass
class MarkupElement:
    page: int
    x: float
    y: float
    width: float = 0.0
    height: float = 0.0
    descent: float = 0.0
    deleted: bool = False
    id: str = field(default_factory=lambda: str(uuid4()))

    kind: ClassVar[ElementKind]

    def contains(self, px: float, py: float) -> bool:
        return (self.x <= px <= self.x + self.width
                and self.y - self.height <= py <= self.y + self.descent)

    def bounds(self) -> tuple[float, float, float, float]:
        """(left, top, width, height) in display space, descent included."""
        return self.x, self.y - self.height, self.width, self.height + self.descent

    def _before_mutation(self):
        pass

    def mark_modified(self):
        self._before_mutation()

    def move_by(self, dx: float, dy: float):
        self._before_mutation()
        self.x += dx
        self.y += dy


@dataclass
class TextElement(MarkupElement):
    text: str = ""
    font_size: float = 14.0       # display px
    color: str = "#000000"
    weight: str = "normal"        # "normal" | "bold"
    font_family: str = "helv"

    extracted: ClassVar[bool] = False

    @property
    def fitz_font(self) -> str:
        return resolve_fitz_font(self.font_family, self.weight, self.text)

    def measure(self):
        self.width = measure_text(self.text, self.fitz_font, self.font_size)
        self.height = self.font_size
        self.descent = text_descent(self.fitz_font, self.font_size)

    def apply_edit(self, text: Optional[str] = None, x: Optional[float] = None,
                   y: Optional[float] = None, font_size: Optional[float] = None,
                   color: Optional[str] = None, weight: Optional[str] = None):
        """Property panel edit. Validates before touching the element."""
        if text is not None and not text.strip():
            raise EmptyContent("text cannot be blank")
        if font_size is not None and font_size <= 0:
            raise InvalidGeometry(f"font size must be positive, got {font_size}")
        changes = {
            "text": text, "x": x, "y": y, "font_size": font_size,
            "color": color, "weight": weight,
        }
        changes = {k: v for k, v in changes.items() if v is not None and getattr(self, k) != v}
        if not changes:
            return False
        self._before_mutation()
        for k, v in changes.items():
            setattr(self, k, v)
        self.measure()
        return True


@dataclass
class UserText(TextElement):
    kind: ClassVar[ElementKind] = ElementKind.USER_TEXT


@dataclass
class ExtractedText(TextElement):
    origin_index: int = 0
    original_x: Optional[float] = None
    original_y: Optional[float] = None
    original_width: Optional[float] = None
    original_height: Optional[float] = None
    original_descent: Optional[float] = None
    background: Optional[str] = None    # sampled page color under the run
    modified: bool = False

    kind: ClassVar[ElementKind] = ElementKind.EXTRACTED_TEXT
    extracted: ClassVar[bool] = True

    def capture_original(self):
        """Freeze the source footprint. Only the first call has any effect."""
        if self.original_x is not None:
            return
        self.original_x = self.x
        self.original_y = self.y
        self.original_width = self.width
        self.original_height = self.height
        self.original_descent = self.descent

    def _before_mutation(self):
        self.capture_original()
        self.modified = True

    def original_bounds(self) -> tuple[float, float, float, float]:
        """(left, top, width, height) of the source footprint, from the top of
        the run down to the bottom of its descenders."""
        if self.original_x is None:
            return self.bounds()
        return (self.original_x, self.original_y - self.original_height,
                self.original_width, self.original_height + self.original_descent)

    @property
    def needs_whiteout(self) -> bool:
        return self.modified or self.deleted


@dataclass
class Rectangle(MarkupElement):
    color: str = "#ff0000"
    line_width: float = 2.0
    fill: Optional[str] = None    # set for redaction boxes

    kind: ClassVar[ElementKind] = ElementKind.RECTANGLE


@dataclass
class Highlight(MarkupElement):
    color: str = "#ffff00"
    opacity: float = 0.35

    kind: ClassVar[ElementKind] = ElementKind.HIGHLIGHT


@dataclass
class Stroke(MarkupElement):
    points: list[tuple[float, float]] = field(default_factory=list)
    color: str = "#000000"
    line_width: float = 2.0

    kind: ClassVar[ElementKind] = ElementKind.STROKE

    def add_point(self, px: float, py: float):
        self.points.append((px, py))
        self.update_bounds()

    def update_bounds(self):
        if not self.points:
            return
        xs = [p[0] for p in self.points]
        ys = [p[1] for p in self.points]
        self.x = min(xs)
        self.y = max(ys)
        self.width = max(xs) - self.x
        self.height = self.y - min(ys)

    def move_by(self, dx: float, dy: float):
        self.points = [(px + dx, py + dy) for px, py in self.points]
        super().move_by(dx, dy)


@dataclass
class SignaturePlacement(MarkupElement):
    source: SignatureSource = SignatureSource.RASTER
    image: Optional[bytes] = None     # PNG snapshot for RASTER
    text: str = ""                    # typed signature
    font: str = "tiit"
    font_size: float = 28.0
    color: str = "#000000"

    kind: ClassVar[ElementKind] = ElementKind.SIGNATURE


_BOX_KINDS = (Rectangle, Highlight, SignaturePlacement)


def validate(element: MarkupElement):
    """Raise InvalidGeometry / EmptyContent for elements that cannot be kept."""
    if isinstance(element, TextElement):
        if not element.text.strip():
            raise EmptyContent("text element is blank")
    elif isinstance(element, SignaturePlacement):
        if element.source == SignatureSource.RASTER and not element.image:
            raise EmptyContent("raster signature has no image")
        if element.source == SignatureSource.TYPED and not element.text.strip():
            raise EmptyContent("typed signature is blank")
    elif isinstance(element, Stroke):
        if len(element.points) < 2 or (element.width <= 0 and element.height <= 0):
            raise InvalidGeometry("stroke has no extent")
        return
    if isinstance(element, _BOX_KINDS) and (element.width <= 0 or element.height <= 0):
        raise InvalidGeometry(
            f"{element.kind.value} needs positive size, got {element.width}x{element.height}"
        )


# ─────────────────────────────────────────────
# Element Store
# ─────────────────────────────────────────────

class ElementStore(QObject):
    """Ordered per-page markup elements. Elements are never removed; deletion
    is a flag so the commit can still erase their source footprint."""

    elements_changed = pyqtSignal(int)   # page

    def __init__(self, parent=None):
        super().__init__(parent)
        self._elements: list[MarkupElement] = []
        self._by_id: dict[str, MarkupElement] = {}
        self._extracted_keys: set[tuple[int, int]] = set()

    def __len__(self) -> int:
        return len(self._elements)

    def __iter__(self) -> Iterator[MarkupElement]:
        return iter(list(self._elements))

    def add(self, element: MarkupElement) -> MarkupElement:
        validate(element)
        if isinstance(element, ExtractedText):
            key = (element.page, element.origin_index)
            if key in self._extracted_keys:
                raise ValueError(f"page {element.page} run {element.origin_index} already extracted")
            self._extracted_keys.add(key)
        if isinstance(element, SignaturePlacement):
            previous = self.active_signature()
            if previous is not None:
                previous.deleted = True
                if previous.page != element.page:
                    self.elements_changed.emit(previous.page)
        self._elements.append(element)
        self._by_id[element.id] = element
        self.elements_changed.emit(element.page)
        return element

    def get(self, element_id: str) -> MarkupElement:
        return self._by_id[element_id]

    def notify(self, element: MarkupElement):
        """Announce an in-place mutation of element."""
        self.elements_changed.emit(element.page)

    def mark_modified(self, element_id: str) -> MarkupElement:
        element = self._by_id[element_id]
        element.mark_modified()
        self.elements_changed.emit(element.page)
        return element

    def mark_deleted(self, element_id: str) -> MarkupElement:
        element = self._by_id[element_id]
        if not element.deleted:
            element.deleted = True
            self.elements_changed.emit(element.page)
        return element

    def elements_for(self, page: int, include_deleted: bool = False) -> list[MarkupElement]:
        return [
            e for e in self._elements
            if e.page == page and (include_deleted or not e.deleted)
        ]

    def find_at(self, page: int, point: tuple[float, float]) -> Optional[MarkupElement]:
        """Topmost live element containing point (latest added wins)."""
        px, py = point
        for element in reversed(self._elements):
            if element.page != page or element.deleted:
                continue
            if element.contains(px, py):
                return element
        return None

    def pages(self) -> list[int]:
        return sorted({e.page for e in self._elements})

    def has_extracted(self, page: int) -> bool:
        return any(p == page for p, _ in self._extracted_keys)

    def active_signature(self) -> Optional[SignaturePlacement]:
        for element in reversed(self._elements):
            if isinstance(element, SignaturePlacement) and not element.deleted:
                return element
        return None

    def clear_page(self, page: int) -> int:
        """Soft-delete every user-authored element on page. Extracted text
        stays untouched. Returns the number of elements cleared."""
        count = 0
        for element in self._elements:
            if element.page == page and not element.deleted and not isinstance(element, ExtractedText):
                element.deleted = True
                count += 1
        if count:
            self.elements_changed.emit(page)
        return count
