"""
renderer.py — Composite a rasterized page and its live markup into a frame

Rasterizing is delegated to PyMuPDF (optionally on a QThreadPool worker);
compositing is a full QPainter redraw of the page's element list each time.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Optional

import fitz  # PyMuPDF
from PyQt6.QtCore import QObject, QPointF, QRectF, QRunnable, QThreadPool, Qt, pyqtSignal
from PyQt6.QtGui import QColor, QFont, QImage, QPainter, QPen, QPolygonF

from document import rasterize_page
from models import (
    ExtractedText, Highlight, MarkupElement, Rectangle, SignaturePlacement,
    SignatureSource, Stroke, TextElement,
)

logger = logging.getLogger(__name__)

HANDLE_SIZE = 8.0   # corner handle size in display pixels

_QT_FAMILIES = {"helv": "Helvetica", "tiro": "Times", "cour": "Courier"}

# PyMuPDF style variants → (family, bold, italic)
_FITZ_STYLES = {
    "hebo": ("helv", True, False), "tibo": ("tiro", True, False), "cobo": ("cour", True, False),
    "heit": ("helv", False, True), "tiit": ("tiro", False, True), "coit": ("cour", False, True),
    "hebi": ("helv", True, True), "tibi": ("tiro", True, True), "cobi": ("cour", True, True),
}


def qt_font(family: str, weight: str, pixel_size: float) -> QFont:
    """Qt font matching a PyMuPDF family or built-in font name."""
    bold = weight == "bold"
    italic = False
    if family in _FITZ_STYLES:
        family, bold, italic = _FITZ_STYLES[family]
    font = QFont(_QT_FAMILIES.get(family, "Helvetica"))
    font.setPixelSize(max(int(round(pixel_size)), 1))
    font.setBold(bold)
    font.setItalic(italic)
    return font


# ─────────────────────────────────────────────
# Async rasterizing worker
# ─────────────────────────────────────────────

class WorkerSignals(QObject):
    finished = pyqtSignal(int, QImage)
    failed = pyqtSignal(int, str)


class RenderWorker(QRunnable):
    """Rasterizes one page on a worker-private document instance."""

    def __init__(self, doc_bytes: bytes, page: int, scale: float):
        super().__init__()
        self._doc_bytes = doc_bytes
        self.page = page
        self.scale = scale
        self.signals = WorkerSignals()

    def run(self):
        doc = None
        try:
            doc = fitz.open(stream=self._doc_bytes, filetype="pdf")
            img = rasterize_page(doc[self.page - 1], self.scale)
        except Exception as e:
            self.signals.failed.emit(self.page, str(e))
            return
        finally:
            if doc:
                doc.close()
        self.signals.finished.emit(self.page, img)


# ─────────────────────────────────────────────
# Render pipeline
# ─────────────────────────────────────────────

class RenderPipeline(QObject):
    frame_ready = pyqtSignal(int, QImage)
    render_failed = pyqtSignal(int, str)

    def __init__(self, session, thread_pool: Optional[QThreadPool] = None, parent=None):
        super().__init__(parent)
        self._session = session
        self._raster_cache: OrderedDict[int, QImage] = OrderedDict()
        self._pending: set[int] = set()
        self._thread_pool = thread_pool or QThreadPool.globalInstance()

        # Rubber band / stroke in progress, drawn on top of everything
        self._preview_page: int = -1
        self._preview_rect: Optional[tuple[float, float, float, float]] = None
        self._preview_points: list[tuple[float, float]] = []

    # ── Raster cache ──────────────────────────

    def is_rendering(self, page: int) -> bool:
        return page in self._pending

    def invalidate(self, page: Optional[int] = None):
        if page is None:
            self._raster_cache.clear()
        else:
            self._raster_cache.pop(page, None)

    def _cache_put(self, page: int, image: QImage):
        self._raster_cache[page] = image
        self._raster_cache.move_to_end(page)
        while len(self._raster_cache) > self._session.config.render_cache_size:
            self._raster_cache.popitem(last=False)

    def rasterize(self, page: int) -> QImage:
        if page in self._raster_cache:
            self._raster_cache.move_to_end(page)
            return self._raster_cache[page]
        image = self._session.source.rasterize(page, self._session.scale)
        self._cache_put(page, image)
        return image

    # ── Frames ────────────────────────────────

    def render(self, page: int) -> QImage:
        """Synchronous frame for page."""
        return self.compose(page, self.rasterize(page))

    def request_render(self, page: int):
        """Emit frame_ready for page, rasterizing in the background if needed."""
        if page in self._raster_cache:
            self._raster_cache.move_to_end(page)
            self.frame_ready.emit(page, self.compose(page, self._raster_cache[page]))
            return
        if page in self._pending:
            return
        self._pending.add(page)
        worker = RenderWorker(self._session.source.data, page, self._session.scale)
        worker.signals.finished.connect(self._on_raster_finished)
        worker.signals.failed.connect(self._on_raster_failed)
        self._thread_pool.start(worker)

    def _on_raster_finished(self, page: int, image: QImage):
        self._pending.discard(page)
        self._cache_put(page, image)
        self.frame_ready.emit(page, self.compose(page, image))

    def _on_raster_failed(self, page: int, message: str):
        self._pending.discard(page)
        logger.error(f"Rasterizing page {page} failed: {message}")
        self.render_failed.emit(page, message)

    # ── Preview ───────────────────────────────

    def set_preview(self, page: int, rect: Optional[tuple[float, float, float, float]] = None,
                    points: Optional[list[tuple[float, float]]] = None):
        self._preview_page = page
        self._preview_rect = rect
        self._preview_points = list(points or [])

    def clear_preview(self):
        self._preview_page = -1
        self._preview_rect = None
        self._preview_points = []

    # ── Compositing ───────────────────────────

    def compose(self, page: int, raster: QImage) -> QImage:
        frame = raster.convertToFormat(QImage.Format.Format_ARGB32_Premultiplied)
        painter = QPainter(frame)
        try:
            painter.setRenderHint(QPainter.RenderHint.Antialiasing)
            painter.setRenderHint(QPainter.RenderHint.TextAntialiasing)
            elements = self._session.store.elements_for(page, include_deleted=True)

            # All covers before any element
            self._draw_covers(painter, elements)
            for e in elements:
                if not e.deleted:
                    self._draw_element(painter, e)

            selected = self._session.selected
            if selected is not None and selected.page == page and not selected.deleted:
                self._draw_selection(painter, QRectF(*selected.bounds()))

            if self._preview_page == page:
                self._draw_preview(painter)
        finally:
            painter.end()
        return frame

    def _draw_covers(self, painter: QPainter, elements: list[MarkupElement]):
        default = self._session.config.whiteout_color
        m = self._session.config.whiteout_margin * self._session.scale
        for e in elements:
            if isinstance(e, ExtractedText) and e.needs_whiteout:
                left, top, w, h = e.original_bounds()
                painter.fillRect(QRectF(left - m, top - m, w + 2 * m, h + 2 * m),
                                 QColor(e.background or default))

    def _draw_element(self, painter: QPainter, e: MarkupElement):
        if isinstance(e, TextElement):
            painter.setFont(qt_font(e.font_family, e.weight, e.font_size))
            painter.setPen(QColor(e.color))
            painter.drawText(QPointF(e.x, e.y), e.text)
        elif isinstance(e, Rectangle):
            painter.setPen(QPen(QColor(e.color), e.line_width))
            if e.fill:
                painter.setBrush(QColor(e.fill))
            else:
                painter.setBrush(Qt.BrushStyle.NoBrush)
            painter.drawRect(QRectF(*e.bounds()))
        elif isinstance(e, Highlight):
            color = QColor(e.color)
            color.setAlphaF(e.opacity)
            painter.fillRect(QRectF(*e.bounds()), color)
        elif isinstance(e, Stroke):
            pen = QPen(QColor(e.color), e.line_width)
            pen.setCapStyle(Qt.PenCapStyle.RoundCap)
            pen.setJoinStyle(Qt.PenJoinStyle.RoundJoin)
            painter.setPen(pen)
            painter.setBrush(Qt.BrushStyle.NoBrush)
            painter.drawPolyline(QPolygonF([QPointF(x, y) for x, y in e.points]))
        elif isinstance(e, SignaturePlacement):
            if e.source == SignatureSource.RASTER:
                painter.drawImage(QRectF(*e.bounds()), QImage.fromData(e.image))
            else:
                painter.setFont(qt_font(e.font, "normal", e.font_size))
                painter.setPen(QColor(e.color))
                painter.drawText(QPointF(e.x, e.y), e.text)
        else:
            raise TypeError(f"unhandled element kind: {type(e).__name__}")

    def _draw_selection(self, painter: QPainter, sr: QRectF):
        # Dashed border
        pen = QPen(QColor("#2979FF"), 1.5, Qt.PenStyle.DashLine)
        painter.setPen(pen)
        painter.setBrush(Qt.BrushStyle.NoBrush)
        painter.drawRect(sr.adjusted(-2, -2, 2, 2))

        # Corner handles
        hs = HANDLE_SIZE
        corners = [
            QPointF(sr.left(), sr.top()),
            QPointF(sr.right(), sr.top()),
            QPointF(sr.right(), sr.bottom()),
            QPointF(sr.left(), sr.bottom()),
        ]
        painter.setPen(QPen(QColor("white"), 1.5))
        painter.setBrush(QColor("#2979FF"))
        for c in corners:
            painter.drawEllipse(c, hs / 2, hs / 2)

    def _draw_preview(self, painter: QPainter):
        if self._preview_rect is not None:
            painter.fillRect(QRectF(*self._preview_rect), QColor(0, 0, 0, 128))
        if len(self._preview_points) > 1:
            pen = QPen(QColor("#000000"), self._session.config.stroke_width)
            pen.setCapStyle(Qt.PenCapStyle.RoundCap)
            painter.setPen(pen)
            painter.setBrush(Qt.BrushStyle.NoBrush)
            painter.drawPolyline(QPolygonF([QPointF(x, y) for x, y in self._preview_points]))
