"""
commit.py — Replay the markup overlay onto a copy of the document

Per page, two ordered passes:
  1. white-out: opaque cover over the source footprint of every extracted
     text element that was modified or deleted
  2. draw: every live element at its current position
Erasing first keeps freshly drawn content from being covered when it lands
on top of an original footprint.
"""

from __future__ import annotations

import copy
import logging
from typing import Callable, Iterable, Optional

from PyQt6.QtCore import QThread, pyqtSignal

from config import MarkupConfig
from coords import length_to_native, rect_to_native, to_native
from document import MutableDocument, MutablePage
from errors import CommitFailed
from models import (
    ElementStore, ExtractedText, Highlight, MarkupElement, Rectangle,
    SignaturePlacement, SignatureSource, Stroke, TextElement, UserText,
    hex_to_rgb,
)

logger = logging.getLogger(__name__)


def _whiteout_pass(page: MutablePage, elements: list[MarkupElement],
                   scale: float, config: MarkupConfig):
    """Cover the source ink of every changed extracted run, in the page color
    sampled at extraction (or config.whiteout_color when none was found)."""
    m = config.whiteout_margin
    for e in elements:
        if not isinstance(e, ExtractedText) or not e.needs_whiteout:
            continue
        # Original dimensions even after a font size change.
        left, top, width, height = e.original_bounds()
        x0, y0, x1, y1 = rect_to_native(left, top + height, width, height, scale, page.height)
        fill = hex_to_rgb(e.background or config.whiteout_color)
        page.draw_rectangle((x0 - m, y0 - m, x1 + m, y1 + m), fill=fill)


def _draw_text(page: MutablePage, e: TextElement, scale: float):
    page.draw_text(
        e.text,
        to_native((e.x, e.y), scale, page.height),
        fontname=e.fitz_font,
        fontsize=length_to_native(e.font_size, scale),
        color=hex_to_rgb(e.color),
    )


def _draw_element(page: MutablePage, e: MarkupElement, scale: float):
    if isinstance(e, ExtractedText):
        # Untouched source text is already on the page.
        if e.modified:
            _draw_text(page, e, scale)
    elif isinstance(e, UserText):
        _draw_text(page, e, scale)
    elif isinstance(e, Rectangle):
        page.draw_rectangle(
            rect_to_native(e.x, e.y, e.width, e.height, scale, page.height),
            stroke=hex_to_rgb(e.color),
            fill=hex_to_rgb(e.fill) if e.fill else None,
            width=length_to_native(e.line_width, scale),
        )
    elif isinstance(e, Highlight):
        page.draw_rectangle(
            rect_to_native(e.x, e.y, e.width, e.height, scale, page.height),
            fill=hex_to_rgb(e.color),
            opacity=e.opacity,
        )
    elif isinstance(e, Stroke):
        page.draw_polyline(
            [to_native(p, scale, page.height) for p in e.points],
            color=hex_to_rgb(e.color),
            width=length_to_native(e.line_width, scale),
        )
    elif isinstance(e, SignaturePlacement):
        if e.source == SignatureSource.RASTER:
            page.draw_image(
                e.image,
                rect_to_native(e.x, e.y, e.width, e.height, scale, page.height),
            )
        else:
            page.draw_text(
                e.text,
                to_native((e.x, e.y), scale, page.height),
                fontname=e.font,
                fontsize=length_to_native(e.font_size, scale),
                color=hex_to_rgb(e.color),
            )
    else:
        raise TypeError(f"unhandled element kind: {type(e).__name__}")


def commit_elements(source: bytes, elements: Iterable[MarkupElement], scale: float,
                    config: Optional[MarkupConfig] = None,
                    loader: Callable[[bytes], MutableDocument] = MutableDocument.load) -> bytes:
    """Apply elements to a fresh copy of source and return the new bytes.

    Raises CommitFailed on any mutation or serialization error; nothing is
    returned in that case.
    """
    config = config or MarkupConfig()
    by_page: dict[int, list[MarkupElement]] = {}
    for e in elements:
        by_page.setdefault(e.page, []).append(e)

    logger.info(f"Committing {sum(map(len, by_page.values()))} elements on {len(by_page)} pages")
    doc = None
    try:
        doc = loader(source)
        for page_no in sorted(by_page):
            page = doc.page(page_no)
            page_elements = by_page[page_no]
            _whiteout_pass(page, page_elements, scale, config)
            for e in page_elements:
                if not e.deleted:
                    _draw_element(page, e, scale)
        data = doc.serialize()
    except Exception as e:
        logger.error(f"Commit failed: {e}")
        raise CommitFailed(str(e)) from e
    finally:
        if doc is not None:
            doc.close()

    logger.info(f"Commit produced {len(data)} bytes")
    return data


def commit(source: bytes, store: ElementStore, scale: float,
           config: Optional[MarkupConfig] = None,
           loader: Callable[[bytes], MutableDocument] = MutableDocument.load) -> bytes:
    return commit_elements(source, list(store), scale, config, loader)


# ─────────────────────────────────────────────
# Background commit
# ─────────────────────────────────────────────

class CommitWorker(QThread):
    """Runs a commit off the UI thread on a snapshot of the store."""

    committed = pyqtSignal(bytes)
    failed = pyqtSignal(str)

    STATUS_PENDING = "pending"
    STATUS_IN_PROGRESS = "in_progress"
    STATUS_DONE = "done"
    STATUS_FAILED = "failed"

    def __init__(self, source: bytes, store: ElementStore, scale: float,
                 config: Optional[MarkupConfig] = None, parent=None):
        super().__init__(parent)
        self._source = source
        self._elements = copy.deepcopy(list(store))
        self._scale = scale
        self._config = config
        self.status = self.STATUS_PENDING
        self.result: Optional[bytes] = None

    def run(self):
        self.status = self.STATUS_IN_PROGRESS
        try:
            data = commit_elements(self._source, self._elements, self._scale, self._config)
        except CommitFailed as e:
            self.status = self.STATUS_FAILED
            self.failed.emit(str(e))
            return
        self.result = data
        self.status = self.STATUS_DONE
        self.committed.emit(data)
