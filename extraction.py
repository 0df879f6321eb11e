"""
extraction.py — Materialize a page's existing text as editable elements, once
"""

from __future__ import annotations

import logging

from coords import length_to_display, to_display
from document import DocumentSource, TextRun
from errors import ExtractionFailed
from models import ElementStore, ExtractedText, family_from_font_name

logger = logging.getLogger(__name__)


class ExtractionCache:
    """Pulls text runs per page at most once.

    A page counts as extracted after the first attempt, including a failed
    one: the page then simply has no extracted elements and the user can
    still place new ones.
    """

    def __init__(self, source: DocumentSource, store: ElementStore, scale: float,
                 sample_background: bool = True):
        self._source = source
        self._store = store
        self._scale = scale
        self._sample_background = sample_background
        self._attempted: set[int] = set()

    def is_extracted(self, page: int) -> bool:
        return page in self._attempted or self._store.has_extracted(page)

    def ensure_extracted(self, page: int) -> list[ExtractedText]:
        """Returns the elements created by this call ([] when already done)."""
        if self.is_extracted(page):
            return []
        self._attempted.add(page)

        try:
            runs = self._source.text_runs(page)
        except ExtractionFailed as e:
            logger.warning(f"{e}; page {page} left without extracted text")
            return []

        height = self._source.page_height(page)
        created = []
        for index, run in enumerate(runs):
            if not run.text.strip():
                continue
            dx, dy = to_display((run.x, run.y), self._scale, height)
            element = ExtractedText(
                page=page,
                x=dx,
                y=dy,
                text=run.text,
                font_size=length_to_display(run.font_size, self._scale),
                color=run.color,
                weight="bold" if run.bold else "normal",
                font_family=family_from_font_name(run.font),
                origin_index=index,
            )
            element.measure()
            if run.bbox is not None:
                self._fit_to_ink(element, run)
            element.capture_original()
            self._store.add(element)
            created.append(element)

        logger.info(f"Extracted {len(created)} text runs from page {page}")
        return created

    def _fit_to_ink(self, element: ExtractedText, run: TextRun):
        """Grow the footprint to the run's ink box so the white-out also
        reaches ascenders and descenders."""
        x0, y0, x1, y1 = run.bbox
        element.height = max(element.height, length_to_display(y1 - run.y, self._scale))
        element.descent = max(element.descent, length_to_display(run.y - y0, self._scale))
        element.width = max(element.width, length_to_display(x1 - run.x, self._scale))
        if self._sample_background:
            element.background = self._source.sample_background(element.page, run.bbox)
