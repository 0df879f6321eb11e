"""
session.py — Explicit per-document markup session context

Everything the markup tools used to share as "current file / page / tool"
lives on one MarkupSession, so several documents can be marked up side by
side.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from commit import commit as commit_document
from config import MarkupConfig
from document import DocumentSource
from extraction import ExtractionCache
from models import ElementStore, MarkupElement


class ToolMode(Enum):
    SELECT = "select"
    PLACE_TEXT = "place-text"
    PLACE_RECTANGLE = "place-rectangle"
    PLACE_REDACTION = "place-redaction"
    PLACE_HIGHLIGHT = "place-highlight"
    DRAW = "draw"
    DELETE = "delete"
    PLACE_SIGNATURE = "place-signature"

    @property
    def draws_box(self) -> bool:
        return self in (ToolMode.PLACE_RECTANGLE, ToolMode.PLACE_REDACTION,
                        ToolMode.PLACE_HIGHLIGHT)


@dataclass
class TextStyle:
    """Style applied to newly placed text."""
    font_family: str = "helv"
    font_size: float = 14.0      # display px
    color: str = "#000000"
    weight: str = "normal"


class MarkupSession:
    def __init__(self, source: DocumentSource, config: Optional[MarkupConfig] = None):
        self.source = source
        self.config = config or MarkupConfig()
        self.store = ElementStore()
        self.extraction = ExtractionCache(source, self.store, self.config.raster_scale,
                                          self.config.sample_background)
        self.current_page: int = 1
        self.tool: ToolMode = ToolMode.SELECT
        self.selected_id: Optional[str] = None
        self.text_style = TextStyle(
            font_family=self.config.default_font_family,
            font_size=self.config.default_font_size,
            color=self.config.default_text_color,
        )

    @classmethod
    def open(cls, data: bytes, config: Optional[MarkupConfig] = None) -> "MarkupSession":
        return cls(DocumentSource.decode(data), config)

    @property
    def scale(self) -> float:
        return self.config.raster_scale

    @property
    def page_count(self) -> int:
        return self.source.page_count

    def page_height(self, page: int) -> float:
        return self.source.page_height(page)

    @property
    def selected(self) -> Optional[MarkupElement]:
        if self.selected_id is None:
            return None
        return self.store.get(self.selected_id)

    def set_page(self, page: int):
        if not 1 <= page <= self.page_count:
            raise IndexError(f"page {page} out of range 1..{self.page_count}")
        self.current_page = page

    def change_page(self, delta: int) -> bool:
        """Step pages; out-of-range steps are ignored."""
        new_page = self.current_page + delta
        if new_page < 1 or new_page > self.page_count:
            return False
        self.current_page = new_page
        return True

    def commit(self) -> bytes:
        return commit_document(self.source.data, self.store, self.scale, self.config)

    def close(self):
        self.source.close()
