"""
errors.py — Error kinds raised by the markup overlay engine
"""

from __future__ import annotations


class MarkupError(Exception):
    """Base class for every markup engine failure."""


class ExtractionFailed(MarkupError):
    """The document could not produce text runs for a page."""

    def __init__(self, page: int, reason: str = ""):
        self.page = page
        msg = f"text extraction failed for page {page}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class InvalidGeometry(MarkupError):
    """A placed or edited element has zero or negative size."""


class EmptyContent(MarkupError):
    """A text or signature placement was cancelled or left blank."""


class CommitFailed(MarkupError):
    """The document could not be mutated or serialized."""


class RenderFailed(MarkupError):
    """A page could not be rasterized."""


class OCRFailed(MarkupError):
    """Text recognition failed for a page."""
