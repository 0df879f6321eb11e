"""
Tests for the per-document session context.
"""

from __future__ import annotations

import pytest

from config import MarkupConfig
from errors import MarkupError
from session import MarkupSession, ToolMode


def test_open_rejects_garbage():
    with pytest.raises(MarkupError):
        MarkupSession.open(b"not a pdf")


def test_defaults(session):
    assert session.page_count == 1
    assert session.current_page == 1
    assert session.tool == ToolMode.SELECT
    assert session.scale == 1.5
    assert session.page_height(1) == 792
    assert session.selected is None


def test_text_style_from_config(invoice_pdf):
    s = MarkupSession.open(invoice_pdf, MarkupConfig(default_font_size=20.0, default_text_color="#ff0000"))
    try:
        assert s.text_style.font_size == 20.0
        assert s.text_style.color == "#ff0000"
    finally:
        s.close()


def test_page_navigation(make_pdf):
    s = MarkupSession.open(make_pdf(3))
    try:
        assert s.change_page(1) is True
        assert s.change_page(2) is False
        assert s.current_page == 2
        assert s.change_page(-1) is True
        assert s.change_page(-1) is False
        with pytest.raises(IndexError):
            s.set_page(4)
        s.set_page(3)
        assert s.current_page == 3
    finally:
        s.close()


def test_draws_box():
    assert ToolMode.PLACE_HIGHLIGHT.draws_box
    assert ToolMode.PLACE_REDACTION.draws_box
    assert not ToolMode.DRAW.draws_box
    assert not ToolMode.SELECT.draws_box


def test_sessions_are_independent(invoice_pdf):
    a = MarkupSession.open(invoice_pdf)
    b = MarkupSession.open(invoice_pdf)
    try:
        a.extraction.ensure_extracted(1)
        assert len(a.store) == 1
        assert len(b.store) == 0
    finally:
        a.close()
        b.close()
