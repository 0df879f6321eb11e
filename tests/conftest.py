"""
Shared fixtures: offscreen Qt application and generated PDFs.
"""

from __future__ import annotations

import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import fitz  # PyMuPDF
import pytest
from PyQt6.QtGui import QGuiApplication

from session import MarkupSession

PAGE_WIDTH = 612
PAGE_HEIGHT = 792


@pytest.fixture(scope="session", autouse=True)
def qapp():
    app = QGuiApplication.instance() or QGuiApplication([])
    yield app


@pytest.fixture
def make_pdf():
    """make_pdf(pages, runs) → bytes; runs are (page, native_x, native_y, text, size)."""

    def _make(pages: int = 1, runs=()) -> bytes:
        doc = fitz.open()
        for _ in range(pages):
            doc.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
        for page, x, y, text, size in runs:
            # insert_text takes PyMuPDF top-left coordinates
            doc[page - 1].insert_text((x, PAGE_HEIGHT - y), text, fontsize=size, fontname="helv")
        data = doc.tobytes()
        doc.close()
        return data

    return _make


@pytest.fixture
def invoice_pdf(make_pdf) -> bytes:
    return make_pdf(1, [(1, 72, 700, "Invoice", 12)])


@pytest.fixture
def session(invoice_pdf):
    s = MarkupSession.open(invoice_pdf)
    yield s
    s.close()
