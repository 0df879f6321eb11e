"""
ocr_manager.py — Page text recognition using EasyOCR
Runs OCR in a background QThread to avoid blocking the UI.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from PyQt6.QtCore import QThread, pyqtSignal

from document import DocumentSource
from errors import OCRFailed, RenderFailed

logger = logging.getLogger(__name__)

OCR_SCALE = 2.0


# ─────────────────────────────────────────────
# Language Enum
# ─────────────────────────────────────────────

class OCRLanguage(Enum):
    ENGLISH          = ("English",           ["en"])
    KOREAN_ENGLISH   = ("Korean + English",  ["ko", "en"])
    JAPANESE_ENGLISH = ("Japanese + English", ["ja", "en"])
    CHINESE_ENGLISH  = ("Chinese + English", ["ch_sim", "en"])
    FRENCH_ENGLISH   = ("French + English",  ["fr", "en"])
    GERMAN_ENGLISH   = ("German + English",  ["de", "en"])
    SPANISH_ENGLISH  = ("Spanish + English", ["es", "en"])

    def __init__(self, label: str, lang_codes: list[str]):
        self.label = label
        self.lang_codes = lang_codes

    def __str__(self):
        return self.label

    @classmethod
    def all_cases(cls) -> list["OCRLanguage"]:
        return list(cls)


def make_reader(language: OCRLanguage):
    # Lazy-import easyocr (slow to import)
    try:
        import easyocr
    except ImportError as e:
        raise OCRFailed("easyocr is not installed (pip install easyocr)") from e
    return easyocr.Reader(language.lang_codes, gpu=False, verbose=False)


def recognize_page(source: DocumentSource, page: int, language: OCRLanguage = OCRLanguage.ENGLISH,
                   reader=None) -> str:
    """Rasterize page and return the recognized text, one line per result."""
    try:
        png = source.rasterize_png(page, OCR_SCALE)
    except RenderFailed as e:
        raise OCRFailed(str(e)) from e
    if reader is None:
        reader = make_reader(language)
    try:
        # detail=1 returns [(bbox, text, conf), ...]
        results = reader.readtext(png, detail=1, paragraph=False)
    except Exception as e:
        raise OCRFailed(f"page {page}: {e}") from e
    texts = [text.strip() for _bbox, text, _conf in results if text.strip()]
    return "\n".join(texts)


def format_pages(pages: list[tuple[int, str]]) -> str:
    return "".join(f"\n--- Page {n} ---\n{text}\n" for n, text in pages).strip()


# ─────────────────────────────────────────────
# OCR Worker Thread
# ─────────────────────────────────────────────

class OCRWorker(QThread):
    """Runs EasyOCR in a background thread."""

    # Emits (current_page, total_pages)
    progress = pyqtSignal(int, int)
    # Emits (page, recognized_text)
    page_done = pyqtSignal(int, str)
    # Emits the combined text on completion
    finished_ocr = pyqtSignal(str)
    # Emits error message on failure
    error = pyqtSignal(str)

    def __init__(self, doc_bytes: bytes, language: OCRLanguage,
                 pages: Optional[list[int]] = None, reader=None, parent=None):
        super().__init__(parent)
        self._doc_bytes = doc_bytes
        self.language = language
        self._pages = pages
        self._reader = reader  # lazy-loaded
        self._cancelled = False
        self.text = ""

    def cancel(self):
        self._cancelled = True

    def run(self):
        try:
            self._run_ocr()
        except Exception as e:
            logger.error(f"OCR failed: {e}")
            self.error.emit(str(e))

    def _run_ocr(self):
        # Worker-private document instance to avoid threading conflicts
        source = DocumentSource.decode(self._doc_bytes)
        try:
            pages = self._pages or list(range(1, source.page_count + 1))
            done: list[tuple[int, str]] = []
            for i, page in enumerate(pages, start=1):
                if self._cancelled:
                    break
                self.progress.emit(i, len(pages))

                # Pages with a text layer need no recognition
                existing = source.plain_text(page).strip()
                if existing:
                    text = existing
                else:
                    if self._reader is None:
                        self._reader = make_reader(self.language)
                    text = recognize_page(source, page, self.language, self._reader)
                self.page_done.emit(page, text)
                done.append((page, text))
            self.text = format_pages(done)
            self.finished_ocr.emit(self.text)
        finally:
            source.close()


# ─────────────────────────────────────────────
# OCR Manager (thin wrapper around OCRWorker)
# ─────────────────────────────────────────────

class OCRManager:
    """
    High-level OCR manager.
    Usage:
        mgr = OCRManager()
        worker = mgr.start(doc_bytes, language)
        worker.progress.connect(...)
        worker.finished_ocr.connect(...)
    """

    def __init__(self):
        self._current_worker: Optional[OCRWorker] = None

    def start(self, doc_bytes: bytes, language: OCRLanguage,
              pages: Optional[list[int]] = None) -> OCRWorker:
        """Cancel any running OCR and start a new one. Returns the worker."""
        self.cancel()
        worker = OCRWorker(doc_bytes, language, pages)
        self._current_worker = worker
        worker.start()
        return worker

    def cancel(self):
        if self._current_worker and self._current_worker.isRunning():
            self._current_worker.cancel()
            self._current_worker.wait(2000)
