"""
signature.py — Signature capture: freehand pad and typed signatures
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from PyQt6.QtCore import QBuffer, QIODevice, QPointF, Qt
from PyQt6.QtGui import QColor, QImage, QPainter, QPen

from errors import EmptyContent
from models import SignatureSource


@dataclass
class SignatureContent:
    """What a signature placement will carry once dropped on a page."""
    source: SignatureSource
    image: Optional[bytes] = None
    image_width: int = 0
    image_height: int = 0
    text: str = ""
    font: Optional[str] = None     # typed only; None uses the configured font

    @classmethod
    def raster(cls, png: bytes) -> "SignatureContent":
        img = QImage.fromData(png)
        if img.isNull():
            raise EmptyContent("signature image could not be decoded")
        return cls(SignatureSource.RASTER, image=png,
                   image_width=img.width(), image_height=img.height())

    @classmethod
    def typed(cls, text: str, font: Optional[str] = None) -> "SignatureContent":
        if not text.strip():
            raise EmptyContent("typed signature is blank")
        return cls(SignatureSource.TYPED, text=text.strip(), font=font)


class SignaturePad:
    """Offscreen drawing surface for a handwritten signature.

    Feed it pointer positions (pad coordinates); strokes are 2px, black,
    round-capped on a transparent background.
    """

    WIDTH = 400
    HEIGHT = 150

    def __init__(self, width: int = WIDTH, height: int = HEIGHT,
                 color: str = "#000000", line_width: float = 2.0):
        self._image = QImage(width, height, QImage.Format.Format_ARGB32_Premultiplied)
        self._pen = QPen(QColor(color), line_width)
        self._pen.setCapStyle(Qt.PenCapStyle.RoundCap)
        self._pen.setJoinStyle(Qt.PenJoinStyle.RoundJoin)
        self._last: Optional[QPointF] = None
        self._segments = 0
        self.clear()

    @property
    def is_empty(self) -> bool:
        return self._segments == 0

    @property
    def image(self) -> QImage:
        return self._image

    def clear(self):
        self._image.fill(Qt.GlobalColor.transparent)
        self._last = None
        self._segments = 0

    def begin(self, x: float, y: float):
        self._last = QPointF(x, y)

    def extend(self, x: float, y: float):
        if self._last is None:
            return
        p = QPointF(x, y)
        painter = QPainter(self._image)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)
        painter.setPen(self._pen)
        painter.drawLine(self._last, p)
        painter.end()
        if p != self._last:
            self._segments += 1
        self._last = p

    def end(self):
        self._last = None

    def to_png(self) -> bytes:
        buf = QBuffer()
        buf.open(QIODevice.OpenModeFlag.WriteOnly)
        self._image.save(buf, "PNG")
        data = bytes(buf.data())
        buf.close()
        return data

    def content(self) -> SignatureContent:
        if self.is_empty:
            raise EmptyContent("signature pad is empty")
        return SignatureContent(
            SignatureSource.RASTER,
            image=self.to_png(),
            image_width=self._image.width(),
            image_height=self._image.height(),
        )
