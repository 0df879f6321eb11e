"""
coords.py — Display space ↔ native document space conversion

Display space: raster pixels, origin top-left, Y down.
Native space:  PDF user space, origin bottom-left, Y up (unscaled points).
PyMuPDF exposes pages top-left / Y down in unscaled points, so the fitz
helpers at the bottom flip native coordinates once more.
"""

from __future__ import annotations

import fitz  # PyMuPDF


def _check_scale(scale: float):
    if scale <= 0:
        raise ValueError(f"scale must be positive, got {scale!r}")


def to_native(point: tuple[float, float], scale: float, page_height: float) -> tuple[float, float]:
    """Convert a display point to native space."""
    _check_scale(scale)
    dx, dy = point
    return dx / scale, page_height - dy / scale


def to_display(point: tuple[float, float], scale: float, page_height: float) -> tuple[float, float]:
    """Inverse of to_native."""
    _check_scale(scale)
    nx, ny = point
    return nx * scale, (page_height - ny) * scale


def length_to_native(length: float, scale: float) -> float:
    _check_scale(scale)
    return length / scale


def length_to_display(length: float, scale: float) -> float:
    _check_scale(scale)
    return length * scale


def rect_to_native(x: float, y: float, width: float, height: float,
                   scale: float, page_height: float) -> tuple[float, float, float, float]:
    """Convert a display box anchored at its bottom-left (x, y) to native
    (x0, y0, x1, y1) with y0 < y1."""
    nx0, ny0 = to_native((x, y), scale, page_height)
    return nx0, ny0, nx0 + width / scale, ny0 + height / scale


# ─────────────────────────────────────────────
# Native ↔ PyMuPDF page coordinates
# ─────────────────────────────────────────────

def native_to_fitz_point(point: tuple[float, float], page_height: float) -> fitz.Point:
    return fitz.Point(point[0], page_height - point[1])


def fitz_to_native_point(point, page_height: float) -> tuple[float, float]:
    return float(point[0]), page_height - float(point[1])


def native_to_fitz_rect(rect: tuple[float, float, float, float], page_height: float) -> fitz.Rect:
    x0, y0, x1, y1 = rect
    return fitz.Rect(x0, page_height - y1, x1, page_height - y0)
