"""
Tests for display ↔ native coordinate conversion.
"""

from __future__ import annotations

import pytest

from coords import (
    length_to_display, length_to_native, native_to_fitz_point, native_to_fitz_rect,
    rect_to_native, to_display, to_native,
)


class TestPointConversion:

    def test_invoice_anchor(self):
        assert to_display((72, 700), 1.5, 792) == pytest.approx((108, 138))
        assert to_native((108, 138), 1.5, 792) == pytest.approx((72, 700))

    @pytest.mark.parametrize("point", [(0, 0), (108.25, 138.5), (917.9, 1187.99), (-3.5, 12.0)])
    @pytest.mark.parametrize("scale", [0.5, 1.0, 1.5, 2.75])
    @pytest.mark.parametrize("height", [792, 841.89, 100])
    def test_round_trip(self, point, scale, height):
        back = to_display(to_native(point, scale, height), scale, height)
        assert back == pytest.approx(point, abs=1e-9)

    def test_y_flips(self):
        # Top of the display is the top of the page: native y == page height
        assert to_native((0, 0), 2.0, 500) == (0, 500)
        assert to_native((0, 1000), 2.0, 500) == (0, 0)

    @pytest.mark.parametrize("scale", [0, -1.5])
    def test_non_positive_scale_rejected(self, scale):
        with pytest.raises(ValueError):
            to_native((1, 1), scale, 792)
        with pytest.raises(ValueError):
            to_display((1, 1), scale, 792)

    def test_lengths(self):
        assert length_to_native(30, 1.5) == pytest.approx(20)
        assert length_to_display(20, 1.5) == pytest.approx(30)


class TestRectConversion:

    def test_bottom_left_anchored_box(self):
        # Display box: left 150, bottom 300, 75 x 30 at scale 1.5 on a 792 page
        x0, y0, x1, y1 = rect_to_native(150, 300, 75, 30, 1.5, 792)
        assert (x0, y0, x1, y1) == pytest.approx((100, 592, 150, 612))

    def test_native_to_fitz(self):
        r = native_to_fitz_rect((100, 592, 150, 612), 792)
        assert (r.x0, r.y0, r.x1, r.y1) == pytest.approx((100, 180, 150, 200))
        p = native_to_fitz_point((72, 700), 792)
        assert (p.x, p.y) == pytest.approx((72, 92))
