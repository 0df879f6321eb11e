"""
Tests for markup elements and the ElementStore.
"""

from __future__ import annotations

import pytest

from errors import EmptyContent, InvalidGeometry
from models import (
    ElementKind, ElementStore, ExtractedText, Highlight, Rectangle,
    SignaturePlacement, SignatureSource, Stroke, UserText, family_from_font_name,
    hex_to_rgb, int_to_hex, resolve_fitz_font,
)


def _extracted(page=1, x=108.0, y=138.0, index=0, text="Invoice"):
    e = ExtractedText(page=page, x=x, y=y, text=text, font_size=18.0, origin_index=index)
    e.measure()
    e.capture_original()
    return e


# ═══════════════════════════════════════════════════════════════════════════════
# ELEMENTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestColors:

    def test_hex_to_rgb(self):
        assert hex_to_rgb("#ff8000") == pytest.approx((1.0, 128 / 255, 0.0))
        assert hex_to_rgb("000") == (0.0, 0.0, 0.0)
        assert hex_to_rgb("#fff") == (1.0, 1.0, 1.0)

    def test_bad_hex_is_black(self):
        assert hex_to_rgb("#zzzzzz") == (0.0, 0.0, 0.0)

    def test_int_to_hex(self):
        assert int_to_hex(0xFF0000) == "#ff0000"
        assert int_to_hex(0) == "#000000"


class TestFonts:

    def test_resolve_weight(self):
        assert resolve_fitz_font("helv") == "helv"
        assert resolve_fitz_font("helv", "bold") == "hebo"
        assert resolve_fitz_font("tiro", "bold") == "tibo"
        assert resolve_fitz_font("unknown") == "helv"

    def test_cjk_text_uses_cjk_font(self):
        assert resolve_fitz_font("helv", "normal", "안녕") == "korea"

    def test_family_from_document_font(self):
        assert family_from_font_name("Helvetica-Bold") == "helv"
        assert family_from_font_name("TimesNewRomanPSMT") == "tiro"
        assert family_from_font_name("CourierNew") == "cour"


class TestExtractedText:

    def test_flags(self):
        e = _extracted()
        assert e.kind == ElementKind.EXTRACTED_TEXT
        assert e.extracted is True
        assert e.modified is False
        assert UserText(page=1, x=0, y=0, text="a").extracted is False

    def test_measure_uses_font_size(self):
        e = _extracted()
        assert e.height == 18.0
        assert e.width > 0

    def test_first_move_flips_modified_and_keeps_original(self):
        e = _extracted()
        e.move_by(20, 0)
        assert e.modified is True
        assert e.original_x == 108.0
        assert e.x == 128.0

    def test_original_position_frozen_after_many_moves(self):
        e = _extracted()
        width = e.width
        for dx, dy in [(5, 3), (-40, 12), (7.5, -100)]:
            e.move_by(dx, dy)
        assert (e.original_x, e.original_y) == (108.0, 138.0)
        assert e.original_width == width
        assert e.modified is True

    def test_original_captured_on_first_move_when_missing(self):
        e = ExtractedText(page=1, x=10.0, y=20.0, text="late", font_size=12.0)
        e.measure()
        assert e.original_x is None
        e.move_by(1, 1)
        assert (e.original_x, e.original_y) == (10.0, 20.0)

    def test_original_footprint_includes_descent(self):
        e = _extracted(text="jumpy")
        left, top, width, height = e.original_bounds()
        assert top == e.y - e.height
        assert height == e.height + e.descent
        assert e.original_descent == e.descent > 0

    def test_edit_keeps_original_dimensions(self):
        e = _extracted()
        original = e.original_bounds()
        assert e.apply_edit(font_size=36.0) is True
        assert e.height == 36.0
        assert e.original_bounds() == original

    def test_blank_edit_rejected_without_change(self):
        e = _extracted()
        with pytest.raises(EmptyContent):
            e.apply_edit(text="   ")
        assert e.text == "Invoice"
        assert e.modified is False

    def test_noop_edit_does_not_modify(self):
        e = _extracted()
        assert e.apply_edit(text="Invoice") is False
        assert e.modified is False

    def test_retype_remeasures(self):
        e = _extracted()
        old_width = e.width
        e.apply_edit(text="Invoice #2024-001")
        assert e.width > old_width
        assert e.modified is True


class TestStroke:

    def test_bounds_follow_points(self):
        s = Stroke(page=1, x=0, y=0)
        for p in [(10, 10), (30, 50), (20, 5)]:
            s.add_point(*p)
        assert (s.x, s.y, s.width, s.height) == (10, 50, 20, 45)

    def test_move_shifts_points(self):
        s = Stroke(page=1, x=0, y=0)
        s.add_point(0, 0)
        s.add_point(10, 10)
        s.move_by(5, -5)
        assert s.points == [(5, -5), (15, 5)]
        assert (s.x, s.y) == (5, 5)


# ═══════════════════════════════════════════════════════════════════════════════
# STORE
# ═══════════════════════════════════════════════════════════════════════════════


class TestElementStore:

    def test_add_and_order(self):
        store = ElementStore()
        a = store.add(Rectangle(page=1, x=10, y=50, width=40, height=40))
        b = store.add(Highlight(page=1, x=20, y=60, width=40, height=40))
        c = store.add(Rectangle(page=2, x=10, y=50, width=40, height=40))
        assert store.elements_for(1) == [a, b]
        assert store.elements_for(2) == [c]
        assert store.pages() == [1, 2]
        assert len(store) == 3

    def test_hit_test_prefers_latest(self):
        store = ElementStore()
        a = store.add(Rectangle(page=1, x=10, y=50, width=40, height=40))
        b = store.add(Rectangle(page=1, x=30, y=70, width=40, height=40))
        assert store.find_at(1, (35, 45)) is b
        assert store.find_at(1, (15, 20)) is a
        assert store.find_at(1, (200, 200)) is None
        assert store.find_at(2, (35, 45)) is None

    def test_hit_test_box_is_baseline_anchored(self):
        store = ElementStore()
        r = store.add(Rectangle(page=1, x=10, y=50, width=40, height=40))
        assert store.find_at(1, (10, 50)) is r      # bottom-left corner
        assert store.find_at(1, (50, 10)) is r      # top-right corner
        assert store.find_at(1, (30, 51)) is None   # just below the anchor

    def test_hit_test_reaches_descenders(self):
        store = ElementStore()
        note = UserText(page=1, x=10, y=100, text="gypsy", font_size=20)
        note.measure()
        store.add(note)
        assert note.descent > 0
        assert store.find_at(1, (15, 100 + note.descent - 0.5)) is note
        assert store.find_at(1, (15, 100 + note.descent + 0.5)) is None
        assert note.bounds()[3] == note.height + note.descent

    def test_deleted_is_retained(self):
        store = ElementStore()
        e = store.add(_extracted())
        store.mark_deleted(e.id)
        assert e.deleted
        assert store.elements_for(1) == []
        assert store.elements_for(1, include_deleted=True) == [e]
        assert store.find_at(1, (110, 135)) is None
        assert e.original_bounds()[0] == 108.0

    def test_mark_modified(self):
        store = ElementStore()
        e = store.add(_extracted())
        store.mark_modified(e.id)
        assert e.modified

    def test_duplicate_extraction_rejected(self):
        store = ElementStore()
        store.add(_extracted(index=0))
        store.add(_extracted(index=1, text="Total"))
        with pytest.raises(ValueError):
            store.add(_extracted(index=0))
        assert store.has_extracted(1)
        assert not store.has_extracted(2)

    @pytest.mark.parametrize("w, h", [(0, 10), (10, 0), (-5, 10)])
    def test_degenerate_boxes_rejected(self, w, h):
        store = ElementStore()
        with pytest.raises(InvalidGeometry):
            store.add(Rectangle(page=1, x=0, y=0, width=w, height=h))
        assert len(store) == 0

    def test_blank_text_rejected(self):
        store = ElementStore()
        with pytest.raises(EmptyContent):
            store.add(UserText(page=1, x=0, y=0, text=" "))

    def test_one_active_signature(self):
        store = ElementStore()
        first = store.add(SignaturePlacement(page=1, x=0, y=50, width=100, height=40,
                                             source=SignatureSource.TYPED, text="J. Doe"))
        second = store.add(SignaturePlacement(page=2, x=0, y=50, width=100, height=40,
                                              source=SignatureSource.TYPED, text="J. Doe"))
        assert first.deleted
        assert store.active_signature() is second

    def test_clear_page_keeps_extracted_text(self):
        store = ElementStore()
        text = store.add(_extracted())
        store.add(Rectangle(page=1, x=0, y=50, width=40, height=40))
        store.add(UserText(page=1, x=0, y=90, text="note"))
        assert store.clear_page(1) == 2
        assert store.elements_for(1) == [text]

    def test_changed_signal(self):
        store = ElementStore()
        pages = []
        store.elements_changed.connect(pages.append)
        e = store.add(Rectangle(page=3, x=0, y=50, width=40, height=40))
        store.mark_deleted(e.id)
        store.mark_deleted(e.id)
        assert pages == [3, 3]
