"""
interaction.py — Pointer-driven state machine for the markup tools

Toolkit independent: a view translates its mouse events into PointerEvent
(display coordinates of the page under the pointer) and feeds handle().
States: IDLE, DRAGGING (moving the selected element) and SKETCHING (rubber
band box or freehand stroke in progress). The tool mode lives on the
session and is orthogonal to the state.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from PyQt6.QtCore import QObject, pyqtSignal

from errors import EmptyContent, InvalidGeometry
from models import (
    Highlight, MarkupElement, Rectangle, SignaturePlacement, SignatureSource,
    Stroke, TextElement, UserText, measure_text, text_descent,
)
from session import MarkupSession, ToolMode
from signature import SignatureContent

logger = logging.getLogger(__name__)


class PointerKind(Enum):
    DOWN = "down"
    MOVE = "move"
    UP = "up"


@dataclass(frozen=True)
class PointerEvent:
    kind: PointerKind
    page: int
    x: float
    y: float
    modifiers: frozenset = frozenset()


class InteractionState(Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    SKETCHING = "sketching"


def _renders_color(element: MarkupElement) -> bool:
    """Kinds whose color shows up on the page. Raster signatures draw
    their image as is."""
    if isinstance(element, SignaturePlacement):
        return element.source == SignatureSource.TYPED
    return isinstance(element, (Rectangle, Highlight, Stroke))


class InteractionController(QObject):
    selection_changed = pyqtSignal(object)   # MarkupElement or None
    element_created = pyqtSignal(object)
    render_requested = pyqtSignal(int)       # page

    DRAG_THRESHOLD = 3.0  # display px a press must travel before it moves anything

    def __init__(self, session: MarkupSession, renderer=None,
                 prompt_text: Optional[Callable[[], Optional[str]]] = None,
                 prompt_signature: Optional[Callable[[], Optional[SignatureContent]]] = None,
                 parent=None):
        super().__init__(parent)
        self._session = session
        self._renderer = renderer
        self._prompt_text = prompt_text
        self._prompt_signature = prompt_signature

        self._state = InteractionState.IDLE

        # Dragging
        self._drag_element: Optional[MarkupElement] = None
        self._press_pos: tuple[float, float] = (0.0, 0.0)
        self._last_pos: tuple[float, float] = (0.0, 0.0)
        self._moved = False

        # Sketching
        self._sketch_page: int = -1
        self._sketch_start: tuple[float, float] = (0.0, 0.0)
        self._sketch_end: tuple[float, float] = (0.0, 0.0)
        self._sketch_stroke: Optional[Stroke] = None

    # ── State ─────────────────────────────────

    @property
    def state(self) -> InteractionState:
        return self._state

    @property
    def tool(self) -> ToolMode:
        return self._session.tool

    @property
    def selected(self) -> Optional[MarkupElement]:
        return self._session.selected

    def set_tool(self, mode: ToolMode):
        """Switching tools abandons any drag or sketch in progress."""
        if self._state != InteractionState.IDLE:
            logger.debug(f"Abandoning {self._state.value} on switch to {mode.value}")
            self._reset()
        self._session.tool = mode

    def show_page(self, page: int, extract: bool = True):
        """Make page current, materialize its text (once) and render it."""
        self._session.set_page(page)
        if extract:
            self._session.extraction.ensure_extracted(page)
        self._request_render(page)

    def select(self, element: Optional[MarkupElement]):
        new_id = element.id if element is not None else None
        if new_id == self._session.selected_id:
            return
        self._session.selected_id = new_id
        self.selection_changed.emit(element)

    # ── Event entry point ─────────────────────

    def handle(self, event: PointerEvent) -> bool:
        """Process one pointer event. Returns False when it was refused
        (render in flight for that page) or had no effect."""
        if event.kind == PointerKind.UP:
            return self._on_up(event)
        if event.kind == PointerKind.MOVE:
            return self._on_move(event)

        if self._render_busy(event.page):
            logger.debug(f"Page {event.page} render in flight; dropping {event.kind.value}")
            return False
        return self._on_down(event)

    def _active_page(self) -> Optional[int]:
        """Page being dragged on or sketched on, None when idle."""
        if self._state == InteractionState.DRAGGING:
            return self._drag_element.page
        if self._state == InteractionState.SKETCHING:
            return self._sketch_page
        return None

    def _render_busy(self, page: int) -> bool:
        return self._renderer is not None and self._renderer.is_rendering(page)

    def _request_render(self, page: int):
        if self._renderer is not None:
            self._renderer.request_render(page)
        self.render_requested.emit(page)

    def _reset(self):
        self._state = InteractionState.IDLE
        self._drag_element = None
        self._moved = False
        self._sketch_page = -1
        self._sketch_stroke = None
        if self._renderer is not None:
            self._renderer.clear_preview()

    # ── Pointer down ──────────────────────────

    def _on_down(self, event: PointerEvent) -> bool:
        if self._state != InteractionState.IDLE:
            # A down without the matching up (pointer left the view)
            self._reset()

        mode = self._session.tool
        if mode == ToolMode.SELECT:
            return self._begin_drag(event)
        if mode == ToolMode.DELETE:
            return self._delete_at(event)
        if mode == ToolMode.PLACE_TEXT:
            return self._place_text(event)
        if mode == ToolMode.PLACE_SIGNATURE:
            return self._place_signature(event)
        if mode.draws_box:
            self._state = InteractionState.SKETCHING
            self._sketch_page = event.page
            self._sketch_start = self._sketch_end = (event.x, event.y)
            return True
        if mode == ToolMode.DRAW:
            self._state = InteractionState.SKETCHING
            self._sketch_page = event.page
            cfg = self._session.config
            self._sketch_stroke = Stroke(page=event.page, x=event.x, y=event.y,
                                         line_width=cfg.stroke_width)
            self._sketch_stroke.add_point(event.x, event.y)
            return True
        raise ValueError(f"unknown tool mode {mode!r}")

    def _begin_drag(self, event: PointerEvent) -> bool:
        hit = self._session.store.find_at(event.page, (event.x, event.y))
        if hit is None:
            had_selection = self._session.selected_id is not None
            self.select(None)
            if had_selection:
                self._request_render(event.page)
            return False
        self.select(hit)
        self._state = InteractionState.DRAGGING
        self._drag_element = hit
        self._press_pos = self._last_pos = (event.x, event.y)
        self._moved = False
        self._request_render(event.page)
        return True

    def _delete_at(self, event: PointerEvent) -> bool:
        hit = self._session.store.find_at(event.page, (event.x, event.y))
        if hit is None:
            return False
        self._delete(hit)
        return True

    def _delete(self, element: MarkupElement):
        self._session.store.mark_deleted(element.id)
        if self._session.selected_id == element.id:
            self.select(None)
        self._request_render(element.page)

    def _place_text(self, event: PointerEvent) -> bool:
        text = self._prompt_text() if self._prompt_text else None
        if not text or not text.strip():
            logger.debug("Text placement cancelled")
            return False
        style = self._session.text_style
        element = UserText(
            page=event.page, x=event.x, y=event.y, text=text,
            font_size=style.font_size, color=style.color,
            weight=style.weight, font_family=style.font_family,
        )
        element.measure()
        return self._add(element)

    def _place_signature(self, event: PointerEvent) -> bool:
        try:
            content = self._prompt_signature() if self._prompt_signature else None
        except EmptyContent as e:
            logger.debug(f"Signature placement aborted: {e}")
            return False
        if content is None:
            logger.debug("Signature placement cancelled")
            return False
        element = self.build_signature(event.page, event.x, event.y, content)
        if element is None:
            return False
        return self._add(element)

    def build_signature(self, page: int, x: float, y: float,
                        content: SignatureContent) -> Optional[SignaturePlacement]:
        cfg = self._session.config
        if content.source == SignatureSource.RASTER:
            if not content.image or content.image_width <= 0 or content.image_height <= 0:
                logger.debug("Raster signature has no image")
                return None
            width = cfg.signature_width
            height = width * content.image_height / content.image_width
            return SignaturePlacement(page=page, x=x, y=y, width=width, height=height,
                                      source=SignatureSource.RASTER, image=content.image)
        if not content.text.strip():
            logger.debug("Typed signature is blank")
            return None
        font = content.font or cfg.signature_font
        font_size = cfg.default_font_size * 2
        return SignaturePlacement(
            page=page, x=x, y=y,
            width=measure_text(content.text, font, font_size),
            height=font_size, descent=text_descent(font, font_size),
            source=SignatureSource.TYPED, text=content.text,
            font=font, font_size=font_size,
        )

    def _add(self, element: MarkupElement) -> bool:
        try:
            self._session.store.add(element)
        except (InvalidGeometry, EmptyContent) as e:
            logger.debug(f"Rejected {element.kind.value}: {e}")
            return False
        self.element_created.emit(element)
        self._request_render(element.page)
        return True

    # ── Pointer move ──────────────────────────

    def _on_move(self, event: PointerEvent) -> bool:
        page = self._active_page()
        if page is None:
            return False
        # Coordinates from another page are in that page's display space
        if event.page != page:
            logger.debug(f"Move on page {event.page} ignored while {self._state.value} on page {page}")
            return False
        if self._render_busy(page):
            logger.debug(f"Page {page} render in flight; dropping move")
            return False
        if self._state == InteractionState.DRAGGING:
            return self._drag_to(event.x, event.y)
        if self._state == InteractionState.SKETCHING:
            return self._sketch_to(event.x, event.y)
        return False

    def _drag_to(self, x: float, y: float) -> bool:
        element = self._drag_element
        if not self._moved:
            px, py = self._press_pos
            if math.hypot(x - px, y - py) <= self.DRAG_THRESHOLD:
                return False
            self._moved = True
        lx, ly = self._last_pos
        dx, dy = x - lx, y - ly
        self._last_pos = (x, y)
        if dx == 0 and dy == 0:
            return False
        element.move_by(dx, dy)
        self._session.store.notify(element)
        self._request_render(element.page)
        return True

    def _sketch_to(self, x: float, y: float) -> bool:
        if self._sketch_stroke is not None:
            self._sketch_stroke.add_point(x, y)
            if self._renderer is not None:
                self._renderer.set_preview(self._sketch_page, points=self._sketch_stroke.points)
        else:
            self._sketch_end = (x, y)
            if self._renderer is not None:
                self._renderer.set_preview(self._sketch_page, rect=self._sketch_rect())
        self._request_render(self._sketch_page)
        return True

    def _sketch_rect(self) -> tuple[float, float, float, float]:
        """Normalized (left, top, width, height) of the rubber band."""
        (x0, y0), (x1, y1) = self._sketch_start, self._sketch_end
        return min(x0, x1), min(y0, y1), abs(x1 - x0), abs(y1 - y0)

    # ── Pointer up ────────────────────────────

    def _on_up(self, event: PointerEvent) -> bool:
        state = self._state
        if state == InteractionState.SKETCHING:
            page = self._sketch_page
            if self._render_busy(page):
                logger.debug(f"Page {page} render in flight; sketch abandoned")
                self._reset()
                return False
            # A release over another page ends the sketch at its last point
            on_page = event.page == page
            if self._sketch_stroke is not None:
                if on_page:
                    self._sketch_stroke.add_point(event.x, event.y)
                stroke = self._sketch_stroke
                self._reset()
                return self._finish_stroke(stroke)
            if on_page:
                self._sketch_end = (event.x, event.y)
            left, top, width, height = self._sketch_rect()
            self._reset()
            try:
                self.place_box(page, left, top + height, width, height)
            except InvalidGeometry as e:
                logger.debug(f"Box not kept: {e}")
                self._request_render(page)
                return False
            return True

        moved = self._moved
        self._reset()
        return state == InteractionState.DRAGGING and moved

    def _finish_stroke(self, stroke: Stroke) -> bool:
        if max(stroke.width, stroke.height) <= self._session.config.min_box_size:
            logger.debug("Stroke too short; not kept")
            self._request_render(stroke.page)
            return False
        stroke.color = self._session.text_style.color
        return self._add(stroke)

    def place_box(self, page: int, x: float, y: float, width: float, height: float,
                  mode: Optional[ToolMode] = None) -> MarkupElement:
        """Create a rectangle, redaction box or highlight anchored at its
        bottom-left (x, y). Raises InvalidGeometry when a side does not exceed
        the minimum box size."""
        mode = mode or self._session.tool
        cfg = self._session.config
        if width <= cfg.min_box_size or height <= cfg.min_box_size:
            raise InvalidGeometry(
                f"box {width:g}x{height:g} is below the {cfg.min_box_size:g}px minimum"
            )
        if mode == ToolMode.PLACE_HIGHLIGHT:
            element = Highlight(page=page, x=x, y=y, width=width, height=height,
                                color=cfg.highlight_color, opacity=cfg.highlight_opacity)
        elif mode == ToolMode.PLACE_REDACTION:
            element = Rectangle(page=page, x=x, y=y, width=width, height=height,
                                color=cfg.redaction_color, fill=cfg.redaction_color)
        elif mode == ToolMode.PLACE_RECTANGLE:
            element = Rectangle(page=page, x=x, y=y, width=width, height=height,
                                color=cfg.rectangle_color, line_width=cfg.stroke_width)
        else:
            raise ValueError(f"{mode.value} does not draw boxes")
        self._session.store.add(element)
        self.element_created.emit(element)
        self._request_render(page)
        return element

    # ── Property panel ────────────────────────

    def edit_selected(self, text: Optional[str] = None, x: Optional[float] = None,
                      y: Optional[float] = None, font_size: Optional[float] = None,
                      color: Optional[str] = None, weight: Optional[str] = None) -> bool:
        """Apply property edits to the selected element. Rejected edits leave
        it untouched and return False."""
        element = self._session.selected
        if element is None or element.deleted:
            return False
        try:
            if isinstance(element, TextElement):
                changed = element.apply_edit(text=text, x=x, y=y, font_size=font_size,
                                             color=color, weight=weight)
            else:
                changed = self._edit_shape(element, x, y, color)
        except (EmptyContent, InvalidGeometry) as e:
            logger.debug(f"Edit rejected: {e}")
            return False
        if changed:
            self._session.store.notify(element)
            self._request_render(element.page)
        return changed

    @staticmethod
    def _edit_shape(element: MarkupElement, x: Optional[float], y: Optional[float],
                    color: Optional[str]) -> bool:
        dx = (x - element.x) if x is not None else 0.0
        dy = (y - element.y) if y is not None else 0.0
        changed = False
        if dx or dy:
            element.move_by(dx, dy)
            changed = True
        if color is not None and _renders_color(element) and element.color != color:
            element.color = color
            if isinstance(element, Rectangle) and element.fill:
                element.fill = color
            changed = True
        return changed

    def delete_selected(self) -> bool:
        element = self._session.selected
        if element is None:
            return False
        self._delete(element)
        return True

    def clear_page(self, page: int) -> int:
        """Remove every user-placed element from page."""
        selected = self._session.selected
        count = self._session.store.clear_page(page)
        if selected is not None and selected.deleted:
            self.select(None)
        if count:
            self._request_render(page)
        return count
