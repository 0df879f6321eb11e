"""
config.py — Markup engine settings (QSettings-backed) and logging setup
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Optional

from PyQt6.QtCore import QSettings

logger = logging.getLogger(__name__)

SETTINGS_ORG = "PDFMarkup"
SETTINGS_APP = "Settings"
SETTINGS_GROUP = "markup"


@dataclass
class MarkupConfig:
    raster_scale: float = 1.5          # fixed display scale for every markup tool
    min_box_size: float = 5.0          # display px, smaller drags are clicks
    whiteout_margin: float = 1.0       # native points around an erased footprint
    whiteout_color: str = "#ffffff"      # cover color when the page color is unknown
    sample_background: bool = True     # match covers to the page color under the text
    highlight_color: str = "#ffff00"
    highlight_opacity: float = 0.35
    rectangle_color: str = "#ff0000"
    redaction_color: str = "#000000"
    default_font_size: float = 14.0    # display px
    default_text_color: str = "#000000"
    default_font_family: str = "helv"
    signature_width: float = 150.0     # display px
    signature_font: str = "tiit"
    stroke_width: float = 2.0
    render_cache_size: int = 30

    @classmethod
    def load(cls, settings: Optional[QSettings] = None) -> "MarkupConfig":
        """Read overrides from QSettings, falling back to defaults."""
        if settings is None:
            settings = QSettings(SETTINGS_ORG, SETTINGS_APP)
        cfg = cls()
        settings.beginGroup(SETTINGS_GROUP)
        try:
            for f in fields(cls):
                default = getattr(cfg, f.name)
                if not settings.contains(f.name):
                    continue
                try:
                    value = settings.value(f.name, default, type=type(default))
                except (TypeError, ValueError) as e:
                    logger.warning(f"Ignoring bad setting {f.name!r}: {e}")
                    continue
                setattr(cfg, f.name, value)
        finally:
            settings.endGroup()
        if cfg.raster_scale <= 0:
            logger.warning(f"raster_scale {cfg.raster_scale} is not positive; using 1.5")
            cfg.raster_scale = 1.5
        return cfg

    def save(self, settings: Optional[QSettings] = None):
        if settings is None:
            settings = QSettings(SETTINGS_ORG, SETTINGS_APP)
        settings.beginGroup(SETTINGS_GROUP)
        for f in fields(self):
            settings.setValue(f.name, getattr(self, f.name))
        settings.endGroup()
        settings.sync()


def configure_logging(level: int = logging.INFO):
    """Basic logging for applications embedding the engine."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
