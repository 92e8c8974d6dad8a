"""
Font loading and glyph rasterization for chart labels.

A FontResource is loaded once at startup and shared read-only by every
render call.
"""

import logging
from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Tuple

import numpy as np
from matplotlib import font_manager
from matplotlib.ft2font import FT2Font
from PIL import Image, ImageDraw, ImageFont

from ..errors import RenderError

logger = logging.getLogger(__name__)

DEFAULT_FONT_FAMILY = "DejaVu Sans"


@dataclass(frozen=True)
class FontResource:
    """A TrueType font at a fixed pixel size plus the set of characters it covers."""
    path: str
    size: int
    font: ImageFont.FreeTypeFont
    charmap: FrozenSet[int]

    @classmethod
    def load(cls, path: Optional[str] = None, size: int = 13) -> "FontResource":
        """
        Load a font file.

        Args:
            path: TrueType file; defaults to DejaVu Sans shipped with matplotlib
            size: Pixel size used for every label

        Raises:
            RenderError: If the font cannot be read
        """
        if path is None:
            path = font_manager.findfont(
                font_manager.FontProperties(family=DEFAULT_FONT_FAMILY),
                fallback_to_default=True,
            )
        try:
            font = ImageFont.truetype(path, size)
            charmap = frozenset(FT2Font(path).get_charmap())
        except (OSError, RuntimeError, ValueError) as e:
            raise RenderError(f"Could not load font {path}: {e}") from e
        logger.info(f"Loaded font {path} at {size}px ({len(charmap)} characters)")
        return cls(path=path, size=size, font=font, charmap=charmap)

    @property
    def name(self) -> str:
        family, style = self.font.getname()
        return f"{family} {style}".strip()

    @property
    def line_height(self) -> int:
        ascent, descent = self.font.getmetrics()
        return ascent + descent

    def missing_glyphs(self, text: str) -> List[str]:
        return [ch for ch in dict.fromkeys(text) if ord(ch) not in self.charmap]

    def check(self, text: str) -> None:
        """Raise RenderError if any character of text has no glyph."""
        missing = self.missing_glyphs(text)
        if missing:
            codes = ", ".join(f"{ch!r} (U+{ord(ch):04X})" for ch in missing)
            raise RenderError(f"Font {self.name} has no glyph for {codes}")

    def measure(self, text: str) -> Tuple[int, int]:
        """Width and height of the mask rasterize(text) would return."""
        if not text:
            return 0, self.line_height
        left, _, right, _ = self.font.getbbox(text)
        return max(right - left, 1), self.line_height

    def rasterize(self, text: str) -> np.ndarray:
        """
        Render text to an alpha mask of shape (line_height, width).

        All masks share the same height and baseline, so labels placed at the
        same row line up.

        Raises:
            RenderError: If the font lacks a glyph for any character
        """
        self.check(text)
        width, height = self.measure(text)
        if not text:
            return np.zeros((height, 0), dtype=np.float32)
        left = self.font.getbbox(text)[0]
        image = Image.new("L", (width, height), 0)
        ImageDraw.Draw(image).text((-left, 0), text, font=self.font, fill=255)
        return np.asarray(image, dtype=np.float32) / 255.0
