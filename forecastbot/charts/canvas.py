"""
Pixel canvas for chart rendering.

The canvas is an RGB float buffer that only moves forward through its
layers (background, gridlines, curves, labels) and is frozen once encoded.
All drawing is alpha compositing, so pixels a stroke does not touch keep
their value exactly.
"""

import io
import logging
import math
from typing import Sequence, Tuple

import numpy as np
from PIL import Image

from ..errors import RenderError

logger = logging.getLogger(__name__)

Color = Tuple[int, int, int]

LAYERS = ("background", "gridlines", "curves", "labels", "finalized")


def _fpart(x: float) -> float:
    return x - math.floor(x)


def _rfpart(x: float) -> float:
    return 1.0 - _fpart(x)


def _round(x: float) -> int:
    return int(math.floor(x + 0.5))


class Canvas:
    """Mutable pixel buffer owned by a single render call."""

    def __init__(self, width: int, height: int, background: Color = (0, 0, 0)):
        if width <= 0 or height <= 0:
            raise RenderError(f"Invalid canvas size {width}x{height}")
        self.width = width
        self.height = height
        self.pixels = np.empty((height, width, 3), dtype=np.float32)
        self.pixels[:, :] = background
        self._layer = 0

    @property
    def layer(self) -> str:
        return LAYERS[self._layer]

    @property
    def finalized(self) -> bool:
        return self.layer == "finalized"

    def advance(self, layer: str) -> None:
        """Move to a later layer. Going back raises RenderError."""
        if layer not in LAYERS:
            raise ValueError(f"Unknown layer {layer!r}")
        index = LAYERS.index(layer)
        if index < self._layer:
            raise RenderError(f"Cannot draw {layer} after {self.layer}")
        self._layer = index

    def _check_writable(self) -> None:
        if self.finalized:
            raise RenderError("Canvas is finalized")

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    # =========================================================================
    # Primitives
    # =========================================================================

    def fill(self, color: Color) -> None:
        self._check_writable()
        self.pixels[:, :] = color

    def blend_pixel(self, x: int, y: int, color: Color, alpha: float = 1.0) -> None:
        """Composite one pixel. Out of bounds coordinates are ignored."""
        self._check_writable()
        if alpha <= 0.0 or not self.in_bounds(x, y):
            return
        alpha = min(alpha, 1.0)
        pixel = self.pixels[y, x]
        self.pixels[y, x] = pixel * (1.0 - alpha) + np.asarray(color, dtype=np.float32) * alpha

    def fill_rect(self, x0: int, y0: int, x1: int, y1: int, color: Color, alpha: float = 1.0) -> None:
        """Composite the half-open rectangle [x0, x1) x [y0, y1), clipped to the canvas."""
        self._check_writable()
        x0, x1 = sorted((x0, x1))
        y0, y1 = sorted((y0, y1))
        x0, y0 = max(x0, 0), max(y0, 0)
        x1, y1 = min(x1, self.width), min(y1, self.height)
        if x0 >= x1 or y0 >= y1 or alpha <= 0.0:
            return
        alpha = min(alpha, 1.0)
        region = self.pixels[y0:y1, x0:x1]
        region[:] = region * (1.0 - alpha) + np.asarray(color, dtype=np.float32) * alpha

    def hline(self, y: int, x0: int, x1: int, color: Color, alpha: float = 1.0) -> None:
        """Horizontal line from x0 to x1 inclusive."""
        self.fill_rect(min(x0, x1), y, max(x0, x1) + 1, y + 1, color, alpha)

    def vline(self, x: int, y0: int, y1: int, color: Color, alpha: float = 1.0) -> None:
        """Vertical line from y0 to y1 inclusive."""
        self.fill_rect(x, min(y0, y1), x + 1, max(y0, y1) + 1, color, alpha)

    def draw_line(self, x0: float, y0: float, x1: float, y1: float, color: Color) -> None:
        """
        Anti-aliased line (Xiaolin Wu).

        Every step along the major axis receives a total coverage of one,
        so steep and vertical segments stay connected.
        """
        self._check_writable()
        steep = abs(y1 - y0) > abs(x1 - x0)
        if steep:
            x0, y0, x1, y1 = y0, x0, y1, x1
        if x0 > x1:
            x0, x1, y0, y1 = x1, x0, y1, y0

        dx = x1 - x0
        gradient = (y1 - y0) / dx if dx else 0.0

        def plot(major: int, minor: int, coverage: float) -> None:
            if steep:
                self.blend_pixel(minor, major, color, coverage)
            else:
                self.blend_pixel(major, minor, color, coverage)

        for major in range(_round(x0), _round(x1) + 1):
            intersect = y0 + gradient * (major - x0)
            base = math.floor(intersect)
            plot(major, base, _rfpart(intersect))
            plot(major, base + 1, _fpart(intersect))

    def draw_polyline(self, points: Sequence[Tuple[float, float]], color: Color) -> None:
        """Connect consecutive points; a single point is drawn as a dot."""
        if len(points) == 1:
            x, y = points[0]
            self.blend_pixel(_round(x), _round(y), color)
            return
        for (x0, y0), (x1, y1) in zip(points, points[1:]):
            self.draw_line(x0, y0, x1, y1, color)

    def draw_mask(self, x: int, y: int, mask: np.ndarray, color: Color) -> Tuple[int, int]:
        """
        Composite an alpha mask (values 0..1) with its top-left corner at (x, y).

        The position is clamped so the mask lies inside the canvas.

        Returns:
            The position actually used

        Raises:
            RenderError: If the mask is larger than the canvas
        """
        self._check_writable()
        height, width = mask.shape
        if width > self.width or height > self.height:
            raise RenderError(
                f"Label of {width}x{height} does not fit a {self.width}x{self.height} canvas"
            )
        x = min(max(x, 0), self.width - width)
        y = min(max(y, 0), self.height - height)
        alpha = mask[:, :, None]
        region = self.pixels[y:y + height, x:x + width]
        region[:] = region * (1.0 - alpha) + np.asarray(color, dtype=np.float32) * alpha
        return x, y

    # =========================================================================
    # Output
    # =========================================================================

    def to_array(self) -> np.ndarray:
        """8-bit copy of the pixel buffer."""
        return np.clip(np.rint(self.pixels), 0, 255).astype(np.uint8)

    def to_png(self) -> bytes:
        """Finalize the canvas and encode it as PNG."""
        self.advance("finalized")
        buffer = io.BytesIO()
        Image.fromarray(self.to_array()).save(buffer, format="PNG", optimize=True)
        data = buffer.getvalue()
        logger.debug(f"Encoded {self.width}x{self.height} chart, {len(data)} bytes")
        return data
