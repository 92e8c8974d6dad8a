from __future__ import annotations

import io

import numpy as np
import pytest
from PIL import Image

from forecastbot.charts import Canvas
from forecastbot.errors import RenderError

WHITE = (255, 255, 255)


def touched_rows(canvas: Canvas) -> set:
    return set(np.nonzero(canvas.pixels.sum(axis=(1, 2)))[0].tolist())


def touched_columns(canvas: Canvas) -> set:
    return set(np.nonzero(canvas.pixels.sum(axis=(0, 2)))[0].tolist())


def test_layers_only_move_forward() -> None:
    canvas = Canvas(10, 10)
    assert canvas.layer == "background"

    canvas.advance("gridlines")
    canvas.advance("curves")
    canvas.advance("curves")

    with pytest.raises(RenderError):
        canvas.advance("gridlines")
    with pytest.raises(ValueError):
        canvas.advance("sparkles")


def test_finalized_canvas_rejects_drawing() -> None:
    canvas = Canvas(10, 10)
    canvas.to_png()

    assert canvas.finalized
    with pytest.raises(RenderError):
        canvas.draw_line(0, 0, 5, 5, WHITE)
    with pytest.raises(RenderError):
        canvas.fill_rect(0, 0, 2, 2, WHITE)


def test_invalid_size() -> None:
    with pytest.raises(RenderError):
        Canvas(0, 10)


def test_steep_line_has_no_gaps() -> None:
    canvas = Canvas(20, 40)

    canvas.draw_line(5, 0, 8, 39, WHITE)

    assert touched_rows(canvas) == set(range(40))


def test_shallow_line_has_no_gaps() -> None:
    canvas = Canvas(20, 10)

    canvas.draw_line(0, 0, 19, 5, WHITE)

    assert touched_columns(canvas) == set(range(20))


def test_vertical_line_is_solid() -> None:
    canvas = Canvas(10, 12)

    canvas.draw_line(3, 2, 3, 10, WHITE)

    column = canvas.to_array()[2:11, 3]
    assert (column == 255).all()


def test_line_coverage_per_step_sums_to_one() -> None:
    canvas = Canvas(30, 30)

    canvas.draw_line(2.0, 3.0, 27.0, 11.5, (255, 0, 0))

    red = canvas.pixels[:, :, 0] / 255.0
    for x in range(3, 27):
        assert red[:, x].sum() == pytest.approx(1.0, abs=1e-5)


def test_drawing_outside_is_clipped() -> None:
    canvas = Canvas(20, 20)

    canvas.draw_line(-10, -10, 50, 50, WHITE)
    canvas.blend_pixel(100, 100, WHITE)
    canvas.fill_rect(-5, -5, 3, 3, WHITE)

    assert canvas.pixels.shape == (20, 20, 3)
    assert canvas.pixels[0, 0].tolist() == [255.0, 255.0, 255.0]


def test_untouched_pixels_keep_their_value() -> None:
    canvas = Canvas(20, 20, background=(10, 20, 30))

    canvas.draw_line(0, 0, 5, 0, WHITE)
    canvas.hline(3, 0, 4, WHITE, alpha=0.5)

    assert canvas.to_array()[15, 15].tolist() == [10, 20, 30]
    assert canvas.to_array()[3, 10].tolist() == [10, 20, 30]


def test_blend_pixel_composites() -> None:
    canvas = Canvas(2, 2, background=(0, 0, 0))

    canvas.blend_pixel(1, 1, (200, 100, 50), alpha=0.5)

    assert canvas.pixels[1, 1].tolist() == [100.0, 50.0, 25.0]


def test_draw_mask_is_clamped_inside() -> None:
    canvas = Canvas(20, 20)
    mask = np.ones((3, 4), dtype=np.float32)

    position = canvas.draw_mask(18, 18, mask, WHITE)

    assert position == (16, 17)
    assert (canvas.to_array()[17:20, 16:20] == 255).all()


def test_draw_mask_larger_than_canvas() -> None:
    canvas = Canvas(20, 20)

    with pytest.raises(RenderError):
        canvas.draw_mask(0, 0, np.ones((5, 30), dtype=np.float32), WHITE)


def test_to_png_decodes() -> None:
    canvas = Canvas(64, 32, background=(1, 2, 3))

    data = canvas.to_png()

    image = Image.open(io.BytesIO(data))
    assert image.format == "PNG"
    assert image.size == (64, 32)
    assert image.convert("RGB").getpixel((5, 5)) == (1, 2, 3)
