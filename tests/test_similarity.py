from __future__ import annotations

import io
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from progressive_bench.errors import DimensionMismatch
from progressive_bench.metrics.similarity import decode_rgba, similarity


def _png(image: Image.Image) -> bytes:
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


def _solid(size: tuple[int, int], color: tuple[int, int, int]) -> bytes:
    return _png(Image.new("RGB", size, color))


def _columns(width: int, height: int, colors: list[tuple[int, int, int]]) -> bytes:
    arr = np.zeros((height, width, 3), dtype=np.uint8)
    for x, color in enumerate(colors):
        arr[:, x] = color
    return _png(Image.fromarray(arr, "RGB"))


def test_identical_frames_score_one() -> None:
    frame = _solid((32, 24), (200, 30, 90))
    assert similarity(frame, frame) == 1.0


def test_similarity_determinism(tmp_path: Path) -> None:
    a = tmp_path / "a.png"
    b = tmp_path / "b.png"
    Image.new("RGB", (16, 16), (255, 255, 255)).save(a)
    Image.new("RGB", (16, 16), (0, 0, 0)).save(b)
    assert similarity(a, b) == similarity(a, b)
    assert similarity(a, b) == 0.0


def test_dimension_mismatch_raises() -> None:
    with pytest.raises(DimensionMismatch) as excinfo:
        similarity(_solid((10, 10), (0, 0, 0)), _solid((10, 11), (0, 0, 0)))
    assert excinfo.value.size_a == (10, 10)
    assert excinfo.value.size_b == (10, 11)


def test_half_changed_frame_scores_half() -> None:
    arr = np.full((4, 4, 3), 255, dtype=np.uint8)
    arr[:, :2] = (255, 0, 0)
    half_red = _png(Image.fromarray(arr, "RGB"))
    white = _solid((4, 4), (255, 255, 255))
    assert similarity(half_red, white) == pytest.approx(0.5)


def test_small_colour_shift_is_within_threshold() -> None:
    assert similarity(_solid((8, 8), (255, 255, 255)), _solid((8, 8), (250, 250, 250))) == 1.0


def test_antialiased_edge_counts_as_match_unless_included() -> None:
    black, grey, white = (0, 0, 0), (128, 128, 128), (255, 255, 255)
    hard_edge = _columns(6, 6, [black, black, black, white, white, white])
    soft_edge = _columns(6, 6, [black, black, grey, white, white, white])

    assert similarity(hard_edge, soft_edge) == 1.0
    assert similarity(hard_edge, soft_edge, include_aa=True) == pytest.approx(1 - 6 / 36)


def test_transparency_is_blended_over_white() -> None:
    clear = _png(Image.new("RGBA", (4, 4), (0, 0, 0, 0)))
    white = _solid((4, 4), (255, 255, 255))
    assert similarity(clear, white) == 1.0


def test_decode_rgba_accepts_images_and_arrays() -> None:
    image = Image.new("RGB", (3, 2), (1, 2, 3))
    from_image = decode_rgba(image)
    from_array = decode_rgba(np.asarray(image))
    assert from_image.shape == (2, 3, 4)
    assert np.array_equal(from_image, from_array)
