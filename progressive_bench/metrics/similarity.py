"""Pixel similarity between two captured frames.

Pixels are compared in YIQ space after blending any transparency over white,
with the same perceptual distance pixelmatch uses. A differing pixel that looks
like an anti-aliased edge in either image is treated as a match unless
`include_aa` is set.
"""

from __future__ import annotations

import io
from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image

from ..errors import DimensionMismatch

FrameSource = Union[bytes, bytearray, memoryview, Path, str, Image.Image, np.ndarray]

DEFAULT_THRESHOLD = 0.1
# Largest possible YIQ distance between two colours.
MAX_YIQ_DELTA = 35215.0

# Neighbour offsets as (dx, dy), x-major to match pixelmatch's scan order.
_OFFSETS: tuple[tuple[int, int], ...] = tuple(
    (dx, dy) for dx in (-1, 0, 1) for dy in (-1, 0, 1) if (dx, dy) != (0, 0)
)


def decode_rgba(source: FrameSource) -> np.ndarray:
    """Decode a frame into an (H, W, 4) uint8 array."""

    if isinstance(source, np.ndarray):
        arr = np.asarray(source)
        if arr.ndim != 3 or arr.shape[2] not in (3, 4):
            raise ValueError(f"Expected an (H, W, 3|4) array, got shape {arr.shape}")
        if arr.shape[2] == 3:
            alpha = np.full(arr.shape[:2] + (1,), 255, dtype=np.uint8)
            arr = np.concatenate([arr.astype(np.uint8), alpha], axis=2)
        return arr.astype(np.uint8, copy=False)
    if isinstance(source, Image.Image):
        return np.asarray(source.convert("RGBA"), dtype=np.uint8)
    if isinstance(source, (bytes, bytearray, memoryview)):
        with Image.open(io.BytesIO(bytes(source))) as img:
            return np.asarray(img.convert("RGBA"), dtype=np.uint8)
    with Image.open(Path(source)) as img:
        return np.asarray(img.convert("RGBA"), dtype=np.uint8)


def similarity(
    frame_a: FrameSource,
    frame_b: FrameSource,
    *,
    threshold: float = DEFAULT_THRESHOLD,
    include_aa: bool = False,
) -> float:
    """Return 1 - mismatched/total for two equally sized frames."""

    rgba_a = decode_rgba(frame_a)
    rgba_b = decode_rgba(frame_b)
    if rgba_a.shape != rgba_b.shape:
        raise DimensionMismatch(
            (rgba_a.shape[1], rgba_a.shape[0]),
            (rgba_b.shape[1], rgba_b.shape[0]),
        )
    height, width = rgba_a.shape[:2]
    total = width * height
    if total == 0:
        return 1.0
    mismatched = count_mismatched(rgba_a, rgba_b, threshold=threshold, include_aa=include_aa)
    return 1.0 - mismatched / float(total)


def count_mismatched(
    rgba_a: np.ndarray,
    rgba_b: np.ndarray,
    *,
    threshold: float = DEFAULT_THRESHOLD,
    include_aa: bool = False,
) -> int:
    if np.array_equal(rgba_a, rgba_b):
        return 0
    yiq_a = _to_yiq(rgba_a)
    yiq_b = _to_yiq(rgba_b)
    d = yiq_a - yiq_b
    delta = 0.5053 * d[..., 0] ** 2 + 0.299 * d[..., 1] ** 2 + 0.1957 * d[..., 2] ** 2
    different = delta > MAX_YIQ_DELTA * threshold * threshold
    if include_aa or not different.any():
        return int(different.sum())
    aa = _antialiased(rgba_a, yiq_a[..., 0], rgba_b) | _antialiased(rgba_b, yiq_b[..., 0], rgba_a)
    return int((different & ~aa).sum())


def _to_yiq(rgba: np.ndarray) -> np.ndarray:
    rgb = rgba[..., :3].astype(np.float64)
    alpha = rgba[..., 3:4].astype(np.float64) / 255.0
    blended = 255.0 + (rgb - 255.0) * alpha
    r, g, b = blended[..., 0], blended[..., 1], blended[..., 2]
    y = r * 0.29889531 + g * 0.58662247 + b * 0.11448223
    i = r * 0.59597799 - g * 0.27417610 - b * 0.32180189
    q = r * 0.21147017 - g * 0.52261711 + b * 0.31114694
    return np.stack([y, i, q], axis=-1)


def _shift(arr: np.ndarray, dx: int, dy: int) -> np.ndarray:
    """Value of the neighbour at (x+dx, y+dy) for every pixel (edges clamped)."""

    pad = [(1, 1), (1, 1)] + [(0, 0)] * (arr.ndim - 2)
    padded = np.pad(arr, pad, mode="edge")
    height, width = arr.shape[:2]
    return padded[1 + dy : 1 + dy + height, 1 + dx : 1 + dx + width]


def _neighbour_valid(height: int, width: int, dx: int, dy: int) -> np.ndarray:
    ys = np.arange(height)[:, None] + dy
    xs = np.arange(width)[None, :] + dx
    return (ys >= 0) & (ys < height) & (xs >= 0) & (xs < width)


def _border(height: int, width: int) -> np.ndarray:
    border = np.zeros((height, width), dtype=np.int32)
    border[0, :] = 1
    border[-1, :] = 1
    border[:, 0] = 1
    border[:, -1] = 1
    return border


def _many_siblings(rgba: np.ndarray) -> np.ndarray:
    """Pixels with more than two identical neighbours (image edges count as one)."""

    height, width = rgba.shape[:2]
    count = _border(height, width)
    for dx, dy in _OFFSETS:
        same = np.all(_shift(rgba, dx, dy) == rgba, axis=-1)
        count = count + (same & _neighbour_valid(height, width, dx, dy))
    return count > 2


def _antialiased(rgba: np.ndarray, luma: np.ndarray, other: np.ndarray) -> np.ndarray:
    """Vectorized pixelmatch anti-aliasing test for every pixel of `rgba`.

    A pixel is anti-aliased when it has at most two equal-brightness
    neighbours, has both a darker and a brighter neighbour, and the darkest or
    brightest neighbour sits in a flat region of both images.
    """

    height, width = luma.shape
    zeroes = _border(height, width)
    min_delta = np.zeros((height, width))
    max_delta = np.zeros((height, width))
    min_idx = np.zeros((height, width), dtype=np.intp)
    max_idx = np.zeros((height, width), dtype=np.intp)
    for k, (dx, dy) in enumerate(_OFFSETS):
        valid = _neighbour_valid(height, width, dx, dy)
        delta = np.where(valid, luma - _shift(luma, dx, dy), 0.0)
        zeroes = zeroes + ((delta == 0) & valid)
        lower = valid & (delta < min_delta)
        higher = valid & (delta > max_delta)
        min_delta = np.where(lower, delta, min_delta)
        min_idx = np.where(lower, k, min_idx)
        max_delta = np.where(higher, delta, max_delta)
        max_idx = np.where(higher, k, max_idx)

    candidate = (zeroes <= 2) & (min_delta != 0) & (max_delta != 0)
    if not candidate.any():
        return candidate

    flat_self = _many_siblings(rgba)
    flat_other = _many_siblings(other)
    flat_both = flat_self & flat_other
    # flat_both evaluated at each of the 8 neighbour positions.
    neighbour_flat = np.stack([_shift(flat_both, dx, dy) for dx, dy in _OFFSETS])
    at_min = np.take_along_axis(neighbour_flat, min_idx[None, ...], axis=0)[0]
    at_max = np.take_along_axis(neighbour_flat, max_idx[None, ...], axis=0)[0]
    return candidate & (at_min | at_max)
