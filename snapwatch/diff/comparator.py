"""Image comparator — perceptual per-pixel diff between a baseline and a current raster.

Both rasters are cropped to their common top-left area, alpha-blended onto
white and converted to YIQ. A pixel counts as different when its weighted
YIQ distance exceeds ``MAX_YIQ_DELTA * threshold**2`` (the pixelmatch metric).
Dimension drift itself is not reported; only the overlapping area is compared.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from snapwatch.models.raster import Raster

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.1
MAX_YIQ_DELTA = 35215.0

DIFF_COLOR = (255, 0, 0, 255)
BACKGROUND_ALPHA = 0.1


@dataclass(frozen=True)
class ComparisonResult:
    mismatch_percent: float
    diff_image: Raster
    diff_pixels: int
    width: int
    height: int

    @property
    def total_pixels(self) -> int:
        return self.width * self.height

    @property
    def comparable(self) -> bool:
        return self.total_pixels > 0


def crop_to(raster: Raster, width: int, height: int) -> np.ndarray:
    """Return the top-left ``width`` x ``height`` region as an (H, W, 4) array."""
    return raster.to_array()[:height, :width, :]


def _blend_on_white(rgba: np.ndarray) -> np.ndarray:
    rgb = rgba[..., :3].astype(np.float64)
    alpha = rgba[..., 3:4].astype(np.float64) / 255.0
    return 255.0 + (rgb - 255.0) * alpha


def _to_yiq(rgb: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    y = r * 0.29889531 + g * 0.58662247 + b * 0.11448223
    i = r * 0.59597799 - g * 0.27417610 - b * 0.32180189
    q = r * 0.21147017 - g * 0.52261711 + b * 0.31114694
    return y, i, q


def color_delta(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Squared perceptual distance between two (H, W, 4) RGBA arrays."""
    ya, ia, qa = _to_yiq(_blend_on_white(a))
    yb, ib, qb = _to_yiq(_blend_on_white(b))
    return 0.5053 * (ya - yb) ** 2 + 0.299 * (ia - ib) ** 2 + 0.1957 * (qa - qb) ** 2


def _render_diff(baseline: np.ndarray, mask: np.ndarray) -> np.ndarray:
    luma, _, _ = _to_yiq(_blend_on_white(baseline))
    faded = np.clip(255.0 + (luma - 255.0) * BACKGROUND_ALPHA, 0, 255).astype(np.uint8)

    out = np.empty(baseline.shape, dtype=np.uint8)
    out[..., 0] = faded
    out[..., 1] = faded
    out[..., 2] = faded
    out[..., 3] = 255
    out[mask] = DIFF_COLOR
    return out


def compare(baseline: Raster, current: Raster, threshold: float = DEFAULT_THRESHOLD) -> ComparisonResult:
    """Compare two rasters and return the mismatch percentage and a diff raster."""
    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"threshold must be within [0, 1], got {threshold}")

    width = min(baseline.width, current.width)
    height = min(baseline.height, current.height)
    if baseline.size != current.size:
        logger.debug("Cropping %dx%d and %dx%d to %dx%d for comparison",
                     baseline.width, baseline.height, current.width, current.height, width, height)

    if width == 0 or height == 0:
        return ComparisonResult(
            mismatch_percent=0.0,
            diff_image=Raster(width=width, height=height, data=b""),
            diff_pixels=0, width=width, height=height,
        )

    base_arr = crop_to(baseline, width, height)
    curr_arr = crop_to(current, width, height)

    mask = color_delta(base_arr, curr_arr) > MAX_YIQ_DELTA * threshold * threshold
    diff_pixels = int(np.count_nonzero(mask))
    mismatch_percent = diff_pixels * 100.0 / (width * height)

    logger.debug("Pixel diff: %d/%d pixels (%.4f%%)", diff_pixels, width * height, mismatch_percent)
    return ComparisonResult(
        mismatch_percent=mismatch_percent,
        diff_image=Raster.from_array(_render_diff(base_arr, mask)),
        diff_pixels=diff_pixels,
        width=width,
        height=height,
    )


def count_marked_pixels(diff_image: Raster) -> int:
    """Number of pixels rendered in the diff marker colour."""
    if diff_image.width == 0 or diff_image.height == 0:
        return 0
    return int(np.count_nonzero(np.all(diff_image.to_array() == DIFF_COLOR, axis=-1)))
