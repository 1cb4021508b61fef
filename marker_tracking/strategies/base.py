from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from ..config import Parameters
from ..mt_types import Mark, MarkType

Rect = Tuple[int, int, int, int]  # x, y, width, height


@dataclass(frozen=True)
class TrackerState:
    """Per (camera, marker) reference state, read-only once created."""

    mark_type: MarkType
    half_width: int
    half_height: int
    radius: float = 0.0
    size: tuple[float, float] = (0.0, 0.0)

    @property
    def template_size(self) -> tuple[int, int]:
        return 2 * self.half_width, 2 * self.half_height

    def make_mark(self, center) -> Mark:
        if self.mark_type == MarkType.CIRCLE:
            return Mark.circle(center, self.radius)
        return Mark.rectangle(center, self.size)


class TrackerStrategy(ABC):
    name = "base"

    def __init__(self, parameters: Optional[Parameters] = None):
        self.parameters = parameters or Parameters()

    @property
    def default_threshold(self) -> float:
        return 0.0

    @abstractmethod
    def init_tracker_data(self, image: np.ndarray, mark: Mark) -> Optional[TrackerState]: ...

    @abstractmethod
    def search(
        self,
        image: np.ndarray,
        state: TrackerState,
        roi: Optional[Rect] = None,
        mask: Optional[np.ndarray] = None,
        threshold: float = 0.0,
    ) -> Optional[Mark]: ...


def fits_image(image_shape, mark: Mark) -> bool:
    """True when the mark's full extent lies inside the image."""
    rows, cols = image_shape[:2]
    x, y = mark.center
    hx, hy = mark.half_extent
    if hx <= 0 or hy <= 0:
        return False
    return not (x < hx or x >= cols - hx or y < hy or y >= rows - hy)


def state_geometry(mark: Mark) -> tuple[int, int, int, int]:
    """Top-left corner and half sizes (x0, y0, hx, hy) of the patch under a mark."""
    hx, hy = mark.half_extent
    hx, hy = max(1, int(round(hx))), max(1, int(round(hy)))
    # Truncated like an integer rectangle, never left of or above the image
    x0 = max(0, int(mark.center[0] - hx))
    y0 = max(0, int(mark.center[1] - hy))
    return x0, y0, hx, hy


def crop_patch(image: np.ndarray, mark: Mark) -> Optional[tuple[np.ndarray, int, int]]:
    if not fits_image(image.shape, mark):
        return None
    x0, y0, hx, hy = state_geometry(mark)
    patch = image[y0:y0 + 2 * hy, x0:x0 + 2 * hx]
    if patch.shape[0] != 2 * hy or patch.shape[1] != 2 * hx:
        return None
    # Private copy, later changes to the source frame must not leak in
    return patch.copy(), hx, hy


def extend_region(image_shape, roi: Optional[Rect], half_width: int, half_height: int) -> Rect:
    """
    Grow the caller's ROI by the template half size on every side and clip it
    to the image. Without a ROI the whole image is used.
    """
    rows, cols = image_shape[:2]
    if roi is None:
        return 0, 0, cols, rows

    x, y, w, h = (int(v) for v in roi)
    x0 = max(0, x - half_width)
    y0 = max(0, y - half_height)
    x1 = min(cols, x + w + half_width)
    y1 = min(rows, y + h + half_height)
    return x0, y0, max(0, x1 - x0), max(0, y1 - y0)


def crop(image: np.ndarray, region: Rect) -> np.ndarray:
    x, y, w, h = region
    return image[y:y + h, x:x + w]


def align_mask(
    mask: np.ndarray,
    region: Rect,
    half_width: int,
    half_height: int,
    score_shape,
) -> np.ndarray:
    """
    Bring an image-space mask into score-map space.

    The mask is cropped with the same region as the image, then its top-left
    margin (the template half size) is cut off so that cell (i, j) of the
    result corresponds to score (i, j), i.e. to a template centred at
    region origin + (j + half_width, i + half_height).
    """
    rows, cols = score_shape[:2]
    cropped = crop(mask, region)
    shifted = cropped[half_height:half_height + rows, half_width:half_width + cols]
    if shifted.shape[:2] != (rows, cols):
        raise ValueError(
            f"Mask {mask.shape[:2]} does not cover search region {region}"
        )
    return np.ascontiguousarray((shifted > 0).astype(np.uint8))


def to_image_point(loc, region: Rect, half_width: int, half_height: int) -> tuple[float, float]:
    """Translate a score map location to absolute image coordinates of the mark center."""
    return (
        float(loc[0] + half_width + region[0]),
        float(loc[1] + half_height + region[1]),
    )
