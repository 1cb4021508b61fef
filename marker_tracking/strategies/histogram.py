from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

import cv2
import numpy as np

from ..mt_types import Mark, MarkType
from .base import (
    Rect,
    TrackerState,
    TrackerStrategy,
    align_mask,
    crop,
    crop_patch,
    extend_region,
    to_image_point,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistogramState(TrackerState):
    histogram: np.ndarray = field(default=None, repr=False, compare=False)


class HistogramStrategy(TrackerStrategy):
    """Strategy: colour histogram backprojection summed over the mark extent."""

    name = "histogram"

    @property
    def default_threshold(self) -> float:
        return self.parameters.histogram_threshold

    def _channels(self, image: np.ndarray):
        p = self.parameters
        if image.ndim == 3:
            return cv2.cvtColor(image, cv2.COLOR_BGR2HSV), [0, 1], [p.histogram_h_bins, p.histogram_s_bins], [0, 180, 0, 256]
        return image, [0], [p.histogram_s_bins], [0, 256]

    def init_tracker_data(self, image: np.ndarray, mark: Mark) -> Optional[HistogramState]:
        cropped = crop_patch(image, mark)
        if cropped is None:
            return None
        patch, hx, hy = cropped

        patch_mask = np.zeros(patch.shape[:2], dtype=np.uint8)
        if mark.type == MarkType.CIRCLE:
            cv2.circle(patch_mask, (hx, hy), max(1, int(mark.radius)), 255, -1)
        else:
            patch_mask[:] = 255

        converted, channels, bins, ranges = self._channels(patch)
        hist = cv2.calcHist([converted], channels, patch_mask, bins, ranges)
        cv2.normalize(hist, hist, 0, 255, cv2.NORM_MINMAX)
        return HistogramState(
            mark_type=mark.type,
            half_width=hx,
            half_height=hy,
            radius=mark.radius,
            size=mark.size,
            histogram=hist,
        )

    def search(
        self,
        image: np.ndarray,
        state: HistogramState,
        roi: Optional[Rect] = None,
        mask: Optional[np.ndarray] = None,
        threshold: float = 0.0,
    ) -> Optional[Mark]:
        tw, th = state.template_size
        region = extend_region(image.shape, roi, state.half_width, state.half_height)
        if region[2] < tw or region[3] < th:
            return None

        converted, channels, _bins, ranges = self._channels(crop(image, region))
        back = cv2.calcBackProject([converted], channels, state.histogram, ranges, 1)

        # Window sums over the template extent, indexed by window top-left
        # corner; same layout as a matchTemplate score map.
        ii = cv2.integral(back, sdepth=cv2.CV_64F)
        sums = ii[th:, tw:] - ii[:-th, tw:] - ii[th:, :-tw] + ii[:-th, :-tw]
        score = (sums / (tw * th * 255.0)).astype(np.float32)

        if mask is not None:
            shifted_mask = align_mask(mask, region, state.half_width, state.half_height, score.shape)
            if not shifted_mask.any():
                return None
            _min_val, max_val, _min_loc, max_loc = cv2.minMaxLoc(score, shifted_mask)
        else:
            _min_val, max_val, _min_loc, max_loc = cv2.minMaxLoc(score)

        if max_val <= threshold:
            logger.debug("low value (%f/%f)", max_val, threshold)
            return None

        center = to_image_point(max_loc, region, state.half_width, state.half_height)
        return state.make_mark(center)
