from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

import cv2
import numpy as np

from ..config import Parameters
from ..mt_types import Mark
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


METHODS = {
    "ccoeff_normed": cv2.TM_CCOEFF_NORMED,
    "sqdiff_normed": cv2.TM_SQDIFF_NORMED,
    "ccorr_normed": cv2.TM_CCORR_NORMED,
}


@dataclass(frozen=True)
class TemplateState(TrackerState):
    search_template: np.ndarray = field(default=None, repr=False, compare=False)


class TemplateStrategy(TrackerStrategy):
    """
    Strategy: normalized template correlation.

    The reference patch is cropped around the initial mark and slid over the
    (extended) search region with cv2.matchTemplate.
    """

    name = "template"

    def __init__(self, parameters: Optional[Parameters] = None, method: Optional[str] = None):
        super().__init__(parameters)
        key = (method or self.parameters.template_method).strip().lower()
        if key not in METHODS:
            raise ValueError(f"Unknown template method: {key}")
        self.method_name = key
        self.method = METHODS[key]

    @property
    def default_threshold(self) -> float:
        return self.parameters.template_threshold

    def init_tracker_data(self, image: np.ndarray, mark: Mark) -> Optional[TemplateState]:
        logger.debug("init template %s@%s", mark.half_extent, mark.center)
        cropped = crop_patch(image, mark)
        if cropped is None:
            logger.debug("mark %s too close to image border", mark.center)
            return None
        patch, hx, hy = cropped
        return TemplateState(
            mark_type=mark.type,
            half_width=hx,
            half_height=hy,
            radius=mark.radius,
            size=mark.size,
            search_template=patch,
        )

    def confidence(self, min_val: float, max_val: float) -> float:
        if self.method == cv2.TM_SQDIFF_NORMED:
            return 1.0 - min_val
        if self.method == cv2.TM_CCORR_NORMED:
            return max_val
        return max_val - min_val

    def search(
        self,
        image: np.ndarray,
        state: TemplateState,
        roi: Optional[Rect] = None,
        mask: Optional[np.ndarray] = None,
        threshold: float = 0.0,
    ) -> Optional[Mark]:
        tpl = state.search_template
        region = extend_region(image.shape, roi, state.half_width, state.half_height)

        if region[2] < tpl.shape[1] or region[3] < tpl.shape[0]:
            logger.debug("search region %s smaller than template %s", region, tpl.shape[:2])
            return None

        match_result = cv2.matchTemplate(crop(image, region), tpl, self.method)

        if mask is not None:
            shifted_mask = align_mask(
                mask, region, state.half_width, state.half_height, match_result.shape
            )
            if not shifted_mask.any():
                logger.debug("mask excludes the whole search region %s", region)
                return None
            min_val, max_val, min_loc, max_loc = cv2.minMaxLoc(match_result, shifted_mask)
            mean, std_dev = cv2.meanStdDev(match_result, mask=shifted_mask)
        else:
            min_val, max_val, min_loc, max_loc = cv2.minMaxLoc(match_result)
            mean, std_dev = cv2.meanStdDev(match_result)

        value = self.confidence(min_val, max_val)
        if value <= threshold:
            logger.debug("low value (%f/%f)", value, threshold)
            return None

        sigma = self.parameters.template_peak_sigma
        if sigma > 0:
            peak = (mean[0, 0] - min_val) if self.method == cv2.TM_SQDIFF_NORMED else (max_val - mean[0, 0])
            if std_dev[0, 0] <= 0 or peak / std_dev[0, 0] < sigma:
                logger.debug("ambiguous peak (%f sigma)", peak / max(std_dev[0, 0], 1e-12))
                return None

        loc = min_loc if self.method == cv2.TM_SQDIFF_NORMED else max_loc
        center = to_image_point(loc, region, state.half_width, state.half_height)
        logger.debug("matched (%f/%f) at %s", value, threshold, center)
        return state.make_mark(center)
