from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np

from ..mt_types import Mark, MarkType
from .base import Rect, TrackerState, TrackerStrategy, crop, crop_patch, extend_region

logger = logging.getLogger(__name__)

_MAX_COLOR_DISTANCE = float(np.sqrt(3) * 255.0)


@dataclass(frozen=True)
class CircleState(TrackerState):
    color: tuple[float, float, float] = (0.0, 0.0, 0.0)


def _to_gray(image: np.ndarray) -> np.ndarray:
    if image.ndim == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    return image


def _mean_color(image: np.ndarray, center, radius: int) -> tuple[float, float, float]:
    mask = np.zeros(image.shape[:2], dtype=np.uint8)
    cv2.circle(mask, (int(center[0]), int(center[1])), max(1, int(radius)), 255, -1)
    b, g, r = cv2.mean(image, mask=mask)[:3]
    if image.ndim == 2:
        g = r = b
    return float(b), float(g), float(r)


class CircleStrategy(TrackerStrategy):
    """
    Strategy: shape detection with the Hough circle transform.

    Candidates of roughly the initial radius are scored by how close their
    mean colour is to the colour of the initial mark.
    """

    name = "circle"

    @property
    def default_threshold(self) -> float:
        return self.parameters.circle_threshold

    def init_tracker_data(self, image: np.ndarray, mark: Mark) -> Optional[CircleState]:
        if mark.type != MarkType.CIRCLE:
            logger.info("circle tracking needs a circle mark, got %s", mark.type.value)
            return None
        cropped = crop_patch(image, mark)
        if cropped is None:
            return None
        patch, hx, hy = cropped
        color = _mean_color(patch, (hx, hy), mark.radius)
        return CircleState(
            mark_type=mark.type,
            half_width=hx,
            half_height=hy,
            radius=mark.radius,
            color=color,
        )

    def search(
        self,
        image: np.ndarray,
        state: CircleState,
        roi: Optional[Rect] = None,
        mask: Optional[np.ndarray] = None,
        threshold: float = 0.0,
    ) -> Optional[Mark]:
        p = self.parameters
        region = extend_region(image.shape, roi, state.half_width, state.half_height)
        tw, th = state.template_size
        if region[2] < tw or region[3] < th:
            return None

        area = crop(image, region)
        gray = _to_gray(area)
        blur = max(1, int(p.circle_blur)) | 1
        gray = cv2.GaussianBlur(gray, (blur, blur), 0)

        min_radius = max(1, int(state.radius * (1.0 - p.circle_radius_tolerance)))
        max_radius = int(np.ceil(state.radius * (1.0 + p.circle_radius_tolerance))) + 1
        circles = cv2.HoughCircles(
            gray,
            cv2.HOUGH_GRADIENT,
            dp=p.circle_dp,
            minDist=max(1.0, state.radius),
            param1=p.circle_param1,
            param2=p.circle_param2,
            minRadius=min_radius,
            maxRadius=max_radius,
        )
        if circles is None:
            logger.debug("no circle candidates in %s", region)
            return None

        best_score = None
        best = None
        for x, y, r in circles[0]:
            ax, ay = float(x) + region[0], float(y) + region[1]
            ix, iy = int(round(ax)), int(round(ay))
            if not (0 <= ix < image.shape[1] and 0 <= iy < image.shape[0]):
                continue
            if mask is not None and mask[iy, ix] == 0:
                continue
            color = _mean_color(area, (x, y), r)
            distance = float(np.linalg.norm(np.subtract(color, state.color)))
            score = 1.0 - distance / _MAX_COLOR_DISTANCE
            if best_score is None or score > best_score:
                best_score, best = score, (ax, ay, float(r))

        if best is None or best_score <= threshold:
            logger.debug("low value (%s/%f)", best_score, threshold)
            return None

        return Mark.circle((best[0], best[1]), best[2])
