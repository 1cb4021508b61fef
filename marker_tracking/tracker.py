from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import cv2
import numpy as np

from .config import Parameters
from .mt_types import CalibrationData, Frameset, Mark, Positset
from .strategies.base import TrackerState, TrackerStrategy

logger = logging.getLogger(__name__)

EPILINE_EPS = 1e-9


class TrackState(Enum):
    UNINITIALIZED = "uninitialized"
    SEARCHING = "searching"
    TRACKING = "tracking"


@dataclass
class _CameraTrack:
    state: TrackState = TrackState.UNINITIALIZED
    data: Optional[TrackerState] = None
    last_mark: Optional[Mark] = None


class Tracker:
    """
    Tracks one marker in every camera of a pipeline.

    Each camera keeps its own TrackerState, created from a seed mark and
    owned by this tracker only. Cameras that lost the marker search the whole
    image, restricted to the epipolar band of cameras that still see it when
    calibration data is available.
    """

    def __init__(self, arity: int, strategy: TrackerStrategy, parameters: Optional[Parameters] = None):
        self.arity = int(arity)
        self.strategy = strategy
        self.parameters = parameters or strategy.parameters
        self.threshold = strategy.default_threshold
        self._tracks = [_CameraTrack() for _ in range(self.arity)]
        self._calibration: Optional[CalibrationData] = None

    def state(self, cam: int) -> TrackState:
        return self._tracks[cam].state

    def set_mark(self, cam: int, image: np.ndarray, mark: Mark) -> bool:
        data = self.strategy.init_tracker_data(image, mark)
        if data is None:
            logger.info("camera %d: cannot initialize tracker from %s", cam, mark)
            return False
        self._tracks[cam] = _CameraTrack(TrackState.TRACKING, data, mark)
        logger.info("camera %d: tracker initialized at %s", cam, mark.center)
        return True

    def clear(self, cam: Optional[int] = None) -> None:
        cams = range(self.arity) if cam is None else [cam]
        for c in cams:
            self._tracks[c] = _CameraTrack()

    def set_calibration_data(self, data: Optional[CalibrationData]) -> None:
        self._calibration = data

    def _roi_around(self, mark: Mark) -> tuple[int, int, int, int]:
        hx, hy = mark.half_extent
        factor = self.parameters.search_factor
        rx, ry = int(round(hx * factor)), int(round(hy * factor))
        x, y = int(round(mark.center[0])), int(round(mark.center[1]))
        return x - rx, y - ry, 2 * rx + 1, 2 * ry + 1

    def _epipolar_mask(self, cam: int, shape, found: dict[int, Mark]) -> Optional[np.ndarray]:
        if self._calibration is None or not found:
            return None
        rows, cols = shape[:2]
        width = max(1, int(self.parameters.epiline_width))
        limit = 4 * (rows + cols)
        mask = None
        for other, mark in found.items():
            F = self._calibration.fundamental_matrix(other, cam)
            if F is None:
                continue
            x, y = mark.center
            # A mark on the epipole has no epipolar line
            raw = F @ np.array([x, y, 1.0])
            if max(abs(raw[0]), abs(raw[1])) <= EPILINE_EPS * np.abs(F).max() * max(1.0, abs(x), abs(y)):
                logger.debug("camera %d: no epipolar line from camera %d at %s", cam, other, mark.center)
                continue
            point = np.array([[mark.center]], dtype=np.float32)
            a, b, c = cv2.computeCorrespondEpilines(point, 1, F).reshape(3).astype(np.float64)
            if not np.all(np.isfinite((a, b, c))) or max(abs(a), abs(b)) < EPILINE_EPS:
                continue
            if abs(b) > abs(a):
                ends = ((0.0, -c / b), (cols - 1.0, -(c + a * (cols - 1)) / b))
            else:
                ends = ((-c / a, 0.0), (-(c + b * (rows - 1)) / a, rows - 1.0))
            if not np.all(np.isfinite(ends)):
                continue
            p0, p1 = (tuple(int(round(min(max(v, -limit), limit))) for v in end) for end in ends)
            band = np.zeros((rows, cols), dtype=np.uint8)
            cv2.line(band, p0, p1, 255, 2 * width + 1)
            mask = band if mask is None else cv2.bitwise_and(mask, band)
        return mask

    def track(self, frameset: Frameset) -> Positset:
        if frameset.arity != self.arity:
            raise ValueError(f"Frameset arity {frameset.arity} != tracker arity {self.arity}")

        marks: list[Optional[Mark]] = [None] * self.arity
        found: dict[int, Mark] = {}
        lost = []

        for cam, track in enumerate(self._tracks):
            if track.state == TrackState.TRACKING:
                image = frameset[cam].image
                roi = self._roi_around(track.last_mark)
                result = self.strategy.search(image, track.data, roi, None, self.threshold)
                if result is not None:
                    track.last_mark = result
                    marks[cam] = found[cam] = result
                    continue
                logger.debug("camera %d: lost marker, searching", cam)
                track.state = TrackState.SEARCHING
            if track.state == TrackState.SEARCHING:
                lost.append(cam)

        for cam in lost:
            track = self._tracks[cam]
            image = frameset[cam].image
            mask = self._epipolar_mask(cam, image.shape, found)
            result = self.strategy.search(image, track.data, None, mask, self.threshold)
            if result is not None:
                logger.debug("camera %d: marker found at %s", cam, result.center)
                track.state = TrackState.TRACKING
                track.last_mark = result
                marks[cam] = found[cam] = result

        return Positset(frameset.idx, marks)
