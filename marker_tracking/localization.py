from __future__ import annotations

import itertools
import logging
from typing import Optional

import cv2
import numpy as np

from .mt_types import CalibrationData, Location, Positset

logger = logging.getLogger(__name__)


class Localization:
    """Triangulates per-camera marks into a 3D location in camera 0 coordinates."""

    def __init__(self, arity: int):
        self.arity = int(arity)
        self._calibration: Optional[CalibrationData] = None
        self._projections: list[np.ndarray] = []

    @property
    def calibrated(self) -> bool:
        return self._calibration is not None

    def set_calibration_data(self, data: Optional[CalibrationData]) -> None:
        if data is not None and data.arity != self.arity:
            raise ValueError(f"Calibration arity {data.arity} != localization arity {self.arity}")
        if data is None or not data.is_complete():
            self._calibration = None
            self._projections = []
            return
        self._calibration = data
        self._projections = [data.projection_matrix(cam) for cam in range(self.arity)]

    def _normalized(self, cam: int, point) -> np.ndarray:
        p = self._calibration.cameras[cam]
        pts = np.array([[point]], dtype=np.float64)
        # Undistort back into pixel coordinates of the ideal camera
        und = cv2.undistortPoints(pts, p.camera_matrix, p.distortion, P=p.camera_matrix)
        return und.reshape(2, 1)

    def locate(self, positset: Positset) -> Optional[Location]:
        if self._calibration is None:
            return None
        found = positset.found()
        if len(found) < 2:
            return None

        estimates = []
        for a, b in itertools.combinations(found, 2):
            pa = self._normalized(a, positset[a].center)
            pb = self._normalized(b, positset[b].center)
            hom = cv2.triangulatePoints(self._projections[a], self._projections[b], pa, pb)
            w = hom[3, 0]
            if abs(w) < 1e-12:
                continue
            estimates.append(hom[:3, 0] / w)

        if not estimates:
            return None
        x, y, z = np.mean(estimates, axis=0)
        return Location(float(x), float(y), float(z))
