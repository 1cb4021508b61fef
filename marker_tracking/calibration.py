from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

import cv2
import numpy as np

from .config import Parameters
from .mt_types import CalibrationData, CameraParameters, Frameset

logger = logging.getLogger(__name__)


class ChessboardPattern:
    """Planar chessboard with rows x cols inner corners, squares of side `size`."""

    def __init__(self, rows: int, cols: int, size: float):
        self.rows = int(rows)
        self.cols = int(cols)
        self.size = float(size)

    @property
    def pattern_size(self) -> tuple[int, int]:
        return self.cols, self.rows

    def object_points(self) -> np.ndarray:
        grid = np.zeros((self.rows * self.cols, 3), np.float32)
        grid[:, :2] = np.mgrid[0:self.cols, 0:self.rows].T.reshape(-1, 2) * self.size
        return grid

    def match(self, image: np.ndarray) -> Optional[np.ndarray]:
        gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY) if image.ndim == 3 else image
        found, corners = cv2.findChessboardCorners(
            gray,
            self.pattern_size,
            cv2.CALIB_CB_ADAPTIVE_THRESH | cv2.CALIB_CB_NORMALIZE_IMAGE | cv2.CALIB_CB_FAST_CHECK,
        )
        if not found:
            return None
        criteria = (cv2.TERM_CRITERIA_EPS + cv2.TERM_CRITERIA_MAX_ITER, 30, 0.001)
        return cv2.cornerSubPix(gray, corners, (11, 11), (-1, -1), criteria)


class CalibrationPhase(Enum):
    INTRINSIC = "intrinsic"
    EXTRINSIC = "extrinsic"
    DONE = "done"


class CameraCalibration:
    """
    Incremental calibration of all cameras of a pipeline from chessboard views.

    First each camera's intrinsics are computed from its own views, then the
    pose of every camera relative to camera 0 from views seen by both.
    """

    def __init__(self, parameters: Parameters, arity: int, pattern: ChessboardPattern):
        self.parameters = parameters
        self.arity = int(arity)
        self.pattern = pattern
        self.frames_needed = max(1, int(parameters.calibration_frames))
        self.skip = max(0, int(parameters.calibration_skip))
        self.reset()

    def reset(self) -> None:
        self._data = CalibrationData(self.arity)
        self._image_size: list[Optional[tuple[int, int]]] = [None] * self.arity
        self._views: list[list[np.ndarray]] = [[] for _ in range(self.arity)]
        self._pair_views: dict[int, tuple[list, list]] = {
            cam: ([], []) for cam in range(1, self.arity)
        }
        self._since_last = self.skip
        self.phase = CalibrationPhase.INTRINSIC

    @property
    def done(self) -> bool:
        return self.phase == CalibrationPhase.DONE

    def data(self) -> CalibrationData:
        return self._data.copy()

    def measure_frameset(self, frameset: Frameset) -> bool:
        """Feed one frameset; returns True once the calibration is complete."""
        if self.done:
            return True
        if frameset.arity != self.arity:
            raise ValueError(f"Frameset arity {frameset.arity} != calibration arity {self.arity}")

        if self._since_last < self.skip:
            self._since_last += 1
            return False

        matches = [self.pattern.match(frame.image) for frame in frameset]
        if not any(m is not None for m in matches):
            return False
        self._since_last = 0

        if self.phase == CalibrationPhase.INTRINSIC:
            self._measure_intrinsics(frameset, matches)
        if self.phase == CalibrationPhase.EXTRINSIC:
            self._measure_extrinsics(matches)
        return self.done

    def _measure_intrinsics(self, frameset: Frameset, matches) -> None:
        for cam, corners in enumerate(matches):
            if corners is None or self._data.cameras[cam] is not None:
                continue
            rows, cols = frameset[cam].image.shape[:2]
            self._image_size[cam] = (cols, rows)
            self._views[cam].append(corners)
            if len(self._views[cam]) >= self.frames_needed:
                self._calibrate_camera(cam)

        if all(p is not None for p in self._data.cameras):
            self._data.set_position(0, np.eye(3), np.zeros((3, 1)))
            self.phase = CalibrationPhase.EXTRINSIC
            logger.info("intrinsic calibration of %d cameras complete", self.arity)

    def _calibrate_camera(self, cam: int) -> None:
        views = self._views[cam]
        objects = [self.pattern.object_points()] * len(views)
        rms, K, dist, _rvecs, _tvecs = cv2.calibrateCamera(
            objects, views, self._image_size[cam], None, None
        )
        self._data.set_camera(cam, CameraParameters(K, dist))
        logger.info("camera %d calibrated, reprojection error %.4f", cam, rms)

    def _measure_extrinsics(self, matches) -> None:
        reference = matches[0]
        for cam in range(1, self.arity):
            params = self._data.cameras[cam]
            if params.has_position or reference is None or matches[cam] is None:
                continue
            first, second = self._pair_views[cam]
            first.append(reference)
            second.append(matches[cam])
            if len(first) >= self.frames_needed:
                self._calibrate_pair(cam)

        if self._data.is_complete():
            self.phase = CalibrationPhase.DONE
            logger.info("calibration complete: %s", self._data)

    def _calibrate_pair(self, cam: int) -> None:
        first, second = self._pair_views[cam]
        ref, other = self._data.cameras[0], self._data.cameras[cam]
        objects = [self.pattern.object_points()] * len(first)
        rms, _K1, _d1, _K2, _d2, R, T, _E, _F = cv2.stereoCalibrate(
            objects,
            first,
            second,
            ref.camera_matrix,
            ref.distortion,
            other.camera_matrix,
            other.distortion,
            self._image_size[cam],
            flags=cv2.CALIB_FIX_INTRINSIC,
        )
        self._data.set_position(cam, R, T)
        logger.info("camera %d positioned relative to camera 0, error %.4f", cam, rms)
