from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from .aggregator import FrameAggregator
from .calibration import CameraCalibration
from .config import Parameters
from .events import Signal, ThreadAffine
from .localization import Localization
from .mt_types import CalibrationData, Frameset, Mark
from .tracker import Tracker

logger = logging.getLogger(__name__)


class ControllerMode(Enum):
    IDLE = "idle"
    TRACKING = "tracking"
    CALIBRATION = "calibration"


class Controller(ThreadAffine):
    """
    Drives the per-frame cycle of one pipeline:
    aggregate -> track (or calibrate) -> localize -> emit.

    The frame loop runs as a chain of posted steps on the controller's own
    worker, so events posted to the controller (marks, calibration data)
    are handled between two frames.
    """

    def __init__(
        self,
        parameters: Parameters,
        aggregator: FrameAggregator,
        calibration: CameraCalibration,
        tracker: Tracker,
        localization: Localization,
    ):
        super().__init__()
        arities = {aggregator.arity, calibration.arity, tracker.arity, localization.arity}
        if len(arities) != 1:
            raise ValueError(f"Pipeline components disagree on arity: {sorted(arities)}")

        self.parameters = parameters
        self.aggregator = aggregator
        self.calibration = calibration
        self.tracker = tracker
        self.localization = localization
        self._arity = aggregator.arity

        self.frameset_ready = Signal("frameset_ready")
        self.positset_ready = Signal("positset_ready")
        self.location_ready = Signal("location_ready")
        self.calibration_data_ready = Signal("calibration_data_ready")
        self.finished = Signal("finished")

        self._mode = ControllerMode.IDLE
        self._running = False
        self._calibration_only = False
        self._last_frameset: Optional[Frameset] = None
        self._calibration_data: Optional[CalibrationData] = None
        self._failures = 0
        self.frames = 0
        self.errors = 0

    @property
    def arity(self) -> int:
        return self._arity

    @property
    def mode(self) -> ControllerMode:
        return self._mode

    @property
    def running(self) -> bool:
        return self._running

    @property
    def calibration_data(self) -> Optional[CalibrationData]:
        return self._calibration_data

    def start(self, calibration_only: bool = False) -> None:
        if not self.is_active:
            return
        if self._running:
            logger.warning("controller already running")
            return

        self.aggregator.start()
        self._calibration_only = calibration_only
        self._mode = ControllerMode.CALIBRATION if calibration_only else ControllerMode.TRACKING
        self._running = True
        self._failures = 0
        logger.info("controller started: arity=%d mode=%s", self._arity, self._mode.value)
        # Without a worker the caller drives step() itself.
        if self.worker is not None:
            self.post(self._loop)

    def stop(self) -> None:
        if self._running:
            logger.info("controller stopped: frames=%d errors=%d", self.frames, self.errors)
        self._running = False
        self._mode = ControllerMode.IDLE

    def request_calibration(self) -> None:
        self.calibration.reset()
        self._mode = ControllerMode.CALIBRATION
        logger.info("calibration requested")

    def set_mark(self, cam: int, mark: Mark) -> bool:
        if not 0 <= cam < self._arity:
            logger.warning("mark for unknown camera %d ignored", cam)
            return False
        if self._last_frameset is None:
            logger.warning("no frameset yet, mark for camera %d ignored", cam)
            return False
        return self.tracker.set_mark(cam, self._last_frameset[cam].image, mark)

    def set_calibration_data(self, data: CalibrationData) -> None:
        if data.arity != self._arity:
            raise ValueError(
                f"Calibration data arity {data.arity} != controller arity {self._arity}"
            )
        self._calibration_data = data.copy()
        self.tracker.set_calibration_data(self._calibration_data)
        self.localization.set_calibration_data(self._calibration_data)
        logger.info("calibration data applied: %s", self._calibration_data)

    def _loop(self) -> None:
        if not (self._running and self.is_active):
            return
        try:
            self.step()
        except Exception:
            self.errors += 1
            logger.exception("frame processing failed, continuing")
        if self._running and self.is_active:
            self.post(self._loop)

    def step(self) -> bool:
        """Process one frameset; returns False when no frameset was available."""
        frameset = self.aggregator.next_frameset()
        if frameset is None:
            self.errors += 1
            self._failures += 1
            if self._failures >= self.parameters.max_capture_failures:
                logger.warning("%d consecutive capture failures, stopping", self._failures)
                self.stop()
                self.finished.emit()
            return False

        self._failures = 0
        self.frames += 1
        self._last_frameset = frameset
        positset = None
        location = None

        if self._mode == ControllerMode.CALIBRATION:
            if self.calibration.measure_frameset(frameset):
                self.calibration_data_ready.emit(self.calibration.data())
                if self._calibration_only:
                    self.stop()
                    self.finished.emit()
                else:
                    self._mode = ControllerMode.TRACKING
        elif self._mode == ControllerMode.TRACKING:
            positset = self.tracker.track(frameset)
            location = self.localization.locate(positset)

        self.frameset_ready.emit(frameset)
        if positset is not None:
            self.positset_ready.emit(positset)
            self.location_ready.emit(positset, location)
            logger.debug("frame=%d found=%s location=%s", frameset.idx, positset.found(), location)
        return True

    def dispose(self) -> None:
        self.stop()
        self.aggregator.stop()
        for signal in (
            self.frameset_ready,
            self.positset_ready,
            self.location_ready,
            self.calibration_data_ready,
            self.finished,
        ):
            signal.disconnect()
