from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence

from marker_tracking.aggregator import FrameAggregator
from marker_tracking.calibration import CameraCalibration, ChessboardPattern
from marker_tracking.controller import Controller
from marker_tracking.events import LocalWorker, Signal, ThreadAffine, Worker
from marker_tracking.factory import StrategyFactory
from marker_tracking.localization import Localization
from marker_tracking.mt_types import CalibrationData, Frameset
from marker_tracking.sources import CameraVideoSource, FileVideoSource, SyntheticVideoSource, VideoSource
from marker_tracking.tracker import Tracker

from .config import AppConfig
from .converter import FramesetConverter

logger = logging.getLogger(__name__)

SourceFactory = Callable[[int], Optional[VideoSource]]

JOIN_TIMEOUT_SEC = 5.0


class PipelineError(RuntimeError):
    """Misuse of the pipeline topology (unknown source, arity mismatch...)."""


class AppState(Enum):
    IDLE = "idle"
    ASSEMBLING = "assembling"
    RUNNING = "running"


@dataclass
class _SourceSlot:
    index: int
    source: Optional[VideoSource]
    claimed: bool = False


def default_source_factory(config: AppConfig) -> SourceFactory:
    src = config.source
    kind = src.type.strip().lower()

    if kind == "camera":
        return lambda index: CameraVideoSource(index, fps=src.fps, width=src.width, height=src.height)

    if kind == "file":
        def _file(index: int) -> Optional[VideoSource]:
            if index >= len(src.paths):
                return None
            return FileVideoSource(src.paths[index])
        return _file

    if kind == "synthetic":
        def _synthetic(index: int) -> Optional[VideoSource]:
            if index >= src.synthetic_count:
                return None
            return SyntheticVideoSource(index, width=src.width, height=src.height, fps=src.fps)
        return _synthetic

    raise ValueError(f"Unknown source type: {src.type}")


class Application:
    """
    Owns the pipeline topology: the pool of available video sources and the
    controller/converter pair built over the chosen subset.

    Sources move from the pool to a pipeline exactly once; a torn down
    pipeline disposes them, so a new discovery is needed to reuse hardware.
    The application holds the canonical calibration data and rebroadcasts
    every change to the controller.
    """

    def __init__(self, config: Optional[AppConfig] = None, source_factory: Optional[SourceFactory] = None):
        self.config = config or AppConfig()
        self._source_factory = source_factory or default_source_factory(self.config)
        self._lock = threading.RLock()
        self._local: Optional[LocalWorker] = (
            LocalWorker(f"{self.config.app_name}-local") if self.config.single_threaded else None
        )

        self._pool: list[_SourceSlot] = []
        self._state = AppState.IDLE
        self._arity = 0
        self._controller: Optional[Controller] = None
        self._converter: Optional[FramesetConverter] = None
        self._calibration_data: Optional[CalibrationData] = None

        self.pipeline_changed = Signal("pipeline_changed")
        # Subscribers each get their own copy of the canonical calibration
        self.calibration_data_ready = Signal("calibration_data_ready", copier=CalibrationData.copy)

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def arity(self) -> int:
        return self._arity

    @property
    def controller(self) -> Optional[Controller]:
        return self._controller

    @property
    def converter(self) -> Optional[FramesetConverter]:
        return self._converter

    @property
    def calibration_data(self) -> Optional[CalibrationData]:
        return self._calibration_data

    @property
    def single_threaded(self) -> bool:
        return self._local is not None

    def available_video_sources(self) -> list[VideoSource]:
        """Probe device indices from 0 and return the sources that deliver frames."""
        self.initialize_empty()

        max_arity = self.config.max_arity
        attempts = 2 * max_arity
        misses = 0
        found: list[tuple[int, VideoSource]] = []
        for index in range(attempts):
            source = self._source_factory(index)
            if source is not None and source.probe():
                found.append((index, source))
                misses = 0
                logger.info("found working video source %d: %s", index, source)
            else:
                logger.debug("video source %d not working", index)
                if source is not None:
                    self._stop_source(source)
                misses += 1
                if misses >= max_arity:
                    break

        with self._lock:
            self._pool = [_SourceSlot(i, s) for i, s in found]
        return [s for _, s in found]

    def available_by_index(self) -> dict[int, VideoSource]:
        """Unclaimed pool sources keyed by the device index they were probed at."""
        with self._lock:
            return {slot.index: slot.source for slot in self._pool if not slot.claimed and slot.source is not None}

    def assemble(self, sources: Sequence[VideoSource]) -> None:
        """Move the chosen sources from the pool into a new pipeline."""
        sources = list(sources)
        retired: list[Worker] = []
        with self._lock:
            if not sources:
                raise PipelineError("At least one video source is required")
            if len(sources) > min(self.config.max_arity, Frameset.MAX_ARITY):
                raise PipelineError(f"Too many video sources: {len(sources)} > {self.config.max_arity}")

            slots = []
            for source in sources:
                slot = self._find_slot(source)
                if slot is None or slot in slots:
                    raise PipelineError(f"{source!r} is not an available video source")
                slots.append(slot)
            for slot in slots:
                slot.claimed = True
                slot.source = None

            self._state = AppState.ASSEMBLING
            self._dispose_pool()
            try:
                controller, converter = self._build_pipeline(sources)
            except Exception:
                logger.exception("pipeline assembly failed, releasing %d sources", len(sources))
                for source in sources:
                    self._stop_source(source)
                self._state = AppState.IDLE
                raise

            self._arity = len(sources)
            self._calibration_data = None
            retired += self._swap_and_destroy("_controller", controller, self._wire_controller)
            retired += self._swap_and_destroy("_converter", converter, self._wire_converter)
            logger.info("pipeline assembled: arity=%d tracker=%s", self._arity, self.config.tracker)

        self._join_workers(retired)
        self.pipeline_changed.emit(self._arity)

    def start_pipeline(self, calibration_only: bool = False) -> None:
        with self._lock:
            if self._controller is None:
                raise PipelineError("No pipeline assembled")
            # Runs once the controller's worker picks it up, after all wiring.
            self._controller.post(self._controller.start, calibration_only)
            self._state = AppState.RUNNING

    def initialize(self, sources: Sequence[VideoSource], calibration_only: bool = False) -> None:
        self.assemble(sources)
        self.start_pipeline(calibration_only)

    def set_calibration_data(self, data: CalibrationData) -> None:
        with self._lock:
            if data.arity != self._arity:
                raise PipelineError(f"Calibration data arity {data.arity} != pipeline arity {self._arity}")
            self._calibration_data = data.copy()
            logger.info("calibration data updated: %s", self._calibration_data)
            # Broadcast in the same order the canonical copy was replaced
            self.calibration_data_ready.emit(self._calibration_data)

    def initialize_empty(self) -> None:
        self.teardown()

    def teardown(self) -> None:
        with self._lock:
            self._dispose_pool()
            self._arity = 0
            self._calibration_data = None
            retired = self._swap_and_destroy("_converter", None)
            retired += self._swap_and_destroy("_controller", None)
            self._state = AppState.IDLE

        self._join_workers(retired)
        self.pipeline_changed.emit(0)

    def close(self) -> None:
        self.teardown()
        logger.info("application closed")

    def process_events(self, max_events: Optional[int] = None) -> int:
        """Run work queued on the local worker; a no-op in threaded mode."""
        if self._local is None:
            return 0
        if max_events is None:
            max_events = self._local.pending()
        return self._local.process_events(max_events)

    def _find_slot(self, source: VideoSource) -> Optional[_SourceSlot]:
        for slot in self._pool:
            if not slot.claimed and slot.source is source:
                return slot
        return None

    def _dispose_pool(self) -> None:
        for slot in self._pool:
            if slot.source is not None:
                self._stop_source(slot.source)
                slot.source = None
        self._pool = []

    @staticmethod
    def _stop_source(source: VideoSource) -> None:
        try:
            source.stop()
        except Exception as e:
            logger.warning("Failed to stop %s: %s", source, e)

    def _new_worker(self, role: str) -> Worker:
        if self._local is not None:
            return self._local
        return Worker(f"{self.config.app_name}-{role}").start()

    def _build_pipeline(self, sources: list[VideoSource]) -> tuple[Controller, FramesetConverter]:
        params = self.config.parameters
        arity = len(sources)

        aggregator = FrameAggregator(sources, threaded=not self.single_threaded)
        pattern = ChessboardPattern(params.calibration_rows, params.calibration_cols, params.calibration_size)
        calibration = CameraCalibration(params, arity, pattern)
        tracker = Tracker(arity, StrategyFactory.create(self.config.tracker, params), params)
        localization = Localization(arity)

        controller = Controller(params, aggregator, calibration, tracker, localization)
        converter = FramesetConverter(arity)
        controller.move_to_worker(self._new_worker("controller"))
        converter.move_to_worker(self._new_worker("converter"))
        return controller, converter

    def _wire_controller(self, controller: Controller) -> None:
        controller.calibration_data_ready.connect(self.set_calibration_data)
        self.calibration_data_ready.connect(controller.set_calibration_data)

    def _wire_converter(self, converter: FramesetConverter) -> None:
        controller = self._controller
        controller.frameset_ready.connect(converter.process_frameset)
        controller.positset_ready.connect(converter.process_positset)
        converter.mark_created.connect(controller.set_mark)

    def _unwire(self, old: ThreadAffine) -> None:
        self.calibration_data_ready.disconnect_receiver(old)
        controller = self._controller
        if controller is not None and controller is not old:
            controller.frameset_ready.disconnect_receiver(old)
            controller.positset_ready.disconnect_receiver(old)
        if isinstance(old, Controller):
            old.calibration_data_ready.disconnect_receiver(self)
            if self._converter is not None:
                self._converter.mark_created.disconnect_receiver(old)

    def _swap_and_destroy(
        self,
        attr: str,
        replacement: Optional[ThreadAffine],
        wire: Optional[Callable[[ThreadAffine], None]] = None,
    ) -> list[Worker]:
        """
        Replace the object held in `attr`.

        Order: the replacement is installed and wired, the old object is
        unwired and marked for deferred destruction, then its worker is asked
        to quit. Returns the old workers that must be joined once the lock is
        released.
        """
        old = getattr(self, attr)
        setattr(self, attr, replacement)
        if replacement is not None and wire is not None:
            wire(replacement)
        if old is None:
            return []

        self._unwire(old)
        old_worker = old.worker
        old.delete_later()
        if old_worker is None or not old_worker.threaded:
            return []
        old_worker.quit()
        return [old_worker]

    def _join_workers(self, workers: list[Worker]) -> None:
        if self._local is not None:
            # Destruction markers are queued on the shared worker.
            self.process_events()
            return
        for worker in workers:
            if not worker.join(JOIN_TIMEOUT_SEC):
                logger.warning("worker %s did not stop within %.1fs", worker.name, JOIN_TIMEOUT_SEC)
