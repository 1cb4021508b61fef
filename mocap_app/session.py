from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from marker_tracking.mt_types import CalibrationData, Frameset, Location, Mark, Positset
from marker_tracking.services.calib import load_calibration, save_calibration
from marker_tracking.services.storage import SessionStorage

from .application import Application, PipelineError
from .config import AppConfig
from .logging_utils import add_file_handler, remove_file_handler, setup_logger
from .output import CsvOutput, OutputSink


@dataclass
class SessionSummary:
    session_path: str
    frames_processed: int
    csv_path: str
    log_path: str
    avg_fps: float
    errors: int
    calibration_path: Optional[str] = None


class MocapSession:
    """One recording run: discover, assemble, track for a while, persist results."""

    def __init__(
        self,
        config: AppConfig,
        logger=None,
        outputs: Optional[list[OutputSink]] = None,
        application: Optional[Application] = None,
    ):
        self.config = config
        self.logger = logger or setup_logger(config.app_name, config.log_level)
        self.outputs = outputs if outputs is not None else [CsvOutput()]
        self.app = application or Application(config)
        self._stop_event = threading.Event()
        self._computed_calibration: Optional[CalibrationData] = None
        self._storage: Optional[SessionStorage] = None
        self.snapshots: list[str] = []
        self._pending_marks: list[tuple[int, Mark]] = [
            (int(cam), Mark.circle((x, y), r)) for cam, x, y, r in config.marks
        ]

    def stop(self) -> None:
        self._stop_event.set()

    def _choose_sources(self) -> list:
        available = self.app.available_by_index()
        if self.config.devices is None:
            return [available[i] for i in sorted(available)]
        missing = [d for d in self.config.devices if d not in available]
        if missing:
            raise PipelineError(f"Requested devices not available: {missing}")
        return [available[d] for d in self.config.devices]

    def _on_location(self, positset: Positset, location: Optional[Location]) -> None:
        ts_unix = time.time()
        for out in self.outputs:
            out.write_location(ts_unix, positset, location)

    def _on_calibration(self, data: CalibrationData) -> None:
        self._computed_calibration = data.copy()
        self.logger.info("calibration computed during session")

    def _on_frameset(self, frameset: Frameset) -> None:
        every = self.config.snapshot_every
        if every > 0 and self._storage is not None and frameset.idx % every == 0:
            self.snapshots.extend(self._storage.save_snapshot(frameset))
        if not self._pending_marks:
            return
        marks, self._pending_marks = self._pending_marks, []
        converter = self.app.converter
        for cam, mark in marks:
            if cam >= frameset.arity:
                self.logger.warning("mark for camera %d ignored, arity is %d", cam, frameset.arity)
                continue
            converter.post(converter.create_mark, cam, mark)

    def _start(self, storage: SessionStorage) -> None:
        self.app.available_video_sources()
        sources = self._choose_sources()
        if not sources:
            raise PipelineError("No working video sources found")
        self.app.assemble(sources)

        controller = self.app.controller
        for out in self.outputs:
            out.open(Path(storage.session_dir), self.app.arity)
        controller.location_ready.connect(self._on_location)
        controller.calibration_data_ready.connect(self._on_calibration)
        controller.frameset_ready.connect(self._on_frameset)
        controller.finished.connect(self.stop)

        if self.config.calibration_path:
            self.app.set_calibration_data(load_calibration(self.config.calibration_path))
        self.app.start_pipeline(calibration_only=self.config.calibrate)

    def run(self) -> SessionSummary:
        cfg = self.config
        storage = SessionStorage(cfg.session_root, name=f"{cfg.app_name}_session")
        session_path = storage.begin()
        self._storage = storage
        storage.write_manifest(cfg.as_dict())

        log_file = str(Path(storage.logs_dir) / "session.log")
        handler = add_file_handler(self.logger, cfg.app_name, log_file)
        self.logger.info("session started: %s", session_path)

        t0 = time.time()
        frames = 0
        errors = 0
        try:
            self._start(storage)
            controller = self.app.controller
            while not self._stop_event.is_set():
                if cfg.duration_sec and (time.time() - t0) >= cfg.duration_sec:
                    break
                if self.app.single_threaded:
                    self.app.process_events()
                else:
                    self._stop_event.wait(0.05)
            frames = controller.frames
            errors = controller.errors
        finally:
            self.app.close()
            for out in self.outputs:
                try:
                    out.close()
                except Exception as e:
                    self.logger.warning("Failed to close output %s: %s", out, e)
            remove_file_handler(self.logger, handler)

        calibration_path = None
        if self._computed_calibration is not None:
            calibration_path = str(storage.calibration_path)
            save_calibration(calibration_path, self._computed_calibration)
            self.logger.info("calibration saved: %s", calibration_path)

        avg = frames / max(1e-6, (time.time() - t0))
        self.logger.info("summary frames=%d avg_fps=%.2f errors=%d", frames, avg, errors)

        return SessionSummary(
            str(session_path),
            frames,
            str(storage.locations_path),
            log_file,
            avg,
            errors,
            calibration_path,
        )
