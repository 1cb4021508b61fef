import numpy as np
import pytest

from marker_tracking.aggregator import FrameAggregator
from marker_tracking.config import Parameters
from marker_tracking.controller import Controller, ControllerMode
from marker_tracking.events import Lifecycle, LocalWorker
from marker_tracking.localization import Localization
from marker_tracking.mt_types import CalibrationData, CameraParameters, Mark
from marker_tracking.sources import SyntheticVideoSource
from marker_tracking.strategies import TemplateStrategy
from marker_tracking.tracker import Tracker, TrackState

from conftest import DummySource


class DummyCalibration:
    """Completes after a fixed number of framesets."""

    def __init__(self, arity, needed=2):
        self.arity = arity
        self.needed = needed
        self.seen = 0
        self.resets = 0

    def reset(self):
        self.seen = 0
        self.resets += 1

    def measure_frameset(self, frameset):
        self.seen += 1
        return self.seen >= self.needed

    def data(self):
        data = CalibrationData(self.arity)
        for cam in range(self.arity):
            data.set_camera(cam, CameraParameters(np.eye(3), np.zeros(5)))
        return data


class NoFrames:
    arity = 2

    def __init__(self):
        self.stopped = False

    def start(self):
        pass

    def next_frameset(self):
        return None

    def stop(self):
        self.stopped = True


def _controller(arity=2, parameters=None, aggregator=None, calibration=None):
    params = parameters or Parameters()
    sources = [SyntheticVideoSource(i, width=160, height=120) for i in range(arity)]
    aggregator = aggregator or FrameAggregator(sources, threaded=False)
    return Controller(
        params,
        aggregator,
        calibration or DummyCalibration(arity),
        Tracker(arity, TemplateStrategy(params), params),
        Localization(arity),
    )


def test_components_must_agree_on_arity():
    params = Parameters()
    sources = [DummySource(0), DummySource(1)]
    with pytest.raises(ValueError):
        Controller(
            params,
            FrameAggregator(sources),
            DummyCalibration(2),
            Tracker(3, TemplateStrategy(params)),
            Localization(2),
        )


def test_step_emits_frameset_positset_and_location():
    controller = _controller()
    framesets, positsets, locations = [], [], []
    controller.frameset_ready.connect(framesets.append)
    controller.positset_ready.connect(positsets.append)
    controller.location_ready.connect(lambda p, loc: locations.append((p, loc)))

    controller.start()
    assert controller.step() is True

    assert controller.mode == ControllerMode.TRACKING
    assert controller.frames == 1
    assert framesets[0].arity == 2
    assert positsets[0].marks == [None, None]
    assert locations == [(positsets[0], None)]


def test_set_mark_needs_a_frameset():
    controller = _controller(arity=1)
    mark = Mark.circle((80, 60), 12)
    assert controller.set_mark(0, mark) is False

    controller.start()
    controller.step()
    source = controller.aggregator.sources[0]
    center = source.marker_center(source.frame_id)
    assert controller.set_mark(0, Mark.circle(center, source.radius)) is True
    assert controller.tracker.state(0) == TrackState.TRACKING
    assert controller.set_mark(5, mark) is False


def test_capture_failures_finish_the_loop():
    """After max_capture_failures missing framesets the controller gives up."""
    controller = _controller(parameters=Parameters(max_capture_failures=3), aggregator=NoFrames())
    finished = []
    controller.finished.connect(lambda: finished.append(True))

    controller.start()
    results = [controller.step() for _ in range(3)]

    assert results == [False, False, False]
    assert finished == [True]
    assert controller.running is False
    assert controller.errors == 3


def test_calibration_only_mode_stops_after_calibration():
    controller = _controller()
    produced, finished = [], []
    controller.calibration_data_ready.connect(produced.append)
    controller.finished.connect(lambda: finished.append(True))

    controller.start(calibration_only=True)
    assert controller.mode == ControllerMode.CALIBRATION
    controller.step()
    assert produced == []
    controller.step()

    assert len(produced) == 1
    assert produced[0].arity == 2
    assert finished == [True]
    assert controller.running is False


def test_requested_calibration_returns_to_tracking():
    calibration = DummyCalibration(2)
    controller = _controller(calibration=calibration)
    controller.start()
    controller.request_calibration()
    assert controller.mode == ControllerMode.CALIBRATION
    assert calibration.resets == 1

    controller.step()
    controller.step()
    assert controller.mode == ControllerMode.TRACKING
    assert controller.running is True


def test_calibration_data_is_copied_and_checked():
    controller = _controller()
    data = DummyCalibration(2).data()

    controller.set_calibration_data(data)
    data.cameras[0] = None

    assert controller.calibration_data.cameras[0] is not None
    with pytest.raises(ValueError):
        controller.set_calibration_data(CalibrationData(3))


def test_loop_runs_on_worker_until_destroyed():
    """The frame loop is a chain of posted steps; destruction ends it and releases sources."""
    sources = [DummySource(0), DummySource(1)]
    controller = _controller(aggregator=FrameAggregator(sources, threaded=False))
    worker = LocalWorker()
    controller.move_to_worker(worker)

    controller.start()
    assert worker.pending() == 1
    worker.process_events(5)
    assert controller.frames == 5

    controller.delete_later()
    worker.process_events(10)

    assert controller.lifecycle == Lifecycle.DESTROYED
    assert worker.pending() == 0
    assert all(s.stopped for s in sources)
    assert controller.frameset_ready.receivers() == 0


def test_loop_survives_a_failing_frame():
    """An exception while tracking one frameset is counted and the loop goes on."""
    controller = _controller(aggregator=FrameAggregator([DummySource(0), DummySource(1)], threaded=False))
    worker = LocalWorker()
    controller.move_to_worker(worker)
    track = controller.tracker.track
    calls = []

    def failing_once(frameset):
        calls.append(frameset.idx)
        if len(calls) == 1:
            raise ValueError("cannot convert float NaN to integer")
        return track(frameset)

    controller.tracker.track = failing_once
    positsets = []
    controller.positset_ready.connect(positsets.append)

    controller.start()
    worker.process_events(4)

    assert controller.running
    assert controller.frames == 4
    assert controller.errors == 1
    assert len(calls) == 4
    assert len(positsets) == 3
    assert worker.pending() == 1
    controller.delete_later()
    worker.process_events(10)
