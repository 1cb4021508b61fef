import time

import cv2
import numpy as np
import pytest

from marker_tracking.mt_types import Frame
from marker_tracking.sources import VideoSource


def textured_image(width=100, height=100, seed=0):
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)


def disc_image(center, radius, width=120, height=100, background=(30, 30, 30), color=(40, 200, 250)):
    img = np.zeros((height, width, 3), dtype=np.uint8)
    img[:] = background
    cv2.circle(img, (int(center[0]), int(center[1])), int(radius), color, -1)
    return img


def wait_for(predicate, timeout=5.0, interval=0.01):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


class DummySource(VideoSource):
    """Source that either fails to open or returns copies of one image forever."""

    def __init__(self, index=0, ok=True, image=None, frames=None):
        self.index = index
        self.ok = ok
        self.name = f"dummy{index}"
        self.image = image if image is not None else np.zeros((48, 64, 3), dtype=np.uint8)
        self.frames = frames
        self.started = False
        self.stopped = False
        self.reads = 0

    def start(self):
        if not self.ok:
            raise RuntimeError(f"cannot open {self.name}")
        self.started = True

    def read(self):
        if not self.started:
            return None
        if self.frames is not None and self.reads >= self.frames:
            return None
        self.reads += 1
        return Frame(self.reads, time.time_ns(), self.image.copy())

    def stop(self):
        self.stopped = True
        self.started = False


@pytest.fixture
def textured():
    return textured_image(120, 100, seed=3)
