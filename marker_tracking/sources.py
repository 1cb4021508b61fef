"""Video source abstraction for camera input.

Provides a unified interface for different frame sources:
- Device cameras (USB via OpenCV)
- Video files
- Synthetic test frames with a moving marker
"""

from __future__ import annotations

import logging
import math
import time
from abc import ABC, abstractmethod
from typing import Any, Iterator, Optional

import cv2
import numpy as np

from .mt_types import Frame

logger = logging.getLogger(__name__)


class VideoSource(ABC):
    """Abstract base class for video sources.

    A source is an opaque supplier of image buffers. Iterating over it yields
    frames until the device stops delivering; a source that yields nothing is
    unusable.
    """

    name = "source"

    @abstractmethod
    def start(self) -> None:
        """Open the source. Called before any read() calls; idempotent."""
        ...

    @abstractmethod
    def read(self) -> Optional[Frame]:
        """Read the next frame, or None if no frame is available."""
        ...

    @abstractmethod
    def stop(self) -> None:
        """Stop the source and release resources."""
        ...

    def __iter__(self) -> Iterator[Frame]:
        while True:
            frame = self.read()
            if frame is None:
                return
            yield frame

    def probe(self) -> bool:
        """Open the source and check that it delivers at least one frame."""
        try:
            self.start()
        except RuntimeError as exc:
            logger.debug("%s cannot be opened: %s", self, exc)
            return False
        return next(iter(self), None) is not None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name})"


class CameraVideoSource(VideoSource):
    """Camera device source wrapping cv2.VideoCapture."""

    def __init__(self, device: int, fps: int = 30, width: int = 640, height: int = 480):
        self.device = int(device)
        self.fps = fps
        self.width = width
        self.height = height
        self.name = f"camera{self.device}"
        self.cap: Any = None
        self.frame_id = 0

    def start(self) -> None:
        if self.cap is not None:
            return
        cap = cv2.VideoCapture(self.device)
        if not cap.isOpened():
            cap.release()
            raise RuntimeError(f"Failed to open camera: {self.device}")

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        cap.set(cv2.CAP_PROP_FPS, self.fps)
        self.cap = cap
        self.frame_id = 0

    def read(self) -> Optional[Frame]:
        if self.cap is None:
            return None
        ok, img = self.cap.read()
        if not ok:
            return None
        self.frame_id += 1
        return Frame(self.frame_id, time.time_ns(), img)

    def stop(self) -> None:
        if self.cap is not None:
            self.cap.release()
            self.cap = None


class FileVideoSource(VideoSource):
    """Video file source; ends when the file is exhausted."""

    def __init__(self, path: str):
        self.path = str(path)
        self.name = self.path
        self.cap: Any = None
        self.frame_id = 0

    def start(self) -> None:
        if self.cap is not None:
            return
        cap = cv2.VideoCapture(self.path)
        if not cap.isOpened():
            cap.release()
            raise RuntimeError(f"Failed to open video file: {self.path}")
        self.cap = cap
        self.frame_id = 0

    def read(self) -> Optional[Frame]:
        if self.cap is None:
            return None
        ok, img = self.cap.read()
        if not ok:
            return None
        self.frame_id += 1
        return Frame(self.frame_id, time.time_ns(), img)

    def stop(self) -> None:
        if self.cap is not None:
            self.cap.release()
            self.cap = None


class SyntheticVideoSource(VideoSource):
    """Generated frames: textured background with a bright disc on a circular path."""

    def __init__(
        self,
        index: int = 0,
        width: int = 320,
        height: int = 240,
        fps: int = 0,
        radius: int = 12,
        seed: int = 7,
    ):
        self.index = index
        self.width = width
        self.height = height
        self.fps = fps
        self.radius = radius
        self.name = f"synthetic{index}"
        self.frame_id = 0
        self._started = False
        self._last = 0.0
        rng = np.random.default_rng(seed + index)
        self._background = rng.integers(0, 80, size=(height, width, 3), dtype=np.uint8)

    def marker_center(self, frame_id: int) -> tuple[int, int]:
        angle = 0.05 * frame_id + self.index * 0.5
        cx = self.width / 2 + (self.width / 4) * math.cos(angle)
        cy = self.height / 2 + (self.height / 4) * math.sin(angle)
        return int(round(cx)), int(round(cy))

    def start(self) -> None:
        self._started = True
        self._last = time.time()

    def read(self) -> Optional[Frame]:
        if not self._started:
            return None
        if self.fps > 0:
            wait = max(0.0, (1.0 / self.fps) - (time.time() - self._last))
            if wait > 0:
                time.sleep(wait)
            self._last = time.time()
        self.frame_id += 1
        img = self._background.copy()
        cv2.circle(img, self.marker_center(self.frame_id), self.radius, (40, 200, 250), -1)
        return Frame(self.frame_id, time.time_ns(), img)

    def stop(self) -> None:
        self._started = False
