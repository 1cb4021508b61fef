from __future__ import annotations

import logging
from typing import Optional

import cv2
import numpy as np

from marker_tracking.events import Signal, ThreadAffine
from marker_tracking.mt_types import Frameset, Mark, MarkType, Positset

logger = logging.getLogger(__name__)

MARK_COLOR = (255, 64, 0)  # RGB


class FramesetConverter(ThreadAffine):
    """
    Turns raw framesets and positsets into display-ready RGB images and
    relays user-created marks back to the controller.
    """

    def __init__(self, arity: int):
        super().__init__()
        self.arity = int(arity)
        self.images_ready = Signal("images_ready")
        self.mark_created = Signal("mark_created")
        self._marks: list[Optional[Mark]] = [None] * self.arity
        self.images: list[np.ndarray] = []

    def process_frameset(self, frameset: Frameset) -> None:
        if frameset.arity != self.arity:
            logger.warning("frameset arity %d != converter arity %d", frameset.arity, self.arity)
            return
        images = []
        for cam, frame in enumerate(frameset):
            img = frame.image
            rgb = cv2.cvtColor(img, cv2.COLOR_BGR2RGB) if img.ndim == 3 else cv2.cvtColor(img, cv2.COLOR_GRAY2RGB)
            mark = self._marks[cam]
            if mark is not None:
                self.draw_mark(rgb, mark)
            images.append(rgb)
        self.images = images
        self.images_ready.emit(images)

    def process_positset(self, positset: Positset) -> None:
        if positset.arity != self.arity:
            return
        self._marks = list(positset.marks)

    def create_mark(self, cam: int, mark: Mark) -> None:
        """Publish a mark chosen on a displayed image (e.g. drawn by the user)."""
        logger.info("camera %d: mark created at %s", cam, mark.center)
        self.mark_created.emit(cam, mark)

    @staticmethod
    def draw_mark(image: np.ndarray, mark: Mark) -> None:
        cx, cy = int(round(mark.center[0])), int(round(mark.center[1]))
        if mark.type == MarkType.CIRCLE:
            cv2.circle(image, (cx, cy), max(1, int(round(mark.radius))), MARK_COLOR, 2)
        else:
            hx, hy = (int(round(v)) for v in mark.half_extent)
            cv2.rectangle(image, (cx - hx, cy - hy), (cx + hx, cy + hy), MARK_COLOR, 2)

    def dispose(self) -> None:
        self.images_ready.disconnect()
        self.mark_created.disconnect()
        self.images = []
