from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Sequence

from .mt_types import Frameset
from .sources import VideoSource

logger = logging.getLogger(__name__)


class FrameAggregator:
    """
    Pulls one frame from every source and assembles a Frameset.

    The aggregator owns its sources exclusively; stop() releases them.
    """

    def __init__(self, sources: Sequence[VideoSource], threaded: bool = True):
        if not sources:
            raise ValueError("FrameAggregator requires at least one source")
        if len(sources) > Frameset.MAX_ARITY:
            raise ValueError(f"At most {Frameset.MAX_ARITY} sources supported, got {len(sources)}")
        self.sources = list(sources)
        self.threaded = threaded and len(self.sources) > 1
        self._executor: Optional[ThreadPoolExecutor] = None
        self._idx = 0

    @property
    def arity(self) -> int:
        return len(self.sources)

    def start(self) -> None:
        for source in self.sources:
            source.start()
        if self.threaded and self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.arity, thread_name_prefix="capture"
            )

    def next_frameset(self) -> Optional[Frameset]:
        if self._executor is not None:
            frames = list(self._executor.map(lambda s: s.read(), self.sources))
        else:
            frames = [source.read() for source in self.sources]

        missing = [i for i, f in enumerate(frames) if f is None]
        if missing:
            logger.debug("no frame from cameras %s", missing)
            return None

        self._idx += 1
        return Frameset(self._idx, frames)

    def stop(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        for source in self.sources:
            try:
                source.stop()
            except Exception as e:
                logger.warning("Failed to stop %s: %s", source, e)
