"""
Event dispatch between pipeline objects.

Each pipeline object is bound to one worker (a dedicated thread, or the
shared LocalWorker in single-threaded mode). Objects talk through Signals:
a slot of an object bound to another worker is queued on that worker,
otherwise it is called inline.

Ordering: events posted by one producer to one worker are processed in
posting order. Nothing is guaranteed about the interleaving of events coming
from different producers.
"""

from __future__ import annotations

import logging
import queue
import threading
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

_QUIT = object()


class Worker:
    """A dedicated thread processing posted callables in FIFO order."""

    threaded = True

    def __init__(self, name: str):
        self.name = name
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._started = False
        self._quitting = False

    def start(self) -> "Worker":
        if not self._started:
            self._started = True
            self._thread.start()
        return self

    def is_current(self) -> bool:
        return threading.current_thread() is self._thread

    def post(self, fn: Callable, *args) -> bool:
        if self._quitting:
            logger.debug("worker %s is quitting, dropped %s", self.name, fn)
            return False
        self._queue.put((fn, args))
        return True

    def quit(self) -> None:
        """Ask the worker to stop once everything posted before is processed."""
        if not self._quitting:
            self._quitting = True
            self._queue.put(_QUIT)

    def join(self, timeout: Optional[float] = None) -> bool:
        if self._started and not self.is_current():
            self._thread.join(timeout)
        return not self._thread.is_alive()

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def _execute(self, item) -> None:
        fn, args = item
        try:
            fn(*args)
        except Exception:
            logger.exception("worker %s: unhandled error in %s", self.name, getattr(fn, "__qualname__", fn))

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is _QUIT:
                break
            self._execute(item)
        logger.debug("worker %s stopped", self.name)


class LocalWorker(Worker):
    """
    Single-threaded execution context.

    No thread is started: all objects sharing it are always "current", so
    signals between them are delivered inline, and posted work runs when the
    owner calls process_events().
    """

    threaded = False

    def __init__(self, name: str = "local"):
        super().__init__(name)

    def start(self) -> "LocalWorker":
        return self

    def is_current(self) -> bool:
        return True

    def quit(self) -> None:
        return None

    def join(self, timeout: Optional[float] = None) -> bool:
        return True

    def is_alive(self) -> bool:
        return False

    def pending(self) -> int:
        return self._queue.qsize()

    def process_events(self, max_events: Optional[int] = None) -> int:
        """Run posted work on the calling thread; returns the number of events processed."""
        done = 0
        while max_events is None or done < max_events:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            if item is not _QUIT:
                self._execute(item)
            done += 1
        return done


class Lifecycle(Enum):
    ACTIVE = "active"
    DRAINING = "draining"
    DESTROYED = "destroyed"


class ThreadAffine:
    """
    Base of objects bound to exactly one worker.

    After move_to_worker() the object must only be mutated from its worker.
    delete_later() marks it DRAINING and posts the destruction marker behind
    every event already queued for it; dispose() then runs on the worker and
    the object becomes DESTROYED. Slots of a destroyed object are never run.
    """

    def __init__(self):
        self._worker: Optional[Worker] = None
        self._lifecycle = Lifecycle.ACTIVE
        self._lifecycle_lock = threading.Lock()
        self.destroyed = threading.Event()

    @property
    def worker(self) -> Optional[Worker]:
        return self._worker

    @property
    def lifecycle(self) -> Lifecycle:
        return self._lifecycle

    @property
    def is_active(self) -> bool:
        return self._lifecycle == Lifecycle.ACTIVE

    def move_to_worker(self, worker: Worker) -> None:
        if self._worker is not None and self._worker.threaded and self._worker.is_alive():
            raise RuntimeError(f"{type(self).__name__} is already bound to worker {self._worker.name}")
        self._worker = worker

    def post(self, fn: Callable, *args) -> bool:
        if self._worker is None:
            fn(*args)
            return True
        return self._worker.post(fn, *args)

    def delete_later(self) -> None:
        with self._lifecycle_lock:
            if self._lifecycle != Lifecycle.ACTIVE:
                return
            self._lifecycle = Lifecycle.DRAINING
        if self._worker is None or not self._worker.post(self._destroy):
            self._destroy()

    def _destroy(self) -> None:
        try:
            self.dispose()
        finally:
            with self._lifecycle_lock:
                self._lifecycle = Lifecycle.DESTROYED
            self.destroyed.set()
            logger.debug("%s destroyed", type(self).__name__)

    def dispose(self) -> None:
        """Release resources; runs on the owning worker."""


class Signal:
    """
    Publish/subscribe channel.

    Slots that are bound methods of a ThreadAffine object run on that
    object's worker; any other callable runs directly in the emitter's context.
    With a copier every slot receives its own copy of each argument.
    """

    def __init__(self, name: str = "signal", copier: Optional[Callable[[Any], Any]] = None):
        self.name = name
        self.copier = copier
        self._slots: list[Callable] = []
        self._lock = threading.Lock()

    def connect(self, slot: Callable) -> None:
        with self._lock:
            self._slots.append(slot)

    def disconnect(self, slot: Optional[Callable] = None) -> None:
        with self._lock:
            if slot is None:
                self._slots.clear()
            else:
                self._slots = [s for s in self._slots if s != slot]

    def disconnect_receiver(self, receiver: Any) -> None:
        with self._lock:
            self._slots = [s for s in self._slots if getattr(s, "__self__", None) is not receiver]

    def receivers(self) -> int:
        with self._lock:
            return len(self._slots)

    def emit(self, *args) -> None:
        with self._lock:
            slots = list(self._slots)
        for slot in slots:
            slot_args = args if self.copier is None else tuple(self.copier(a) for a in args)
            receiver = getattr(slot, "__self__", None)
            if not isinstance(receiver, ThreadAffine) or receiver.worker is None:
                slot(*slot_args)
            elif receiver.worker.is_current():
                _invoke(slot, receiver, slot_args)
            else:
                receiver.worker.post(_invoke, slot, receiver, slot_args)


def _invoke(slot: Callable, receiver: ThreadAffine, args) -> None:
    if receiver.lifecycle == Lifecycle.DESTROYED:
        logger.debug("dropped %s for destroyed %s", getattr(slot, "__name__", slot), type(receiver).__name__)
        return
    slot(*args)
