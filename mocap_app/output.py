from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from marker_tracking.mt_types import Location, Positset
from marker_tracking.services.csv_writer import CsvWriter


class OutputSink(ABC):
    @abstractmethod
    def open(self, session_dir: Path, arity: int) -> None: ...

    @abstractmethod
    def write_location(self, ts_unix: float, positset: Positset, location: Optional[Location]) -> None: ...

    @abstractmethod
    def close(self) -> None: ...


class CsvOutput(OutputSink):
    def __init__(self, filename: str = "locations.csv"):
        self.filename = filename
        self.rows = 0
        self._writer: Optional[CsvWriter] = None

    @property
    def path(self) -> Optional[str]:
        return None if self._writer is None else self._writer.csv_path

    def open(self, session_dir: Path, arity: int) -> None:
        path = Path(session_dir) / self.filename
        self._writer = CsvWriter(str(path), arity)
        self._writer.open()

    def write_location(self, ts_unix: float, positset: Positset, location: Optional[Location]) -> None:
        if self._writer is None:
            return
        self._writer.append(ts_unix, positset, location)
        self.rows += 1

    def close(self) -> None:
        if self._writer is not None:
            self._writer.close()
            self._writer = None


class NullOutput(OutputSink):
    def open(self, session_dir: Path, arity: int) -> None:
        return None

    def write_location(self, ts_unix: float, positset: Positset, location: Optional[Location]) -> None:
        return None

    def close(self) -> None:
        return None
