import csv
import io


class CsvWriter:
    """One row per positset: 3D location followed by the 2D mark of every camera."""

    BASE_HEADER = ["recorded_at", "frame_idx", "x", "y", "z"]

    def __init__(self, csv_path: str, arity: int):
        self.csv_path = csv_path
        self.arity = arity
        self._opened = False
        self._fh = None
        self._w = None

    @classmethod
    def header(cls, arity: int) -> list[str]:
        cams = []
        for cam in range(arity):
            cams += [f"cam{cam}_x", f"cam{cam}_y"]
        return cls.BASE_HEADER + cams

    def open(self):
        self._fh = open(self.csv_path, "w", newline="")
        self._w = csv.writer(self._fh)
        self._w.writerow(self.header(self.arity))
        self._opened = True

    @staticmethod
    def _row(ts_unix, positset, location):
        nan = float("nan")
        xyz = [nan] * 3 if location is None else [location.x, location.y, location.z]
        cams = []
        for mark in positset.marks:
            cams += [nan, nan] if mark is None else [mark.center[0], mark.center[1]]
        return [f"{ts_unix:.6f}", positset.idx, *xyz, *cams]

    def append(self, ts_unix, positset, location):
        self._w.writerow(self._row(ts_unix, positset, location))

    @classmethod
    def to_csv_line(cls, ts_unix, positset, location):
        buf = io.StringIO()
        w = csv.writer(buf)
        w.writerow(cls._row(ts_unix, positset, location))
        return buf.getvalue().strip()

    def close(self):
        if self._opened and self._fh:
            self._fh.close()
            self._opened = False
            self._fh = None
            self._w = None
