from dataclasses import dataclass, asdict, fields
from typing import Any


@dataclass
class Parameters:
    # Template correlation
    template_threshold: float = 0.6
    template_method: str = "ccoeff_normed"
    template_peak_sigma: float = 0.0  # 0 disables the peak uniqueness check

    # Shape (circle) detection
    circle_threshold: float = 0.7
    circle_dp: float = 1.0
    circle_param1: float = 100.0
    circle_param2: float = 15.0
    circle_radius_tolerance: float = 0.3
    circle_blur: int = 5

    # Histogram backprojection
    histogram_threshold: float = 0.3
    histogram_h_bins: int = 30
    histogram_s_bins: int = 32

    # Tracking
    search_factor: float = 2.0  # ROI half size around previous position, in mark extents
    epiline_width: int = 8

    # Calibration
    calibration_rows: int = 6
    calibration_cols: int = 9
    calibration_size: float = 0.025  # chessboard square side, metres
    calibration_frames: int = 12
    calibration_skip: int = 10

    # Controller
    max_capture_failures: int = 30

    def get(self, name: str) -> Any:
        if name not in self.names():
            raise KeyError(f"Unknown parameter: {name}")
        return getattr(self, name)

    @classmethod
    def names(cls) -> set[str]:
        return {f.name for f in fields(cls)}

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)
