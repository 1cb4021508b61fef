from __future__ import annotations

import json
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Any, Optional

import yaml

from marker_tracking.config import Parameters
from marker_tracking.mt_types import Frameset


@dataclass
class SourceConfig:
    """Configuration for video sources (camera devices, video files, synthetic)."""

    type: str = "camera"  # "camera", "file", "synthetic"
    width: int = 640
    height: int = 480
    fps: int = 30
    paths: list[str] = field(default_factory=list)  # For file sources: one video per device index
    synthetic_count: int = 2

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class AppConfig:
    app_name: str = "mocap"
    tracker: str = "template"
    max_arity: int = Frameset.MAX_ARITY
    single_threaded: bool = False
    devices: Optional[list[int]] = None
    calibration_path: Optional[str] = None
    calibrate: bool = False
    session_root: str = "data/sessions"
    duration_sec: float = 30.0
    log_level: str = "INFO"
    marks: list[list[float]] = field(default_factory=list)  # [camera, x, y, radius] seeds
    snapshot_every: int = 0  # save every n-th frameset as images, 0 disables
    source: SourceConfig = field(default_factory=SourceConfig)
    parameters: Parameters = field(default_factory=Parameters)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    def apply_overrides(self, **kwargs: Any) -> "AppConfig":
        for key, value in kwargs.items():
            if value is not None and hasattr(self, key):
                setattr(self, key, value)
        return self


def _normalize_devices(value: Any) -> Optional[list[int]]:
    if value is None:
        return None
    if isinstance(value, (list, tuple, set)):
        return [int(v) for v in value]
    if isinstance(value, (int, float)):
        return [int(value)]
    return None


def _read_raw(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as fp:
        if path.suffix.lower() in {".yaml", ".yml"}:
            return yaml.safe_load(fp) or {}
        return json.load(fp)


def _load_parameters(raw: Any) -> Parameters:
    params = Parameters()
    if raw is None:
        return params
    if not isinstance(raw, dict):
        raise ValueError("parameters must be a mapping of name -> value")
    known = Parameters.names()
    for key, value in raw.items():
        if key not in known:
            raise ValueError(f"Unknown parameter: {key}")
        default = getattr(params, key)
        setattr(params, key, type(default)(value))
    return params


def load_config(path: str | Path) -> AppConfig:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p}")

    raw = _read_raw(p)
    if not isinstance(raw, dict):
        raise ValueError(f"{p.name}: configuration root must be a mapping")

    cfg = AppConfig()
    cfg.app_name = str(raw.get("app_name", cfg.app_name))
    cfg.tracker = str(raw.get("tracker", cfg.tracker))
    cfg.max_arity = int(raw.get("max_arity", cfg.max_arity))
    if not 1 <= cfg.max_arity <= Frameset.MAX_ARITY:
        raise ValueError(f"max_arity must be within 1..{Frameset.MAX_ARITY}")
    cfg.single_threaded = bool(raw.get("single_threaded", cfg.single_threaded))
    cfg.devices = _normalize_devices(raw.get("devices", cfg.devices))
    cfg.calibration_path = raw.get("calibration_path", cfg.calibration_path)
    cfg.calibrate = bool(raw.get("calibrate", cfg.calibrate))
    cfg.session_root = str(raw.get("session_root", cfg.session_root))
    cfg.duration_sec = float(raw.get("duration_sec", cfg.duration_sec))
    cfg.log_level = str(raw.get("log_level", cfg.log_level)).upper()
    cfg.snapshot_every = int(raw.get("snapshot_every", cfg.snapshot_every))
    if cfg.snapshot_every < 0:
        raise ValueError("snapshot_every must be >= 0")
    cfg.marks = [[float(v) for v in m] for m in raw.get("marks", cfg.marks)]
    for m in cfg.marks:
        if len(m) != 4:
            raise ValueError(f"mark must be [camera, x, y, radius], got {m}")

    src_raw = raw.get("source")
    if src_raw is not None and isinstance(src_raw, dict):
        src_cfg = SourceConfig()
        src_cfg.type = str(src_raw.get("type", src_cfg.type))
        src_cfg.width = int(src_raw.get("width", src_cfg.width))
        src_cfg.height = int(src_raw.get("height", src_cfg.height))
        src_cfg.fps = int(src_raw.get("fps", src_cfg.fps))
        src_cfg.paths = [str(v) for v in src_raw.get("paths", src_cfg.paths)]
        src_cfg.synthetic_count = int(src_raw.get("synthetic_count", src_cfg.synthetic_count))
        cfg.source = src_cfg

    cfg.parameters = _load_parameters(raw.get("parameters"))
    return cfg
