from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Iterator, Optional

import numpy as np

from .transforms import fundamental_from_pose, projection_matrix, relative_pose


class MarkType(str, Enum):
    CIRCLE = "circle"
    RECTANGLE = "rectangle"


@dataclass(frozen=True)
class Mark:
    type: MarkType
    center: tuple[float, float]
    radius: float = 0.0
    size: tuple[float, float] = (0.0, 0.0)  # width, height of rectangles

    @classmethod
    def circle(cls, center, radius: float) -> "Mark":
        return cls(MarkType.CIRCLE, (float(center[0]), float(center[1])), float(radius))

    @classmethod
    def rectangle(cls, center, size) -> "Mark":
        return cls(
            MarkType.RECTANGLE,
            (float(center[0]), float(center[1])),
            size=(float(size[0]), float(size[1])),
        )

    @property
    def half_extent(self) -> tuple[float, float]:
        if self.type == MarkType.CIRCLE:
            return self.radius, self.radius
        return self.size[0] / 2.0, self.size[1] / 2.0


@dataclass
class Frame:
    idx: int
    timestamp_ns: int
    image: Any  # numpy array


@dataclass
class Frameset:
    """Temporally aligned frames, one per active camera."""

    MAX_ARITY: ClassVar[int] = 4

    idx: int
    frames: list[Frame] = field(default_factory=list)

    def __post_init__(self):
        if len(self.frames) > self.MAX_ARITY:
            raise ValueError(
                f"Frameset arity {len(self.frames)} exceeds maximum {self.MAX_ARITY}"
            )

    @property
    def arity(self) -> int:
        return len(self.frames)

    def __len__(self) -> int:
        return len(self.frames)

    def __getitem__(self, cam: int) -> Frame:
        return self.frames[cam]

    def __iter__(self) -> Iterator[Frame]:
        return iter(self.frames)


@dataclass
class Positset:
    idx: int
    marks: list[Optional[Mark]] = field(default_factory=list)

    @property
    def arity(self) -> int:
        return len(self.marks)

    def __len__(self) -> int:
        return len(self.marks)

    def __getitem__(self, cam: int) -> Optional[Mark]:
        return self.marks[cam]

    def found(self) -> list[int]:
        return [cam for cam, mark in enumerate(self.marks) if mark is not None]


@dataclass(frozen=True)
class Location:
    x: float
    y: float
    z: float

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=np.float64)


@dataclass
class CameraParameters:
    camera_matrix: np.ndarray
    distortion: np.ndarray
    # Pose of the camera relative to camera 0
    rotation: np.ndarray = field(default_factory=lambda: np.eye(3))
    translation: np.ndarray = field(default_factory=lambda: np.zeros((3, 1)))
    has_position: bool = False


class CalibrationData:
    """
    Intrinsic and extrinsic parameters of every camera of one pipeline.

    Holders always keep their own copy (see copy()); the instance that
    computed the data is never shared by reference.
    """

    def __init__(self, arity: int):
        self._arity = int(arity)
        self.cameras: list[Optional[CameraParameters]] = [None] * self._arity

    @property
    def arity(self) -> int:
        return self._arity

    def set_camera(self, cam: int, params: CameraParameters) -> None:
        self.cameras[cam] = params

    def set_position(self, cam: int, rotation, translation) -> None:
        params = self.cameras[cam]
        if params is None:
            raise ValueError(f"Camera {cam} has no intrinsic parameters")
        params.rotation = np.asarray(rotation, dtype=np.float64).reshape(3, 3)
        params.translation = np.asarray(translation, dtype=np.float64).reshape(3, 1)
        params.has_position = True

    def is_complete(self) -> bool:
        return all(p is not None and p.has_position for p in self.cameras)

    def projection_matrix(self, cam: int) -> np.ndarray:
        p = self.cameras[cam]
        return projection_matrix(p.camera_matrix, p.rotation, p.translation)

    def fundamental_matrix(self, cam_from: int, cam_to: int) -> Optional[np.ndarray]:
        a, b = self.cameras[cam_from], self.cameras[cam_to]
        if a is None or b is None or not (a.has_position and b.has_position):
            return None
        rot, trans = relative_pose(a.rotation, a.translation, b.rotation, b.translation)
        return fundamental_from_pose(a.camera_matrix, b.camera_matrix, rot, trans)

    def copy(self) -> "CalibrationData":
        return copy.deepcopy(self)

    def __repr__(self) -> str:
        known = sum(1 for p in self.cameras if p is not None)
        return f"CalibrationData(arity={self._arity}, cameras={known}, complete={self.is_complete()})"
