"""Multi-camera marker tracking and localization pipeline."""

from .config import Parameters
from .controller import Controller
from .mt_types import CalibrationData, Frameset, Location, Mark, MarkType, Positset
from .tracker import Tracker

__all__ = [
    "Parameters",
    "Controller",
    "Tracker",
    "Mark",
    "MarkType",
    "Frameset",
    "Positset",
    "Location",
    "CalibrationData",
]
