from .base import TrackerState, TrackerStrategy
from .circle import CircleStrategy
from .histogram import HistogramStrategy
from .template import TemplateStrategy

__all__ = [
    "TrackerState",
    "TrackerStrategy",
    "TemplateStrategy",
    "CircleStrategy",
    "HistogramStrategy",
]
