"""Motion-capture application: pipeline orchestration and recording sessions."""

from .application import Application, AppState, PipelineError
from .config import AppConfig
from .session import MocapSession

__all__ = ["Application", "AppState", "AppConfig", "MocapSession", "PipelineError"]
