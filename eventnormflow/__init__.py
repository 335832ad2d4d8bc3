"""eventnormflow — normal flow extraction from event-camera streams."""

from .events import Event, EventBatch
from .undistortion import PinholeIntrinsics, UndistortionMap
from .event_surface import EventSurface, SurfaceSnapshot
from .plane_model import LocalPlaneModel
from .ransac import RansacResult, SacProblem, ransac
from .config import ConfigError, NormFlowConfig
from .norm_flow import NormFlow, NormFlowExtractor, NormFlowPack, centralize
from .synthetic import SyntheticEventSource

__all__ = ["Event", "EventBatch", "PinholeIntrinsics", "UndistortionMap",
           "EventSurface", "SurfaceSnapshot", "LocalPlaneModel", "RansacResult",
           "SacProblem", "ransac", "ConfigError", "NormFlowConfig", "NormFlow",
           "NormFlowExtractor", "NormFlowPack", "centralize",
           "SyntheticEventSource"]
