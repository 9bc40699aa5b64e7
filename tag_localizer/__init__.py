"""Landmark-based pose correction from fiducial tag detections."""

from .config import ConfigError, DetectionMode, LocalizerConfig, load_config
from .landmarks import LandmarkMap, LandmarkMapError
from .pipeline import CorrectionPipeline, FrameReport
from .reference import ReferencePoseCache
from .tf import StaticTransformResolver, TransformLookupError
from .types import CameraInfo, Detection, Pose, Readiness, StampedPose, ValidatedPose

__all__ = [
    "CameraInfo",
    "ConfigError",
    "CorrectionPipeline",
    "Detection",
    "DetectionMode",
    "FrameReport",
    "LandmarkMap",
    "LandmarkMapError",
    "LocalizerConfig",
    "Pose",
    "Readiness",
    "ReferencePoseCache",
    "StampedPose",
    "StaticTransformResolver",
    "TransformLookupError",
    "ValidatedPose",
    "load_config",
]
