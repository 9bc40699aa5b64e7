from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Union

import numpy as np

from .config import LocalizerConfig
from .diagnostics import PipelineStats, detection_status, not_ready_status
from .gate import (
    CANDIDATE_STAGE,
    DETECTION_STAGE,
    FilterResult,
    FreshnessFilter,
    GateContext,
    PlausibilityFilter,
    ValidationGate,
    check_landmark_presence,
)
from .landmarks import LandmarkMap
from .logging_utils import setup_logger
from .output import PoseSink
from .reference import ReferencePoseCache
from .tf import StaticTransformResolver, TransformLookupError, TransformResolver
from .transforms import compose_map_to_body
from .types import (
    CameraInfo,
    Detection,
    DiagnosticStatus,
    Pose,
    Readiness,
    StampedPose,
    ValidatedPose,
)
from .uncertainty import scale_covariance

TRANSFORM_STAGE = "transform"

# rejections the vehicle hits in steady state far from tags stay at DEBUG
_REJECTION_LOG_LEVELS = {
    FreshnessFilter.name: logging.INFO,
    PlausibilityFilter.name: logging.INFO,
    TRANSFORM_STAGE: logging.INFO,
}


@dataclass
class Rejection:
    tag_id: str
    filter: str
    reason: str


@dataclass
class FrameReport:
    diagnostic: DiagnosticStatus
    poses: list[ValidatedPose] = field(default_factory=list)
    rejections: list[Rejection] = field(default_factory=list)


class CorrectionPipeline:
    """Turns tag detections into validated map-frame body poses.

    Each external feed has its own entry point (``on_map_update``,
    ``on_camera_info``, ``on_reference_pose``, ``on_detections``); they can be
    driven directly, without any messaging layer.
    """

    def __init__(
        self,
        config: LocalizerConfig,
        resolver: Optional[TransformResolver] = None,
        reference_cache: Optional[ReferencePoseCache] = None,
        outputs: Optional[Iterable[PoseSink]] = None,
        logger: Optional[logging.Logger] = None,
        gate: Optional[ValidationGate] = None,
        landmarks: Optional[LandmarkMap] = None,
    ):
        self.config = config
        self.logger = logger or setup_logger(config.node_name, config.log_level)
        self.resolver = resolver or StaticTransformResolver.from_config(config.static_transforms)
        self.reference_cache = reference_cache or ReferencePoseCache()
        self.outputs = list(outputs) if outputs is not None else []
        self.gate = gate or ValidationGate.from_config(config)
        self.stats = PipelineStats()

        self._landmarks = landmarks if landmarks is not None else LandmarkMap.empty(config.map_frame)
        self._base_covariance = config.base_covariance_matrix()
        self._camera_info: Optional[CameraInfo] = None
        self._readiness = Readiness.NOT_READY

    @property
    def landmarks(self) -> LandmarkMap:
        return self._landmarks

    @property
    def readiness(self) -> Readiness:
        return self._readiness

    @property
    def camera_info(self) -> Optional[CameraInfo]:
        return self._camera_info

    def on_map_update(self, raw: Mapping[str, Any], tag_family: Optional[str] = None) -> list[tuple[str, Pose]]:
        landmarks = LandmarkMap.build(raw, tag_family or self.config.tag_family, self.config.map_frame)
        self._landmarks = landmarks
        return landmarks.markers()

    def on_camera_info(self, info: CameraInfo) -> None:
        # only the first message is used
        if self._readiness is Readiness.READY:
            return
        self._camera_info = info
        self._readiness = Readiness.READY
        self.logger.info("camera info received: %dx%d", info.width, info.height)

    def on_reference_pose(self, pose: StampedPose) -> None:
        self.reference_cache.update(pose)

    def on_detections(self, detections: Iterable[Detection]) -> FrameReport:
        detections = list(detections)
        if self._readiness is not Readiness.READY:
            self.logger.debug("No cam_info has been received.")
            return FrameReport(not_ready_status(self.config.node_name))

        landmarks = self._landmarks
        reference = self.reference_cache.read()

        self.stats.frames += 1
        self.stats.detected += len(detections)
        report = FrameReport(detection_status(self.config.node_name, len(detections)))

        for det in detections:
            outcome = self.process_detection(det, landmarks, reference)
            if isinstance(outcome, Rejection):
                report.rejections.append(outcome)
                continue
            report.poses.append(outcome)
            self.stats.accepted += 1
            for out in self.outputs:
                out.write_pose(outcome)

        return report

    def process_detection(
        self,
        detection: Detection,
        landmarks: LandmarkMap,
        reference: Optional[StampedPose],
    ) -> Union[ValidatedPose, Rejection]:
        context = GateContext(detection, landmarks, reference)

        result = self.gate.evaluate(context, DETECTION_STAGE)
        if not result.accepted:
            return self._reject(detection, result.rejection)

        try:
            sensor_to_body = self.resolver.lookup(
                detection.frame_id, self.config.body_frame, detection.stamp
            )
        except TransformLookupError as exc:
            return self._reject(
                detection,
                FilterResult(
                    False,
                    TRANSFORM_STAGE,
                    f"Could not transform {self.config.body_frame} to {detection.frame_id}: {exc}",
                ),
            )

        map_to_tag = landmarks.lookup(detection.tag_id)
        if map_to_tag is None:
            # gates built without a landmark presence filter
            return self._reject(detection, check_landmark_presence(detection.tag_id, landmarks))
        context.candidate = compose_map_to_body(map_to_tag, detection.pose, sensor_to_body)

        result = self.gate.evaluate(context, CANDIDATE_STAGE)
        if not result.accepted:
            return self._reject(detection, result.rejection)

        distance = float(np.linalg.norm(detection.pose.position))
        covariance = scale_covariance(distance, self._base_covariance)
        return ValidatedPose(
            StampedPose(context.candidate, detection.stamp),
            covariance,
            detection.tag_id,
            distance,
        )

    def _reject(self, detection: Detection, outcome: FilterResult) -> Rejection:
        self.stats.rejected[outcome.name] += 1
        level = _REJECTION_LOG_LEVELS.get(outcome.name, logging.DEBUG)
        self.logger.log(level, "tag %s dropped by %s: %s", detection.tag_id, outcome.name, outcome.reason)
        return Rejection(detection.tag_id, outcome.name, outcome.reason)
