"""Ordered accept/reject filters applied to each tag observation.

Filters run in a fixed order and the first rejection stops evaluation:

    target_set -> landmark_presence -> range -> freshness -> plausibility

The first three only need the raw detection ("detection" stage). Freshness and
plausibility compare against the reference pose and need the candidate map
pose ("candidate" stage), so the pipeline evaluates the stages separately with
the frame transform in between.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Sequence

import numpy as np

from .config import LocalizerConfig
from .landmarks import LandmarkMap
from .types import Detection, Pose, StampedPose

DETECTION_STAGE = "detection"
CANDIDATE_STAGE = "candidate"


@dataclass(frozen=True)
class FilterResult:
    accepted: bool
    name: str
    reason: str = ""


@dataclass
class GateContext:
    detection: Detection
    landmarks: LandmarkMap
    reference: Optional[StampedPose] = None
    candidate: Optional[Pose] = None


@dataclass
class GateResult:
    accepted: bool
    evaluated: list[str] = field(default_factory=list)
    rejection: Optional[FilterResult] = None


def check_target_set(tag_id: str, target_ids: Iterable[str]) -> FilterResult:
    if tag_id in target_ids:
        return FilterResult(True, TargetSetFilter.name)
    return FilterResult(False, TargetSetFilter.name, f"tag_id({tag_id}) is not in target_tag_ids")


def check_landmark_presence(tag_id: str, landmarks: LandmarkMap) -> FilterResult:
    if landmarks.lookup(tag_id) is not None:
        return FilterResult(True, LandmarkPresenceFilter.name)
    return FilterResult(False, LandmarkPresenceFilter.name, f"tag_id({tag_id}) is not in the landmark map")


def check_range(sensor_position: Any, distance_threshold_squared: float) -> FilterResult:
    p = np.asarray(sensor_position, dtype=np.float64).reshape(3)
    distance_squared = float(np.dot(p, p))
    if distance_squared <= distance_threshold_squared:
        return FilterResult(True, RangeFilter.name)
    return FilterResult(
        False,
        RangeFilter.name,
        f"tag is {np.sqrt(distance_squared):.3f} away, beyond {np.sqrt(distance_threshold_squared):.3f}",
    )


def check_freshness(
    detection_stamp: float, reference: Optional[StampedPose], tolerance: float
) -> FilterResult:
    if reference is None:
        return FilterResult(False, FreshnessFilter.name, "no reference pose received yet")
    diff = abs(detection_stamp - reference.stamp)
    if diff <= tolerance:
        return FilterResult(True, FreshnessFilter.name)
    return FilterResult(
        False,
        FreshnessFilter.name,
        f"reference pose is {diff:.3f}s apart from the detection (tolerance {tolerance:.3f}s); "
        f"reference stamp {reference.stamp:.6f}, detection stamp {detection_stamp:.6f}",
    )


def check_plausibility(
    candidate_position: Any,
    reference: Optional[StampedPose],
    tolerance: float,
    candidate_frame: Optional[str] = None,
) -> FilterResult:
    if reference is None:
        return FilterResult(False, PlausibilityFilter.name, "no reference pose received yet")
    if candidate_frame is not None and candidate_frame != reference.frame_id:
        return FilterResult(
            False,
            PlausibilityFilter.name,
            f"candidate frame {candidate_frame} does not match reference frame {reference.frame_id}",
        )
    c = np.asarray(candidate_position, dtype=np.float64).reshape(3)
    r = reference.pose.position
    diff = float(np.linalg.norm(c - r))
    if diff <= tolerance:
        return FilterResult(True, PlausibilityFilter.name)
    return FilterResult(
        False,
        PlausibilityFilter.name,
        "candidate differs from reference pose by %.3f (tolerance %.3f); "
        "candidate (%.3f, %.3f, %.3f), reference (%.3f, %.3f, %.3f)"
        % (diff, tolerance, c[0], c[1], c[2], r[0], r[1], r[2]),
    )


class CandidateFilter(ABC):
    name: str = ""
    stage: str = DETECTION_STAGE

    @abstractmethod
    def __call__(self, context: GateContext) -> FilterResult: ...


class TargetSetFilter(CandidateFilter):
    name = "target_set"

    def __init__(self, target_ids: Iterable[str]):
        self.target_ids = frozenset(str(t) for t in target_ids)

    def __call__(self, context: GateContext) -> FilterResult:
        return check_target_set(context.detection.tag_id, self.target_ids)


class LandmarkPresenceFilter(CandidateFilter):
    name = "landmark_presence"

    def __call__(self, context: GateContext) -> FilterResult:
        return check_landmark_presence(context.detection.tag_id, context.landmarks)


class RangeFilter(CandidateFilter):
    name = "range"

    def __init__(self, distance_threshold_squared: float):
        self.distance_threshold_squared = distance_threshold_squared

    def __call__(self, context: GateContext) -> FilterResult:
        return check_range(context.detection.pose.position, self.distance_threshold_squared)


class FreshnessFilter(CandidateFilter):
    name = "freshness"
    stage = CANDIDATE_STAGE

    def __init__(self, tolerance: float):
        self.tolerance = tolerance

    def __call__(self, context: GateContext) -> FilterResult:
        return check_freshness(context.detection.stamp, context.reference, self.tolerance)


class PlausibilityFilter(CandidateFilter):
    name = "plausibility"
    stage = CANDIDATE_STAGE

    def __init__(self, tolerance: float):
        self.tolerance = tolerance

    def __call__(self, context: GateContext) -> FilterResult:
        if context.candidate is None:
            return FilterResult(False, self.name, "no candidate pose")
        return check_plausibility(
            context.candidate.position, context.reference, self.tolerance, context.candidate.frame_id
        )


class ValidationGate:
    def __init__(self, filters: Sequence[CandidateFilter]):
        self.filters = tuple(filters)

    @classmethod
    def from_config(cls, config: LocalizerConfig) -> "ValidationGate":
        return cls(
            [
                TargetSetFilter(config.target_tag_ids),
                LandmarkPresenceFilter(),
                RangeFilter(config.distance_threshold_squared),
                FreshnessFilter(config.ekf_time_tolerance),
                PlausibilityFilter(config.ekf_position_tolerance),
            ]
        )

    def evaluate(self, context: GateContext, stage: Optional[str] = None) -> GateResult:
        result = GateResult(accepted=True)
        for f in self.filters:
            if stage is not None and f.stage != stage:
                continue
            outcome = f(context)
            result.evaluated.append(f.name)
            if not outcome.accepted:
                result.accepted = False
                result.rejection = outcome
                break
        return result
