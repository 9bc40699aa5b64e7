from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

import numpy as np


def _frozen_array(values: Any, shape: tuple[int, ...]) -> np.ndarray:
    arr = np.array(values, dtype=np.float64).reshape(shape)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class Pose:
    """Rigid transform expressed in ``frame_id``.

    ``orientation`` is a unit quaternion in (x, y, z, w) order.
    """

    position: Any
    orientation: Any
    frame_id: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "position", _frozen_array(self.position, (3,)))
        object.__setattr__(self, "orientation", _frozen_array(self.orientation, (4,)))

    @classmethod
    def identity(cls, frame_id: str) -> "Pose":
        return cls((0.0, 0.0, 0.0), (0.0, 0.0, 0.0, 1.0), frame_id)

    @classmethod
    def from_matrix(cls, T: np.ndarray, frame_id: str) -> "Pose":
        from .transforms import matrix_to_quaternion

        T = np.asarray(T, dtype=np.float64)
        return cls(T[:3, 3], matrix_to_quaternion(T[:3, :3]), frame_id)

    def as_matrix(self) -> np.ndarray:
        from .transforms import quaternion_to_matrix

        T = np.eye(4)
        T[:3, :3] = quaternion_to_matrix(self.orientation)
        T[:3, 3] = self.position
        return T

    def as_dict(self) -> dict[str, Any]:
        return {
            "frame_id": self.frame_id,
            "position": self.position.tolist(),
            "orientation": self.orientation.tolist(),
        }


@dataclass(frozen=True, eq=False)
class StampedPose:
    pose: Pose
    stamp: float  # seconds, shared clock across producers

    @property
    def frame_id(self) -> str:
        return self.pose.frame_id


@dataclass(frozen=True, eq=False)
class Detection:
    tag_id: str
    pose: Pose  # tag pose in the sensor frame
    stamp: float

    @property
    def frame_id(self) -> str:
        return self.pose.frame_id


@dataclass(frozen=True, eq=False)
class ValidatedPose:
    pose: StampedPose  # map frame
    covariance: Any  # (6, 6) symmetric
    tag_id: str
    distance: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "covariance", _frozen_array(self.covariance, (6, 6)))

    def covariance_row_major(self) -> list[float]:
        return self.covariance.reshape(36).tolist()


@dataclass(frozen=True, eq=False)
class CameraInfo:
    width: int
    height: int
    camera_matrix: Any  # (3, 3)
    dist_coeffs: Any

    @classmethod
    def from_projection(cls, width: int, height: int, p: Any) -> "CameraInfo":
        """Build intrinsics from a row-major 3x4 projection matrix.

        Distortion is taken as zero since the projection matrix already
        describes the rectified image.
        """
        P = np.array(p, dtype=np.float64).reshape(3, 4)
        return cls(int(width), int(height), P[:, :3].copy(), np.zeros((4, 1)))


class Readiness(Enum):
    NOT_READY = "not_ready"
    READY = "ready"


class DiagnosticLevel(Enum):
    OK = 0
    WARN = 1
    ERROR = 2


@dataclass
class DiagnosticStatus:
    level: DiagnosticLevel
    name: str
    message: str
    values: dict[str, str]
