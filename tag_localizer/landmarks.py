"""Landmark map: tag id -> tag pose in the map frame."""

from __future__ import annotations

import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional

import numpy as np

from .config import load_document
from .transforms import matrix_to_quaternion
from .types import Pose

DEFAULT_TAG_FAMILY = "apriltag_16h5"
# minimum edge length and face area for a vertex-defined tag
DEGENERATE_EPS = 1e-9

log = logging.getLogger(__name__)


class LandmarkMapError(ValueError):
    """Raised when a landmark document cannot form a consistent map."""


def pose_from_vertices(vertices: Any, frame_id: str) -> Optional[Pose]:
    """
    Pose of a printed tag from its four map-frame corners.

    Corners are listed counter-clockwise as seen from the front of the tag
    (bottom-left first). The position is the centroid; the x axis runs
    v0 -> v1, the y axis v1 -> v2, and z = x cross y points out of the tag
    face, matching the tag frame the detector reports. Returns None when the
    corners are coincident or collinear.
    """
    v = np.array(vertices, dtype=np.float64).reshape(4, 3)
    center = v.mean(axis=0)

    x_axis = v[1] - v[0]
    x_norm = np.linalg.norm(x_axis)
    if not x_norm > DEGENERATE_EPS:
        return None
    x_axis /= x_norm
    y_axis = v[2] - v[1]
    z_axis = np.cross(x_axis, y_axis)
    z_norm = np.linalg.norm(z_axis)
    if not z_norm > DEGENERATE_EPS:
        return None
    z_axis /= z_norm
    y_axis = np.cross(z_axis, x_axis)

    R = np.column_stack([x_axis, y_axis, z_axis])
    return Pose(center, matrix_to_quaternion(R), frame_id)


def _entry_pose(entry: Mapping[str, Any], frame_id: str) -> Optional[Pose]:
    if "vertices" in entry:
        vertices = entry["vertices"]
        if not isinstance(vertices, (list, tuple)) or len(vertices) != 4:
            return None
        return pose_from_vertices(vertices, frame_id)
    if "position" in entry:
        orientation = entry.get("orientation", (0.0, 0.0, 0.0, 1.0))
        return Pose(entry["position"], orientation, frame_id)
    return None


class LandmarkMap:
    """Immutable snapshot of landmark poses. Replace it, never mutate it."""

    def __init__(self, poses: Mapping[str, Pose], frame_id: str = "map"):
        self._poses = MappingProxyType(dict(poses))
        self.frame_id = frame_id

    @classmethod
    def empty(cls, frame_id: str = "map") -> "LandmarkMap":
        return cls({}, frame_id)

    @classmethod
    def build(
        cls,
        raw: Mapping[str, Any],
        tag_family: str = DEFAULT_TAG_FAMILY,
        frame_id: str = "map",
    ) -> "LandmarkMap":
        if not isinstance(raw, Mapping):
            raise LandmarkMapError("landmark document root must be a mapping")
        entries = raw.get("landmarks", [])
        if not isinstance(entries, list):
            raise LandmarkMapError("landmarks must be a list")
        frame_id = str(raw.get("frame_id", frame_id))

        poses: dict[str, Pose] = {}
        for entry in entries:
            if not isinstance(entry, Mapping) or entry.get("type") != tag_family:
                continue
            tag_id = str(entry.get("id", ""))
            if not tag_id:
                log.warning("skipping %s landmark without id", tag_family)
                continue
            pose = _entry_pose(entry, frame_id)
            if pose is None:
                log.warning("skipping landmark %s: needs 4 distinct non-collinear vertices or a position", tag_id)
                continue
            if tag_id in poses:
                raise LandmarkMapError(f"duplicate landmark id: {tag_id}")
            poses[tag_id] = pose

        log.info("landmark map built: %d %s tags", len(poses), tag_family)
        return cls(poses, frame_id)

    def lookup(self, tag_id: str) -> Optional[Pose]:
        return self._poses.get(tag_id)

    def markers(self) -> list[tuple[str, Pose]]:
        """(id, pose) pairs for visualization, ordered by id."""
        return sorted(self._poses.items(), key=lambda kv: (len(kv[0]), kv[0]))

    def __contains__(self, tag_id: object) -> bool:
        return tag_id in self._poses

    def __len__(self) -> int:
        return len(self._poses)


def load_landmarks(path: str | Path) -> dict[str, Any]:
    """Read a raw landmark document (JSON or YAML)."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Landmark file not found: {p}")
    return load_document(p)
