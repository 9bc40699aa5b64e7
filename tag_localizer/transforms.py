"""SE(3) transformation utilities for tag-based pose correction.

Naming follows ``a_to_b``: the pose of frame ``b`` expressed in frame ``a``,
i.e. the 4x4 homogeneous matrix ``T_a_b`` that maps points from ``b`` into ``a``.
"""

from __future__ import annotations

import cv2
import numpy as np
from scipy.spatial.transform import Rotation

from .types import Pose

ORTHONORMAL_EPS = 1e-9


def rvec_tvec_to_matrix(rvec: np.ndarray, tvec: np.ndarray) -> np.ndarray:
    """
    Convert rotation vector and translation vector to 4x4 transformation matrix.

    Args:
        rvec: Rotation vector (3,) or (3,1)
        tvec: Translation vector (3,) or (3,1)

    Returns:
        4x4 homogeneous transformation matrix
    """
    rvec = np.array(rvec, dtype=np.float64).reshape(3)
    tvec = np.array(tvec, dtype=np.float64).reshape(3)

    R, _ = cv2.Rodrigues(rvec)

    T = np.eye(4)
    T[:3, :3] = R
    T[:3, 3] = tvec

    return T


def quaternion_to_matrix(q: np.ndarray) -> np.ndarray:
    """Unit quaternion (x, y, z, w) to 3x3 rotation matrix."""
    return Rotation.from_quat(np.asarray(q, dtype=np.float64)).as_matrix()


def matrix_to_quaternion(R: np.ndarray) -> np.ndarray:
    """3x3 rotation matrix to unit quaternion (x, y, z, w)."""
    return Rotation.from_matrix(orthonormalize(R)).as_quat()


def orthonormalize(R: np.ndarray) -> np.ndarray:
    """
    Project R back onto SO(3) if it has drifted.

    Inputs that are orthonormal within ORTHONORMAL_EPS are returned untouched.
    """
    R = np.asarray(R, dtype=np.float64)
    if np.max(np.abs(R @ R.T - np.eye(3))) <= ORTHONORMAL_EPS:
        return R
    U, _, Vt = np.linalg.svd(R)
    R_fixed = U @ Vt
    if np.linalg.det(R_fixed) < 0:
        U[:, -1] *= -1
        R_fixed = U @ Vt
    return R_fixed


def invert_transform(T: np.ndarray) -> np.ndarray:
    """
    Invert a 4x4 homogeneous transformation matrix.

    For SE(3): T^-1 = [R^T, -R^T * t; 0, 1]

    Args:
        T: 4x4 transformation matrix

    Returns:
        4x4 inverted transformation matrix
    """
    T_inv = np.eye(4)
    R = T[:3, :3]
    t = T[:3, 3]

    R_T = R.T
    T_inv[:3, :3] = R_T
    T_inv[:3, 3] = -R_T @ t

    return T_inv


def invert_pose(pose: Pose, frame_id: str) -> Pose:
    """Invert ``pose``; the result is expressed in ``frame_id``."""
    return Pose.from_matrix(invert_transform(pose.as_matrix()), frame_id)


def compose_map_to_body(map_to_tag: Pose, sensor_to_tag: Pose, sensor_to_body: Pose) -> Pose:
    """
    Derive the body pose in the map frame from a single tag observation.

    Given:
        T_map_tag: known tag pose from the landmark map
        T_sensor_tag: detected tag pose in the sensor frame
        T_sensor_body: body pose in the sensor frame (static offset)

    Compute:
        T_body_tag = inv(T_sensor_body) @ T_sensor_tag
        T_map_body = T_map_tag @ inv(T_body_tag)

    Args:
        map_to_tag: Tag pose in the map frame
        sensor_to_tag: Tag pose in the sensor frame
        sensor_to_body: Body pose in the sensor frame

    Returns:
        Body pose expressed in ``map_to_tag.frame_id``
    """
    T_body_tag = invert_transform(sensor_to_body.as_matrix()) @ sensor_to_tag.as_matrix()
    T_tag_body = invert_transform(T_body_tag)
    T_map_body = map_to_tag.as_matrix() @ T_tag_body

    return Pose.from_matrix(T_map_body, map_to_tag.frame_id)
