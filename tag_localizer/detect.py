"""OpenCV front end producing Detection records from images.

This is the vision collaborator of the pipeline: the pipeline itself only
consumes the Detection records returned here.
"""

from __future__ import annotations

from typing import Any

import cv2
import numpy as np

from .config import ConfigError, DetectionMode, LocalizerConfig
from .transforms import rvec_tvec_to_matrix
from .types import CameraInfo, Detection, Pose

_FAMILIES = {
    "apriltag_16h5": "DICT_APRILTAG_16h5",
    "apriltag_25h9": "DICT_APRILTAG_25h9",
    "apriltag_36h10": "DICT_APRILTAG_36h10",
    "apriltag_36h11": "DICT_APRILTAG_36h11",
    "4x4_50": "DICT_4X4_50",
    "4x4_100": "DICT_4X4_100",
    "5x5_50": "DICT_5X5_50",
    "5x5_100": "DICT_5X5_100",
    "6x6_50": "DICT_6X6_50",
    "6x6_100": "DICT_6X6_100",
}


def get_dict(tag_family: str):
    key = (tag_family or "").strip().lower()
    attr = _FAMILIES.get(key)
    if attr is None or not hasattr(cv2.aruco, attr):
        raise ConfigError(f"Unsupported tag family: {tag_family}")
    code = getattr(cv2.aruco, attr)
    if hasattr(cv2.aruco, "getPredefinedDictionary"):
        return cv2.aruco.getPredefinedDictionary(code)
    return cv2.aruco.Dictionary_get(code)


def make_params(mode: DetectionMode, min_marker_size: float):
    """Detector parameters for a detection mode.

    ``min_marker_size`` is the smallest marker side as a fraction of the
    larger image dimension.
    """
    if hasattr(cv2.aruco, "DetectorParameters_create"):
        params = cv2.aruco.DetectorParameters_create()
    else:
        params = cv2.aruco.DetectorParameters()

    params.minMarkerPerimeterRate = max(1e-3, 4.0 * min_marker_size)
    if mode is not DetectionMode.DM_NORMAL:
        # single threshold window, no corner refinement
        params.adaptiveThreshWinSizeMax = params.adaptiveThreshWinSizeMin
        params.cornerRefinementMethod = cv2.aruco.CORNER_REFINE_NONE
    else:
        params.cornerRefinementMethod = cv2.aruco.CORNER_REFINE_SUBPIX
    if mode is DetectionMode.DM_VIDEO_FAST and hasattr(params, "useAruco3Detection"):
        params.useAruco3Detection = True
    return params


def marker_object_points(marker_size: float) -> np.ndarray:
    """Corner coordinates in the tag frame, in the order SOLVEPNP_IPPE_SQUARE expects."""
    h = marker_size / 2.0
    return np.array(
        [[-h, h, 0.0], [h, h, 0.0], [h, -h, 0.0], [-h, -h, 0.0]],
        dtype=np.float64,
    )


class TagDetector:
    def __init__(
        self,
        tag_family: str,
        marker_size: float,
        mode: DetectionMode = DetectionMode.DM_NORMAL,
        min_marker_size: float = 0.02,
    ):
        self.marker_size = marker_size
        self.mode = mode
        self.dictionary = get_dict(tag_family)
        self.params = make_params(mode, min_marker_size)
        self.object_points = marker_object_points(marker_size)
        self._detector = None
        if hasattr(cv2.aruco, "ArucoDetector"):
            self._detector = cv2.aruco.ArucoDetector(self.dictionary, self.params)

    @classmethod
    def from_config(cls, config: LocalizerConfig) -> "TagDetector":
        return cls(
            config.tag_family,
            config.marker_size,
            DetectionMode.parse(config.detection_mode),
            config.min_marker_size,
        )

    def find_markers(self, image: Any) -> tuple[list[np.ndarray], list[int]]:
        if self._detector is not None:
            corners, ids, _rej = self._detector.detectMarkers(image)
        else:
            corners, ids, _rej = cv2.aruco.detectMarkers(image, self.dictionary, parameters=self.params)
        if ids is None or len(ids) == 0:
            return [], []
        return list(corners), [int(i) for i in np.asarray(ids).flatten()]

    def estimate_pose(self, corners: np.ndarray, camera_info: CameraInfo) -> np.ndarray | None:
        """4x4 tag pose in the camera frame, or None if PnP fails."""
        image_points = np.asarray(corners, dtype=np.float64).reshape(4, 2)
        ok, rvec, tvec = cv2.solvePnP(
            self.object_points,
            image_points,
            np.asarray(camera_info.camera_matrix, dtype=np.float64),
            np.asarray(camera_info.dist_coeffs, dtype=np.float64),
            flags=cv2.SOLVEPNP_IPPE_SQUARE,
        )
        if not ok:
            return None
        return rvec_tvec_to_matrix(rvec, tvec)

    def detect(self, image: Any, camera_info: CameraInfo, stamp: float, frame_id: str) -> list[Detection]:
        corners, ids = self.find_markers(image)
        dets: list[Detection] = []
        for c, tag_id in zip(corners, ids):
            T = self.estimate_pose(c, camera_info)
            if T is None:
                continue
            dets.append(Detection(str(tag_id), Pose.from_matrix(T, frame_id), stamp))
        return dets
