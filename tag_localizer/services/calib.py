import cv2
import numpy as np

from ..types import CameraInfo


def load_camera_info(path: str) -> CameraInfo:
    """Read intrinsics from an OpenCV calibration file."""
    fs = cv2.FileStorage(path, cv2.FILE_STORAGE_READ)
    try:
        K = fs.getNode("camera_matrix").mat()
        dist = fs.getNode("dist_coeffs").mat()
        w = int(fs.getNode("image_width").real())
        h = int(fs.getNode("image_height").real())
    finally:
        fs.release()
    if K is None:
        raise ValueError(f"camera_matrix missing in {path}")
    if dist is None:
        dist = np.zeros((4, 1))
    return CameraInfo(w, h, K, dist)
