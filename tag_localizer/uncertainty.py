"""Distance-dependent observation covariance."""

from typing import Any

import numpy as np

# up to this distance the base covariance is used as-is
NOMINAL_RANGE = 5.0


def covariance_coefficient(distance: float) -> float:
    """max(1, (distance / 5)^3): unity within range, cubic growth beyond."""
    return max(1.0, (distance / NOMINAL_RANGE) ** 3)


def scale_covariance(distance: float, base_covariance: Any) -> np.ndarray:
    """
    Scale a 6x6 pose covariance by the observation distance.

    Args:
        distance: Sensor-to-tag distance
        base_covariance: 36 values (row-major) or a 6x6 array

    Returns:
        6x6 float64 covariance, ``coeff * base_covariance``
    """
    base = np.array(base_covariance, dtype=np.float64).reshape(6, 6)
    return covariance_coefficient(distance) * base
