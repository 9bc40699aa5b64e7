from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import numpy as np
import yaml


class ConfigError(ValueError):
    """Invalid configuration; fatal at startup."""


class DetectionMode(Enum):
    DM_NORMAL = "DM_NORMAL"
    DM_FAST = "DM_FAST"
    DM_VIDEO_FAST = "DM_VIDEO_FAST"

    @classmethod
    def parse(cls, value: Any) -> "DetectionMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            raise ConfigError(f"Invalid detection_mode: {value}") from None


DEFAULT_BASE_COVARIANCE = [
    0.2, 0.0, 0.0, 0.0, 0.0, 0.0,
    0.0, 0.2, 0.0, 0.0, 0.0, 0.0,
    0.0, 0.0, 0.2, 0.0, 0.0, 0.0,
    0.0, 0.0, 0.0, 0.02, 0.0, 0.0,
    0.0, 0.0, 0.0, 0.0, 0.02, 0.0,
    0.0, 0.0, 0.0, 0.0, 0.0, 0.02,
]


@dataclass
class StaticTransformConfig:
    """Child frame pose expressed in the parent frame."""

    parent: str = "base_link"
    child: str = "camera"
    position: list[float] = field(default_factory=lambda: [0.0, 0.0, 0.0])
    orientation: list[float] = field(default_factory=lambda: [0.0, 0.0, 0.0, 1.0])

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class LocalizerConfig:
    node_name: str = "ar_tag_based_localizer"
    marker_size: float = 0.6
    target_tag_ids: list[str] = field(default_factory=lambda: [str(i) for i in range(7)])
    base_covariance: list[float] = field(default_factory=lambda: list(DEFAULT_BASE_COVARIANCE))
    distance_threshold: float = 13.0
    ekf_time_tolerance: float = 5.0
    ekf_position_tolerance: float = 10.0
    # passed through to the detector, not interpreted by the pipeline
    detection_mode: str = DetectionMode.DM_NORMAL.value
    min_marker_size: float = 0.02
    tag_family: str = "apriltag_16h5"
    map_frame: str = "map"
    body_frame: str = "base_link"
    static_transforms: list[StaticTransformConfig] = field(default_factory=list)
    session_root: str = "data/sessions"
    log_level: str = "INFO"

    @property
    def distance_threshold_squared(self) -> float:
        return self.distance_threshold ** 2

    def base_covariance_matrix(self) -> np.ndarray:
        return np.array(self.base_covariance, dtype=np.float64).reshape(6, 6)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    def apply_overrides(self, **kwargs: Any) -> "LocalizerConfig":
        for key, value in kwargs.items():
            if value is not None and hasattr(self, key):
                setattr(self, key, value)
        return self

    def validate(self) -> "LocalizerConfig":
        DetectionMode.parse(self.detection_mode)
        if len(self.base_covariance) != 36:
            raise ConfigError(
                f"base_covariance must have 36 values, got {len(self.base_covariance)}"
            )
        cov = self.base_covariance_matrix()
        if not np.all(np.isfinite(cov)):
            raise ConfigError("base_covariance must be finite")
        if not np.allclose(cov, cov.T):
            raise ConfigError("base_covariance must be symmetric")
        for name in ("marker_size", "distance_threshold", "ekf_time_tolerance", "ekf_position_tolerance"):
            value = getattr(self, name)
            if not math.isfinite(value) or value < 0:
                raise ConfigError(f"{name} must be a non-negative number, got {value}")
        if not self.map_frame or not self.body_frame:
            raise ConfigError("map_frame and body_frame must be set")
        return self


def load_document(path: Path) -> dict[str, Any]:
    """Read a JSON or YAML mapping from ``path``."""
    with path.open("r", encoding="utf-8") as fp:
        if path.suffix.lower() in {".yaml", ".yml"}:
            data = yaml.safe_load(fp) or {}
        else:
            data = json.load(fp)
    if not isinstance(data, dict):
        raise ValueError(f"{path.name}: root must be a JSON/YAML object")
    return data


def _float(raw: dict[str, Any], key: str, default: float) -> float:
    value = raw.get(key, default)
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be a number, got {value!r}") from None


def _float_list(raw: dict[str, Any], key: str, default: list[float]) -> list[float]:
    values = raw.get(key, default)
    try:
        return [float(v) for v in values]
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be a list of numbers, got {values!r}") from None


def _normalize_tag_ids(value: Any) -> list[str]:
    if isinstance(value, (list, tuple, set)):
        return [str(v) for v in value]
    if isinstance(value, (str, int)):
        return [str(value)]
    raise ConfigError("target_tag_ids must be a list of tag ids")


def _load_static_transform(raw: Any) -> StaticTransformConfig:
    if not isinstance(raw, dict):
        raise ConfigError("static_transforms entries must be mappings")
    tf_cfg = StaticTransformConfig()
    tf_cfg.parent = str(raw.get("parent", tf_cfg.parent))
    tf_cfg.child = str(raw.get("child", tf_cfg.child))
    tf_cfg.position = _float_list(raw, "position", tf_cfg.position)
    tf_cfg.orientation = _float_list(raw, "orientation", tf_cfg.orientation)
    if len(tf_cfg.position) != 3 or len(tf_cfg.orientation) != 4:
        raise ConfigError(
            f"static transform {tf_cfg.parent}->{tf_cfg.child} needs 3 position and 4 orientation values"
        )
    return tf_cfg


def config_from_dict(raw: dict[str, Any]) -> LocalizerConfig:
    cfg = LocalizerConfig()
    cfg.node_name = str(raw.get("node_name", cfg.node_name))
    cfg.marker_size = _float(raw, "marker_size", cfg.marker_size)
    cfg.target_tag_ids = _normalize_tag_ids(raw.get("target_tag_ids", cfg.target_tag_ids))
    cfg.base_covariance = _float_list(raw, "base_covariance", cfg.base_covariance)
    cfg.distance_threshold = _float(raw, "distance_threshold", cfg.distance_threshold)
    cfg.ekf_time_tolerance = _float(raw, "ekf_time_tolerance", cfg.ekf_time_tolerance)
    cfg.ekf_position_tolerance = _float(raw, "ekf_position_tolerance", cfg.ekf_position_tolerance)
    cfg.detection_mode = str(raw.get("detection_mode", cfg.detection_mode))
    cfg.min_marker_size = _float(raw, "min_marker_size", cfg.min_marker_size)
    cfg.tag_family = str(raw.get("tag_family", cfg.tag_family))
    cfg.map_frame = str(raw.get("map_frame", cfg.map_frame))
    cfg.body_frame = str(raw.get("body_frame", cfg.body_frame))
    cfg.session_root = str(raw.get("session_root", cfg.session_root))
    cfg.log_level = str(raw.get("log_level", cfg.log_level)).upper()

    transforms_raw: Optional[list[Any]] = raw.get("static_transforms")
    if transforms_raw is not None:
        if not isinstance(transforms_raw, list):
            raise ConfigError("static_transforms must be a list")
        cfg.static_transforms = [_load_static_transform(t) for t in transforms_raw]

    return cfg.validate()


def load_config(path: str | Path) -> LocalizerConfig:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p}")
    try:
        raw = load_document(p)
    except (ValueError, yaml.YAMLError) as exc:
        raise ConfigError(f"could not parse {p.name}: {exc}") from exc
    return config_from_dict(raw)
