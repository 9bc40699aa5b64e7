import json

import numpy as np
import pytest

from tag_localizer.config import (
    DEFAULT_BASE_COVARIANCE,
    ConfigError,
    DetectionMode,
    LocalizerConfig,
    config_from_dict,
    load_config,
)


def test_defaults():
    cfg = LocalizerConfig().validate()
    assert cfg.marker_size == 0.6
    assert cfg.target_tag_ids == ["0", "1", "2", "3", "4", "5", "6"]
    assert cfg.distance_threshold_squared == pytest.approx(169.0)
    assert cfg.ekf_time_tolerance == 5.0
    assert cfg.ekf_position_tolerance == 10.0
    assert cfg.detection_mode == "DM_NORMAL"
    assert np.array_equal(np.diag(cfg.base_covariance_matrix()), [0.2, 0.2, 0.2, 0.02, 0.02, 0.02])


def test_load_json(tmp_path):
    path = tmp_path / "cfg.json"
    path.write_text(
        json.dumps(
            {
                "marker_size": 0.3,
                "target_tag_ids": [1, 2],
                "distance_threshold": 8,
                "detection_mode": "DM_FAST",
                "log_level": "debug",
            }
        )
    )
    cfg = load_config(path)
    assert cfg.marker_size == 0.3
    assert cfg.target_tag_ids == ["1", "2"]
    assert cfg.distance_threshold_squared == 64.0
    assert DetectionMode.parse(cfg.detection_mode) is DetectionMode.DM_FAST
    assert cfg.log_level == "DEBUG"


def test_load_yaml_with_static_transforms(tmp_path):
    path = tmp_path / "cfg.yaml"
    path.write_text(
        "node_name: front\n"
        "ekf_time_tolerance: 0.2\n"
        "static_transforms:\n"
        "  - parent: base_link\n"
        "    child: camera_front\n"
        "    position: [1.0, 0.0, 1.5]\n"
        "    orientation: [-0.5, 0.5, -0.5, 0.5]\n",
        encoding="utf-8",
    )
    cfg = load_config(path)
    assert cfg.node_name == "front"
    assert cfg.ekf_time_tolerance == 0.2
    assert cfg.static_transforms[0].child == "camera_front"
    assert cfg.static_transforms[0].position == [1.0, 0.0, 1.5]


def test_shipped_config_loads():
    from pathlib import Path

    cfg = load_config(Path(__file__).resolve().parents[1] / "configs" / "ar_tag_based_localizer.yaml")
    assert cfg.static_transforms


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.yaml")


def test_invalid_detection_mode():
    with pytest.raises(ConfigError, match="Invalid detection_mode: DM_TURBO"):
        config_from_dict({"detection_mode": "DM_TURBO"})


@pytest.mark.parametrize(
    "covariance",
    [
        [0.1] * 35,
        [0.1] * 37,
    ],
)
def test_covariance_wrong_size(covariance):
    with pytest.raises(ConfigError, match="36 values"):
        config_from_dict({"base_covariance": covariance})


def test_covariance_must_be_symmetric():
    cov = list(DEFAULT_BASE_COVARIANCE)
    cov[1] = 0.5
    with pytest.raises(ConfigError, match="symmetric"):
        config_from_dict({"base_covariance": cov})


def test_negative_tolerance_rejected():
    with pytest.raises(ConfigError):
        config_from_dict({"ekf_position_tolerance": -1.0})


def test_static_transform_shape_checked():
    with pytest.raises(ConfigError):
        config_from_dict({"static_transforms": [{"position": [1.0, 2.0]}]})


def test_overrides_skip_none():
    cfg = LocalizerConfig().apply_overrides(marker_size=None, distance_threshold=3.0, unknown=1)
    assert cfg.marker_size == 0.6
    assert cfg.distance_threshold == 3.0
    assert not hasattr(cfg, "unknown")


def test_as_dict_is_json_serialisable():
    cfg = config_from_dict({"static_transforms": [{"child": "camera"}]})
    assert json.loads(json.dumps(cfg.as_dict()))["static_transforms"][0]["child"] == "camera"


@pytest.mark.parametrize(
    "raw, message",
    [
        ({"marker_size": "abc"}, "marker_size must be a number, got 'abc'"),
        ({"distance_threshold": None}, "distance_threshold must be a number"),
        ({"base_covariance": ["x"] * 36}, "base_covariance must be a list of numbers"),
        ({"static_transforms": [{"position": ["a", 0, 0]}]}, "position must be a list of numbers"),
    ],
)
def test_non_numeric_values_are_config_errors(raw, message):
    with pytest.raises(ConfigError, match=message):
        config_from_dict(raw)


def test_unparseable_file_is_config_error(tmp_path):
    yaml_path = tmp_path / "cfg.yaml"
    yaml_path.write_text("marker_size: [0.3\n", encoding="utf-8")
    json_path = tmp_path / "cfg.json"
    json_path.write_text("[1, 2]")

    with pytest.raises(ConfigError, match="could not parse cfg.yaml"):
        load_config(yaml_path)
    with pytest.raises(ConfigError, match="root must be"):
        load_config(json_path)
