import logging

import numpy as np
import pytest

from tag_localizer.config import LocalizerConfig
from tag_localizer.landmarks import LandmarkMap
from tag_localizer.output import MemoryOutput
from tag_localizer.pipeline import CorrectionPipeline
from tag_localizer.tf import StaticTransformResolver
from tag_localizer.types import CameraInfo, Detection, Pose, StampedPose

IDENTITY_Q = (0.0, 0.0, 0.0, 1.0)


def make_detection(tag_id="0", position=(0.0, 0.0, 2.0), orientation=IDENTITY_Q, stamp=100.0, frame_id="camera"):
    return Detection(tag_id, Pose(position, orientation, frame_id), stamp)


def make_reference(position, stamp=100.0, frame_id="map"):
    return StampedPose(Pose(position, IDENTITY_Q, frame_id), stamp)


@pytest.fixture
def quiet_logger():
    logger = logging.Logger("test-tag-localizer")
    logger.addHandler(logging.NullHandler())
    return logger


@pytest.fixture
def config():
    return LocalizerConfig(
        target_tag_ids=["0", "1", "2"],
        distance_threshold=10.0,
        ekf_time_tolerance=0.5,
        ekf_position_tolerance=1.0,
    )


@pytest.fixture
def landmark_doc():
    return {
        "landmarks": [
            {"id": "0", "type": "apriltag_16h5", "position": [10.0, 0.0, 0.0], "orientation": list(IDENTITY_Q)},
            {"id": "1", "type": "apriltag_16h5", "position": [0.0, 20.0, 0.0], "orientation": list(IDENTITY_Q)},
            {"id": "7", "type": "apriltag_16h5", "position": [5.0, 5.0, 0.0]},
        ]
    }


@pytest.fixture
def landmarks(landmark_doc):
    return LandmarkMap.build(landmark_doc)


@pytest.fixture
def identity_resolver():
    return StaticTransformResolver([(Pose.identity("base_link"), "camera")])


@pytest.fixture
def camera_info():
    K = np.array([[600.0, 0.0, 320.0], [0.0, 600.0, 240.0], [0.0, 0.0, 1.0]])
    return CameraInfo(640, 480, K, np.zeros((4, 1)))


@pytest.fixture
def memory_output():
    return MemoryOutput()


@pytest.fixture
def pipeline(config, identity_resolver, landmarks, camera_info, memory_output, quiet_logger):
    p = CorrectionPipeline(
        config,
        resolver=identity_resolver,
        outputs=[memory_output],
        logger=quiet_logger,
        landmarks=landmarks,
    )
    p.on_camera_info(camera_info)
    return p
