"""Replay a recorded event log through the correction pipeline.

The log is JSON lines, one event per line, for example::

    {"type": "map", "path": "landmarks.yaml"}
    {"type": "camera_info", "width": 640, "height": 480, "p": [...12 values...]}
    {"type": "reference_pose", "stamp": 10.0, "position": [10, 0, 0], "orientation": [0, 0, 0, 1]}
    {"type": "detections", "stamp": 10.1, "frame_id": "camera",
     "tags": [{"id": "0", "position": [0, 0, 2], "orientation": [0, 0, 0, 1]}]}
    {"type": "image", "stamp": 10.2, "frame_id": "camera", "path": "frames/f000001.png"}

Relative paths are resolved against the log's directory. Blank lines and
lines starting with ``#`` are ignored.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, Optional

import cv2

from .config import LocalizerConfig
from .detect import TagDetector
from .landmarks import load_landmarks
from .logging_utils import add_file_handler, setup_logger
from .output import CsvPoseOutput, PoseSink
from .pipeline import CorrectionPipeline, FrameReport
from .services.calib import load_camera_info
from .services.storage import SessionStorage
from .transforms import rvec_tvec_to_matrix
from .types import CameraInfo, Detection, Pose, StampedPose

EVENT_TYPES = {"map", "camera_info", "reference_pose", "detections", "image"}


@dataclass
class ReplayEvent:
    kind: str
    payload: dict[str, Any]
    line: int


@dataclass
class SessionSummary:
    session_path: str
    frames_processed: int
    poses_emitted: int
    csv_path: str
    log_path: str
    errors: int
    stats: dict[str, Any] = field(default_factory=dict)


def read_events(path: str | Path) -> Iterator[ReplayEvent]:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Event log not found: {p}")
    with p.open("r", encoding="utf-8") as fp:
        for lineno, line in enumerate(fp, 1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            try:
                payload = json.loads(line)
            except json.JSONDecodeError as exc:
                raise ValueError(f"{p.name}:{lineno}: invalid JSON: {exc}") from exc
            if not isinstance(payload, dict):
                raise ValueError(f"{p.name}:{lineno}: event must be an object")
            kind = payload.get("type")
            if kind not in EVENT_TYPES:
                raise ValueError(f"{p.name}:{lineno}: unknown event type {kind!r}")
            yield ReplayEvent(kind, payload, lineno)


def parse_pose(raw: dict[str, Any], frame_id: str) -> Pose:
    """Pose from position/orientation or from an OpenCV rvec/tvec pair."""
    if "rvec" in raw:
        return Pose.from_matrix(rvec_tvec_to_matrix(raw["rvec"], raw["tvec"]), frame_id)
    return Pose(raw["position"], raw.get("orientation", (0.0, 0.0, 0.0, 1.0)), frame_id)


def parse_detections(payload: dict[str, Any]) -> list[Detection]:
    stamp = float(payload["stamp"])
    frame_id = str(payload.get("frame_id", "camera"))
    return [
        Detection(str(tag["id"]), parse_pose(tag, frame_id), stamp)
        for tag in payload.get("tags", [])
    ]


def parse_reference_pose(payload: dict[str, Any], map_frame: str) -> StampedPose:
    frame_id = str(payload.get("frame_id", map_frame))
    return StampedPose(parse_pose(payload, frame_id), float(payload["stamp"]))


def parse_camera_info(payload: dict[str, Any]) -> CameraInfo:
    if "p" in payload:
        return CameraInfo.from_projection(payload["width"], payload["height"], payload["p"])
    return CameraInfo(
        int(payload["width"]),
        int(payload["height"]),
        payload["camera_matrix"],
        payload.get("dist_coeffs", [0.0, 0.0, 0.0, 0.0]),
    )


class ReplaySession:
    def __init__(
        self,
        config: LocalizerConfig,
        events_path: str | Path,
        landmarks_path: Optional[str | Path] = None,
        calib_path: Optional[str | Path] = None,
        outputs: Optional[list[PoseSink]] = None,
        logger: Optional[logging.Logger] = None,
        detector: Optional[TagDetector] = None,
    ):
        self.config = config
        self.events_path = Path(events_path)
        self.landmarks_path = landmarks_path
        self.calib_path = calib_path
        self.logger = logger or setup_logger(config.node_name, config.log_level)
        self.outputs = outputs if outputs is not None else [CsvPoseOutput()]
        self._detector = detector
        self._stop_event = threading.Event()

    def stop(self) -> None:
        self._stop_event.set()

    def _resolve(self, raw_path: str) -> Path:
        p = Path(raw_path)
        return p if p.is_absolute() else self.events_path.parent / p

    def _get_detector(self) -> TagDetector:
        if self._detector is None:
            self._detector = TagDetector.from_config(self.config)
        return self._detector

    def _handle(self, event: ReplayEvent, pipeline: CorrectionPipeline, storage: SessionStorage) -> Optional[FrameReport]:
        payload = event.payload
        if event.kind == "map":
            if "path" in payload:
                raw = load_landmarks(self._resolve(payload["path"]))
            else:
                raw = {"landmarks": payload.get("landmarks", [])}
            markers = pipeline.on_map_update(raw, payload.get("tag_family"))
            storage.write_markers(markers)
            return None
        if event.kind == "camera_info":
            pipeline.on_camera_info(parse_camera_info(payload))
            return None
        if event.kind == "reference_pose":
            pipeline.on_reference_pose(parse_reference_pose(payload, self.config.map_frame))
            return None
        if event.kind == "detections":
            return pipeline.on_detections(parse_detections(payload))

        # image
        if pipeline.camera_info is None:
            return pipeline.on_detections([])
        image_path = self._resolve(payload["path"])
        image = cv2.imread(str(image_path))
        if image is None:
            raise ValueError(f"could not read image {image_path}")
        dets = self._get_detector().detect(
            image,
            pipeline.camera_info,
            float(payload["stamp"]),
            str(payload.get("frame_id", "camera")),
        )
        return pipeline.on_detections(dets)

    def run(self) -> SessionSummary:
        storage = SessionStorage(self.config.session_root, name=f"{self.config.node_name}_session")
        session_path = storage.begin()
        storage.write_manifest(self.config.as_dict())

        log_file = str(Path(storage.logs_dir) / "session.log")
        file_handler = add_file_handler(self.logger, self.config.node_name, log_file)

        pipeline = CorrectionPipeline(self.config, outputs=self.outputs, logger=self.logger)
        frames = 0
        errors = 0
        try:
            for out in self.outputs:
                out.open(Path(storage.session_dir))

            if self.landmarks_path is not None:
                markers = pipeline.on_map_update(load_landmarks(self.landmarks_path))
                storage.write_markers(markers)
            if self.calib_path is not None:
                pipeline.on_camera_info(load_camera_info(str(self.calib_path)))

            self.logger.info("session started: %s", session_path)
            self.logger.info("config: %s", self.config.as_dict())

            for event in read_events(self.events_path):
                if self._stop_event.is_set():
                    break
                try:
                    report = self._handle(event, pipeline, storage)
                except (KeyError, ValueError, TypeError) as exc:
                    errors += 1
                    self.logger.warning("line %d: bad %s event: %s", event.line, event.kind, exc)
                    continue
                if report is None:
                    continue
                frames += 1
                self.logger.info(
                    "frame=%d %s accepted=%d",
                    frames,
                    report.diagnostic.message,
                    len(report.poses),
                )
        finally:
            for out in self.outputs:
                out.close()
            self.logger.info("summary frames=%d accepted=%d errors=%d", frames, pipeline.stats.accepted, errors)
            self.logger.removeHandler(file_handler)
            file_handler.close()

        csv_path = str(Path(storage.session_dir) / "poses.csv")
        return SessionSummary(
            str(session_path),
            frames,
            pipeline.stats.accepted,
            csv_path,
            log_file,
            errors,
            pipeline.stats.as_dict(),
        )
