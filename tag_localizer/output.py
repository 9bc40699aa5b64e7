from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from .services.csv_writer import CsvWriter
from .types import ValidatedPose


class PoseSink(ABC):
    @abstractmethod
    def open(self, session_dir: Path) -> None: ...

    @abstractmethod
    def write_pose(self, pose: ValidatedPose) -> None: ...

    @abstractmethod
    def close(self) -> None: ...


class CsvPoseOutput(PoseSink):
    def __init__(self, filename: str = "poses.csv"):
        self.filename = filename
        self.path: Optional[Path] = None
        self._writer: Optional[CsvWriter] = None

    def open(self, session_dir: Path) -> None:
        self.path = Path(session_dir) / self.filename
        self._writer = CsvWriter(str(self.path))
        self._writer.open()

    def write_pose(self, pose: ValidatedPose) -> None:
        if self._writer is None:
            return
        p = pose.pose.pose
        self._writer.append(
            pose.pose.stamp,
            pose.tag_id,
            p.frame_id,
            p.position,
            p.orientation,
            pose.distance,
            pose.covariance_row_major(),
        )

    def close(self) -> None:
        if self._writer is not None:
            self._writer.close()
            self._writer = None


class MemoryOutput(PoseSink):
    """Keeps every emitted pose in ``poses``."""

    def __init__(self) -> None:
        self.poses: list[ValidatedPose] = []

    def open(self, session_dir: Path) -> None:
        return None

    def write_pose(self, pose: ValidatedPose) -> None:
        self.poses.append(pose)

    def close(self) -> None:
        return None


class NullOutput(PoseSink):
    def open(self, session_dir: Path) -> None:
        return None

    def write_pose(self, pose: ValidatedPose) -> None:
        return None

    def close(self) -> None:
        return None
