from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

from .types import DiagnosticLevel, DiagnosticStatus

DETECTED_TAGS_KEY = "Number of Detected AR Tags"


def detection_status(node_name: str, detected_tags: int) -> DiagnosticStatus:
    """Per-frame status: OK when any tag was seen, WARN otherwise."""
    if detected_tags > 0:
        level = DiagnosticLevel.OK
        message = f"AR tags detected. The number of tags: {detected_tags}"
    else:
        level = DiagnosticLevel.WARN
        message = "No AR tags detected."
    return DiagnosticStatus(
        level=level,
        name=f"localization: {node_name}",
        message=message,
        values={DETECTED_TAGS_KEY: str(detected_tags)},
    )


def not_ready_status(node_name: str) -> DiagnosticStatus:
    return DiagnosticStatus(
        level=DiagnosticLevel.WARN,
        name=f"localization: {node_name}",
        message="No camera info has been received.",
        values={DETECTED_TAGS_KEY: "0"},
    )


@dataclass
class PipelineStats:
    frames: int = 0
    detected: int = 0
    accepted: int = 0
    rejected: Counter = field(default_factory=Counter)

    def as_dict(self) -> dict:
        return {
            "frames": self.frames,
            "detected": self.detected,
            "accepted": self.accepted,
            "rejected": dict(self.rejected),
        }
