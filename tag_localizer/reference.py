from __future__ import annotations

import threading
from typing import Optional

from .types import StampedPose


class ReferencePoseCache:
    """Single-slot holder for the latest externally estimated pose.

    Writes replace the whole ``StampedPose``; no history is kept. Readers get
    either ``None`` (nothing received yet) or one complete update.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._latest: Optional[StampedPose] = None

    def update(self, pose: StampedPose) -> None:
        with self._lock:
            self._latest = pose

    def read(self) -> Optional[StampedPose]:
        with self._lock:
            return self._latest

    def clear(self) -> None:
        with self._lock:
            self._latest = None

    @property
    def is_empty(self) -> bool:
        return self.read() is None
