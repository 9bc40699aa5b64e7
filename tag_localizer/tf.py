from __future__ import annotations

from abc import ABC, abstractmethod
from collections import deque
from typing import Iterable, Optional

import numpy as np

from .config import StaticTransformConfig
from .transforms import invert_transform
from .types import Pose


class TransformLookupError(LookupError):
    """Raised when two frames cannot be connected."""


class TransformResolver(ABC):
    @abstractmethod
    def lookup(self, source_frame: str, target_frame: str, stamp: Optional[float] = None) -> Pose:
        """Return the pose of ``target_frame`` expressed in ``source_frame``."""
        ...


class StaticTransformResolver(TransformResolver):
    """Resolve lookups over a graph of static parent -> child transforms.

    Each edge stores the child pose in the parent frame. Lookups may walk the
    graph in either direction; edges traversed child -> parent are inverted.
    Stamps are accepted for interface compatibility and ignored.
    """

    def __init__(self, transforms: Iterable[tuple[Pose, str]] = ()):
        self._edges: dict[str, dict[str, np.ndarray]] = {}
        for parent_to_child, child_frame in transforms:
            self.set_transform(parent_to_child, child_frame)

    @classmethod
    def from_config(cls, static_transforms: Iterable[StaticTransformConfig]) -> "StaticTransformResolver":
        return cls(
            (Pose(t.position, t.orientation, t.parent), t.child) for t in static_transforms
        )

    def set_transform(self, parent_to_child: Pose, child_frame: str) -> None:
        parent = parent_to_child.frame_id
        if parent == child_frame:
            raise ValueError(f"transform from {parent!r} to itself")
        T = parent_to_child.as_matrix()
        self._edges.setdefault(parent, {})[child_frame] = T
        self._edges.setdefault(child_frame, {})[parent] = invert_transform(T)

    def frames(self) -> set[str]:
        return set(self._edges)

    def lookup(self, source_frame: str, target_frame: str, stamp: Optional[float] = None) -> Pose:
        if source_frame == target_frame:
            return Pose.identity(source_frame)

        if source_frame not in self._edges or target_frame not in self._edges:
            raise TransformLookupError(
                f"frame {source_frame!r} or {target_frame!r} does not exist"
            )

        # breadth-first search, accumulating T_source_frame along the way
        visited = {source_frame}
        queue = deque([(source_frame, np.eye(4))])
        while queue:
            frame, T_source_frame = queue.popleft()
            for nxt, T_frame_next in self._edges[frame].items():
                if nxt in visited:
                    continue
                T_source_next = T_source_frame @ T_frame_next
                if nxt == target_frame:
                    return Pose.from_matrix(T_source_next, source_frame)
                visited.add(nxt)
                queue.append((nxt, T_source_next))

        raise TransformLookupError(
            f"frames {source_frame!r} and {target_frame!r} are not connected"
        )
