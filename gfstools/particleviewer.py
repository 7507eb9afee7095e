"""View state for watching particles: log replay, best particle and trajectories."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Callable

from gfstools.pose import OrientedPoint
from gfstools.slamthread import DoneEvent, Event, MapEvent, ParticleMoveEvent, ResampleEvent


@dataclass
class ViewTransform:
    """Mapping between picture pixels (relative to the centre) and world coordinates."""

    center: OrientedPoint = field(default_factory=OrientedPoint)
    scale: float = 10.0

    def pic2map(self, x: float, y: float) -> OrientedPoint:
        return OrientedPoint(self.center.x + x / self.scale, self.center.y - y / self.scale)

    def map2pic(self, point) -> tuple[int, int]:
        return (int((point.x - self.center.x) * self.scale),
                int((self.center.y - point.y) * self.scale))


class ParticleFilePlayer:
    """Replays particle updates from the lines of a filter log."""

    def __init__(self):
        self.old_pose: list[OrientedPoint] = []
        self.new_pose: list[OrientedPoint] = []
        self.particle_size = 0

    def _check_size(self, size: int) -> None:
        if not self.particle_size:
            self.particle_size = size
        if size != self.particle_size:
            raise ValueError(f"record has {size} particles, expected {self.particle_size}")

    def feed_line(self, line: str) -> list[tuple[OrientedPoint, OrientedPoint]]:
        """Apply one log line; return the particle moves (old, new) it produced."""
        fields = line.split()
        if not fields:
            return []
        kind, rest = fields[0], fields[1:]
        refresh = False
        if kind in ("ODO_UPDATE", "SM_UPDATE"):
            refresh = bool(self.particle_size)
            self.old_pose = self.new_pose
            size = int(rest[0])
            self._check_size(size)
            numbers = [float(v) for v in rest[1:1 + 4 * size]]
            if len(numbers) < 4 * size:
                raise ValueError(f"{kind} record is truncated")
            self.new_pose = [OrientedPoint(*numbers[4 * i:4 * i + 3]) for i in range(size)]
        elif kind == "RESAMPLE":
            size = int(rest[0])
            self._check_size(size)
            indexes = [int(v) for v in rest[1:1 + size]]
            if len(indexes) < size:
                raise ValueError("RESAMPLE record is truncated")
            try:
                self.new_pose = [self.new_pose[i] for i in indexes]
            except IndexError:
                raise ValueError("RESAMPLE refers to unknown particles") from None
        if not refresh:
            return []
        if len(self.old_pose) != len(self.new_pose):
            raise ValueError("particle sets before and after the move differ in size")
        return list(zip(self.old_pose, self.new_pose))


class ParticleViewer:
    """Keeps the events of a filter run and derives the best particle and its paths."""

    def __init__(self, thread=None):
        self.thread = thread
        self.transform = ViewTransform()
        self.history: list[Event] = []
        self.best_map = None
        self.best_particle_pose = OrientedPoint()
        self.show_paths = False
        self.show_best_path = True
        self.done = False
        self.neff_listeners: list[Callable[[float], None]] = []

    def consume_events(self, events) -> float | None:
        """Take events from the filter; return the normalized neff of the latest scan match."""
        for event in events:
            if isinstance(event, MapEvent):
                self.best_map = event.pmap
                self.best_particle_pose = event.pose
            elif isinstance(event, DoneEvent):
                self.done = True
                if self.thread is not None:
                    self.thread.stop()
            else:
                self.history.append(event)
        _, _, neff = self._evaluate()
        if neff is not None:
            for listener in self.neff_listeners:
                listener(neff)
        return neff

    def _particle_size(self) -> int:
        for event in reversed(self.history):
            if isinstance(event, ParticleMoveEvent):
                return len(event.hypotheses)
            if isinstance(event, ResampleEvent):
                return len(event.indexes)
        return 0

    def _evaluate(self) -> tuple[int, int, float | None]:
        size = self._particle_size()
        best_weight = -math.inf
        best = 0
        neff = None
        for i in range(size):
            current = i
            for event in reversed(self.history):
                if isinstance(event, ParticleMoveEvent) and event.scanmatched:
                    weight = event.weight_sums[current]
                    if weight > best_weight:
                        best_weight = weight
                        best = current
                    if neff is None:
                        neff = event.neff / size
                    break
                if isinstance(event, ResampleEvent):
                    current = event.indexes[current]
        return size, best, neff

    def best_index(self) -> int:
        """Index of the particle with the largest weight at the latest scan match."""
        return self._evaluate()[1]

    def paths(self) -> list[tuple[bool, list[OrientedPoint]]]:
        """Trajectories to draw, newest pose first; the flag marks the best particle's."""
        size, best, _ = self._evaluate()
        result = []
        for i in range(size + 1):
            is_best = i == size
            if is_best and not self.show_best_path:
                continue
            current = best if is_best else i
            full = self.show_paths or is_best
            poses: list[OrientedPoint] = []
            for event in reversed(self.history):
                if isinstance(event, ParticleMoveEvent):
                    poses.append(event.hypotheses[current])
                    if not full:
                        break
                elif isinstance(event, ResampleEvent) and poses:
                    current = event.indexes[current]
            result.append((is_best, poses))
        return result

    def handle_key(self, key: str) -> bool:
        """React to a key press; return whether the key was recognized."""
        key = key.lower() if key.isalpha() else key
        if key == "b":
            self.show_best_path = not self.show_best_path
        elif key == "p":
            self.show_paths = not self.show_paths
        elif key == "+":
            self.transform.scale *= 1.25
        elif key == "-":
            self.transform.scale /= 1.25
        elif key == "c":
            self.transform.center = self.best_particle_pose
        else:
            return False
        return True