"""Rao-Blackwellized particle filter that builds occupancy grids from laser scans."""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, field, replace
from typing import Iterator, Sequence, TextIO

from gfstools.motionmodel import MotionModel
from gfstools.pose import OrientedPoint, absolute_sum, normalize_angle
from gfstools.trajectory import TNode, copy_trajectories, update_tree_weights

_log = logging.getLogger(__name__)

_DISTANCE_THRESHOLD_CHECK = 20.0
_FULLNESS_THRESHOLD = 0.1
_NULL_LIKELIHOOD = -0.5


@dataclass(frozen=True)
class RangeReading:
    """One laser scan: the ranges, the odometry pose it was taken at and its time."""

    ranges: tuple[float, ...]
    pose: OrientedPoint = field(default_factory=OrientedPoint)
    time: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "ranges", tuple(float(r) for r in self.ranges))

    def __len__(self) -> int:
        return len(self.ranges)

    def __iter__(self) -> Iterator[float]:
        return iter(self.ranges)

    def __getitem__(self, index):
        return self.ranges[index]


class _GridMap:
    """Occupancy grid that counts hits and visits per cell and grows as needed."""

    def __init__(self, center: OrientedPoint, width: float, height: float, delta: float):
        if delta <= 0:
            raise ValueError("cell size must be positive")
        self.center = center
        self.delta = delta
        self.size_x = max(1, math.ceil(width / delta))
        self.size_y = max(1, math.ceil(height / delta))
        self.cells: dict[tuple[int, int], list[int]] = {}

    def world2map(self, x: float, y: float) -> tuple[int, int]:
        return (
            math.floor((x - self.center.x) / self.delta + 0.5) + self.size_x // 2,
            math.floor((y - self.center.y) / self.delta + 0.5) + self.size_y // 2,
        )

    def map2world(self, i: int, j: int) -> tuple[float, float]:
        return (
            (i - self.size_x // 2) * self.delta + self.center.x,
            (j - self.size_y // 2) * self.delta + self.center.y,
        )

    def occupancy(self, i: int, j: int) -> float:
        """Fraction of visits that hit the cell, or -1 if it was never seen."""
        counts = self.cells.get((i, j))
        if not counts or not counts[1]:
            return -1.0
        return counts[0] / counts[1]

    def cell(self, x: float, y: float) -> float:
        return self.occupancy(*self.world2map(x, y))

    def update(self, index: tuple[int, int], hit: bool) -> None:
        counts = self.cells.setdefault(index, [0, 0])
        counts[1] += 1
        if hit:
            counts[0] += 1

    def copy(self) -> _GridMap:
        twin = _GridMap.__new__(_GridMap)
        twin.center = self.center
        twin.delta = self.delta
        twin.size_x = self.size_x
        twin.size_y = self.size_y
        twin.cells = {key: list(value) for key, value in self.cells.items()}
        return twin


def _line(start: tuple[int, int], end: tuple[int, int]) -> list[tuple[int, int]]:
    x0, y0 = start
    x1, y1 = end
    dx, dy = abs(x1 - x0), -abs(y1 - y0)
    sx = 1 if x0 < x1 else -1
    sy = 1 if y0 < y1 else -1
    err = dx + dy
    cells = []
    while True:
        cells.append((x0, y0))
        if (x0, y0) == (x1, y1):
            return cells
        e2 = 2 * err
        if e2 >= dy:
            err += dy
            x0 += sx
        if e2 <= dx:
            err += dx
            y0 += sy


@dataclass
class ScanMatcher:
    """Registers scans into grids and scores scans against them."""

    laser_angles: tuple[float, ...] = ()
    laser_pose: OrientedPoint = field(default_factory=OrientedPoint)
    usable_range: float = 80.0
    max_range: float = 80.0
    sigma: float = 0.05
    kernel_size: int = 1
    lstep: float = 0.05
    astep: float = 0.05
    iterations: int = 5
    likelihood_sigma: float = 0.075
    likelihood_skip: int = 0

    def set_laser_parameters(self, angles: Sequence[float], pose: OrientedPoint) -> None:
        self.laser_angles = tuple(angles)
        self.laser_pose = pose

    def set_matching_parameters(self, urange, max_range, sigma, kernel_size, lstep, astep,
                                iterations, likelihood_sigma, likelihood_skip) -> None:
        self.usable_range = urange
        self.max_range = max_range
        self.sigma = sigma
        self.kernel_size = int(kernel_size)
        self.lstep = lstep
        self.astep = astep
        self.iterations = int(iterations)
        self.likelihood_sigma = likelihood_sigma
        self.likelihood_skip = int(likelihood_skip)

    def register_scan(self, grid: _GridMap, pose: OrientedPoint, readings: Sequence[float]) -> None:
        """Mark the cells each beam crossed as free and its end cell as occupied."""
        origin = absolute_sum(pose, self.laser_pose)
        start = grid.world2map(origin.x, origin.y)
        for angle, r in zip(self.laser_angles, readings):
            if r > self.max_range or r == 0.0 or math.isnan(r):
                continue
            cropped = r > self.usable_range
            d = self.usable_range if cropped else r
            phi = origin.theta + angle
            end = grid.world2map(origin.x + d * math.cos(phi), origin.y + d * math.sin(phi))
            for cell in _line(start, end)[:-1]:
                grid.update(cell, False)
            if not cropped:
                grid.update(end, True)

    def _fits(self, grid: _GridMap, pose: OrientedPoint,
              readings: Sequence[float]) -> Iterator[float | None]:
        origin = absolute_sum(pose, self.laser_pose)
        k = self.kernel_size
        beams = list(zip(self.laser_angles, readings))[:: self.likelihood_skip + 1]
        for angle, r in beams:
            if r > self.usable_range or r == 0.0 or math.isnan(r):
                continue
            phi = origin.theta + angle
            ex, ey = origin.x + r * math.cos(phi), origin.y + r * math.sin(phi)
            ci, cj = grid.world2map(ex, ey)
            best = None
            for i in range(ci - k, ci + k + 1):
                for j in range(cj - k, cj + k + 1):
                    if grid.occupancy(i, j) > _FULLNESS_THRESHOLD:
                        cx, cy = grid.map2world(i, j)
                        d2 = (cx - ex) ** 2 + (cy - ey) ** 2
                        if best is None or d2 < best:
                            best = d2
            yield best

    def score(self, grid: _GridMap, pose: OrientedPoint, readings: Sequence[float]) -> float:
        """How well the beam endpoints fall on occupied cells."""
        return sum(math.exp(-d2 / self.sigma) for d2 in self._fits(grid, pose, readings)
                   if d2 is not None)

    def likelihood(self, grid: _GridMap, pose: OrientedPoint,
                   readings: Sequence[float]) -> float:
        """Log likelihood of the scan taken at ``pose`` in ``grid``."""
        no_hit = _NULL_LIKELIHOOD / self.likelihood_sigma
        return sum(no_hit if d2 is None else -d2 / self.likelihood_sigma
                   for d2 in self._fits(grid, pose, readings))

    def optimize(self, grid: _GridMap, pose: OrientedPoint,
                 readings: Sequence[float]) -> tuple[OrientedPoint, float]:
        """Hill-climb the pose to the best score; return the pose and its score."""
        best = pose
        best_score = self.score(grid, pose, readings)
        lstep, astep = self.lstep, self.astep
        refinements = 0
        while refinements < self.iterations:
            improved = False
            moves = (
                OrientedPoint(lstep, 0, 0), OrientedPoint(-lstep, 0, 0),
                OrientedPoint(0, lstep, 0), OrientedPoint(0, -lstep, 0),
                OrientedPoint(0, 0, astep), OrientedPoint(0, 0, -astep),
            )
            for move in moves:
                candidate = best + move
                s = self.score(grid, candidate, readings)
                if s > best_score:
                    best, best_score, improved = candidate, s, True
            if not improved:
                lstep /= 2
                astep /= 2
                refinements += 1
        return best, best_score


@dataclass
class Particle:
    """A pose hypothesis with its own map and trajectory."""

    map: _GridMap
    pose: OrientedPoint = field(default_factory=OrientedPoint)
    previous_pose: OrientedPoint = field(default_factory=OrientedPoint)
    weight: float = 0.0
    weight_sum: float = 0.0
    gweight: float = 0.0
    previous_index: int = 0
    node: TNode | None = None


def _prune(leaf: TNode) -> None:
    """Drop a leaf from the tree, releasing ancestors that lose their last child."""
    parent = leaf.parent
    while parent is not None:
        parent.childs -= 1
        if parent.childs > 0:
            return
        parent = parent.parent


class GridSlamProcessor:
    """Grid-based FastSLAM: motion sampling, scan matching, weighting and resampling."""

    def __init__(self, info: TextIO | None = None, rng: random.Random | None = None):
        self.info = info
        self.output: TextIO | None = None
        self.rng = rng if rng is not None else random.Random()
        self.motion_model = MotionModel(rng=self.rng)
        self.matcher = ScanMatcher()
        self.period = 5.0
        self.last_update_time = 0.0
        self.obs_sigma_gain = 1.0
        self.resample_threshold = 0.5
        self.minimum_score = 0.0
        self.linear_threshold_distance = 1.0
        self.angular_threshold_distance = 0.5
        self.generate_map = False
        self.particles: list[Particle] = []
        self.weights: list[float] = []
        self.indexes: list[int] = []
        self.neff = 0.0
        self.beams = 0
        self.count = 0
        self.reading_count = 0
        self.last_part_pose = OrientedPoint()
        self.odo_pose = OrientedPoint()
        self.linear_distance = 0.0
        self.angular_distance = 0.0
        self.xmin = self.ymin = self.xmax = self.ymax = 0.0
        self.delta = 0.0

    def _say(self, text: str) -> None:
        if self.info is not None:
            self.info.write(text)

    def set_laser(self, angles: Sequence[float], pose: OrientedPoint = OrientedPoint()) -> None:
        """Configure the beam angles and the mounting pose of the laser."""
        angles = tuple(angles)
        if not angles:
            raise ValueError("laser has no beams")
        self.beams = len(angles)
        self.matcher.set_laser_parameters(angles, pose)

    def set_matching_parameters(self, urange, max_range, sigma, kernel_size, lstep, astep,
                                iterations, likelihood_sigma, likelihood_gain,
                                likelihood_skip) -> None:
        self.obs_sigma_gain = likelihood_gain
        self.matcher.set_matching_parameters(urange, max_range, sigma, kernel_size, lstep,
                                             astep, iterations, likelihood_sigma,
                                             likelihood_skip)
        self._say(f" -maxUrange {urange:g} -maxUrange {max_range:g} -sigma     {sigma:g}"
                  f" -kernelSize {kernel_size} -lstep {lstep:g}"
                  f" -lobsGain {likelihood_gain:g} -astep {astep:g}\n")

    def set_motion_model_parameters(self, srr, srt, str_, stt) -> None:
        self.motion_model.srr = srr
        self.motion_model.srt = srt
        self.motion_model.str_ = str_
        self.motion_model.stt = stt
        self._say(f" -srr {srr:g} -srt {srt:g} -str {str_:g} -stt {stt:g}\n")

    def set_update_distances(self, linear, angular, resample_threshold) -> None:
        self.linear_threshold_distance = linear
        self.angular_threshold_distance = angular
        self.resample_threshold = resample_threshold
        self._say(f" -linearUpdate {linear:g} -angularUpdate {angular:g}"
                  f" -resampleThreshold {resample_threshold:g}\n")

    def init(self, size, xmin, ymin, xmax, ymax, delta,
             initial_pose: OrientedPoint = OrientedPoint()) -> None:
        """Start ``size`` particles at ``initial_pose`` with empty maps of the given area."""
        self.xmin, self.ymin, self.xmax, self.ymax, self.delta = xmin, ymin, xmax, ymax, delta
        self._say(f" -xmin {xmin:g} -xmax {xmax:g} -ymin {ymin:g} -ymax {ymax:g}"
                  f" -delta {delta:g} -particles {size}\n")
        root = TNode(initial_pose, 0.0, None, 0)
        center = OrientedPoint((xmin + xmax) * 0.5, (ymin + ymax) * 0.5)
        empty = _GridMap(center, xmax - xmin, ymax - ymin, delta)
        self.particles = [
            Particle(map=empty.copy(), pose=initial_pose, previous_pose=initial_pose, node=root)
            for _ in range(size)
        ]
        self.neff = float(size)
        self.count = 0
        self.reading_count = 0
        self.linear_distance = self.angular_distance = 0.0

    def process_true_pos(self, pose: OrientedPoint, time: float) -> None:
        """Log the ground-truth pose reported by a simulator."""
        if self.output is not None:
            self.output.write(f"SIMULATOR_POS {pose.x:.3f} {pose.y:.3f} "
                              f"{pose.theta:.6f} {time:.6f}\n")

    def _particle_fields(self) -> str:
        return "".join(f"{p.pose.x:.3f} {p.pose.y:.3f} {p.pose.theta:.6f} {p.weight:.6f} "
                       for p in self.particles)

    def process_scan(self, reading: RangeReading, adapt_particles: int = 0) -> bool:
        """Feed one scan; return True when it was used to update the filter."""
        rel = reading.pose
        if not self.count:
            self.last_part_pose = self.odo_pose = rel
        for p in self.particles:
            p.pose = self.motion_model.draw_from_motion(p.pose, rel, self.odo_pose)

        out = self.output
        if out is not None:
            o = self.odo_pose
            out.write(f"ODOM {o.x:.3f} {o.y:.3f} {o.theta:.6f} {reading.time:.6f}\n")
            out.write(f"ODO_UPDATE {len(self.particles)} {self._particle_fields()}"
                      f"{reading.time:.6f}\n")
        self.on_odometry_update()

        move = rel - self.odo_pose
        self.linear_distance += math.hypot(move.x, move.y)
        self.angular_distance += abs(normalize_angle(move.theta))
        if self.linear_distance > _DISTANCE_THRESHOLD_CHECK:
            _log.warning("odometry jumps from %s to %s; the result is probably wrong",
                         self.odo_pose, rel)
        self.odo_pose = rel

        processed = False
        if (not self.count
                or self.linear_distance >= self.linear_threshold_distance
                or self.angular_distance >= self.angular_threshold_distance
                or (self.period >= 0.0
                    and reading.time - self.last_update_time > self.period)):
            if len(reading) != self.beams:
                raise ValueError(f"reading has {len(reading)} beams, laser has {self.beams}")
            self.last_update_time = reading.time
            if out is not None:
                out.write(f"FRAME {self.reading_count} {self.linear_distance:.6f} "
                          f"{self.angular_distance:.6f}\n")
            self._say(f"update frame {self.reading_count}\n"
                      f"update ld={self.linear_distance:g} ad={self.angular_distance:g}\n")
            _log.debug("Laser Pose= %g %g %g", rel.x, rel.y, rel.theta)
            ranges = reading.ranges
            self._say(f"m_count {self.count}\n")
            if self.count > 0:
                self._scan_match(ranges)
                if out is not None:
                    p = reading.pose
                    out.write(f"LASER_READING {len(reading)} "
                              + "".join(f"{r:.2f} " for r in ranges)
                              + f"{p.x:.6f} {p.y:.6f} {p.theta:.6f} {reading.time:.6f}\n")
                    out.write(f"SM_UPDATE {len(self.particles)} {self._particle_fields()}\n")
                self.on_scanmatch_update()
                self._update_tree_weights()
                self._say(f"neff= {self.neff:g}\n")
                if out is not None:
                    out.write(f"NEFF {self.neff:.6f}\n")
                self._resample(ranges, adapt_particles, reading)
            else:
                self._say("Registering First Scan\n")
                for p in self.particles:
                    self.matcher.register_scan(p.map, p.pose, ranges)
                    node = TNode(p.pose, 0.0, p.node, 0)
                    node.reading = reading
                    p.node = node
            self._update_tree_weights()
            self.last_part_pose = self.odo_pose
            self.linear_distance = self.angular_distance = 0.0
            self.count += 1
            processed = True
            for p in self.particles:
                p.previous_pose = p.pose
        if out is not None:
            out.flush()
        self.reading_count += 1
        return processed

    def _scan_match(self, ranges: Sequence[float]) -> None:
        for p in self.particles:
            corrected, score = self.matcher.optimize(p.map, p.pose, ranges)
            if score > self.minimum_score:
                p.pose = corrected
            else:
                self._say(f"Scan Matching Failed, using odometry. Likelihood={score:g}\n")
            likelihood = self.matcher.likelihood(p.map, p.pose, ranges)
            p.weight += likelihood
            p.weight_sum += likelihood

    def _normalize(self) -> None:
        if not self.particles:
            raise ValueError("processor has no particles; call init first")
        gain = 1.0 / (self.obs_sigma_gain * len(self.particles))
        lmax = max(p.weight for p in self.particles)
        raw = [math.exp(gain * (p.weight - lmax)) for p in self.particles]
        total = sum(raw)
        self.weights = [w / total for w in raw]
        self.neff = 1.0 / sum(w * w for w in self.weights)

    def _update_tree_weights(self) -> None:
        self._normalize()
        update_tree_weights([p.node for p in self.particles], self.weights)

    def _resample_indexes(self, count: int) -> list[int]:
        n = count if count > 0 else len(self.weights)
        interval = sum(self.weights) / n
        target = interval * self.rng.random()
        cumulative = 0.0
        chosen: list[int] = []
        for i, w in enumerate(self.weights):
            cumulative += w
            while cumulative > target and len(chosen) < n:
                chosen.append(i)
                target += interval
        return chosen + [0] * (n - len(chosen))

    def _resample(self, ranges: Sequence[float], adapt_size: int,
                  reading: RangeReading) -> bool:
        old_nodes = [p.node for p in self.particles]
        if self.neff < self.resample_threshold * len(self.particles):
            self.indexes = self._resample_indexes(adapt_size)
            if self.output is not None:
                self.output.write(f"RESAMPLE {len(self.indexes)} "
                                  + "".join(f"{i} " for i in self.indexes) + "\n")
            self.on_resample_update()
            survivors = set(self.indexes)
            generation = []
            for i in self.indexes:
                source = self.particles[i]
                node = TNode(source.pose, 0.0, old_nodes[i], 0)
                node.reading = reading
                generation.append(replace(source, map=source.map.copy(), node=node,
                                          previous_index=i, weight=0.0))
            for i, node in enumerate(old_nodes):
                if i not in survivors:
                    _prune(node)
            for p in generation:
                self.matcher.register_scan(p.map, p.pose, ranges)
            self.particles = generation
            return True
        for i, p in enumerate(self.particles):
            node = TNode(p.pose, 0.0, old_nodes[i], 0)
            node.reading = reading
            p.node = node
            self.matcher.register_scan(p.map, p.pose, ranges)
            p.previous_index = i
        return False

    def best_particle_index(self) -> int:
        """Index of the particle with the largest accumulated weight."""
        best, best_weight = 0, -math.inf
        for i, p in enumerate(self.particles):
            if best_weight < p.weight_sum:
                best, best_weight = i, p.weight_sum
        return best

    def trajectories(self) -> list[TNode]:
        """Copies of the particles' trajectory leaves, sharing copied ancestors."""
        return copy_trajectories(p.node for p in self.particles)

    def clone(self) -> GridSlamProcessor:
        """An independent copy with its own maps and trajectory tree."""
        _log.debug("filter copy: odo_pose=%s linear_distance=%g",
                   self.odo_pose, self.linear_distance)
        twin = GridSlamProcessor(info=self.info, rng=self.rng)
        for name in ("obs_sigma_gain", "resample_threshold", "minimum_score", "beams",
                     "count", "reading_count", "last_part_pose", "odo_pose",
                     "linear_distance", "angular_distance", "neff", "xmin", "ymin",
                     "xmax", "ymax", "delta", "linear_threshold_distance",
                     "angular_threshold_distance", "generate_map"):
            setattr(twin, name, getattr(self, name))
        twin.indexes = list(self.indexes)
        twin.motion_model = replace(self.motion_model)
        twin.matcher = replace(self.matcher)
        nodes = self.trajectories()
        twin.particles = [replace(p, map=p.map.copy(), node=node)
                          for p, node in zip(self.particles, nodes)]
        twin._update_tree_weights()
        return twin

    def on_odometry_update(self) -> None:
        """Called after the particles were moved by the odometry."""

    def on_scanmatch_update(self) -> None:
        """Called after the particles were corrected by scan matching."""

    def on_resample_update(self) -> None:
        """Called after new resampling indexes were drawn."""