"""Records of a grid SLAM log and reconstruction of particle paths from them."""

from __future__ import annotations

import math
import re
import weakref
from dataclasses import dataclass, field, replace
from typing import Callable, Iterable, TextIO

from gfstools.pose import OrientedPoint, absolute_difference, normalize_angle


@dataclass
class _StreamFormat:
    """Number formatting state that sticks to an output stream."""

    fixed: bool = False
    precision: int = 6

    def set_fixed(self, precision: int) -> None:
        self.fixed = True
        self.precision = precision

    def number(self, value: float) -> str:
        if self.fixed:
            return f"{value:.{self.precision}f}"
        return f"{value:.{self.precision}g}"


_FORMATS: weakref.WeakKeyDictionary = weakref.WeakKeyDictionary()


def _format_of(out: TextIO) -> _StreamFormat:
    try:
        return _FORMATS.setdefault(out, _StreamFormat())
    except TypeError:
        return _StreamFormat()


def _ratio(numerator: float, denominator: float) -> float:
    if denominator:
        return numerator / denominator
    if numerator == 0 or math.isnan(numerator):
        return math.nan
    return math.copysign(math.inf, numerator)


class _Tokens:
    """Whitespace separated fields; once a read fails, every later read fails."""

    def __init__(self, text: str):
        self._items = text.split()
        self._pos = 0
        self.ok = True

    def _next(self, convert: Callable[[str], float]):
        if self.ok and self._pos < len(self._items):
            try:
                value = convert(self._items[self._pos])
            except ValueError:
                self.ok = False
            else:
                self._pos += 1
                return value
        self.ok = False
        return convert("0")

    def number(self) -> float:
        return self._next(float)

    def integer(self) -> int:
        return self._next(int)

    def pose(self) -> OrientedPoint:
        x = self.number()
        y = self.number()
        theta = self.number()
        return OrientedPoint(x, y, theta)


@dataclass
class Record:
    """A single line of a SLAM log."""

    dim: int = 0
    time: float = 0.0

    def write(self, out: TextIO) -> None:
        """Write the record in carmen log form; most kinds write nothing."""
        self._emit(out, _format_of(out))

    def _emit(self, out: TextIO, fmt: _StreamFormat) -> None:
        pass


@dataclass
class CommentRecord(Record):
    text: str = ""

    @classmethod
    def _read(cls, rest: str) -> CommentRecord:
        return cls(text=rest)

    def _emit(self, out, fmt):
        out.write(f"#GFS_COMMENT: {self.text}\n")


@dataclass
class PoseRecord(Record):
    true_pos: bool = False
    pose: OrientedPoint = field(default_factory=OrientedPoint)

    @classmethod
    def _read(cls, rest: str, true_pos: bool = True) -> PoseRecord:
        tokens = _Tokens(rest)
        pose = tokens.pose()
        return cls(true_pos=true_pos, pose=pose, time=tokens.number())

    def _emit(self, out, fmt):
        out.write("TRUEPOS " if self.true_pos else "ODOM ")
        fmt.set_fixed(6)
        n = fmt.number
        out.write(
            f"{n(self.pose.x)} {n(self.pose.y)} {n(self.pose.theta)} 0 0 0 "
            f"{n(self.time)} pippo {n(self.time)}\n"
        )


@dataclass
class NeffRecord(Record):
    neff: float = 0.0

    @classmethod
    def _read(cls, rest: str) -> NeffRecord:
        tokens = _Tokens(rest)
        neff = tokens.number()
        return cls(neff=neff, time=tokens.number())

    def _emit(self, out, fmt):
        out.write(f"NEFF {fmt.number(self.neff)}")
        fmt.set_fixed(6)
        out.write(f" {fmt.number(self.time)} pippo {fmt.number(self.time)}\n")


@dataclass
class EntropyRecord(Record):
    pose_entropy: float = 0.0
    trajectory_entropy: float = 0.0
    map_entropy: float = 0.0

    @classmethod
    def _read(cls, rest: str) -> EntropyRecord:
        tokens = _Tokens(rest)
        pose_entropy = tokens.number()
        trajectory_entropy = tokens.number()
        map_entropy = tokens.number()
        return cls(
            pose_entropy=pose_entropy,
            trajectory_entropy=trajectory_entropy,
            map_entropy=map_entropy,
            time=tokens.number(),
        )

    def _emit(self, out, fmt):
        fmt.set_fixed(6)
        n = fmt.number
        out.write(
            f"ENTROPY {n(self.pose_entropy)} {n(self.trajectory_entropy)} {n(self.map_entropy)}"
            f" {n(self.time)} pippo {n(self.time)}\n"
        )


@dataclass
class OdometryRecord(Record):
    poses: list[OrientedPoint] = field(default_factory=list)

    @classmethod
    def _read(cls, rest: str) -> OdometryRecord:
        tokens = _Tokens(rest)
        dim = tokens.integer()
        poses = []
        for _ in range(dim):
            poses.append(tokens.pose())
            tokens.number()
        return cls(dim=dim, poses=poses, time=tokens.number())


@dataclass
class RawOdometryRecord(Record):
    pose: OrientedPoint = field(default_factory=OrientedPoint)

    @classmethod
    def _read(cls, rest: str) -> RawOdometryRecord:
        tokens = _Tokens(rest)
        pose = tokens.pose()
        if not tokens.ok:
            raise ValueError(f"malformed ODOM record: {rest.strip()!r}")
        return cls(pose=pose, time=tokens.number())


@dataclass
class ScanMatchRecord(Record):
    poses: list[OrientedPoint] = field(default_factory=list)
    weights: list[float] = field(default_factory=list)

    @classmethod
    def _read(cls, rest: str) -> ScanMatchRecord:
        tokens = _Tokens(rest)
        dim = tokens.integer()
        poses, weights = [], []
        for _ in range(dim):
            poses.append(tokens.pose())
            weights.append(tokens.number())
        return cls(dim=dim, poses=poses, weights=weights)


_S300 = " 4 -2.351831 4.712389 0.008727 30.0"
_PLS = " 0 -1.570796 3.141593 0.017453 81.9"
_LMS = " 0 -1.570796 3.141593 0.008726 81.9"
_LASER_HEADERS = {541: _S300, 540: _S300, 180: _PLS, 181: _PLS, 360: _LMS, 361: _LMS}


@dataclass
class LaserRecord(Record):
    readings: list[float] = field(default_factory=list)
    pose: OrientedPoint = field(default_factory=OrientedPoint)
    weight: float = 0.0

    @classmethod
    def _read(cls, rest: str) -> LaserRecord:
        tokens = _Tokens(rest)
        dim = tokens.integer()
        readings = [tokens.number() for _ in range(dim)]
        pose = tokens.pose()
        return cls(dim=dim, readings=readings, pose=pose, time=tokens.number())

    def _header(self, fmt: _StreamFormat) -> str:
        if self.dim in (682, 683):
            resolution = 360.0 / 1024.0 / 180.0 * math.pi
            return f" 0 -2.094395 4.1887902 {fmt.number(resolution)} 5.5"
        return _LASER_HEADERS.get(self.dim, _PLS)

    def _emit(self, out, fmt):
        out.write(f"WEIGHT {fmt.number(self.weight)}\n")
        out.write("ROBOTLASER1 ")
        out.write(self._header(fmt))
        out.write(f" 0.01 0 {self.dim}")
        fmt.set_fixed(2)
        out.write("".join(f" {fmt.number(r)}" for r in self.readings))
        fmt.set_fixed(6)
        n = fmt.number
        pose = f" {n(self.pose.x)} {n(self.pose.y)} {n(self.pose.theta)}"
        out.write(" 0" + pose + pose)
        out.write(" 0 0 0.55 0.375 1000000.0")
        out.write(f" {n(self.time)} localhost {n(self.time)}\n")


@dataclass
class ResampleRecord(Record):
    indexes: list[int] = field(default_factory=list)

    @classmethod
    def _read(cls, rest: str) -> ResampleRecord:
        tokens = _Tokens(rest)
        dim = tokens.integer()
        return cls(dim=dim, indexes=[tokens.integer() for _ in range(dim)])


_READERS: dict[str, Callable[[str], Record]] = {
    "LASER_READING": LaserRecord._read,
    "ODO_UPDATE": OdometryRecord._read,
    "ODOM": RawOdometryRecord._read,
    "SM_UPDATE": ScanMatchRecord._read,
    "SIMULATOR_POS": PoseRecord._read,
    "RESAMPLE": ResampleRecord._read,
    "NEFF": NeffRecord._read,
    "COMMENT": CommentRecord._read,
    "#COMMENT": CommentRecord._read,
    "ENTROPY": EntropyRecord._read,
}

_FIRST_WORD = re.compile(r"\s*(\S+)")


def parse_record(line: str) -> Record | None:
    """Parse one log line; lines of unknown kind give None."""
    line = line.rstrip("\n")
    match = _FIRST_WORD.match(line)
    if not match:
        return None
    reader = _READERS.get(match.group(1))
    if reader is None:
        return None
    return reader(line[match.end():])


class RecordList(list):
    """The records of a log, in the order they were written."""

    def __init__(self, records: Iterable[Record] = ()):
        super().__init__(records)
        self.sample_size = 0

    def read(self, stream: Iterable[str]) -> RecordList:
        """Append every recognised record of ``stream``."""
        for line in stream:
            record = parse_record(line)
            if record is not None:
                self.append(record)
        return self

    def _before(self, frame: int | None) -> list:
        return list(self) if frame is None else self[:frame]

    def log_weight(self, index: int, frame: int | None = None) -> float:
        """Accumulated log weight of a particle's lineage over the records before ``frame``."""
        weight = 0.0
        current = index
        for record in reversed(self._before(frame)):
            if isinstance(record, ScanMatchRecord):
                weight += record.weights[current]
            elif isinstance(record, ResampleRecord):
                current = record.indexes[current]
        return weight

    def _last_scan_match(self) -> ScanMatchRecord | None:
        return next((r for r in reversed(self) if isinstance(r, ScanMatchRecord)), None)

    def best_index(self) -> int:
        """Index of the particle with the largest accumulated weight."""
        if not self:
            return 0
        scanmatch = self._last_scan_match()
        if scanmatch is None:
            raise ValueError("log holds no scan match record")
        self.sample_size = scanmatch.dim
        best_weight = -math.inf
        best = scanmatch.dim + 1
        for i in range(scanmatch.dim):
            w = self.log_weight(i)
            if w > best_weight:
                best, best_weight = i, w
        return best

    def print_last_particles(self, out: TextIO) -> None:
        """Write a marker for each particle of the last scan match."""
        scanmatch = self._last_scan_match()
        if scanmatch is None:
            return
        fmt = _format_of(out)
        for pose in scanmatch.poses:
            out.write(
                f"MARKER [color=black; circle={fmt.number(pose.x * 100)},"
                f"{fmt.number(pose.y * 100)},10] 0 pippo 0\n"
            )

    def compute_path(self, index: int, frame: int | None = None) -> RecordList:
        """Laser records before ``frame`` placed at the poses of one particle's lineage."""
        current = index
        pose = OrientedPoint()
        seen_match = False
        path = []
        for record in reversed(self._before(frame)):
            if isinstance(record, ScanMatchRecord):
                pose = record.poses[current]
                seen_match = True
            elif isinstance(record, LaserRecord) and seen_match:
                path.append(replace(record, pose=pose))
            elif isinstance(record, ResampleRecord):
                current = record.indexes[current]
        return RecordList(reversed(path))

    def _lineage(self, index: int, raw_odom: bool) -> list[Record]:
        current = index
        pose = OrientedPoint()
        old_weight = 0.0
        weight = 0.0
        path: list[Record] = []
        for record in reversed(self):
            if isinstance(record, (NeffRecord, EntropyRecord, CommentRecord)):
                path.append(replace(record))
            elif isinstance(record, ScanMatchRecord):
                pose = record.poses[current]
                weight = record.weights[current] - old_weight
                old_weight = record.weights[current]
                if not raw_odom:
                    path.append(PoseRecord(pose=pose))
            elif isinstance(record, OdometryRecord):
                pose = record.poses[current]
                if not raw_odom:
                    path.append(PoseRecord(pose=pose, time=record.time))
            elif isinstance(record, RawOdometryRecord):
                if raw_odom:
                    path.append(PoseRecord(pose=record.pose, time=record.time))
            elif isinstance(record, PoseRecord):
                path.append(replace(record))
            elif isinstance(record, LaserRecord):
                path.append(replace(record, pose=pose, weight=weight))
            elif isinstance(record, ResampleRecord):
                path.append(replace(record))
                current = record.indexes[current]
        path.reverse()
        return path

    def print_path(
        self, out: TextIO, index: int, err: bool = False, raw_odom: bool = False
    ) -> None:
        """Write the path of a particle, or only its errors against the true poses."""
        fmt = _format_of(out)
        started = computed = true_pos_found = tpf = False
        true_pose = true_start = real_start = OrientedPoint()
        neff = 0.0
        total_error = 0.0
        count = 0
        for record in self._lineage(index, raw_odom):
            if isinstance(record, NeffRecord):
                neff = _ratio(record.neff, self.sample_size)
            started = started or isinstance(record, LaserRecord)
            is_pose = isinstance(record, PoseRecord)
            if started and not true_pos_found and is_pose and record.true_pos:
                true_pos_found = tpf = True
                true_pose = record.pose
                out.write("# ")
                record._emit(out, fmt)
            if started and true_pos_found and not computed and is_pose and not record.true_pos:
                true_start = true_pose
                real_start = record.pose
                out.write("# ")
                record._emit(out, fmt)
                computed = True
            if computed:
                fmt.set_fixed(6)
                if is_pose and record.true_pos:
                    tpf = True
                    true_pose = record.pose
                elif is_pose and tpf:
                    tpf = False
                    real_delta = absolute_difference(record.pose, real_start)
                    true_delta = absolute_difference(true_pose, true_start)
                    ex = real_delta.x - true_delta.x
                    ey = real_delta.y - true_delta.y
                    eth = normalize_angle(real_delta.theta - true_delta.theta)
                    if not err:
                        out.write("# ERROR ")
                    dist = math.hypot(ex, ey)
                    n = fmt.number
                    out.write(f"{n(neff)} {n(ex)} {n(ey)} {n(eth)} {n(dist)} {n(abs(eth))}\n")
                    total_error += dist
                    count += 1
            if not err:
                record._emit(out, fmt)
        if err:
            print(f"average error{_StreamFormat().number(_ratio(total_error, count))}")