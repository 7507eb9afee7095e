"""Background runner for the grid SLAM filter that reports its progress as events."""

from __future__ import annotations

import configparser
import logging
import threading
from collections import deque
from contextlib import ExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Sequence, TextIO

from gfstools.pose import OrientedPoint
from gfstools.processor import GridSlamProcessor, RangeReading

_log = logging.getLogger(__name__)


@dataclass
class Event:
    """Something the filter thread reports to its observers."""


@dataclass
class ParticleMoveEvent(Event):
    scanmatched: bool = False
    neff: float = 0.0
    hypotheses: list[OrientedPoint] = field(default_factory=list)
    weight_sums: list[float] = field(default_factory=list)


@dataclass
class TruePosEvent(Event):
    """A ground-truth pose; also accepted as an input item by the thread."""

    pose: OrientedPoint = field(default_factory=OrientedPoint)
    time: float = 0.0


@dataclass
class ResampleEvent(Event):
    indexes: list[int] = field(default_factory=list)


@dataclass
class MapEvent(Event):
    pmap: object = None
    index: int = 0
    pose: OrientedPoint = field(default_factory=OrientedPoint)


@dataclass
class DoneEvent(Event):
    """The filter thread has finished."""


@dataclass
class SlamParameters:
    """Settings of a filter run, as given on the command line or in a config file."""

    filename: str = ""
    outfilename: str = ""
    xmin: float = -100.0
    ymin: float = -100.0
    xmax: float = 100.0
    ymax: float = 100.0
    delta: float = 0.05
    autosize: bool = False
    resample_threshold: float = 0.5
    sigma: float = 0.05
    max_range: float = 80.0
    max_urange: float = 80.0
    regscore: float = 1e4
    lstep: float = 0.05
    astep: float = 0.05
    kernel_size: int = 1
    iterations: int = 5
    critscore: float = 0.0
    max_move: float = 1.0
    lskip: int = 0
    lsigma: float = 0.075
    ogain: float = 3.0
    llsamplerange: float = 0.01
    lasamplerange: float = 0.005
    llsamplestep: float = 0.01
    lasamplestep: float = 0.005
    linear_odometry_reliability: float = 0.0
    angular_odometry_reliability: float = 0.0
    srr: float = 0.1
    srt: float = 0.1
    str_: float = 0.1
    stt: float = 0.1
    particles: int = 30
    skip_matching: bool = False
    angular_update: float = 0.5
    linear_update: float = 1.0
    read_from_stdin: bool = False
    on_line: bool = False
    generate_map: bool = False
    consider_odometry_covariance: bool = False
    randseed: int = 0
    map_update_time: int = 5
    minimum_score: float = 0.0
    estrategy: str = "not_set"


# option / config key, field, kind
_OPTIONS: dict[str, tuple[str, type]] = {
    "filename": ("filename", str),
    "outfilename": ("outfilename", str),
    "xmin": ("xmin", float),
    "xmax": ("xmax", float),
    "ymin": ("ymin", float),
    "ymax": ("ymax", float),
    "delta": ("delta", float),
    "maxrange": ("max_range", float),
    "maxUrange": ("max_urange", float),
    "regscore": ("regscore", float),
    "critscore": ("critscore", float),
    "kernelSize": ("kernel_size", int),
    "sigma": ("sigma", float),
    "iterations": ("iterations", int),
    "lstep": ("lstep", float),
    "astep": ("astep", float),
    "maxMove": ("max_move", float),
    "srr": ("srr", float),
    "srt": ("srt", float),
    "str": ("str_", float),
    "stt": ("stt", float),
    "particles": ("particles", int),
    "angularUpdate": ("angular_update", float),
    "linearUpdate": ("linear_update", float),
    "lsigma": ("lsigma", float),
    "lobsGain": ("ogain", float),
    "lskip": ("lskip", int),
    "mapUpdate": ("map_update_time", int),
    "randseed": ("randseed", int),
    "autosize": ("autosize", bool),
    "stdin": ("read_from_stdin", bool),
    "resampleThreshold": ("resample_threshold", float),
    "skipMatching": ("skip_matching", bool),
    "onLine": ("on_line", bool),
    "generateMap": ("generate_map", bool),
    "minimumScore": ("minimum_score", float),
    "llsamplerange": ("llsamplerange", float),
    "lasamplerange": ("lasamplerange", float),
    "llsamplestep": ("llsamplestep", float),
    "lasamplestep": ("lasamplestep", float),
    "linearOdometryReliability": ("linear_odometry_reliability", float),
    "angularOdometryReliability": ("angular_odometry_reliability", float),
    "estrategy": ("estrategy", str),
    "considerOdometryCovariance": ("consider_odometry_covariance", bool),
}

_PRINTED = (
    ("filename", "filename"), ("outfilename", "outfilename"), ("xmin", "xmin"),
    ("ymin", "ymin"), ("xmax", "xmax"), ("ymax", "ymax"), ("delta", "delta"),
    ("sigma", "sigma"), ("maxrange", "max_range"), ("maxUrange", "max_urange"),
    ("regscore", "regscore"), ("lstep", "lstep"), ("astep", "astep"),
    ("kernelSize", "kernel_size"), ("iterations", "iterations"), ("critscore", "critscore"),
    ("maxMove", "max_move"), ("lsigma", "lsigma"), ("ogain", "ogain"), ("lskip", "lskip"),
    ("autosize", "autosize"), ("skipMatching", "skip_matching"), ("srr", "srr"),
    ("srt", "srt"), ("str", "str_"), ("stt", "stt"), ("particles", "particles"),
    ("randseed", "randseed"), ("angularUpdate", "angular_update"),
    ("linearUpdate", "linear_update"), ("resampleThreshold", "resample_threshold"),
    ("llsamplerange", "llsamplerange"), ("lasamplerange", "lasamplerange"),
    ("llsamplestep", "llsamplestep"), ("lasamplestep", "lasamplestep"),
)


def _to_bool(text: str) -> bool:
    return text.strip().lower() in ("1", "true", "yes", "on")


def _plain(value) -> str:
    if isinstance(value, bool):
        return str(int(value))
    if isinstance(value, float):
        return f"{value:g}"
    return str(value)


def _load_config(path: str, params: SlamParameters) -> None:
    parser = configparser.ConfigParser()
    parser.optionxform = str
    if not parser.read(path):
        raise FileNotFoundError(f"cannot read config file {path}")
    if not parser.has_section("gfs"):
        return
    section = parser["gfs"]
    for key, (name, kind) in _OPTIONS.items():
        if key in section:
            raw = section[key]
            setattr(params, name, _to_bool(raw) if kind is bool else kind(raw))


def parse_arguments(argv: Sequence[str]) -> SlamParameters:
    """Build the run settings from an optional config file and command line options."""
    args = list(argv)
    params = SlamParameters()
    for i, arg in enumerate(args):
        if arg == "-cfg" and i + 1 < len(args):
            _load_config(args[i + 1], params)
            break
    i = 0
    while i < len(args):
        arg = args[i]
        key = arg[1:] if arg.startswith("-") else None
        if arg == "-cfg":
            i += 2
            continue
        if key not in _OPTIONS:
            raise ValueError(f"parameter {arg} not recognized")
        name, kind = _OPTIONS[key]
        if kind is bool:
            setattr(params, name, True)
            i += 1
            continue
        if i + 1 >= len(args):
            raise ValueError(f"parameter {arg} needs a value")
        setattr(params, name, kind(args[i + 1]))
        i += 2
    if not params.filename:
        raise ValueError("no filename specified")
    return params


class _Processor(GridSlamProcessor):
    def __init__(self, owner: GridSlamProcessorThread, info, rng):
        super().__init__(info=info, rng=rng)
        self._owner = owner

    def on_odometry_update(self) -> None:
        self._owner.on_odometry_update()

    def on_scanmatch_update(self) -> None:
        self._owner.on_scanmatch_update()

    def on_resample_update(self) -> None:
        self._owner.on_resample_update()


class GridSlamProcessorThread:
    """Runs the filter over a sequence of readings in a background thread."""

    def __init__(self, params: SlamParameters | None = None,
                 laser_angles: Sequence[float] = (),
                 laser_pose: OrientedPoint = OrientedPoint(),
                 info: TextIO | None = None, rng=None,
                 dump_dir: str | Path | None = None):
        self.params = params if params is not None else SlamParameters()
        self.laser_angles = tuple(laser_angles)
        self.laser_pose = laser_pose
        self.dump_dir = Path(dump_dir) if dump_dir is not None else None
        self.processor = _Processor(self, info, rng)
        self.error: BaseException | None = None
        self._hp_lock = threading.Lock()
        self._ind_lock = threading.Lock()
        self._hist_lock = threading.Lock()
        self._buffer: deque[Event] = deque()
        self._buffer_length = 0
        self._map_timer = 0
        self._hypotheses: list[OrientedPoint] = []
        self._weight_sums: list[float] = []
        self._indexes: list[int] = []
        self._running = False
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._running

    def add_event(self, event: Event) -> None:
        """Queue an event, dropping the oldest ones beyond the buffer size."""
        with self._hist_lock:
            while len(self._buffer) > self._buffer_length:
                self._buffer.popleft()
            self._buffer.append(event)

    def events(self) -> list[Event]:
        """Take every queued event."""
        with self._hist_lock:
            taken = list(self._buffer)
            self._buffer.clear()
        return taken

    def set_event_buffer_size(self, length: int) -> None:
        self._buffer_length = length

    def start(self, readings: Iterable[RangeReading | TruePosEvent] | None = None) -> None:
        """Start processing ``readings`` in the background; ignored if already running."""
        if self._running:
            return
        self._running = True
        self.error = None
        self._thread = threading.Thread(target=self._work, args=(readings,), daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the background thread and wait for it; re-raise what made it fail."""
        if not self._running:
            return
        self._running = False
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        if self.error is not None:
            error, self.error = self.error, None
            raise error

    def hypotheses(self) -> list[OrientedPoint]:
        with self._hp_lock:
            return list(self._hypotheses)

    def indexes(self) -> list[int]:
        with self._ind_lock:
            return list(self._indexes)

    def _snapshot(self) -> None:
        particles = self.processor.particles
        self._hypotheses = [p.pose for p in particles]
        self._weight_sums = [p.weight_sum for p in particles]

    def on_odometry_update(self) -> None:
        with self._hp_lock:
            self._snapshot()
            event = ParticleMoveEvent(False, self.processor.neff,
                                      list(self._hypotheses), list(self._weight_sums))
        self.add_event(event)

    def on_resample_update(self) -> None:
        with self._ind_lock, self._hp_lock:
            self._indexes = list(self.processor.indexes)
            event = ResampleEvent(list(self._indexes))
        self.add_event(event)

    def on_scanmatch_update(self) -> None:
        with self._hp_lock:
            self._snapshot()
            best, best_weight = 0, -float("inf")
            for i, weight in enumerate(self._weight_sums):
                if weight > best_weight:
                    best, best_weight = i, weight
            self.add_event(ParticleMoveEvent(True, self.processor.neff,
                                             list(self._hypotheses),
                                             list(self._weight_sums)))
            if not self._map_timer:
                particle = self.processor.particles[best]
                self.add_event(MapEvent(particle.map.copy(), best, particle.pose))
            self._map_timer = (self._map_timer + 1) % max(1, self.params.map_update_time)

    def _say(self, text: str) -> None:
        if self.processor.info is not None:
            self.processor.info.write(text)

    def _work(self, readings) -> None:
        if readings is None and not self.params.on_line:
            return
        try:
            if self.params.on_line:
                _log.error("cannot run online without a robot connection")
                return
            self._process(readings)
        except Exception as exc:  # reported through stop()
            self.error = exc
        finally:
            self.add_event(DoneEvent())

    def _process(self, readings) -> None:
        p = self.params
        proc = self.processor
        proc.set_laser(self.laser_angles, self.laser_pose)
        proc.set_matching_parameters(p.max_urange, p.max_range, p.sigma, p.kernel_size,
                                     p.lstep, p.astep, p.iterations, p.lsigma, p.ogain,
                                     p.lskip)
        initial = OrientedPoint()
        self._say(f" initialPose={initial.x:g} {initial.y:g} {initial.theta:g}"
                  f" xmin={p.xmin:g} ymin={p.ymin:g} xmax={p.xmax:g} ymax={p.ymax:g}\n")
        proc.set_motion_model_parameters(p.srr, p.srt, p.str_, p.stt)
        proc.set_update_distances(p.linear_update, p.angular_update, p.resample_threshold)
        proc.generate_map = p.generate_map
        proc.minimum_score = p.minimum_score
        proc.init(p.particles, p.xmin, p.ymin, p.xmax, p.ymax, p.delta, initial)
        with ExitStack() as stack:
            if p.outfilename:
                out = stack.enter_context(open(p.outfilename, "w"))
                proc.output = out
                stack.callback(setattr, proc, "output", None)
                for label, name in _PRINTED:
                    out.write(f"PARAM {label} {_plain(getattr(p, name))}\n")
            if p.randseed:
                proc.rng.seed(p.randseed)
            self._say(f"setting randseed{p.randseed}\n")
            rawpath = None
            if self.dump_dir is not None:
                rawpath = stack.enter_context(open(self.dump_dir / "rawpath.dat", "w"))
            for item in readings:
                if not self._running:
                    break
                if isinstance(item, RangeReading):
                    proc.process_scan(item)
                    if rawpath is not None:
                        pose = item.pose
                        rawpath.write(f"{pose.x:g} {pose.y:g} {pose.theta:g}\n")
                elif isinstance(item, TruePosEvent):
                    proc.process_true_pos(item.pose, item.time)
        if self.dump_dir is not None:
            for number, leaf in enumerate(proc.trajectories()):
                old_weight = old_gweight = 0.0
                lines = []
                for node in leaf.path():
                    lines.append(f"{node.weight - old_weight:g} {node.gweight - old_gweight:g}\n")
                    old_weight, old_gweight = node.weight, node.gweight
                (self.dump_dir / f"w-{number:03d}.dat").write_text("".join(lines))
        self._say("the filter thread has finished\n")