"""Run the grid SLAM filter over a log without any display."""

from __future__ import annotations

import math
import sys
import time
from typing import Iterable

from gfstools.processor import RangeReading
from gfstools.records import LaserRecord, PoseRecord, parse_record
from gfstools.slamthread import DoneEvent, GridSlamProcessorThread, TruePosEvent, parse_arguments

_POLL_SECONDS = 0.01
_MAP_UPDATE_TIME = 1000000


def run(thread: GridSlamProcessorThread, readings: Iterable | None) -> list:
    """Start the filter on ``readings``, drain its events until it is done, return them."""
    if readings is None and not thread.params.on_line:
        raise ValueError("no readings to process")
    thread.params.map_update_time = _MAP_UPDATE_TIME
    thread.start(readings)
    print("THREAD STARTED")
    seen = []
    while True:
        taken = thread.events()
        for event in taken:
            seen.append(event)
            if isinstance(event, DoneEvent):
                print("DONE!")
                thread.stop()
                return seen
        if not taken:
            time.sleep(_POLL_SECONDS)


def _laser_angles(beams: int) -> tuple[float, ...]:
    if beams in (180, 181):
        step = math.pi / 180
    elif beams in (360, 361):
        step = math.pi / 360
    else:
        raise ValueError(f"cannot tell the beam spacing of a {beams} beam laser")
    return tuple(-math.pi / 2 + i * step for i in range(beams))


def _load_readings(path: str) -> tuple[list, int]:
    items: list = []
    beams = 0
    with open(path) as stream:
        for line in stream:
            try:
                record = parse_record(line)
            except (ValueError, IndexError) as exc:
                raise ValueError(f"malformed line: {line.strip()}") from exc
            if isinstance(record, LaserRecord):
                if not beams:
                    beams = len(record.readings)
                items.append(RangeReading(tuple(record.readings), record.pose, record.time))
            elif isinstance(record, PoseRecord) and record.true_pos:
                items.append(TruePosEvent(record.pose, record.time))
    if not beams:
        raise ValueError("log holds no laser readings")
    return items, beams


def main(argv: list[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    try:
        params = parse_arguments(args)
    except (ValueError, OSError) as exc:
        print(exc)
        print("GSP INIT ERROR")
        return -1
    print("GSP INITIALIZED")
    readings = None
    angles: tuple[float, ...] = ()
    if params.on_line:
        print(" onLineProcessing")
    else:
        try:
            readings, beams = _load_readings(params.filename)
            angles = _laser_angles(beams)
        except (OSError, ValueError) as exc:
            print(exc)
            print("GSP READFILE ERROR")
            return -2
    print("FILES LOADED")
    thread = GridSlamProcessorThread(params, angles)
    try:
        run(thread, readings)
    except ValueError as exc:
        print(exc, file=sys.stderr)
        return -3
    return 0


if __name__ == "__main__":
    sys.exit(main())