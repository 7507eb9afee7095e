import random
import time

import pytest

from gfstools.pose import OrientedPoint
from gfstools.processor import RangeReading
from gfstools.slamthread import (
    DoneEvent,
    GridSlamProcessorThread,
    MapEvent,
    ParticleMoveEvent,
    SlamParameters,
    TruePosEvent,
    parse_arguments,
)

ANGLES = (-0.5, -0.25, 0.0, 0.25, 0.5)


def _params(**extra):
    values = dict(particles=3, srr=0.0, srt=0.0, str_=0.0, stt=0.0,
                  xmin=-10.0, ymin=-10.0, xmax=10.0, ymax=10.0, delta=0.1,
                  iterations=1)
    values.update(extra)
    return SlamParameters(**values)


def _readings(n=4):
    return [RangeReading(ranges=(3.0,) * len(ANGLES),
                         pose=OrientedPoint(1.5 * i, 0.0, 0.0), time=float(i))
            for i in range(n)]


def _collect_until_done(thread, timeout=60.0):
    collected = []
    deadline = time.monotonic() + timeout
    while not any(isinstance(e, DoneEvent) for e in collected):
        collected.extend(thread.events())
        if time.monotonic() > deadline:
            raise AssertionError("thread did not finish")
        time.sleep(0.01)
    return collected


def _thread(params, **kwargs):
    thread = GridSlamProcessorThread(params, ANGLES, rng=random.Random(1), **kwargs)
    thread.set_event_buffer_size(10000)
    return thread


def test_parse_arguments_defaults():
    params = parse_arguments(["-filename", "log.gfs"])
    assert params.filename == "log.gfs"
    assert params.particles == 30
    assert params.srr == 0.1
    assert params.xmin == -100.0
    assert params.autosize is False


def test_parse_arguments_overrides_and_flags():
    params = parse_arguments(["-filename", "a", "-particles", "5", "-srr", "0.2",
                              "-autosize", "-lobsGain", "4"])
    assert params.particles == 5
    assert params.srr == 0.2
    assert params.autosize is True
    assert params.ogain == 4.0


def test_parse_arguments_requires_filename():
    with pytest.raises(ValueError):
        parse_arguments(["-particles", "5"])


def test_parse_arguments_rejects_unknown_option():
    with pytest.raises(ValueError):
        parse_arguments(["-filename", "a", "-bogus", "1"])


def test_parse_arguments_missing_value():
    with pytest.raises(ValueError):
        parse_arguments(["-filename"])


def test_config_file_then_command_line(tmp_path):
    cfg = tmp_path / "run.ini"
    cfg.write_text("[gfs]\nparticles = 7\nsrr = 0.3\nautosize = on\n")
    params = parse_arguments(["-cfg", str(cfg), "-filename", "x", "-particles", "9"])
    assert params.particles == 9
    assert params.srr == 0.3
    assert params.autosize is True


def test_event_buffer_default_keeps_latest():
    thread = GridSlamProcessorThread()
    events = [ParticleMoveEvent(neff=float(i)) for i in range(3)]
    for e in events:
        thread.add_event(e)
    assert thread.events() == [events[-1]]


def test_event_buffer_size_and_clear():
    thread = GridSlamProcessorThread()
    thread.set_event_buffer_size(10)
    events = [ParticleMoveEvent(neff=float(i)) for i in range(3)]
    for e in events:
        thread.add_event(e)
    assert thread.events() == events
    assert thread.events() == []


def test_run_reports_events():
    readings = _readings()
    thread = _thread(_params())
    thread.start(readings)
    events = _collect_until_done(thread)
    thread.stop()
    assert isinstance(events[-1], DoneEvent)
    moves = [e for e in events if isinstance(e, ParticleMoveEvent)]
    assert sum(not e.scanmatched for e in moves) == len(readings)
    assert sum(e.scanmatched for e in moves) == len(readings) - 1
    assert all(len(e.hypotheses) == 3 and len(e.weight_sums) == 3 for e in moves)
    maps = [e for e in events if isinstance(e, MapEvent)]
    assert len(maps) == 1
    assert maps[0].index in range(3)
    assert len(thread.hypotheses()) == 3
    assert thread.running is False


def test_output_file_and_true_pos(tmp_path):
    out = tmp_path / "out.gfs"
    items = _readings(2) + [TruePosEvent(OrientedPoint(1.0, 2.0, 0.5), 3.0)]
    thread = _thread(_params(outfilename=str(out)))
    thread.start(items)
    _collect_until_done(thread)
    thread.stop()
    lines = out.read_text().splitlines()
    assert lines[0].startswith("PARAM filename")
    assert "PARAM particles 3" in lines
    assert any(line.startswith("ODO_UPDATE 3 ") for line in lines)
    assert "SIMULATOR_POS 1.000 2.000 0.500000 3.000000" in lines


def test_dump_dir_files(tmp_path):
    readings = _readings(3)
    thread = _thread(_params(), dump_dir=tmp_path)
    thread.start(readings)
    _collect_until_done(thread)
    thread.stop()
    raw = (tmp_path / "rawpath.dat").read_text().splitlines()
    assert len(raw) == len(readings)
    assert raw[0].split() == ["0", "0", "0"]
    for number in range(3):
        assert (tmp_path / f"w-{number:03d}.dat").read_text().strip()


def test_on_line_finishes_at_once():
    thread = _thread(_params(on_line=True))
    thread.start(_readings())
    events = _collect_until_done(thread)
    thread.stop()
    assert [type(e) for e in events] == [DoneEvent]
    assert thread.hypotheses() == []


def test_missing_laser_is_reported_by_stop():
    thread = GridSlamProcessorThread(_params())
    thread.set_event_buffer_size(100)
    thread.start(_readings())
    events = _collect_until_done(thread)
    assert isinstance(events[-1], DoneEvent)
    with pytest.raises(ValueError):
        thread.stop()


def test_stop_without_start():
    thread = GridSlamProcessorThread()
    thread.stop()
    assert thread.running is False
    assert thread.indexes() == []