import io
import math

import pytest

from gfstools.pose import OrientedPoint
from gfstools.records import (
    CommentRecord,
    EntropyRecord,
    LaserRecord,
    NeffRecord,
    OdometryRecord,
    PoseRecord,
    RawOdometryRecord,
    RecordList,
    ResampleRecord,
    ScanMatchRecord,
    parse_record,
)


def _records(text):
    return RecordList().read(io.StringIO(text))


RESAMPLED_LOG = (
    "SM_UPDATE 2 0 0 0 1 0 0 0 5\n"
    "RESAMPLE 2 1 1\n"
    "SM_UPDATE 2 0 0 0 1 0 0 0 2\n"
)


def test_neff_with_time():
    rec = parse_record("NEFF 12.5 3.0")
    assert isinstance(rec, NeffRecord)
    assert rec.neff == 12.5
    assert rec.time == 3.0


def test_neff_without_time_defaults_to_zero():
    rec = parse_record("NEFF 12.5\n")
    assert rec.time == 0.0


@pytest.mark.parametrize("line", ["", "   ", "FRAME 1 2 3", "PARAM sigma 0.05"])
def test_unknown_lines_are_ignored(line):
    assert parse_record(line) is None


def test_comment_keeps_rest_of_line():
    rec = parse_record("#COMMENT hello world\n")
    assert isinstance(rec, CommentRecord)
    assert rec.text == " hello world"
    out = io.StringIO()
    rec.write(out)
    assert out.getvalue() == "#GFS_COMMENT:  hello world\n"


def test_scan_match_fields():
    rec = parse_record("SM_UPDATE 2 1 2 0.1 -5 3 4 0.2 -7")
    assert isinstance(rec, ScanMatchRecord)
    assert rec.dim == 2
    assert rec.poses == [OrientedPoint(1, 2, 0.1), OrientedPoint(3, 4, 0.2)]
    assert rec.weights == [-5.0, -7.0]


def test_odometry_update_and_resample():
    odo = parse_record("ODO_UPDATE 1 1.5 2.5 0.3 0 9.0")
    assert isinstance(odo, OdometryRecord)
    assert odo.poses == [OrientedPoint(1.5, 2.5, 0.3)]
    assert odo.time == 9.0
    res = parse_record("RESAMPLE 3 0 0 2")
    assert isinstance(res, ResampleRecord)
    assert res.indexes == [0, 0, 2]


def test_simulator_pos_is_true_pose():
    rec = parse_record("SIMULATOR_POS 1 2 0.5 3")
    assert isinstance(rec, PoseRecord)
    assert rec.true_pos
    assert rec.pose == OrientedPoint(1, 2, 0.5)


def test_raw_odometry_requires_full_pose():
    rec = parse_record("ODOM 1 2 3")
    assert isinstance(rec, RawOdometryRecord)
    assert rec.time == 0.0
    with pytest.raises(ValueError):
        parse_record("ODOM 1 2")


def test_entropy_round_trip_fields():
    rec = parse_record("ENTROPY 1.5 2.5 3.5 4")
    assert isinstance(rec, EntropyRecord)
    out = io.StringIO()
    rec.write(out)
    assert out.getvalue() == "ENTROPY 1.500000 2.500000 3.500000 4.000000 pippo 4.000000\n"


def test_pose_write_format():
    out = io.StringIO()
    PoseRecord(true_pos=True, pose=OrientedPoint(1, 2, 0.5), time=3).write(out)
    assert out.getvalue() == "TRUEPOS 1.000000 2.000000 0.500000 0 0 0 3.000000 pippo 3.000000\n"


def test_number_format_sticks_to_stream():
    fresh = io.StringIO()
    NeffRecord(neff=12.5, time=3).write(fresh)
    assert fresh.getvalue().startswith("NEFF 12.5 ")
    used = io.StringIO()
    PoseRecord(pose=OrientedPoint()).write(used)
    NeffRecord(neff=12.5, time=3).write(used)
    assert used.getvalue().splitlines()[1].startswith("NEFF 12.500000 ")


def test_laser_write_uses_scanner_header():
    laser = LaserRecord(dim=181, readings=[1.0] * 181, pose=OrientedPoint(1, 2, 0), time=5)
    out = io.StringIO()
    laser.write(out)
    lines = out.getvalue().splitlines()
    assert lines[0].startswith("WEIGHT")
    assert lines[1].startswith("ROBOTLASER1  0 -1.570796 3.141593 0.017453 81.9 0.01 0 181 1.00")
    assert lines[1].endswith("localhost 5.000000")


def test_laser_read_round_trip():
    rec = parse_record("LASER_READING 3 1 2 3 0.5 0.25 0.1 7")
    assert rec.readings == [1.0, 2.0, 3.0]
    assert rec.pose == OrientedPoint(0.5, 0.25, 0.1)
    out = io.StringIO()
    rec.write(out)
    fields = out.getvalue().splitlines()[1].split()
    assert fields[8] == "3"
    assert fields[9:12] == ["1.00", "2.00", "3.00"]


def test_best_index_follows_resampling():
    records = _records(RESAMPLED_LOG)
    assert records.best_index() == 1
    assert records.sample_size == 2
    assert records.log_weight(0) < records.log_weight(1)


def test_log_weight_before_frame():
    records = _records(RESAMPLED_LOG)
    assert records.log_weight(0, 1) == 1.0
    assert records.log_weight(1, 0) == 0.0


def test_best_index_of_empty_list():
    assert RecordList().best_index() == 0


def test_best_index_needs_scan_match():
    with pytest.raises(ValueError):
        _records("NEFF 1 2\n").best_index()


def test_print_last_particles():
    out = io.StringIO()
    _records(RESAMPLED_LOG).print_last_particles(out)
    lines = out.getvalue().splitlines()
    assert len(lines) == 2
    assert all(line.startswith("MARKER [color=black; circle=") for line in lines)
    assert all(line.endswith(",10] 0 pippo 0") for line in lines)


def test_compute_path_moves_lasers_to_particle_poses():
    records = _records(
        "LASER_READING 3 1 2 3 0 0 0 1.0\n"
        "SM_UPDATE 1 5 6 0.1 0.0\n"
        "LASER_READING 3 4 5 6 0 0 0 2.0\n"
    )
    path = records.compute_path(0)
    assert len(path) == 1
    assert path[0].pose == OrientedPoint(5, 6, 0.1)
    assert path[0].readings == [1.0, 2.0, 3.0]
    assert records[0].pose == OrientedPoint()


SIMPLE_LOG = (
    "ODO_UPDATE 1 0 0 0 0 1.0\n"
    "ODOM 7 8 0 1.0\n"
    "LASER_READING 3 1 2 3 0 0 0 1.0\n"
    "SM_UPDATE 1 1 1 0 0.5\n"
    "NEFF 1 2.0\n"
)


def test_print_path_order_and_weight():
    records = _records(SIMPLE_LOG)
    out = io.StringIO()
    records.print_path(out, records.best_index())
    lines = out.getvalue().splitlines()
    assert [line.split()[0] for line in lines] == ["ODOM", "WEIGHT", "ROBOTLASER1", "ODOM", "NEFF"]
    assert lines[1] == "WEIGHT 0.500000"
    assert lines[3].startswith("ODOM 1.000000 1.000000")


def test_print_path_with_raw_odometry():
    records = _records(SIMPLE_LOG)
    out = io.StringIO()
    records.print_path(out, records.best_index(), raw_odom=True)
    lines = out.getvalue().splitlines()
    assert [line.split()[0] for line in lines] == ["ODOM", "WEIGHT", "ROBOTLASER1", "NEFF"]
    assert lines[0].startswith("ODOM 7.000000 8.000000")


def test_print_path_errors_are_zero_for_perfect_tracking(capsys):
    records = _records(
        "ODO_UPDATE 1 0 0 0 0 0.5\n"
        "LASER_READING 3 1 2 3 0 0 0 1.0\n"
        "SIMULATOR_POS 10 10 0 1.0\n"
        "SM_UPDATE 1 1 1 0 0\n"
        "ODO_UPDATE 1 2 1 0 0 2.0\n"
        "SIMULATOR_POS 11 10 0 2.0\n"
        "SM_UPDATE 1 2 1 0 0\n"
    )
    out = io.StringIO()
    records.print_path(out, records.best_index(), err=True)
    lines = out.getvalue().splitlines()
    assert lines[0].startswith("# TRUEPOS")
    assert lines[1].startswith("# ODOM")
    errors = [line for line in lines if not line.startswith("#")]
    assert len(errors) == 2
    for line in errors:
        values = [float(v) for v in line.split()]
        assert len(values) == 6
        assert all(math.isclose(v, 0.0, abs_tol=1e-9) for v in values[1:])
    assert "average error0" in capsys.readouterr().out