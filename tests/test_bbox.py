import math

import pytest

from gfstools.bbox import BoundingBox, records_bounding_box, scan_bounding_box
from gfstools.pose import OrientedPoint
from gfstools.records import parse_record


def _laser(value, beams=180):
    return parse_record(f"LASER_READING {beams} " + f"{value} " * beams + "0 0 0 0")


def _scanmatch(*poses):
    fields = " ".join(f"{p.x} {p.y} {p.theta} 0" for p in poses)
    return parse_record(f"SM_UPDATE {len(poses)} {fields}")


def test_default_box_is_empty():
    assert BoundingBox().empty
    assert not BoundingBox().include(1.0, 2.0).empty


def test_scan_box_of_half_circle():
    box = scan_bounding_box(_laser(1.0), OrientedPoint(), 10.0)
    assert box.xmax == pytest.approx(1.0)
    assert box.ymin == pytest.approx(-1.0)
    assert box.xmin == pytest.approx(0.0, abs=1e-9)
    assert box.ymax < 1.0


def test_long_beams_are_ignored():
    box = scan_bounding_box(_laser(5.0), OrientedPoint(), 5.0)
    assert box.empty


def test_scan_box_follows_pose_and_keeps_given_box():
    start = BoundingBox(-50.0, -50.0, -49.0, -49.0)
    box = scan_bounding_box(_laser(1.0, 360), OrientedPoint(3.0, 4.0, 0.0), 10.0, start)
    assert box.xmin == -50.0 and box.ymin == -50.0
    assert box.xmax == pytest.approx(3.0 + 1.0)


def test_records_box_uses_scan_match_poses():
    records = [
        _scanmatch(OrientedPoint(100.0, 100.0, 0.0)),
        _laser(1.0),
        _scanmatch(OrientedPoint(0.0, 0.0, 0.0), OrientedPoint(10.0, 0.0, 0.0)),
    ]
    box = records_bounding_box(records, 10.0)
    assert box.xmax == pytest.approx(10.0 + 1.0)
    assert box.xmin == pytest.approx(0.0, abs=1e-9)
    assert box.center.y == pytest.approx((box.ymin + box.ymax) / 2)


def test_records_box_without_laser_is_empty():
    assert records_bounding_box([_scanmatch(OrientedPoint())], 10.0).empty
    assert math.isinf(records_bounding_box([], 10.0).xmin)