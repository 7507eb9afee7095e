import math

import pytest

from gfstools.pose import (
    OrientedPoint,
    absolute_difference,
    absolute_sum,
    normalize_angle,
)


def test_normalize_angle_removes_full_turns():
    assert normalize_angle(0.5 + 4 * math.pi) == pytest.approx(0.5)


@pytest.mark.parametrize("angle", [-10.0, -3.5, 0.0, 2.0, 7.0, 100.0])
def test_normalize_angle_stays_in_range(angle):
    result = normalize_angle(angle)
    assert -math.pi <= result <= math.pi
    assert math.cos(result) == pytest.approx(math.cos(angle))
    assert math.sin(result) == pytest.approx(math.sin(angle))


def test_difference_with_itself_is_zero():
    p = OrientedPoint(3.0, -2.0, 1.2)
    d = absolute_difference(p, p)
    assert d.x == pytest.approx(0.0)
    assert d.y == pytest.approx(0.0)
    assert d.theta == pytest.approx(0.0)


def test_sum_inverts_difference():
    base = OrientedPoint(1.5, -0.5, 0.7)
    target = OrientedPoint(-2.0, 4.0, -1.1)
    back = absolute_sum(base, absolute_difference(target, base))
    assert back.x == pytest.approx(target.x)
    assert back.y == pytest.approx(target.y)
    assert normalize_angle(back.theta) == pytest.approx(target.theta)


def test_difference_in_rotated_frame():
    d = absolute_difference(OrientedPoint(1.0, 0.0, 0.0), OrientedPoint(0.0, 0.0, math.pi / 2))
    assert d.x == pytest.approx(0.0, abs=1e-12)
    assert d.y == pytest.approx(-1.0)
    assert d.theta == pytest.approx(-math.pi / 2)


def test_add_and_subtract_round_trip():
    p = OrientedPoint(1.0, 2.0, 3.0)
    q = OrientedPoint(0.25, -4.0, 0.5)
    assert (p + q) - q == p


def test_scaling_multiplies_every_component():
    p = OrientedPoint(1.0, -2.0, 0.5)
    assert 2 * p == OrientedPoint(2.0, -4.0, 1.0)
    assert p * 2 == 2 * p