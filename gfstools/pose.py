"""Planar poses and the rigid-motion arithmetic used on them."""

from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class OrientedPoint:
    """A position in the plane with a heading in radians."""

    x: float = 0.0
    y: float = 0.0
    theta: float = 0.0

    def __add__(self, other: OrientedPoint) -> OrientedPoint:
        if not isinstance(other, OrientedPoint):
            return NotImplemented
        return OrientedPoint(self.x + other.x, self.y + other.y, self.theta + other.theta)

    def __sub__(self, other: OrientedPoint) -> OrientedPoint:
        if not isinstance(other, OrientedPoint):
            return NotImplemented
        return OrientedPoint(self.x - other.x, self.y - other.y, self.theta - other.theta)

    def __mul__(self, scalar: float) -> OrientedPoint:
        if not isinstance(scalar, (int, float)):
            return NotImplemented
        return OrientedPoint(self.x * scalar, self.y * scalar, self.theta * scalar)

    __rmul__ = __mul__


def normalize_angle(theta: float) -> float:
    """Wrap an angle into the range [-pi, pi]."""
    return math.atan2(math.sin(theta), math.cos(theta))


def absolute_difference(p1: OrientedPoint, p2: OrientedPoint) -> OrientedPoint:
    """Return ``p1`` expressed in the frame of ``p2``."""
    dx = p1.x - p2.x
    dy = p1.y - p2.y
    dtheta = normalize_angle(p1.theta - p2.theta)
    s, c = math.sin(p2.theta), math.cos(p2.theta)
    return OrientedPoint(c * dx + s * dy, -s * dx + c * dy, dtheta)


def absolute_sum(p1: OrientedPoint, p2: OrientedPoint) -> OrientedPoint:
    """Compose ``p2``, given in the frame of ``p1``, onto ``p1``."""
    s, c = math.sin(p1.theta), math.cos(p1.theta)
    return OrientedPoint(c * p2.x - s * p2.y, s * p2.x + c * p2.y, p2.theta) + p1