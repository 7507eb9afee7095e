"""Bounding boxes of the laser endpoints seen by the particles in a filter log."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable

from gfstools.pose import OrientedPoint
from gfstools.records import LaserRecord, ScanMatchRecord


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box; the default one is empty."""

    xmin: float = math.inf
    ymin: float = math.inf
    xmax: float = -math.inf
    ymax: float = -math.inf

    @property
    def empty(self) -> bool:
        return self.xmin > self.xmax or self.ymin > self.ymax

    @property
    def center(self) -> OrientedPoint:
        return OrientedPoint((self.xmin + self.xmax) / 2.0, (self.ymin + self.ymax) / 2.0)

    def include(self, x: float, y: float) -> BoundingBox:
        """The smallest box holding this one and the point (x, y)."""
        return BoundingBox(min(self.xmin, x), min(self.ymin, y),
                           max(self.xmax, x), max(self.ymax, y))


def scan_bounding_box(laser, pose: OrientedPoint, max_range: float,
                      box: BoundingBox | None = None) -> BoundingBox:
    """Grow ``box`` by the endpoints of the beams shorter than ``max_range``."""
    result = box if box is not None else BoundingBox()
    readings = laser.readings
    theta = -math.pi / 2 + pose.theta
    step = math.pi / 180 if len(readings) in (180, 181) else math.pi / 360
    for r in readings:
        if r < max_range:
            result = result.include(pose.x + r * math.cos(theta), pose.y + r * math.sin(theta))
        theta += step
    return result


def records_bounding_box(records: Iterable, max_range: float) -> BoundingBox:
    """Box of every scan, placed at every particle pose of the scan match that follows it."""
    box = BoundingBox()
    last_laser = None
    for record in records:
        if isinstance(record, LaserRecord):
            last_laser = record
            continue
        if isinstance(record, ScanMatchRecord) and last_laser is not None:
            for pose in record.poses:
                box = scan_bounding_box(last_laser, pose, max_range, box)
    return box