"""Odometry motion model with Gaussian noise."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field

from gfstools.pose import OrientedPoint, absolute_difference, absolute_sum, normalize_angle

_LINEAR_CONDITIONING = 0.01
_ANGULAR_CONDITIONING = 0.001


@dataclass
class Covariance3:
    """Covariance of a planar pose."""

    xx: float = 0.0
    yy: float = 0.0
    tt: float = 0.0
    xy: float = 0.0
    xt: float = 0.0
    yt: float = 0.0


@dataclass
class MotionModel:
    """Noise parameters of the robot's odometry and sampling from it."""

    srr: float = 0.0
    srt: float = 0.0
    str_: float = 0.0
    stt: float = 0.0
    rng: random.Random = field(default_factory=random.Random, repr=False, compare=False)

    def _sample(self, sigma: float) -> float:
        if sigma == 0:
            return 0.0
        return self.rng.gauss(0.0, sigma)

    def draw_from_move(
        self, pose: OrientedPoint, linear_move: float, angular_move: float
    ) -> OrientedPoint:
        """Sample a pose after a translation and rotation from ``pose``."""
        lin, ang = abs(linear_move), abs(angular_move)
        lm = linear_move + lin * self._sample(self.srr) + ang * self._sample(self.str_)
        am = angular_move + lin * self._sample(self.srt) + ang * self._sample(self.stt)
        heading = pose.theta + 0.5 * am
        return OrientedPoint(
            pose.x + lm * math.cos(heading),
            pose.y + lm * math.sin(heading),
            normalize_angle(pose.theta + am),
        )

    def draw_from_motion(
        self, pose: OrientedPoint, new_pose: OrientedPoint, old_pose: OrientedPoint
    ) -> OrientedPoint:
        """Sample where ``pose`` goes when the odometry moves from ``old_pose`` to ``new_pose``."""
        sxy = 0.3 * self.srr
        delta = absolute_difference(new_pose, old_pose)
        dx, dy, dt = abs(delta.x), abs(delta.y), abs(delta.theta)
        x = delta.x + self._sample(self.srr * dx + self.str_ * dt + sxy * dy)
        y = delta.y + self._sample(self.srr * dy + self.str_ * dt + sxy * dx)
        theta = delta.theta + self._sample(
            self.stt * dt + self.srt * math.sqrt(delta.x * delta.x + delta.y * delta.y)
        )
        theta = math.fmod(theta, 2 * math.pi)
        if theta > math.pi:
            theta -= 2 * math.pi
        return absolute_sum(pose, OrientedPoint(x, y, theta))

    def gaussian_approximation(
        self, new_pose: OrientedPoint, old_pose: OrientedPoint
    ) -> Covariance3:
        """Gaussian covariance of the motion from ``old_pose`` to ``new_pose``."""
        delta = absolute_difference(new_pose, old_pose)
        linear_move = math.sqrt(delta.x * delta.x + delta.y * delta.y)
        angular_move = abs(delta.x)
        s11 = self.srr * self.srr * linear_move * linear_move
        s22 = self.stt * self.stt * angular_move * angular_move
        s12 = self.str_ * angular_move * self.srt * linear_move
        s, c = math.sin(old_pose.theta), math.cos(old_pose.theta)
        return Covariance3(
            xx=c * c * s11 + _LINEAR_CONDITIONING,
            yy=s * s * s11 + _LINEAR_CONDITIONING,
            tt=s22 + _ANGULAR_CONDITIONING,
            xy=s * c * s11,
            xt=c * s12,
            yt=s * s12,
        )