"""Interactive state of the map widgets used to steer a robot and a mapping run."""

from __future__ import annotations

import math

from PIL import Image, ImageDraw

from gfstools.dumper import FrameDumper

_ROBOT_SIZE = 6
_BLACK = (0, 0, 0)
_RED = (255, 0, 0)


def _key_name(key: str) -> str:
    return key.lower() if len(key) == 1 else key


class _MapWidget:
    """Shared state: a trajectory drawn by clicks and the robot marker."""

    def __init__(self, prefix: str, width: int, height: int):
        self.width = width
        self.height = height
        self.trajectory_points: list[tuple[int, int]] = []
        self.robot_pose: tuple[int, int] = (0, 0)
        self.robot_heading = 0.0
        self.trajectory_sent = False
        self.enable_motion = False
        self.start_walker = False
        self.go_home = False
        self.wants_quit = False
        self.write_images = False
        self.draw_robot = True
        self.dumper = FrameDumper(prefix, 1)

    def _add_point(self, mx: int, my: int) -> None:
        if self.trajectory_sent:
            self.trajectory_points.clear()
        self.trajectory_points.append((mx, my))
        self.trajectory_sent = False

    def _common_key(self, key: str) -> bool:
        if key == "Delete":
            if self.trajectory_points:
                self.trajectory_points.pop()
        elif key == "s":
            self.enable_motion = not self.enable_motion
        elif key == "w":
            self.start_walker = not self.start_walker
        elif key == "t":
            self.trajectory_sent = True
        elif key == "r":
            self.go_home = True
        elif key == "q":
            self.wants_quit = True
        elif key == "d":
            self.draw_robot = not self.draw_robot
        else:
            return False
        return True

    def _render(self, base: Image.Image) -> Image.Image:
        image = base.convert("RGB")
        draw = ImageDraw.Draw(image)
        height = image.height
        pen = _RED if self.trajectory_sent else _BLACK
        points = [(x, height - y) for x, y in self.trajectory_points]
        for start, end in zip(points, points[1:]):
            draw.line([start, end], fill=pen)
        if self.draw_robot:
            rx, ry = self.robot_pose[0], height - self.robot_pose[1]
            tip = (rx + int(_ROBOT_SIZE * math.cos(self.robot_heading)),
                   ry - int(_ROBOT_SIZE * math.sin(self.robot_heading)))
            draw.line([(rx, ry), tip], fill=_BLACK)
            draw.ellipse([rx - _ROBOT_SIZE, ry - _ROBOT_SIZE,
                          rx + _ROBOT_SIZE, ry + _ROBOT_SIZE], outline=_BLACK)
        if self.write_images:
            self.dumper.dump(image)
        return image


class NavigatorWidget(_MapWidget):
    """Draws goal trajectories and places the robot for localization."""

    def __init__(self, width: int = 500, height: int = 500):
        super().__init__("navigator", width, height)
        self.reposition_robot = False
        self.confirm_localization = False
        self.start_global_localization = False

    def handle_click(self, x: int, y: int, button: str, shift: bool = False,
                     control: bool = False) -> bool:
        """React to a mouse press at widget pixel (x, y); return whether it was used."""
        mx, my = x, self.height - y
        accepted = False
        if not shift and button == "left":
            self._add_point(mx, my)
            accepted = True
        if control and button == "left":
            self.robot_pose = (mx, my)
            self.reposition_robot = True
            self.confirm_localization = True
            accepted = True
        if control and button == "right":
            dx, dy = mx - self.robot_pose[0], my - self.robot_pose[1]
            self.robot_heading = math.atan2(dy, dx)
            self.reposition_robot = True
            self.confirm_localization = True
            accepted = True
        return accepted

    def handle_key(self, key: str) -> bool:
        """React to a key press; return whether the key was recognized."""
        key = _key_name(key)
        if key == "g":
            self.start_global_localization = True
        elif key == "c":
            self.confirm_localization = True
        else:
            return self._common_key(key)
        return True

    def render(self, base: Image.Image) -> Image.Image:
        """Draw the trajectory and robot over a copy of ``base``."""
        return self._render(base)


class SlamAndNavWidget(_MapWidget):
    """Draws goal trajectories while a map is being built."""

    def __init__(self, width: int = 500, height: int = 500):
        super().__init__("slamandnav", width, height)
        self.slam_restart = False
        self.slam_finished = False
        self.print_help = False
        self.save_goal_points = False

    def handle_click(self, x: int, y: int, button: str, shift: bool = False,
                     control: bool = False) -> bool:
        """Shift and left click adds a trajectory point; return whether it was used."""
        if shift and button == "left":
            self._add_point(x, self.height - y)
            return True
        return False

    def handle_key(self, key: str) -> bool:
        """React to a key press; return whether the key was recognized."""
        key = _key_name(key)
        if key == "g":
            self.slam_restart = True
        elif key == "c":
            self.slam_finished = True
        elif key == "h":
            self.print_help = True
        elif key == "y":
            self.save_goal_points = True
        else:
            return self._common_key(key)
        return True

    def render(self, base: Image.Image) -> Image.Image:
        """Draw the trajectory and robot over a copy of ``base``."""
        return self._render(base)