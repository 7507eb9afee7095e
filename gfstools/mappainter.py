"""Turning grid cell values into images and marking points on them."""

from __future__ import annotations

from typing import Iterable, Sequence

from PIL import Image

_UNKNOWN_COLOR = (255, 100, 100)


def _gray(value: float) -> int:
    return (255 - (int(255 * value) & 0xFF)) & 0xFF


def map_to_image(values: Sequence[Sequence[float]]) -> Image.Image:
    """Draw ``values[x][y]`` as gray levels; negative (unknown) cells are drawn pink."""
    columns = [list(column) for column in values]
    if not columns or not columns[0]:
        raise ValueError("map has no cells")
    ysize = len(columns[0])
    if any(len(column) != ysize for column in columns):
        raise ValueError("map columns differ in length")
    image = Image.new("RGB", (len(columns), ysize), "white")
    pixels = image.load()
    for x, column in enumerate(columns):
        for y, value in enumerate(column):
            row = ysize - y
            if row >= ysize:
                continue
            value = float(value)
            if value >= 0:
                gray = _gray(value)
                pixels[x, row] = (gray, gray, gray)
            else:
                pixels[x, row] = _UNKNOWN_COLOR
    return image


def _coords(point) -> tuple[int, int]:
    if hasattr(point, "x") and hasattr(point, "y"):
        return int(point.x), int(point.y)
    x, y = point
    return int(x), int(y)


def draw_points(image: Image.Image, points: Iterable, color) -> Image.Image:
    """Mark map points on ``image`` in place, flipping y; points outside are ignored."""
    width, height = image.size
    for point in points:
        x, y = _coords(point)
        row = height - y
        if 0 <= x < width and 0 <= row < height:
            image.putpixel((x, row), tuple(color))
    return image