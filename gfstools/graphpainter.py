"""Scrolling line graph of a value series, such as the effective sample size."""

from __future__ import annotations

from PIL import Image, ImageDraw

_BOUNDARY = 2
_XOFFSET = 40

Segment = tuple[tuple[int, int], tuple[int, int]]


class GraphPainter:
    """Collects values and draws the most recent ones as a polyline."""

    def __init__(self, title: str = "", minimum: float = 0.0, maximum: float = 1.0,
                 autoscale: bool = False):
        self.title = title
        self.minimum = minimum
        self.maximum = maximum
        self.autoscale = autoscale
        self.reference = 0.0
        self.use_y_reference = False
        self.values: list[float] = []

    def clear(self) -> None:
        """Forget every value."""
        self.values.clear()

    def add_value(self, value: float, minimum: float | None = None,
                  maximum: float | None = None) -> None:
        """Append a value, optionally setting the plotted range first."""
        if (minimum is None) != (maximum is None):
            raise TypeError("give both minimum and maximum, or neither")
        if minimum is not None:
            self.set_range(minimum, maximum)
        self.values.append(float(value))

    def set_y_reference(self, y: float) -> None:
        """Draw a horizontal reference line at ``y``."""
        self.use_y_reference = True
        self.reference = y

    def disable_y_reference(self) -> None:
        self.use_y_reference = False

    def set_range(self, minimum: float, maximum: float) -> None:
        self.minimum = minimum
        self.maximum = maximum

    def _range(self, width: int) -> tuple[float, float]:
        if self.autoscale:
            shown = self.values[:max(0, width)]
            if shown:
                return min(shown), max(shown)
        return self.minimum, self.maximum

    def _scale(self, width: int, height: int) -> tuple[float, float]:
        lo, hi = self._range(width)
        span = hi - lo
        scale = (height - 2 * _BOUNDARY - 2) / span if span else 0.0
        return lo, scale

    def polyline(self, width: int, height: int) -> list[Segment]:
        """Line segments, in pixel coordinates, of the values that fit the width."""
        lo, scale = self._scale(width, height)
        limit = width - 2 * _BOUNDARY - _XOFFSET
        values = self.values
        start = len(values) - limit if 0 < limit < len(values) else 0
        segments: list[Segment] = []
        if limit <= 1 or len(values) <= 1:
            return segments
        oldv = int(scale * (values[1 + start] - lo)) + _BOUNDARY
        for i in range(1, min(limit, len(values))):
            v = int(scale * (values[i + start] - lo)) + _BOUNDARY
            segments.append((
                (i - 1 + _BOUNDARY + _XOFFSET, height - _BOUNDARY - oldv),
                (_XOFFSET + i + _BOUNDARY, height - _BOUNDARY - v),
            ))
            oldv = v
        return segments

    def render(self, width: int, height: int) -> Image.Image:
        """Draw the graph, its frame, reference line and title into a new image."""
        if width <= 0 or height <= 0:
            raise ValueError("image size must be positive")
        image = Image.new("RGB", (width, height), "white")
        draw = ImageDraw.Draw(image)
        draw.rectangle([0, 0, width - 1, height - 1], outline=(0, 0, 0))
        lo, scale = self._scale(width, height)
        if self.use_y_reference:
            y = height - int(scale * (self.reference - lo))
            draw.line([(_XOFFSET + _BOUNDARY // 2, y), (width - _BOUNDARY // 2, y)],
                      fill=(0, 255, 0))
        for start, end in self.polyline(width, height):
            draw.line([start, end], fill=(0, 0, 255))
        if self.title:
            draw.text((3, height // 2), self.title, fill=(0, 0, 0))
        return image