"""Writes every n-th rendered frame to a numbered image file."""

from __future__ import annotations

from pathlib import Path

from PIL import Image


class FrameDumper:
    """Saves one image out of every ``cycles`` handed to it, numbering the files."""

    def __init__(self, prefix: str, cycles: int = 1, format: str = "PNG"):
        if cycles < 1:
            raise ValueError("cycles must be at least 1")
        self.prefix = prefix
        self.format = format
        self.cycles = cycles
        self.reset()

    def reset(self) -> None:
        """Restart the frame numbering and the cycle counter."""
        self.frame = 0
        self.counter = 0

    def dump(self, image: Image.Image) -> Path | None:
        """Save ``image`` if this call falls on a cycle; return the file written, if any."""
        path = None
        if self.counter % self.cycles == 0:
            path = Path(f"{self.prefix}-{self.frame:05d}.{self.format}")
            image.save(path, format=self.format)
            self.frame += 1
        self.counter += 1
        return path