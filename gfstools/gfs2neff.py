"""Extract the effective sample size per frame from a grid SLAM log."""

from __future__ import annotations

import sys
from typing import Iterable, Iterator


def _first(fields: list[str], convert):
    try:
        return convert(fields[0])
    except (IndexError, ValueError):
        return convert("0")


def extract_neff(lines: Iterable[str]) -> Iterator[tuple[int, float]]:
    """Yield (frame, neff) for every NEFF line, using the frame last announced."""
    frame = 0
    for line in lines:
        fields = line.split()
        if not fields:
            continue
        if fields[0] == "FRAME":
            frame = _first(fields[1:], int)
        elif fields[0] == "NEFF":
            yield frame, _first(fields[1:], float)


def main(argv: list[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    if len(args) < 2:
        print("usage gfs2neff <infilename> <nefffilename>")
        return -1
    try:
        stream = open(args[0])
    except OSError:
        print("could read file ")
        return -1
    with stream:
        try:
            out = open(args[1], "w")
        except OSError:
            print("could write file ")
            return -1
        with out:
            for frame, neff in extract_neff(stream):
                out.write(f"{frame} {neff:g}\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())