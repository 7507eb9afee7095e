"""Convert a grid SLAM log into a carmen log along the best particle's path."""

from __future__ import annotations

import sys

from gfstools.records import RecordList

_USAGE = (
    "usage gfs2log [-err] [-neff] [-part] [-odom] <infilename> <outfilename>\n"
    "  -odom : dump raw odometry in ODOM message instead of inpolated corrected one"
)
_FLAGS = ("-err", "-neff", "-part", "-odom")


def convert(infile: str, outfile: str, err: bool = False, part: bool = False,
            odom: bool = False) -> int:
    """Write the best particle's path of ``infile`` to ``outfile``; return its index."""
    with open(infile) as stream:
        records = RecordList().read(stream)
    best = records.best_index()
    with open(outfile, "w") as out:
        records.print_path(out, best, err, odom)
        if part:
            records.print_last_particles(out)
    return best


def main(argv: list[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    flags = dict.fromkeys(_FLAGS, False)
    pos = 0
    for flag in _FLAGS:
        if pos < len(args) and args[pos] == flag:
            flags[flag] = True
            pos += 1
    if len(args) - pos < 2:
        print(_USAGE)
        return -1
    infile, outfile = args[pos], args[pos + 1]
    try:
        best = convert(infile, outfile, flags["-err"], flags["-part"], flags["-odom"])
    except OSError as exc:
        print("could read file " if exc.filename == infile else "could write file ")
        return -1
    except ValueError as exc:
        print(exc, file=sys.stderr)
        return -1
    print(f"\nbest index = {best}")
    return 0


if __name__ == "__main__":
    sys.exit(main())