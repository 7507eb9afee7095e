"""Convert a grid SLAM log into a recorder log along the best particle's path."""

from __future__ import annotations

import math
import sys
from dataclasses import replace
from typing import Iterable, TextIO

from gfstools.pose import OrientedPoint, normalize_angle
from gfstools.records import (
    CommentRecord,
    LaserRecord,
    NeffRecord,
    OdometryRecord,
    PoseRecord,
    Record,
    RecordList,
    ResampleRecord,
    ScanMatchRecord,
    parse_record,
)

_USAGE = "usage gfs2rec [-err] <infilename> <outfilename>"
_KNOWN = frozenset(
    {"LASER_READING", "ODO_UPDATE", "SM_UPDATE", "SIMULATOR_POS", "RESAMPLE", "NEFF", "COMMENT"}
)


def _num(value: float) -> str:
    return f"{value:g}"


def _per_sample(value: float, size: int) -> float:
    if size:
        return value / size
    if value == 0 or math.isnan(value):
        return math.nan
    return math.copysign(math.inf, value)


def read_records(stream: Iterable[str]) -> RecordList:
    """Read the record kinds this converter understands; other lines are skipped."""
    records = RecordList()
    for line in stream:
        fields = line.split(maxsplit=1)
        if not fields or fields[0] not in _KNOWN:
            continue
        record = parse_record(line)
        if record is not None:
            records.append(record)
    return records


def write_record(record: Record, out: TextIO) -> None:
    """Write one record in recorder form; kinds without such a form write nothing."""
    if isinstance(record, CommentRecord):
        out.write(f"#GFS_COMMENT: {record.text}\n")
    elif isinstance(record, PoseRecord):
        out.write("POS-CORR" if record.true_pos else "POS ")
        out.write("0 0: ")
        p = record.pose
        out.write(f"{_num(p.x * 100)} {_num(p.y * 100)} {_num(180 / math.pi * p.theta)}\n")
    elif isinstance(record, NeffRecord):
        out.write(f"NEFF {_num(record.neff)}\n")
    elif isinstance(record, LaserRecord):
        p = record.pose
        out.write("POS 0 0: ")
        out.write(f"{_num(p.x * 100)} {_num(p.y * 100)} {_num(180 / math.pi * p.theta)}\n")
        out.write("LASER-RANGE ")
        out.write(f" 0 0 0 {record.dim} 180. : ")
        out.write("".join(f" {_num(r * 100)}" for r in record.readings[: record.dim]))
        out.write("\n")


def best_index(records: RecordList) -> int:
    """Index of the particle whose lineage has the largest accumulated weight."""
    if not records:
        return 0
    scanmatch = next((r for r in reversed(records) if isinstance(r, ScanMatchRecord)), None)
    if scanmatch is None:
        raise ValueError("log holds no scan match record")
    records.sample_size = scanmatch.dim
    best_weight = -1e200
    best = scanmatch.dim + 1
    for i in range(scanmatch.dim):
        w = records.log_weight(i)
        if w > best_weight:
            best, best_weight = i, w
    return best


def _lineage(records: RecordList, index: int) -> list[Record]:
    current = index
    pose = OrientedPoint()
    path: list[Record] = []
    for record in reversed(records):
        if isinstance(record, (NeffRecord, CommentRecord, PoseRecord)):
            path.append(replace(record))
        elif isinstance(record, ScanMatchRecord):
            pose = record.poses[current]
            path.append(PoseRecord(pose=pose))
        elif isinstance(record, OdometryRecord):
            pose = record.poses[current]
            path.append(PoseRecord(pose=pose, time=record.time))
        elif isinstance(record, LaserRecord):
            path.append(replace(record, pose=pose))
        elif isinstance(record, ResampleRecord):
            current = record.indexes[current]
            path.append(replace(record))
    path.reverse()
    return path


def print_path(records: RecordList, out: TextIO, index: int, err: bool = False) -> None:
    """Write the path of one particle, or only its errors against the true poses."""
    started = computed = true_pos_found = tpf = False
    ox = oy = rxx = rxy = ryx = ryy = rth = 0.0
    true_pose = OrientedPoint()
    curr_pose = OrientedPoint()
    neff = 0.0
    count = 0
    for record in _lineage(records, index):
        if isinstance(record, NeffRecord):
            neff = _per_sample(record.neff, records.sample_size)
        started = started or isinstance(record, LaserRecord)
        is_pose = isinstance(record, PoseRecord)
        if started and not true_pos_found and is_pose and record.true_pos:
            true_pos_found = tpf = True
            true_pose = record.pose
            out.write("# ")
            write_record(record, out)
        if started and true_pos_found and not computed and is_pose and not record.true_pos:
            pose = record.pose
            rth = true_pose.theta - pose.theta
            s, c = math.sin(rth), math.cos(rth)
            rxx = ryy = c
            rxy, ryx = -s, s
            ox = true_pose.x - (rxx * pose.x + rxy * pose.y)
            oy = true_pose.y - (ryx * pose.x + ryy * pose.y)
            computed = True
            out.write("# ")
            write_record(record, out)
        if isinstance(record, ResampleRecord):
            out.write(f"MARK-POS 0 0: {_num(curr_pose.x * 100)} {_num(curr_pose.y * 100)} 0 {count}\n")
            count += 1
        if computed and is_pose:
            if record.true_pos:
                tpf = True
                true_pose = record.pose
            elif tpf:
                tpf = False
                pose = record.pose
                ex = true_pose.x - (ox + rxx * pose.x + rxy * pose.y)
                ey = true_pose.y - (oy + ryx * pose.x + ryy * pose.y)
                eth = normalize_angle(true_pose.theta - pose.theta - rth)
                if not err:
                    out.write("# ERROR ")
                out.write(
                    f"{_num(neff)} {_num(ex)} {_num(ey)} {_num(eth)} "
                    f"{_num(math.sqrt(ex * ex + ey * ey))} {_num(abs(eth))}\n"
                )
        if is_pose:
            curr_pose = record.pose
        if not err:
            write_record(record, out)


def main(argv: list[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    pos = 0
    err = False
    if pos < len(args) and args[pos] == "-err":
        err = True
        pos += 1
    if pos < len(args) and args[pos] == "-neff":
        pos += 1
    if len(args) - pos < 2:
        print(_USAGE)
        return -1
    infile, outfile = args[pos], args[pos + 1]
    try:
        with open(infile) as stream:
            records = read_records(stream)
    except OSError:
        print("could read file ")
        return -1
    try:
        best = best_index(records)
    except ValueError as exc:
        print(exc, file=sys.stderr)
        return -1
    print(f"\nbest index = {best}")
    try:
        with open(outfile, "w") as out:
            print_path(records, out, best, err)
    except OSError:
        print("could write file ")
        return -1
    return 0


if __name__ == "__main__":
    sys.exit(main())