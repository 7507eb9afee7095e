# gfstools

A grid-based FastSLAM (Rao-Blackwellized particle filter) mapper and
tools for the logs it writes. The filter moves particles with a noisy
odometry model, corrects them by matching laser scans against per-particle
occupancy grids, weights and resamples them, and keeps each particle's
trajectory in a shared tree. Its log holds one record per line: odometry
updates, scan-match updates, laser readings, resampling steps, effective
sample size (NEFF) and entropy values. `gfstools` reads such logs, finds
the best particle, rebuilds its path and converts it to other formats.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Command-line tools

### gfs2log

Rebuilds the path of the best particle and writes it as a robot log
(`ODOM`, `TRUEPOS`, `WEIGHT`, `ROBOTLASER1`, `NEFF`, `ENTROPY`,
`#GFS_COMMENT` lines).

```
gfs2log [-err] [-neff] [-part] [-odom] <infilename> <outfilename>
```

- `-err` writes only the error lines of the path against the true
  (simulator) poses, and prints the average error.
- `-part` appends a `MARKER` line for each particle of the last scan match.
- `-odom` writes the raw `ODOM` odometry instead of the corrected poses.
- `-neff` is accepted and has no effect.

The flags must come in the order shown. The best particle's index is
printed on success.

### gfs2neff

Writes one `frame neff` pair for every `NEFF` line, using the frame
number of the last `FRAME` line before it.

```
gfs2neff <infilename> <nefffilename>
```

### gfs2rec

Writes the best path in the recorder format (`POS`, `POS-CORR`,
`LASER-RANGE`, `MARK-POS`, `NEFF` lines; centimetres and degrees).

```
gfs2rec [-err] [-neff] <infilename> <outfilename>
```

`-err` writes only the error lines; `-neff` is accepted and has no effect.

### gfs-nogui

Runs the mapper over a log without a display and prints `DONE!` when it
has finished.

```
gfs-nogui -filename <logfile> [options]
```

The input log is read for `LASER_READING` lines (lasers of 180, 181, 360
or 361 beams) and `SIMULATOR_POS` lines. Options take the form
`-name value`; the flags `-autosize`, `-stdin`, `-skipMatching`,
`-onLine`, `-generateMap` and `-considerOdometryCovariance` take no value.
Among the options are `-outfilename` (write the filter log), `-particles`,
`-xmin -ymin -xmax -ymax -delta`, `-maxrange -maxUrange`, `-sigma`,
`-kernelSize`, `-lstep -astep -iterations`, `-lsigma -lobsGain -lskip`,
`-srr -srt -str -stt`, `-linearUpdate -angularUpdate`,
`-resampleThreshold`, `-minimumScore` and `-randseed`. `-cfg <file>`
reads the same keys from the `[gfs]` section of an INI file first;
command-line options override it. An unknown option is an error.

## Library use

```python
from gfstools.records import RecordList

records = RecordList()
with open("run.gfs") as stream:
    records.read(stream)

best = records.best_index()
with open("path.log", "w") as out:
    records.print_path(out, best, False, False)
```

- `gfstools.pose`: `OrientedPoint`, `normalize_angle`,
  `absolute_difference`, `absolute_sum`.
- `gfstools.records`: the record classes, `parse_record` and
  `RecordList` (`read`, `log_weight`, `best_index`, `compute_path`,
  `print_path`, `print_last_particles`).
- `gfstools.motionmodel`: `MotionModel` and `Covariance3`.
- `gfstools.trajectory`: the `TNode` tree, `copy_trajectories` and weight
  propagation (`update_tree_weights`).
- `gfstools.processor`: `GridSlamProcessor`, `RangeReading`,
  `ScanMatcher`, `Particle`.
- `gfstools.slamthread`: `GridSlamProcessorThread`, which runs the filter
  in a background thread and reports `ParticleMoveEvent`,
  `ResampleEvent`, `MapEvent` and `DoneEvent`; `SlamParameters` and
  `parse_arguments`.
- `gfstools.bbox`: `BoundingBox`, `scan_bounding_box`,
  `records_bounding_box`.
- `gfstools.graphpainter`, `gfstools.particleviewer`,
  `gfstools.mappainter`, `gfstools.widgets`, `gfstools.dumper`: the state
  behind the viewers (best particle, trajectories, key and click
  handling) and drawing into Pillow images; `FrameDumper` saves every
  n-th image to a numbered file.

## What it does not do

- There is no graphical window: the viewers and widgets draw into images
  and react to keys and clicks passed to them, but nothing opens a
  screen or runs an event loop.
- There is no live connection to a robot; `-onLine` runs finish at once
  without processing anything.
- No command renders maps of a log to image files.