[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "gfstools"
version = "0.1.0"
description = "Grid-based FastSLAM: particle filter, log reading and conversion, and viewer state."
requires-python = ">=3.10"
dependencies = [
    "pillow",
]
keywords = [
    "slam",
    "fastslam",
    "particle-filter",
    "robotics",
    "occupancy-grid",
    "laser",
    "mapping",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
gfs2log = "gfstools.gfs2log:main"
gfs2neff = "gfstools.gfs2neff:main"
gfs2rec = "gfstools.gfs2rec:main"
gfs-nogui = "gfstools.nogui:main"

[tool.hatch.build.targets.wheel]
packages = ["gfstools"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
