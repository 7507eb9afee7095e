"""Grid-based FastSLAM particle filter, log tools and viewer state."""

__version__ = "0.1.0"