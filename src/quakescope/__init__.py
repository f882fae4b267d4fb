"""QuakeScope: real-time seismic event map viewer core."""

__version__ = "0.1.0"
