"""Demo client for camera- and payload-driven position estimation."""

__version__ = "0.1.0"
