"""Run logging."""

from hyperlocal_demo.metrics.logging import LogWriter

__all__ = ["LogWriter"]
