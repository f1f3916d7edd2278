"""Single-process queue consumer with bounded job execution and retry policy."""

__version__ = "0.1.0"
