"""Archive execution logs and other per-execution files to object storage."""

__version__ = "1.0.0"
