"""purebar - reclaim disk space and watch machine health."""

__version__ = "0.1.0"
