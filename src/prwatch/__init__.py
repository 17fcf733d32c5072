"""prwatch - keep a local view of pull requests in sync and notify on changes."""

__version__ = "0.1.0"
