"""Multi-source repository quality aggregation, scoring and ranking."""

__version__ = "0.1.0"
