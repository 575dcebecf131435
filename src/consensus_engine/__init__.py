"""Opinion aggregation and compatibility engine."""

__version__ = "0.1.0"
