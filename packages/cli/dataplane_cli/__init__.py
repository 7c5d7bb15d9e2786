"""Command-line interface for the HAProxy Data Plane client."""

__version__ = "0.1.0"
