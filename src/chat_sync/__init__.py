"""Realtime chat synchronization core for key-path stores with child-added streams."""

__version__ = "0.3.0"
