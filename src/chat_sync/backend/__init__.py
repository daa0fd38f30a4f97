"""Remote store implementations."""

from .base import RemoteBackend, normalize_path, split_path
from .memory import InMemoryBackend
from .rest import RestBackend

__all__ = [
    "InMemoryBackend",
    "RemoteBackend",
    "RestBackend",
    "normalize_path",
    "split_path",
]
