"""Persistence layer for projects and render jobs."""

from .artifacts import ArtifactStore
from .backends import FallbackStore, LocalStore, MonotonicClock, RecordStore, RemoteStore

__all__ = [
    "ArtifactStore",
    "FallbackStore",
    "LocalStore",
    "MonotonicClock",
    "RecordStore",
    "RemoteStore",
]
