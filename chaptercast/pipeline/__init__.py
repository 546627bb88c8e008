"""Chapter generation pipeline package."""

from .orchestrator import ChapterPipeline
from .pollers import PollerRegistry
from .sessions import ChapterSession, ChapterStage

__all__ = ["ChapterPipeline", "ChapterSession", "ChapterStage", "PollerRegistry"]
