"""Typed data models used across Chaptercast."""

from .datatypes import (
    ANGLES,
    ChapterEntry,
    ChapterGroup,
    Project,
    RenderJob,
    RenderStatus,
    RenderSubmission,
    SpeechResult,
    StatusReport,
    VideoGenerationResult,
)

__all__ = [
    "ANGLES",
    "ChapterEntry",
    "ChapterGroup",
    "Project",
    "RenderJob",
    "RenderStatus",
    "RenderSubmission",
    "SpeechResult",
    "StatusReport",
    "VideoGenerationResult",
]
