"""Top-level package for Chaptercast.

This package turns book chapters into narrated talking-avatar videos by
orchestrating script, speech, and avatar video providers. The main
orchestration entry point is `ChapterPipeline`.
"""

from .pipeline import ChapterPipeline

__all__ = ["ChapterPipeline", "__version__"]

__version__ = "0.1.0"
