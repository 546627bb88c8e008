"""Chapter bundle export."""

from .bundle import ChapterBundle, ChapterBundleExporter

__all__ = ["ChapterBundle", "ChapterBundleExporter"]
