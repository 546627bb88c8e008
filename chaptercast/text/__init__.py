"""Text helpers for filesystem-safe names."""

from .slug import chapter_file_stem, sanitize_name_part

__all__ = ["chapter_file_stem", "sanitize_name_part"]
