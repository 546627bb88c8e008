"""Deterministic name helpers for exported chapter files.

Responsibilities:
- Normalize free-form project and chapter titles into filename parts.
- Keep naming stable so repeated exports produce identical file names.
"""

from __future__ import annotations

import re


def sanitize_name_part(value: str, fallback: str) -> str:
    """Return `value` with non-alphanumerics replaced by single underscores.

    Runs of underscores are collapsed and leading/trailing underscores trimmed.
    `fallback` is used when nothing usable remains.
    """

    replaced = re.sub(r"[^A-Za-z0-9]", "_", value)
    collapsed = re.sub(r"_+", "_", replaced)
    return collapsed.strip("_") or fallback


def chapter_file_stem(project_name: str, chapter_number: int, chapter_title: str) -> str:
    """Return the `{project}_{number}_{title}` stem shared by bundle files."""

    project_part = sanitize_name_part(project_name, "world")
    title_part = sanitize_name_part(chapter_title, "chapter")
    return f"{project_part}_{chapter_number}_{title_part}"
