"""Prompt template library for script and chapter-list generation.

Responsibilities:
- Centralize prompt construction for the two script passes and the chapter
  list request.
- Keep prompts deterministic by template method.
"""

from __future__ import annotations

_FORBIDDEN_OPENERS = ("Imagine", "I remember", "Picture", "In this scenario")

_VOCAL_TAG_EXAMPLES = (
    "[happy]",
    "[sad]",
    "[excited]",
    "[angry]",
    "[whisper]",
    "[annoyed]",
    "[thoughtful]",
    "[surprised]",
    "[laughing]",
    "[chuckles]",
    "[sighs]",
    "[clears throat]",
    "[short pause]",
    "[long pause]",
    "[exhales sharply]",
    "[inhales deeply]",
)


class PromptLibrary:
    """Build prompt strings for supported script-provider tasks."""

    def script_prompt(self, chapter_title: str, chapter_number: int, project_name: str) -> str:
        """Return the fixed user template for the primary script pass."""

        openers = ", ".join(f'"{phrase},"' for phrase in _FORBIDDEN_OPENERS)
        return (
            "Always begin your response directly with the first line of the script. "
            "No framing and no introductions.\n\n"
            f"Do NOT start with phrases such as {openers} or similar.\n\n"
            f'Generate a script for Chapter {chapter_number}: "{chapter_title}" '
            f'for the book "{project_name}".'
        )

    def audio_tag_system_prompt(self) -> str:
        """Return the system prompt for the vocal-delivery tagging pass."""

        examples = ", ".join(_VOCAL_TAG_EXAMPLES)
        return (
            "You add spoken-delivery audio tags to a narration script for a "
            "text-to-speech voice.\n"
            "Rules:\n"
            "- Insert tags in square brackets at sentence boundaries, immediately "
            "before or after the sentence they modify.\n"
            "- Do NOT add, remove, reorder, or reword any word of the original text. "
            "Never place original text inside brackets.\n"
            "- Tags must describe the voice only: emotion, delivery, breath, or pauses.\n"
            "- Do NOT use tags for music, sound effects, posture, gestures, or camera "
            "directions (for example `[music]`, `[standing]`, `[pacing]`, `[close-up]`).\n"
            "- Do NOT turn existing narrative descriptions into tags.\n"
            "- Choose tags that fit the emotion of the line and never contradict its meaning.\n"
            f"Example tags: {examples}.\n"
            "Reply ONLY with the tagged text."
        )

    def audio_tag_prompt(self, script: str) -> str:
        """Return the user prompt wrapping the primary pass output."""

        return f"Enhance the following script with audio tags:\n\n{script}"

    def chapter_list_system_prompt(self) -> str:
        """Return the system prompt for the structured chapter-list request."""

        return (
            "You provide chapter information for books. Return a JSON object with a "
            '"chapters" array. Each chapter has "chapterNumber" (integer) and '
            '"chapterTitle" (string). Format: '
            '{"chapters": [{"chapterNumber": 1, "chapterTitle": "Chapter Title"}]}'
        )

    def chapter_list_prompt(self, book_title: str, author: str | None) -> str:
        """Return the user prompt for the chapter-list request."""

        return (
            f'Provide all chapters for the book "{book_title}" by '
            f"{author or 'unknown author'}. Return a JSON object with a \"chapters\" "
            "array containing chapterNumber and chapterTitle for each chapter."
        )
