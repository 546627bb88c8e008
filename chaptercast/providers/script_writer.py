"""Two-pass script generation and chapter suggestions.

Responsibilities:
- Generate narration scripts: a content pass driven by project instructions,
  then a delivery pass that only inserts bracketed vocal tags.
- Suggest a chapter list for a book through one structured-output call.
- Surface provider failures as `GenerationFailedError`, keeping missing
  credentials as `ConfigurationError`.
"""

from __future__ import annotations

from typing import Protocol

from ..errors import (
    ConfigurationError,
    GenerationFailedError,
    ProviderError,
    TransportError,
    ValidationError,
)
from ..models.datatypes import ChapterEntry
from .chapter_list import ChapterListParser
from .openai_client import OpenAIChatClient
from .prompts import PromptLibrary


class ScriptProvider(Protocol):
    """Protocol for script providers used by the orchestrator."""

    def generate_script(
        self,
        instructions: str,
        chapter_title: str,
        chapter_number: int,
        project_name: str,
    ) -> str:
        """Return narration script text with vocal delivery tags."""

    def generate_chapter_list(self, book_title: str, author: str | None) -> list[ChapterEntry]:
        """Return suggested chapters ordered by number."""


class ScriptWriter:
    """OpenAI-backed two-pass script writer."""

    def __init__(
        self,
        model: str = "gpt-5.1",
        chapter_model: str | None = None,
        api_key: str | None = None,
        max_completion_tokens: int = 1000,
        tagging_temperature: float = 0.7,
        client: OpenAIChatClient | None = None,
    ) -> None:
        """Initialize OpenAI-backed script generation settings."""

        self.model = model
        self.chapter_model = chapter_model or model
        self.max_completion_tokens = max_completion_tokens
        self.tagging_temperature = tagging_temperature
        self.client = client if client is not None else OpenAIChatClient(api_key=api_key)
        self.prompts = PromptLibrary()
        self.parser = ChapterListParser()

    def generate_script(
        self,
        instructions: str,
        chapter_title: str,
        chapter_number: int,
        project_name: str,
    ) -> str:
        """Generate the script content, then tag it for spoken delivery."""

        if not instructions.strip():
            raise ValidationError(
                stage="script",
                detail="Project has no generation instructions.",
                hint="Set instructions with `chaptercast update-project --system-prompt ...`.",
            )
        if not chapter_title.strip():
            raise ValidationError(
                stage="script",
                detail="Chapter title is required.",
                hint="Pass `--title <chapter title>`.",
            )

        try:
            draft = self.client.chat_completion_text(
                model=self.model,
                system_prompt=instructions,
                user_prompt=self.prompts.script_prompt(chapter_title, chapter_number, project_name),
                stage="script",
                max_completion_tokens=self.max_completion_tokens,
            )
            return self.client.chat_completion_text(
                model=self.model,
                system_prompt=self.prompts.audio_tag_system_prompt(),
                user_prompt=self.prompts.audio_tag_prompt(draft),
                stage="script",
                temperature=self.tagging_temperature,
                max_completion_tokens=self.max_completion_tokens,
            )
        except ConfigurationError:
            raise
        except (TransportError, ProviderError) as exc:
            raise GenerationFailedError(
                stage="script",
                detail=f"Script generation failed: {exc.detail}",
                hint=exc.hint or "Retry script generation.",
            ) from exc

    def generate_chapter_list(self, book_title: str, author: str | None) -> list[ChapterEntry]:
        """Ask the model for the book's chapters and parse the response permissively."""

        if not book_title.strip():
            raise ValidationError(
                stage="chapter-list",
                detail="Book title is required to suggest chapters.",
            )
        try:
            response_text = self.client.chat_completion_text(
                model=self.chapter_model,
                system_prompt=self.prompts.chapter_list_system_prompt(),
                user_prompt=self.prompts.chapter_list_prompt(book_title, author),
                stage="chapter-list",
                response_format={"type": "json_object"},
            )
        except ConfigurationError:
            raise
        except (TransportError, ProviderError) as exc:
            raise GenerationFailedError(
                stage="chapter-list",
                detail=f"Chapter list generation failed: {exc.detail}",
                hint=exc.hint,
            ) from exc
        return self.parser.parse(response_text)
