"""Provider adapters for script, speech, and avatar video services."""

from .chapter_list import ChapterListParser
from .heygen import AvatarVideoProvider, HeyGenClient
from .openai_client import OpenAIChatClient
from .script_writer import ScriptProvider, ScriptWriter
from .speech import ElevenLabsClient, SpeechProvider, SpeechSynthesizer
from .status import normalize_render_status

__all__ = [
    "AvatarVideoProvider",
    "ChapterListParser",
    "ElevenLabsClient",
    "HeyGenClient",
    "OpenAIChatClient",
    "ScriptProvider",
    "ScriptWriter",
    "SpeechProvider",
    "SpeechSynthesizer",
    "normalize_render_status",
]
