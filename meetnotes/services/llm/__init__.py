from meetnotes.services.llm.base import (
    BaseLLMProvider,
    LLMProviderError,
    NotesExtractor,
    fallback_notes,
    normalize_notes,
)
from meetnotes.services.llm.gemini_provider import GeminiProvider

__all__ = [
    "BaseLLMProvider",
    "GeminiProvider",
    "LLMProviderError",
    "NotesExtractor",
    "fallback_notes",
    "normalize_notes",
]
