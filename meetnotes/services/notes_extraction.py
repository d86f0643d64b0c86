import logging
from typing import Optional

from meetnotes.context import AppContext
from meetnotes.services.gemini_config import read_gemini_settings
from meetnotes.services.llm import GeminiProvider, LLMProviderError, NotesExtractor


class NotesExtractionService(NotesExtractor):
    """Notes extraction using the configured Gemini model.

    Settings are re-read from config.json for every request, so a key or model
    change in the config file applies without a restart.
    """

    def __init__(self, ctx: AppContext) -> None:
        self._ctx = ctx
        self._logger = logging.getLogger("meetnotes.notes.extraction")

    def _get_provider(self) -> GeminiProvider:
        settings = read_gemini_settings(self._ctx)
        if not settings.api_key:
            raise LLMProviderError(
                "Missing Gemini API key. Set providers.gemini.api_key in config.json "
                "or the GEMINI_API_KEY environment variable."
            )
        return GeminiProvider(
            api_key=settings.api_key,
            model=settings.notes_model,
            base_url=settings.base_url,
        )

    def extract_notes(
        self,
        transcript: str,
        language: Optional[str] = None,
        context: Optional[str] = None,
    ) -> dict:
        if not transcript.strip():
            raise LLMProviderError("Transcript is empty")
        provider = self._get_provider()
        self._logger.info(
            "Notes extraction: provider=%s language=%s chars=%d",
            provider.__class__.__name__,
            language or "default",
            len(transcript),
        )
        return provider.extract_notes(transcript, language=language, context=context)
