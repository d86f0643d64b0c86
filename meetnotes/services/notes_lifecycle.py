"""Notes generation, regeneration and lookup for meetings.

Artifacts for one meeting::

    transcription.json   {"transcription": {"text": ...}, ...}   (written elsewhere)
    notes.json           default-language notes
    notes-<lang>.json    notes per language
    metadata.json        language index, see metadata_index

A regenerated language overwrites that language's notes; notes are never merged.
"""

from __future__ import annotations

import logging
from typing import Optional

from meetnotes.errors import InvalidInputError, NotFoundError, UpstreamError
from meetnotes.services.artifact_store import ArtifactStore
from meetnotes.services.languages import (
    CANONICAL_NOTES_KEY,
    DEFAULT_LANGUAGE,
    is_supported,
    storage_keys,
)
from meetnotes.services.llm import LLMProviderError, NotesExtractor
from meetnotes.services.metadata_index import NotesMetadataIndex

TRANSCRIPTION_KEY = "transcription"


class NotesLifecycle:
    def __init__(
        self,
        store: ArtifactStore,
        index: NotesMetadataIndex,
        extractor: NotesExtractor,
    ) -> None:
        self._store = store
        self._index = index
        self._extractor = extractor
        self._logger = logging.getLogger("meetnotes.notes")

    @property
    def extractor_name(self) -> str:
        return self._extractor.__class__.__name__

    def _transcript(self, meeting_id: str) -> str:
        meeting = self._store.read(meeting_id, TRANSCRIPTION_KEY)
        if meeting is None:
            raise NotFoundError("Transcription not found")
        transcription = meeting.get("transcription")
        text = transcription.get("text") if isinstance(transcription, dict) else None
        if not isinstance(text, str) or not text.strip():
            raise InvalidInputError("No transcription text available")
        return text

    def _extract(self, meeting_id: str, text: str, language: Optional[str]) -> dict:
        try:
            return self._extractor.extract_notes(text, language=language)
        except LLMProviderError as exc:
            self._logger.warning(
                "Notes extraction failed: id=%s language=%s error=%s", meeting_id, language, exc
            )
            raise UpstreamError(f"Failed to generate notes: {exc}") from exc

    def generate_notes(self, meeting_id: str) -> dict:
        """Regenerate the canonical notes artifact from the transcript.

        Single-language path: the language index is left untouched.
        """
        text = self._transcript(meeting_id)
        self._logger.info("Generating notes: id=%s", meeting_id)
        notes = self._extract(meeting_id, text, None)
        self._store.write(meeting_id, CANONICAL_NOTES_KEY, notes)
        self._logger.info("Notes saved: id=%s key=%s", meeting_id, CANONICAL_NOTES_KEY)
        return notes

    def regenerate_notes(self, meeting_id: str, language: Optional[str]) -> dict:
        """Generate notes in ``language``, store them and register the language."""
        if not is_supported(language):
            raise InvalidInputError("Invalid language code")
        text = self._transcript(meeting_id)

        self._logger.info("Regenerating notes: id=%s language=%s", meeting_id, language)
        notes = self._extract(meeting_id, text, language)

        # English also lands in notes.json for clients that only know that path
        for key in storage_keys(language):
            self._store.write(meeting_id, key, notes)

        # Not rolled back on failure: the notes stay readable even if the index
        # update below does not complete.
        self._index.register_language(meeting_id, language)
        self._logger.info("Notes regenerated: id=%s language=%s", meeting_id, language)
        return notes

    def get_notes(self, meeting_id: str, language: Optional[str] = None) -> dict:
        """Stored notes for ``language``, or a needsRegeneration marker when absent."""
        language = language or DEFAULT_LANGUAGE
        if not is_supported(language):
            return {"notes": None, "language": language, "needsRegeneration": True}
        for key in storage_keys(language):
            notes = self._store.read(meeting_id, key)
            if notes is not None:
                return {"notes": notes, "language": language, "needsRegeneration": False}
        self._logger.debug("Notes missing: id=%s language=%s", meeting_id, language)
        return {"notes": None, "language": language, "needsRegeneration": True}

    def get_default_notes(self, meeting_id: str) -> dict:
        notes = self._store.read(meeting_id, CANONICAL_NOTES_KEY)
        if notes is None:
            raise NotFoundError("Notes not found")
        return notes
