"""Per-meeting index of which notes languages exist and which one is default."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable

from meetnotes.errors import NotFoundError
from meetnotes.services.artifact_store import ArtifactStore
from meetnotes.services.languages import (
    CANONICAL_NOTES_KEY,
    DEFAULT_LANGUAGE,
    language_from_key,
)

METADATA_KEY = "metadata"


def present_languages(keys: Iterable[str]) -> list[str]:
    """Languages that actually have a notes artifact among ``keys``.

    Suffixed keys are collected in sorted order; a canonical ``notes`` artifact
    counts as the default language and goes first.
    """
    key_list = list(keys)
    languages = sorted(
        {lang for lang in (language_from_key(key) for key in key_list) if lang}
    )
    if CANONICAL_NOTES_KEY in key_list and DEFAULT_LANGUAGE not in languages:
        languages.insert(0, DEFAULT_LANGUAGE)
    return languages


def derive_metadata(keys: Iterable[str]) -> dict:
    """Rebuild a metadata record from an artifact key listing.

    Used for meetings that predate metadata tracking.  When no notes exist at
    all the default language is still reported, as an assumption rather than a
    promise that notes are present.
    """
    languages = present_languages(keys) or [DEFAULT_LANGUAGE]
    return {
        "availableLanguages": languages,
        "defaultLanguage": languages[0],
        "createdAt": None,
    }


class NotesMetadataIndex:
    def __init__(self, store: ArtifactStore) -> None:
        self._store = store
        self._logger = logging.getLogger("meetnotes.notes.metadata")

    def get(self, meeting_id: str) -> dict:
        """Explicit metadata when present, otherwise derived from the notes on disk.

        Never writes.
        """
        if not self._store.meeting_exists(meeting_id):
            raise NotFoundError("Meeting not found")
        metadata = self._store.read(meeting_id, METADATA_KEY)
        if metadata is not None:
            return metadata
        derived = derive_metadata(self._store.list_keys(meeting_id))
        self._logger.debug(
            "Metadata derived from listing: id=%s languages=%s",
            meeting_id,
            derived["availableLanguages"],
        )
        return derived

    def register_language(self, meeting_id: str, language: str) -> dict:
        """Add ``language`` to the meeting's metadata record, creating it if needed.

        Runs under the meeting's lock so concurrent registrations of different
        languages all land.  The record is only rewritten when it changes.
        A missing record is seeded from notes already on disk instead of an
        empty language list, and the default is moved onto a listed language.
        """
        with self._store.locked(meeting_id):
            metadata = self._store.read(meeting_id, METADATA_KEY)
            changed = False
            if metadata is None:
                metadata = {
                    "availableLanguages": present_languages(
                        key for key in self._store.list_keys(meeting_id)
                        # the caller has already written this language's notes
                        if language_from_key(key) != language
                        and not (language == DEFAULT_LANGUAGE and key == CANONICAL_NOTES_KEY)
                    ),
                    "defaultLanguage": DEFAULT_LANGUAGE,
                    "createdAt": datetime.now(timezone.utc).isoformat(),
                }
                changed = True

            languages = list(metadata.get("availableLanguages") or [])
            if language not in languages:
                languages.append(language)
                changed = True
            metadata["availableLanguages"] = languages

            if metadata.get("defaultLanguage") not in languages:
                metadata["defaultLanguage"] = languages[0]
                changed = True

            if changed:
                self._store.write(meeting_id, METADATA_KEY, metadata)
                self._logger.info(
                    "Metadata updated: id=%s languages=%s default=%s",
                    meeting_id,
                    languages,
                    metadata["defaultLanguage"],
                )
            return metadata
