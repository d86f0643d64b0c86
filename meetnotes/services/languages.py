"""Supported notes languages and where each language's notes are stored.

English is the default language.  Its notes live under two keys: its own
suffixed key and the canonical unsuffixed ``notes`` key, which older clients
read directly.  Writes go to every key of a language; reads try them in order.
"""

from __future__ import annotations

DEFAULT_LANGUAGE = "en"
CANONICAL_NOTES_KEY = "notes"
NOTES_KEY_PREFIX = "notes-"

SUPPORTED_LANGUAGES: dict[str, str] = {
    "en": "English",
    "zh": "Chinese",
    "ms": "Bahasa Melayu",
    "ja": "Japanese",
    "ko": "Korean",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "pt": "Portuguese",
    "it": "Italian",
    "th": "Thai",
    "vi": "Vietnamese",
    "id": "Bahasa Indonesia",
}


def is_supported(language: str | None) -> bool:
    return bool(language) and language in SUPPORTED_LANGUAGES


def language_name(language: str) -> str:
    return SUPPORTED_LANGUAGES.get(language, language)


def suffixed_key(language: str) -> str:
    return f"{NOTES_KEY_PREFIX}{language}"


def storage_keys(language: str) -> tuple[str, ...]:
    """Artifact keys holding notes for ``language``, in read-preference order."""
    if language == DEFAULT_LANGUAGE:
        return (suffixed_key(language), CANONICAL_NOTES_KEY)
    return (suffixed_key(language),)


def language_from_key(key: str) -> str | None:
    """Return the language of a ``notes-{lang}`` key, or None for other keys."""
    if not key.startswith(NOTES_KEY_PREFIX):
        return None
    language = key[len(NOTES_KEY_PREFIX):]
    return language or None


def list_languages() -> list[dict]:
    return [{"code": code, "name": name} for code, name in SUPPORTED_LANGUAGES.items()]
