from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Optional

from meetnotes.services.languages import language_name

NOTES_LIST_FIELDS = ("keyTopics", "actionItems", "decisions", "assumptions")

FALLBACK_SUMMARY = "Failed to generate summary."


def fallback_notes() -> dict:
    notes = {"summary": FALLBACK_SUMMARY}
    notes.update({field: [] for field in NOTES_LIST_FIELDS})
    notes["qa"] = []
    return notes


class LLMProviderError(RuntimeError):
    pass


class NotesExtractor(ABC):
    @abstractmethod
    def extract_notes(
        self,
        transcript: str,
        language: Optional[str] = None,
        context: Optional[str] = None,
    ) -> dict:
        """Turn transcript text into a Notes object, optionally in ``language``."""
        raise NotImplementedError


def normalize_notes(parsed: dict) -> dict:
    """Coerce model output into the Notes shape; unknown keys are dropped."""
    notes = {"summary": str(parsed.get("summary") or "").strip()}
    for field in NOTES_LIST_FIELDS:
        value = parsed.get(field) or []
        if not isinstance(value, list):
            value = [value]
        notes[field] = [str(item).strip() for item in value if str(item).strip()]
    qa = []
    for pair in parsed.get("qa") or []:
        if isinstance(pair, dict) and (pair.get("question") or pair.get("answer")):
            qa.append(
                {
                    "question": str(pair.get("question") or "").strip(),
                    "answer": str(pair.get("answer") or "").strip(),
                }
            )
    notes["qa"] = qa
    return notes


class BaseLLMProvider(NotesExtractor):
    """Shared notes prompt and JSON handling.

    Subclasses only implement ``_call_api()`` for their API client.
    """

    NOTES_PROMPT = (
        "You are an expert meeting secretary. Please analyze the following meeting "
        "transcription and extract key information.\n\n"
        "Transcription:\n\"{transcript}\"\n"
        "{context}"
        "{language}\n"
        "Please provide the following outputs in JSON format:\n"
        "1. **summary**: A concise executive summary of the meeting (2-3 paragraphs).\n"
        "2. **keyTopics**: A list of the main topics or themes discussed in the meeting.\n"
        "3. **actionItems**: A list of actionable tasks assigned to specific people "
        "(include the assignee if known).\n"
        "4. **decisions**: A list of key decisions made during the meeting.\n"
        "5. **assumptions**: A list of explicit or implicit assumptions made during the discussion.\n"
        "6. **qa**: A list of important questions asked and their answers.\n\n"
        "Format:\n"
        "{{\n"
        "    \"summary\": \"...\",\n"
        "    \"keyTopics\": [\"Topic 1\", \"Topic 2\"],\n"
        "    \"actionItems\": [\"Task 1 (Assignee)\", \"Task 2\"],\n"
        "    \"decisions\": [\"Decision 1\", \"Decision 2\"],\n"
        "    \"assumptions\": [\"Assumption 1\", \"Assumption 2\"],\n"
        "    \"qa\": [{{ \"question\": \"...\", \"answer\": \"...\" }}]\n"
        "}}\n\n"
        "Return ONLY the JSON object."
    )

    def __init__(self, logger_name: str = "meetnotes.llm") -> None:
        self._logger = logging.getLogger(logger_name)

    @abstractmethod
    def _call_api(
        self,
        prompt: str,
        temperature: float = 0.2,
        timeout: int = 120,
        json_mode: bool = False,
    ) -> str:
        """Make an API call and return the raw response text."""
        raise NotImplementedError

    @staticmethod
    def _extract_json_text(text: str) -> str:
        """Pull the JSON body out of a markdown code block if there is one."""
        match = re.search(r"```(?:json)?\s*([\s\S]*?)```", text)
        if match:
            return match.group(1).strip()
        return text.strip()

    def build_notes_prompt(
        self,
        transcript: str,
        language: Optional[str] = None,
        context: Optional[str] = None,
    ) -> str:
        context_line = f"\nAdditional Context: \"{context}\"\n" if context else ""
        language_line = ""
        if language:
            name = language_name(language)
            language_line = (
                f"\nWrite every field of the output in {name} (language code '{language}'), "
                "regardless of the language spoken in the transcription.\n"
            )
        return self.NOTES_PROMPT.format(
            transcript=transcript, context=context_line, language=language_line
        )

    def extract_notes(
        self,
        transcript: str,
        language: Optional[str] = None,
        context: Optional[str] = None,
    ) -> dict:
        prompt = self.build_notes_prompt(transcript, language=language, context=context)
        content = self._call_api(prompt, temperature=1.0, timeout=180, json_mode=True)

        text = self._extract_json_text(content)
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            self._logger.warning("Non-JSON notes response: %s", text[:300])
            return fallback_notes()
        if not isinstance(parsed, dict):
            self._logger.warning("Notes response is %s, not an object", type(parsed).__name__)
            return fallback_notes()
        return normalize_notes(parsed)
