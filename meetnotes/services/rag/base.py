from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

# Bookkeeping document kept in every project store; never a citation.
PROJECT_METADATA_DOCUMENT = ".project-metadata.json"

MAX_EXAMPLE_QUESTIONS = 3


class RagServiceError(RuntimeError):
    pass


class RagStoreNotFound(RagServiceError):
    pass


@dataclass
class RagStoreInfo:
    """One store as listed by the RAG service, with the project fields it carries."""

    store_name: str
    display_name: str
    created_at: Optional[str] = None
    project_id: Optional[str] = None
    color: Optional[str] = None
    description: str = ""
    goals: str = ""
    documents: list[dict] = field(default_factory=list)

    @property
    def store_id(self) -> str:
        """Last path segment of the store resource name."""
        return self.store_name.rstrip("/").rsplit("/", 1)[-1]

    def meeting_documents(self) -> list[dict]:
        return [
            doc for doc in self.documents
            if doc.get("displayName") != PROJECT_METADATA_DOCUMENT
        ]


class RagStoreService(ABC):
    """External document-store service; its store list is the project list."""

    @abstractmethod
    def create_store(
        self,
        project_id: str,
        display_name: str,
        *,
        color: Optional[str] = None,
        description: str = "",
        goals: str = "",
    ) -> RagStoreInfo:
        raise NotImplementedError

    @abstractmethod
    def list_stores(self) -> list[RagStoreInfo]:
        raise NotImplementedError

    @abstractmethod
    def delete_store(self, store_name: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def list_documents(self, store_name: str) -> list[dict]:
        raise NotImplementedError

    @abstractmethod
    def query(self, store_name: str, prompt: str) -> dict:
        """Answer ``prompt`` against one store.

        Returns ``{"text": str, "groundingChunks": [{"retrievedContext": {...}}]}``.
        """
        raise NotImplementedError

    @abstractmethod
    def retrieve_chunks(self, store_name: str, query: str) -> list[dict]:
        """Grounding chunks for ``query`` from one store; the generated text is discarded."""
        raise NotImplementedError

    @abstractmethod
    def generate_text(self, prompt: str) -> str:
        """Plain generation with no store attached."""
        raise NotImplementedError

    @abstractmethod
    def generate_example_questions(
        self, store_name: str, context_kind: str, context_id: str
    ) -> list[str]:
        raise NotImplementedError


def parse_question_list(text: str) -> Optional[list[str]]:
    """Parse a model's JSON array of questions.

    Accepts a ```json fenced block or the span between the first ``[`` and the
    last ``]``.  Returns None when no array can be parsed.
    """
    json_text = (text or "").strip()
    fenced = re.search(r"```(?:json)?\s*([\s\S]*?)```", json_text)
    if fenced:
        json_text = fenced.group(1).strip()
    else:
        first, last = json_text.find("["), json_text.rfind("]")
        if first != -1 and last > first:
            json_text = json_text[first : last + 1]
    try:
        parsed = json.loads(json_text)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, list):
        return None
    return [q for q in parsed if isinstance(q, str)][:MAX_EXAMPLE_QUESTIONS]
