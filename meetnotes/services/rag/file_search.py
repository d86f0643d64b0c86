"""Gemini File Search stores as the RAG backend, over the REST API.

Each project owns one store.  The project's display fields are kept as custom
metadata on a small JSON document named ``.project-metadata.json`` uploaded
into the store at creation time.
"""
from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

import requests

from meetnotes.services.gemini_config import GeminiSettings
from meetnotes.services.rag.base import (
    PROJECT_METADATA_DOCUMENT,
    RagServiceError,
    RagStoreInfo,
    RagStoreNotFound,
    RagStoreService,
    parse_question_list,
)

PAGE_SIZE = 20

ANSWER_SUFFIX = (
    " DO NOT ASK THE USER TO READ THE MANUAL, pinpoint the relevant sections in the "
    "response itself. If the information is not explicitly stated in the transcripts, "
    "respond with 'Not mentioned in the uploaded files.'"
)


def _metadata_value(document: dict, key: str) -> Optional[str]:
    for entry in document.get("customMetadata") or []:
        if entry.get("key") == key:
            return entry.get("stringValue")
    return None


class FileSearchProvider(RagStoreService):
    def __init__(
        self,
        settings: Callable[[], GeminiSettings],
        session: Optional[requests.Session] = None,
        poll_interval: float = 3.0,
        max_polls: int = 40,
    ) -> None:
        self._settings = settings
        self._session = session or requests.Session()
        self._poll_interval = poll_interval
        self._max_polls = max_polls
        self._logger = logging.getLogger("meetnotes.rag.file_search")

    # ── transport ──────────────────────────────────────────────────────

    def _current_settings(self) -> GeminiSettings:
        settings = self._settings()
        if not settings.api_key:
            raise RagServiceError(
                "Missing Gemini API key. Set providers.gemini.api_key in config.json "
                "or the GEMINI_API_KEY environment variable."
            )
        return settings

    def _request(
        self,
        method: str,
        url: str,
        settings: GeminiSettings,
        *,
        timeout: int = 60,
        **kwargs,
    ) -> requests.Response:
        params = dict(kwargs.pop("params", None) or {})
        params["key"] = settings.api_key
        try:
            response = self._session.request(method, url, params=params, timeout=timeout, **kwargs)
        except requests.RequestException as exc:
            raise RagServiceError(f"Failed to reach File Search API: {exc.__class__.__name__}") from exc

        if response.status_code == 404:
            raise RagStoreNotFound(f"File Search resource not found: {url.rsplit('/v1beta/', 1)[-1]}")
        if response.status_code != 200:
            self._logger.error(
                "File Search error: %s %s -> %s %s",
                method,
                url.rsplit("/v1beta/", 1)[-1],
                response.status_code,
                response.text[:500],
            )
            raise RagServiceError(f"File Search error: {response.status_code}")
        return response

    @staticmethod
    def _json(response: requests.Response) -> dict:
        try:
            data = response.json()
        except ValueError as exc:
            raise RagServiceError("File Search returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise RagServiceError("File Search returned invalid JSON")
        return data

    @staticmethod
    def _api(settings: GeminiSettings, path: str) -> str:
        return f"{settings.base_url.rstrip('/')}/v1beta/{path}"

    def _paged(self, settings: GeminiSettings, path: str, items_key: str) -> list[dict]:
        items: list[dict] = []
        page_token: Optional[str] = None
        while True:
            params = {"pageSize": PAGE_SIZE}
            if page_token:
                params["pageToken"] = page_token
            data = self._json(self._request("GET", self._api(settings, path), settings, params=params))
            items.extend(data.get(items_key) or [])
            page_token = data.get("nextPageToken")
            if not page_token:
                return items

    def _generate(
        self,
        settings: GeminiSettings,
        prompt: str,
        store_name: Optional[str] = None,
        generation_config: Optional[dict] = None,
    ) -> dict:
        model = settings.rag_model
        if not model.startswith("models/"):
            model = f"models/{model}"
        body: dict = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        if store_name:
            body["tools"] = [{"fileSearch": {"fileSearchStoreNames": [store_name]}}]
        if generation_config:
            body["generationConfig"] = generation_config
        response = self._request(
            "POST", self._api(settings, f"{model}:generateContent"), settings, json=body, timeout=180
        )
        candidates = self._json(response).get("candidates") or []
        return candidates[0] if candidates else {}

    @staticmethod
    def _candidate_text(candidate: dict) -> str:
        parts = (candidate.get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts).strip()

    @staticmethod
    def _candidate_chunks(candidate: dict) -> list[dict]:
        return list((candidate.get("groundingMetadata") or {}).get("groundingChunks") or [])

    # ── documents ──────────────────────────────────────────────────────

    def _upload_document(
        self,
        settings: GeminiSettings,
        store_name: str,
        display_name: str,
        content: bytes,
        mime_type: str,
        custom_metadata: list[dict],
    ) -> None:
        """Resumable upload into a store, then wait for the import operation."""
        start = self._request(
            "POST",
            f"{settings.base_url.rstrip('/')}/upload/v1beta/{store_name}:uploadToFileSearchStore",
            settings,
            headers={
                "X-Goog-Upload-Protocol": "resumable",
                "X-Goog-Upload-Command": "start",
                "X-Goog-Upload-Header-Content-Length": str(len(content)),
                "X-Goog-Upload-Header-Content-Type": mime_type,
                "Content-Type": "application/json",
            },
            json={
                "displayName": display_name,
                "mimeType": mime_type,
                "customMetadata": custom_metadata,
            },
        )
        upload_url = start.headers.get("X-Goog-Upload-URL")
        if not upload_url:
            raise RagServiceError("File Search upload did not return an upload URL")

        finish = self._request(
            "POST",
            upload_url,
            settings,
            headers={
                "X-Goog-Upload-Command": "upload, finalize",
                "X-Goog-Upload-Offset": "0",
                "Content-Length": str(len(content)),
            },
            data=content,
            timeout=120,
        )
        operation = self._json(finish)
        polls = 0
        while not operation.get("done"):
            if polls >= self._max_polls or not operation.get("name"):
                raise RagServiceError(f"Upload of {display_name} did not complete")
            time.sleep(self._poll_interval)
            polls += 1
            operation = self._json(
                self._request("GET", self._api(settings, operation["name"]), settings)
            )
        if operation.get("error"):
            message = operation["error"].get("message", "unknown error")
            raise RagServiceError(f"Upload of {display_name} failed: {message}")
        self._logger.info("Uploaded %s to %s", display_name, store_name)

    def list_documents(self, store_name: str) -> list[dict]:
        settings = self._current_settings()
        documents = []
        for doc in self._paged(settings, f"{store_name}/documents", "documents"):
            if not doc.get("name"):
                continue
            documents.append(
                {
                    "name": doc["name"],
                    "displayName": doc.get("displayName", ""),
                    "uploadTime": doc.get("createTime"),
                    "mimeType": doc.get("mimeType"),
                    "customMetadata": doc.get("customMetadata") or [],
                }
            )
        return documents

    # ── stores ─────────────────────────────────────────────────────────

    def create_store(
        self,
        project_id: str,
        display_name: str,
        *,
        color: Optional[str] = None,
        description: str = "",
        goals: str = "",
    ) -> RagStoreInfo:
        settings = self._current_settings()
        data = self._json(
            self._request(
                "POST",
                self._api(settings, "fileSearchStores"),
                settings,
                json={"displayName": display_name},
            )
        )
        store_name = data.get("name")
        if not store_name:
            raise RagServiceError("Failed to create RAG store: name is missing.")
        self._logger.info("Created RAG store %s for %r", store_name, display_name)

        info = RagStoreInfo(
            store_name=store_name,
            display_name=display_name,
            created_at=data.get("createTime") or datetime.now(timezone.utc).isoformat(),
            color=color,
            description=description,
            goals=goals,
        )
        custom_metadata = [
            {"key": "projectId", "stringValue": project_id},
            {"key": "displayName", "stringValue": display_name},
            {"key": "isMetadata", "stringValue": "true"},
        ]
        for key, value in (("color", color), ("description", description), ("goals", goals)):
            if value:
                custom_metadata.append({"key": key, "stringValue": value})
        payload = json.dumps(
            {
                "projectId": project_id,
                "displayName": display_name,
                "color": color,
                "description": description,
                "goals": goals,
                "createdAt": info.created_at,
            },
            indent=2,
        ).encode("utf-8")
        try:
            self._upload_document(
                settings,
                store_name,
                PROJECT_METADATA_DOCUMENT,
                payload,
                "application/json",
                custom_metadata,
            )
            info.project_id = project_id
        except RagServiceError as exc:
            # The store is usable without it; listing falls back to the store id.
            self._logger.warning("Failed to save project metadata for %s: %s", store_name, exc)
            info.project_id = info.store_id
        return info

    def list_stores(self) -> list[RagStoreInfo]:
        settings = self._current_settings()
        stores: list[RagStoreInfo] = []
        for store in self._paged(settings, "fileSearchStores", "fileSearchStores"):
            store_name = store.get("name")
            if not store_name:
                continue
            info = RagStoreInfo(
                store_name=store_name,
                display_name=store.get("displayName") or "",
                created_at=store.get("createTime"),
            )
            try:
                info.documents = self.list_documents(store_name)
            except RagServiceError as exc:
                self._logger.warning("Failed to list documents in %s: %s", store_name, exc)
            metadata_doc = next(
                (d for d in info.documents if d.get("displayName") == PROJECT_METADATA_DOCUMENT),
                None,
            )
            if metadata_doc:
                info.project_id = _metadata_value(metadata_doc, "projectId")
                info.display_name = _metadata_value(metadata_doc, "displayName") or info.display_name
                info.color = _metadata_value(metadata_doc, "color")
                info.description = _metadata_value(metadata_doc, "description") or ""
                info.goals = _metadata_value(metadata_doc, "goals") or ""
            stores.append(info)
        return stores

    def delete_store(self, store_name: str) -> None:
        settings = self._current_settings()
        self._request("DELETE", self._api(settings, store_name), settings, params={"force": "true"})
        self._logger.info("Deleted RAG store %s", store_name)

    # ── generation ─────────────────────────────────────────────────────

    def query(self, store_name: str, prompt: str) -> dict:
        settings = self._current_settings()
        candidate = self._generate(settings, prompt + ANSWER_SUFFIX, store_name=store_name)
        return {
            "text": self._candidate_text(candidate),
            "groundingChunks": self._candidate_chunks(candidate),
        }

    def retrieve_chunks(self, store_name: str, query: str) -> list[dict]:
        settings = self._current_settings()
        candidate = self._generate(
            settings, f"Find relevant information for: {query}", store_name=store_name
        )
        return self._candidate_chunks(candidate)

    def generate_text(self, prompt: str) -> str:
        settings = self._current_settings()
        candidate = self._generate(
            settings,
            prompt,
            generation_config={
                "maxOutputTokens": 8192,
                "temperature": 0.7,
                "topP": 0.95,
                "topK": 40,
            },
        )
        return self._candidate_text(candidate)

    def generate_example_questions(
        self, store_name: str, context_kind: str, context_id: str
    ) -> list[str]:
        documents = [
            doc for doc in self.list_documents(store_name)
            if not (doc.get("displayName") or "").startswith(".project-metadata")
        ]
        if not documents:
            self._logger.info(
                "No meeting documents in %s yet; new uploads can take a few seconds to index",
                store_name,
            )
            return []

        if context_kind == "meeting":
            context = f"Focus on the meeting transcript: {context_id}. Analyze this specific meeting."
        else:
            context = (
                "Analyze the uploaded meeting transcripts and documents from this project. "
                f"The store contains {len(documents)} document(s). Identify the main topics "
                "or subjects covered across these documents."
            )
        prompt = (
            f"{context} Based on the actual content in the documents, generate 3 short and "
            "practical example questions that a user might ask. Return ONLY a JSON array of "
            'question strings. For example: ["What were the main action items?", '
            '"Who is responsible for the project?", "What is the deadline?"]'
        )
        settings = self._current_settings()
        text = self._candidate_text(self._generate(settings, prompt, store_name=store_name))
        questions = parse_question_list(text)
        if questions is None:
            self._logger.warning("Example questions were not a JSON array: %s", text[:200])
            return []
        return questions
