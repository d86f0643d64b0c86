"""Gemini File Search REST client test suite (scripted HTTP session)."""
from __future__ import annotations

import requests

from meetnotes.services.gemini_config import GeminiSettings
from meetnotes.services.rag import (
    PROJECT_METADATA_DOCUMENT,
    FileSearchProvider,
    RagServiceError,
    RagStoreNotFound,
)
from meetnotes.tests.base import TestSuite
from meetnotes.tests.fakes import FakeResponse, FakeSession

SETTINGS = GeminiSettings(
    api_key="test-key",
    base_url="https://gl.test",
    notes_model="notes-model",
    rag_model="rag-model",
)


def _provider(session: FakeSession, api_key: str = "test-key") -> FileSearchProvider:
    settings = GeminiSettings(api_key, SETTINGS.base_url, SETTINGS.notes_model, SETTINGS.rag_model)
    return FileSearchProvider(lambda: settings, session=session, poll_interval=0, max_polls=3)


def _candidate(text: str, chunks: list | None = None) -> dict:
    candidate = {"content": {"parts": [{"text": text}]}}
    if chunks is not None:
        candidate["groundingMetadata"] = {"groundingChunks": chunks}
    return {"candidates": [candidate]}


def _metadata_doc(store: str, **fields) -> dict:
    return {
        "name": f"{store}/documents/meta",
        "displayName": PROJECT_METADATA_DOCUMENT,
        "customMetadata": [{"key": k, "stringValue": v} for k, v in fields.items()],
    }


class _BrokenSession(FakeSession):
    def request(self, method, url, params=None, timeout=None, **kwargs):
        raise requests.ConnectionError("connection refused")


class FileSearchProviderSuite(TestSuite):
    suite_id = "file-search-provider"
    name = "File Search Provider"
    description = "Request shapes and error mapping of the File Search REST client"

    def _register_tests(self):
        self.add_test("FS-001", "Missing API key fails before any request", self._test_missing_key)
        self.add_test("FS-002", "Create store uploads the bookkeeping document", self._test_create_store)
        self.add_test("FS-003", "Failed metadata upload falls back to the store id", self._test_create_store_metadata_failure)
        self.add_test("FS-004", "Store listing pages and reads project fields", self._test_list_stores)
        self.add_test("FS-005", "Delete forces removal and maps 404", self._test_delete_store)
        self.add_test("FS-006", "Query attaches the file search tool", self._test_query)
        self.add_test("FS-007", "Plain generation has no tools", self._test_generate_text)
        self.add_test("FS-008", "Example questions need meeting documents", self._test_example_questions)
        self.add_test("FS-009", "Transport and HTTP errors are wrapped", self._test_errors)
        self.add_test("FS-010", "Unparseable bodies are service errors", self._test_invalid_json)

    def _test_missing_key(self, ctx: dict):
        session = FakeSession()
        try:
            _provider(session, api_key="").list_stores()
        except RagServiceError as exc:
            assert "API key" in str(exc)
        else:
            raise AssertionError("expected RagServiceError")
        assert session.requests == []

    def _test_create_store(self, ctx: dict):
        session = FakeSession()
        session.route(
            "POST",
            "/upload/v1beta/fileSearchStores/abc:uploadToFileSearchStore",
            FakeResponse(headers={"X-Goog-Upload-URL": "https://upload.gl.test/session-1"}),
        )
        session.route(
            "POST",
            "upload.gl.test/session-1",
            FakeResponse(json_data={"name": "fileSearchStores/abc/upload/operations/op-1", "done": False}),
        )
        session.route(
            "GET",
            "/operations/op-1",
            FakeResponse(json_data={"name": "fileSearchStores/abc/upload/operations/op-1", "done": False}),
            FakeResponse(json_data={"name": "fileSearchStores/abc/upload/operations/op-1", "done": True}),
        )
        session.route(
            "POST",
            "/v1beta/fileSearchStores",
            FakeResponse(json_data={"name": "fileSearchStores/abc", "createTime": "2024-05-01T10:00:00Z"}),
        )

        info = _provider(session).create_store("p-123", "Roadmap", color="bg-red-500", goals="Ship")
        assert info.store_name == "fileSearchStores/abc"
        assert info.project_id == "p-123"
        assert info.created_at == "2024-05-01T10:00:00Z"

        [create] = session.sent("POST", "https://gl.test/v1beta/fileSearchStores")
        assert create["json"] == {"displayName": "Roadmap"}
        [start] = session.sent("POST", ":uploadToFileSearchStore")
        metadata = {m["key"]: m["stringValue"] for m in start["json"]["customMetadata"]}
        assert metadata["projectId"] == "p-123"
        assert metadata["isMetadata"] == "true"
        assert metadata["color"] == "bg-red-500"
        assert "description" not in metadata
        assert start["json"]["displayName"] == PROJECT_METADATA_DOCUMENT
        assert len(session.sent("GET", "/operations/op-1")) == 2
        assert all(r["params"].get("key") == "test-key" for r in session.requests)

    def _test_create_store_metadata_failure(self, ctx: dict):
        session = FakeSession()
        session.route("POST", ":uploadToFileSearchStore", FakeResponse(500, text="backend error"))
        session.route("POST", "/v1beta/fileSearchStores", FakeResponse(json_data={"name": "fileSearchStores/abc"}))
        info = _provider(session).create_store("p-123", "Roadmap")
        assert info.project_id == "abc"
        assert info.store_name == "fileSearchStores/abc"

    def _test_list_stores(self, ctx: dict):
        session = FakeSession()
        session.route(
            "GET",
            "fileSearchStores/s1/documents",
            FakeResponse(json_data={"documents": [
                _metadata_doc("fileSearchStores/s1", projectId="p1", displayName="Alpha", color="bg-red-500", goals="Grow"),
                {"name": "fileSearchStores/s1/documents/d1", "displayName": "standup.txt", "createTime": "2024-05-02T00:00:00Z"},
            ]}),
        )
        session.route("GET", "fileSearchStores/s2/documents", FakeResponse(json_data={}))
        session.route(
            "GET",
            "/v1beta/fileSearchStores",
            FakeResponse(json_data={"fileSearchStores": [{"name": "fileSearchStores/s1", "displayName": "Project_alpha"}], "nextPageToken": "t2"}),
            FakeResponse(json_data={"fileSearchStores": [{"name": "fileSearchStores/s2", "displayName": "Imported"}]}),
        )

        stores = _provider(session).list_stores()
        assert [s.store_name for s in stores] == ["fileSearchStores/s1", "fileSearchStores/s2"]
        alpha, imported = stores
        assert alpha.project_id == "p1"
        assert alpha.display_name == "Alpha"
        assert alpha.color == "bg-red-500"
        assert alpha.goals == "Grow"
        assert [d["displayName"] for d in alpha.meeting_documents()] == ["standup.txt"]
        assert imported.project_id is None
        assert imported.display_name == "Imported"

        pages = [r for r in session.sent("GET", "/v1beta/fileSearchStores") if r["url"].endswith("fileSearchStores")]
        assert pages[0]["params"]["pageSize"] == 20
        assert pages[1]["params"]["pageToken"] == "t2"

    def _test_delete_store(self, ctx: dict):
        session = FakeSession()
        session.route("DELETE", "fileSearchStores/abc", FakeResponse(json_data={}))
        provider = _provider(session)
        provider.delete_store("fileSearchStores/abc")
        [sent] = session.sent("DELETE", "fileSearchStores/abc")
        assert sent["params"]["force"] == "true"
        try:
            provider.delete_store("fileSearchStores/missing")
        except RagStoreNotFound:
            return True
        raise AssertionError("404 not mapped to RagStoreNotFound")

    def _test_query(self, ctx: dict):
        session = FakeSession()
        chunks = [{"retrievedContext": {"text": "Friday", "title": "standup.txt"}}]
        session.route("POST", "models/rag-model:generateContent", FakeResponse(json_data=_candidate("Ship Friday.", chunks)))
        result = _provider(session).query("fileSearchStores/abc", "When?")
        assert result == {"text": "Ship Friday.", "groundingChunks": chunks}
        [sent] = session.requests
        assert sent["json"]["tools"] == [{"fileSearch": {"fileSearchStoreNames": ["fileSearchStores/abc"]}}]
        assert sent["json"]["contents"][0]["parts"][0]["text"].startswith("When?")

    def _test_generate_text(self, ctx: dict):
        session = FakeSession()
        session.route("POST", ":generateContent", FakeResponse(json_data=_candidate("## Overall Summary")))
        assert _provider(session).generate_text("prompt") == "## Overall Summary"
        [sent] = session.requests
        assert "tools" not in sent["json"]
        assert sent["json"]["generationConfig"]["maxOutputTokens"] == 8192

    def _test_example_questions(self, ctx: dict):
        session = FakeSession()
        session.route("GET", "fileSearchStores/empty/documents", FakeResponse(json_data={"documents": [_metadata_doc("fileSearchStores/empty", projectId="p")]}))
        session.route("GET", "fileSearchStores/full/documents", FakeResponse(json_data={"documents": [{"name": "fileSearchStores/full/documents/d1", "displayName": "standup.txt"}]}))
        session.route("POST", ":generateContent", FakeResponse(json_data=_candidate('```json\n["A?", 7, "B?", "C?", "D?"]\n```')))
        provider = _provider(session)

        assert provider.generate_example_questions("fileSearchStores/empty", "project", "p") == []
        assert session.sent("POST", ":generateContent") == []

        assert provider.generate_example_questions("fileSearchStores/full", "meeting", "standup.txt") == ["A?", "B?", "C?"]
        [sent] = session.sent("POST", ":generateContent")
        assert "standup.txt" in sent["json"]["contents"][0]["parts"][0]["text"]

    def _test_errors(self, ctx: dict):
        session = FakeSession()
        session.route("GET", "/v1beta/fileSearchStores", FakeResponse(503, text="unavailable"))
        for provider in (_provider(session), _provider(_BrokenSession())):
            try:
                provider.list_stores()
            except RagStoreNotFound:
                raise AssertionError("wrong error type")
            except RagServiceError:
                continue
            raise AssertionError("expected RagServiceError")

    def _test_invalid_json(self, ctx: dict):
        session = FakeSession()
        session.route("POST", ":generateContent", FakeResponse(200, text="<html>", invalid_json=True))
        session.route("GET", "/v1beta/fileSearchStores", FakeResponse(200, text="<html>", invalid_json=True))
        provider = _provider(session)
        calls = (
            lambda: provider.retrieve_chunks("fileSearchStores/s", "q"),
            provider.list_stores,
        )
        for call in calls:
            try:
                call()
            except RagServiceError as exc:
                assert str(exc) == "File Search returned invalid JSON"
                continue
            raise AssertionError("expected RagServiceError")
