from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Optional

from meetnotes.errors import InvalidInputError, NotFoundError, UpstreamError
from meetnotes.services.project_directory import ProjectRagDirectory
from meetnotes.services.rag import (
    PROJECT_METADATA_DOCUMENT,
    RagServiceError,
    RagStoreNotFound,
    RagStoreService,
)

NO_ANSWER = "I couldn't find relevant information to answer your question."
NO_SOURCES_REACHED = (
    "Unable to retrieve information from any selected sources. "
    "Please try again or select different sources."
)
NO_EVIDENCE = "No relevant information found in the selected sources for your query."
NO_SYNTHESIS = "Unable to generate an answer from the retrieved information."

DEFAULT_SEARCH_TIMEOUT_MS = 30000
CONTEXT_KINDS = ("project", "meeting")

ASK_PROMPT = (
    "User Question: {question}\n\n"
    "Provide a detailed answer based on the uploaded documents. Include specific "
    "references to document names or sections when possible. If the information "
    "is not available, clearly state that."
)


def _reduce_chunk(chunk: dict) -> Optional[dict]:
    context = chunk.get("retrievedContext") or {}
    text = context.get("text") or ""
    if not text.strip():
        return None
    if PROJECT_METADATA_DOCUMENT in (context.get("documentName"), context.get("title")):
        return None
    return {
        "retrievedContext": {
            "text": text,
            "documentName": context.get("documentName"),
            "title": context.get("title"),
        }
    }


def _is_searchable_chunk(chunk: dict) -> bool:
    context = chunk.get("retrievedContext") or {}
    document_name = context.get("documentName") or ""
    return bool((context.get("text") or "").strip()) and not (
        ".project-metadata" in document_name or ".metadata" in document_name
    )


def build_synthesis_prompt(query: str, sources: list[dict]) -> str:
    """One prompt over every source's chunks, asking for a fixed markdown layout."""
    retrieved = "\n\n".join(
        f"=== SOURCE: {source['displayName']} ({source['chunkCount']} chunks) ===\n"
        f"{source['context']}\n"
        for source in sources
    )
    per_source = "\n\n".join(
        f"### {source['displayName']}\n"
        f"[Provide detailed information based ONLY on {source['displayName']}'s retrieved "
        "content. DO NOT mix information from other sources here. If no relevant "
        'information exists in this source, state "No relevant information found in '
        'this source."]'
        for source in sources
    )
    return (
        "You are an AI assistant helping users search across multiple independent "
        "knowledge sources.\n\n"
        f"USER QUESTION:\n{query}\n\n"
        f"RETRIEVED INFORMATION FROM EACH SOURCE:\n\n{retrieved}\n\n"
        "CRITICAL INSTRUCTIONS:\n"
        "1. You MUST provide a response in the following EXACT format:\n\n"
        "## Overall Summary\n"
        "[Provide a comprehensive summary synthesizing information from ALL sources. "
        "Include cross-source insights and connections.]\n\n"
        f"## Per-Source Details\n\n{per_source}\n\n"
        "2. In the \"Overall Summary\" section:\n"
        "   - Synthesize insights from all available sources\n"
        "   - Identify patterns, connections, or conflicts across sources\n"
        "   - Provide a holistic view of the answer\n\n"
        "3. In each \"Per-Source Details\" section:\n"
        "   - Use ONLY the information from that specific source\n"
        "   - Do NOT include information from other sources\n"
        "   - Be explicit if that source lacks relevant information\n\n"
        "4. Maintain the markdown format EXACTLY as shown above\n\n"
        "Generate your response now:"
    )


class RagQueryGateway:
    """Question answering over project RAG stores."""

    def __init__(self, rag_service: RagStoreService, directory: ProjectRagDirectory) -> None:
        self._rag = rag_service
        self._directory = directory
        self._logger = logging.getLogger("meetnotes.rag.query")

    def ask_question(self, store_name: str, question: Optional[str]) -> dict:
        question = (question or "").strip()
        if not question:
            raise InvalidInputError("Question is required")
        self._logger.info("Ask: store=%s chars=%d", store_name, len(question))
        try:
            result = self._rag.query(store_name, ASK_PROMPT.format(question=question))
        except RagStoreNotFound as exc:
            raise NotFoundError("Project not found") from exc
        except RagServiceError as exc:
            raise UpstreamError(f"Failed to query project: {exc}") from exc

        chunks = [
            reduced
            for reduced in (_reduce_chunk(chunk) for chunk in result.get("groundingChunks") or [])
            if reduced is not None
        ]
        return {
            "answer": (result.get("text") or "").strip() or NO_ANSWER,
            "groundingChunks": chunks,
        }

    def generate_example_questions(
        self, store_name: str, context_kind: str, context_id: str
    ) -> list[str]:
        if context_kind not in CONTEXT_KINDS:
            raise InvalidInputError("contextType must be 'project' or 'meeting'")
        try:
            return self._rag.generate_example_questions(store_name, context_kind, context_id)
        except RagStoreNotFound as exc:
            raise NotFoundError("Project not found") from exc
        except RagServiceError as exc:
            raise UpstreamError(f"Failed to generate example questions: {exc}") from exc

    def list_stores(self) -> list[dict]:
        try:
            stores = self._rag.list_stores()
        except RagServiceError as exc:
            raise UpstreamError(f"Failed to list stores: {exc}") from exc
        return [
            {
                "name": store.store_name,
                "displayName": store.display_name,
                "createTime": store.created_at,
            }
            for store in stores
        ]

    def _retrieve_all(self, query: str, store_names: list[str], timeout_s: float) -> list[dict]:
        results: list[dict] = []
        executor = ThreadPoolExecutor(max_workers=len(store_names), thread_name_prefix="rag-search")
        try:
            futures = [
                (name, executor.submit(self._rag.retrieve_chunks, name, query))
                for name in store_names
            ]
            deadline = time.monotonic() + timeout_s
            for name, future in futures:
                try:
                    chunks = future.result(timeout=max(0.0, deadline - time.monotonic()))
                    results.append({"storeName": name, "success": True, "chunks": chunks, "error": None})
                except FutureTimeout:
                    self._logger.warning("Retrieval timed out: store=%s", name)
                    results.append({"storeName": name, "success": False, "chunks": [], "error": "Timeout"})
                except Exception as exc:
                    self._logger.warning(
                        "Retrieval failed: store=%s error=%s",
                        name,
                        exc,
                        exc_info=not isinstance(exc, RagServiceError),
                    )
                    results.append({"storeName": name, "success": False, "chunks": [], "error": str(exc)})
        finally:
            # A timed-out call keeps its thread until its own HTTP timeout expires.
            executor.shutdown(wait=False)
        return results

    def search_stores(
        self,
        query: Optional[str],
        store_names: Optional[list],
        timeout_ms: Optional[int] = None,
    ) -> dict:
        """Retrieve from several stores in parallel and synthesise one answer."""
        query = (query or "").strip()
        if not query:
            raise InvalidInputError("Query is required and must be a non-empty string")
        if not isinstance(store_names, list) or not store_names:
            raise InvalidInputError("At least one store must be selected")
        if any(not isinstance(name, str) or not name for name in store_names):
            raise InvalidInputError("All store names must be valid strings")
        timeout_ms = timeout_ms or DEFAULT_SEARCH_TIMEOUT_MS

        display_names = {p["ragStoreName"]: p["name"] for p in self._directory.list_projects()}
        self._logger.info("Multi-store search: stores=%d timeout_ms=%d", len(store_names), timeout_ms)
        retrievals = self._retrieve_all(query, store_names, timeout_ms / 1000.0)

        aggregated: list[dict] = []
        stats: list[dict] = []
        for retrieval in retrievals:
            name = retrieval["storeName"]
            display = display_names.get(name) or name.rsplit("/", 1)[-1].replace("Project_", "") or name
            if not retrieval["success"]:
                stats.append(
                    {
                        "storeName": name,
                        "storeDisplayName": display,
                        "success": False,
                        "chunkCount": 0,
                        "error": retrieval["error"] or "Unknown error",
                    }
                )
                continue
            valid = [chunk for chunk in retrieval["chunks"] if _is_searchable_chunk(chunk)]
            for chunk in valid:
                context = chunk["retrievedContext"]
                aggregated.append(
                    {
                        "storeName": name,
                        "storeDisplayName": display,
                        "text": context.get("text") or "",
                        "documentName": context.get("documentName"),
                        "title": context.get("title"),
                    }
                )
            stats.append(
                {"storeName": name, "storeDisplayName": display, "success": True, "chunkCount": len(valid)}
            )

        if not aggregated:
            all_failed = all(not stat["success"] for stat in stats)
            return {
                "answer": NO_SOURCES_REACHED if all_failed else NO_EVIDENCE,
                "storeStats": stats,
                "aggregatedChunks": [],
                "totalChunks": 0,
            }

        sources = []
        for stat in stats:
            if not stat["success"] or not stat["chunkCount"]:
                continue
            context = "\n\n".join(
                f"[Document: {chunk['documentName'] or chunk['title'] or 'Unknown document'}]\n{chunk['text']}"
                for chunk in aggregated
                if chunk["storeName"] == stat["storeName"]
            )
            sources.append(
                {"displayName": stat["storeDisplayName"], "context": context, "chunkCount": stat["chunkCount"]}
            )

        try:
            answer = self._rag.generate_text(build_synthesis_prompt(query, sources))
        except RagServiceError as exc:
            raise UpstreamError(f"Multi-store search failed: {exc}") from exc
        self._logger.info(
            "Multi-store search complete: chunks=%d ok=%d failed=%d",
            len(aggregated),
            sum(1 for s in stats if s["success"]),
            sum(1 for s in stats if not s["success"]),
        )
        return {
            "answer": answer or NO_SYNTHESIS,
            "storeStats": stats,
            "aggregatedChunks": aggregated,
            "totalChunks": len(aggregated),
        }
