"""Question answering over project RAG stores."""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel, ConfigDict, Field

from meetnotes.errors import InvalidInputError
from meetnotes.services.project_directory import ProjectRagDirectory
from meetnotes.services.rag_query import DEFAULT_SEARCH_TIMEOUT_MS, RagQueryGateway


class AskRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    project_id: Optional[str] = Field(None, alias="projectId")
    question: Optional[str] = None


class MultiStoreSearchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query: Optional[str] = None
    store_names: Any = Field(None, alias="storeNames")
    timeout: int = Field(DEFAULT_SEARCH_TIMEOUT_MS, gt=0)


def create_search_router(gateway: RagQueryGateway, directory: ProjectRagDirectory) -> APIRouter:
    router = APIRouter(tags=["search"])
    logger = logging.getLogger("meetnotes.api.search")

    @router.post("/api/search/ask")
    def ask(payload: AskRequest) -> dict:
        if not payload.project_id or not (payload.question or "").strip():
            raise InvalidInputError(
                "Missing required parameters: projectId and question are required"
            )
        store_name = directory.resolve_store(payload.project_id)
        return gateway.ask_question(store_name, payload.question)

    @router.get("/api/search/example-questions")
    def example_questions(
        project_id: Optional[str] = Query(None, alias="projectId"),
        project_name: Optional[str] = Query(None, alias="projectName"),
        context_type: str = Query("project", alias="contextType"),
    ) -> dict:
        if project_id:
            store_name = directory.resolve_store(project_id)
            context_id = project_id
        elif project_name:
            store_name = directory.resolve_store_by_name(project_name)
            context_id = project_name
        else:
            raise InvalidInputError("Missing projectId or projectName parameter")
        questions = gateway.generate_example_questions(store_name, context_type, context_id)
        logger.info("Example questions: store=%s count=%d", store_name, len(questions))
        return {"questions": questions}

    @router.get("/api/search/stores")
    def list_stores() -> dict:
        stores = gateway.list_stores()
        return {"stores": stores, "total": len(stores)}

    @router.post("/api/search/multi-store")
    def multi_store_search(payload: MultiStoreSearchRequest) -> dict:
        return gateway.search_stores(payload.query, payload.store_names, payload.timeout)

    return router
