"""Projects backed one-to-one by RAG stores.

There is no local project table: the RAG service's store list is the project
list, and every lookup goes through it.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Optional, Union

from meetnotes.errors import InvalidInputError, NotFoundError, UpstreamError
from meetnotes.services.rag import RagServiceError, RagStoreInfo, RagStoreNotFound, RagStoreService

DEFAULT_PROJECT_COLOR = "bg-blue-500"
STORE_NAME_PREFIX = "fileSearchStores/"
SYSTEM_STORE_PREFIXES = ("User_", "System_")


@dataclass(frozen=True)
class ByProjectId:
    project_id: str


@dataclass(frozen=True)
class ByStoreName:
    store_name: str


ProjectRef = Union[ByProjectId, ByStoreName]


def _project_from_store(store: RagStoreInfo) -> dict:
    meetings = [
        {
            "name": doc.get("name"),
            "displayName": doc.get("displayName"),
            "uploadTime": doc.get("uploadTime"),
        }
        for doc in store.meeting_documents()
    ]
    return {
        "id": store.project_id or store.store_id,
        "name": store.display_name,
        "description": store.description or "",
        "color": store.color or DEFAULT_PROJECT_COLOR,
        "goals": store.goals or "",
        "ragStoreName": store.store_name,
        "createdAt": store.created_at,
        "meetings": meetings,
        "meetingCount": len(meetings),
    }


class ProjectRagDirectory:
    def __init__(self, rag_service: RagStoreService) -> None:
        self._rag = rag_service
        self._logger = logging.getLogger("meetnotes.projects")

    def create_project(
        self,
        name: Optional[str],
        description: Optional[str] = None,
        color: Optional[str] = None,
        goals: Optional[str] = None,
    ) -> dict:
        display_name = (name or "").strip()
        if not display_name:
            raise InvalidInputError("Project name is required")

        project_id = uuid.uuid4().hex
        color = color or DEFAULT_PROJECT_COLOR
        self._logger.info("Creating project: id=%s name=%r", project_id, display_name)
        try:
            store = self._rag.create_store(
                project_id,
                display_name,
                color=color,
                description=(description or "").strip(),
                goals=(goals or "").strip(),
            )
        except RagServiceError as exc:
            self._logger.error("Project store creation failed: name=%r error=%s", display_name, exc)
            raise UpstreamError(f"Failed to create RAG store: {exc}") from exc

        project = _project_from_store(store)
        if project["id"] != project_id:
            self._logger.warning(
                "Project metadata not stored; listing under store id %s", project["id"]
            )
        return project

    def list_projects(self) -> list[dict]:
        try:
            stores = self._rag.list_stores()
        except RagServiceError as exc:
            raise UpstreamError(f"Failed to list projects: {exc}") from exc
        projects = [
            _project_from_store(store)
            for store in stores
            if not store.display_name.startswith(SYSTEM_STORE_PREFIXES)
        ]
        self._logger.debug("Listed %d projects (%d stores)", len(projects), len(stores))
        return projects

    def resolve_store(self, project_id: Optional[str]) -> str:
        """Store resource name for a project id; store names pass through unchanged."""
        project_id = (project_id or "").strip()
        if not project_id:
            raise InvalidInputError("Project id is required")
        if project_id.startswith(STORE_NAME_PREFIX):
            return project_id
        for project in self.list_projects():
            if project["id"] == project_id:
                return project["ragStoreName"]
        raise NotFoundError("Project not found")

    def resolve_store_by_name(self, project_name: str) -> str:
        for project in self.list_projects():
            if project["name"] == project_name:
                return project["ragStoreName"]
        raise NotFoundError("Project not found")

    def delete_project(self, ref: ProjectRef) -> str:
        """Delete the project's store (with its documents) and return the store name."""
        if isinstance(ref, ByStoreName):
            store_name = (ref.store_name or "").strip()
            if not store_name:
                raise InvalidInputError("RAG store name is required")
        else:
            store_name = self.resolve_store(ref.project_id)

        try:
            self._rag.delete_store(store_name)
        except RagStoreNotFound as exc:
            raise NotFoundError("Project not found") from exc
        except RagServiceError as exc:
            raise UpstreamError(f"Failed to delete project: {exc}") from exc
        self._logger.info("Project deleted: store=%s", store_name)
        return store_name
