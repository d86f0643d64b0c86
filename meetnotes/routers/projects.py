import logging
from typing import Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel

from meetnotes.errors import InvalidInputError
from meetnotes.services.project_directory import ByProjectId, ByStoreName, ProjectRagDirectory


class CreateProjectRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None
    goals: Optional[str] = None


def create_projects_router(directory: ProjectRagDirectory) -> APIRouter:
    router = APIRouter(tags=["projects"])
    logger = logging.getLogger("meetnotes.api.projects")

    @router.get("/api/projects")
    def list_projects() -> dict:
        projects = directory.list_projects()
        return {"success": True, "projects": projects, "count": len(projects)}

    @router.post("/api/projects")
    def create_project(payload: CreateProjectRequest) -> dict:
        project = directory.create_project(
            payload.name,
            description=payload.description,
            color=payload.color,
            goals=payload.goals,
        )
        logger.info("Project created: id=%s store=%s", project["id"], project["ragStoreName"])
        return {
            "success": True,
            "project": project,
            "message": "Project created successfully with dedicated RAG store.",
        }

    @router.delete("/api/projects")
    def delete_project_by_store(rag_store_name: Optional[str] = Query(None, alias="ragStoreName")) -> dict:
        if not rag_store_name:
            raise InvalidInputError("RAG store name is required")
        directory.delete_project(ByStoreName(rag_store_name))
        return {"success": True, "message": "Project deleted successfully"}

    @router.delete("/api/projects/{project_id}")
    def delete_project(project_id: str) -> dict:
        directory.delete_project(ByProjectId(project_id))
        return {"success": True, "message": "Project and RAG store deleted successfully"}

    return router
