import logging
from typing import Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel

from meetnotes.services.languages import list_languages
from meetnotes.services.metadata_index import NotesMetadataIndex
from meetnotes.services.notes_lifecycle import NotesLifecycle


class RegenerateNotesRequest(BaseModel):
    language: Optional[str] = None


def create_meetings_router(lifecycle: NotesLifecycle, metadata_index: NotesMetadataIndex) -> APIRouter:
    router = APIRouter(tags=["meetings"])
    logger = logging.getLogger("meetnotes.api.meetings")

    @router.post("/api/meetings/{meeting_id}/extract")
    def generate_notes(meeting_id: str) -> dict:
        logger.info("Extract requested: id=%s", meeting_id)
        notes = lifecycle.generate_notes(meeting_id)
        return {"success": True, "notes": notes}

    @router.get("/api/meetings/{meeting_id}/extract")
    def get_default_notes(meeting_id: str) -> dict:
        return {"notes": lifecycle.get_default_notes(meeting_id)}

    @router.get("/api/meetings/{meeting_id}/metadata")
    def get_metadata(meeting_id: str) -> dict:
        return metadata_index.get(meeting_id)

    @router.post("/api/meetings/{meeting_id}/regenerate-notes")
    def regenerate_notes(meeting_id: str, payload: RegenerateNotesRequest) -> dict:
        logger.info("Regenerate requested: id=%s language=%s", meeting_id, payload.language)
        notes = lifecycle.regenerate_notes(meeting_id, payload.language)
        return {"success": True, "notes": notes, "language": payload.language}

    @router.get("/api/meetings/{meeting_id}/regenerate-notes")
    def get_notes(
        meeting_id: str,
        language: Optional[str] = Query(None, description="Language code, default 'en'"),
    ) -> dict:
        return lifecycle.get_notes(meeting_id, language)

    @router.get("/api/languages")
    def languages() -> dict:
        return {"languages": list_languages()}

    return router
