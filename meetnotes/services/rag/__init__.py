from meetnotes.services.rag.base import (
    PROJECT_METADATA_DOCUMENT,
    RagServiceError,
    RagStoreInfo,
    RagStoreNotFound,
    RagStoreService,
    parse_question_list,
)
from meetnotes.services.rag.file_search import FileSearchProvider

__all__ = [
    "FileSearchProvider",
    "PROJECT_METADATA_DOCUMENT",
    "RagServiceError",
    "RagStoreInfo",
    "RagStoreNotFound",
    "RagStoreService",
    "parse_question_list",
]
