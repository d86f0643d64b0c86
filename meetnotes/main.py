import logging
import os
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from meetnotes.context import AppContext
from meetnotes.errors import ServiceError
from meetnotes.routers.logs import create_logs_router
from meetnotes.routers.meetings import create_meetings_router
from meetnotes.routers.projects import create_projects_router
from meetnotes.routers.search import create_search_router
from meetnotes.routers.testing import create_testing_router
from meetnotes.services.artifact_store import ArtifactStore
from meetnotes.services.crash_logging import enable_crash_logging
from meetnotes.services.gemini_config import read_gemini_settings
from meetnotes.services.llm import NotesExtractor
from meetnotes.services.logging_setup import configure_logging
from meetnotes.services.metadata_index import NotesMetadataIndex
from meetnotes.services.notes_extraction import NotesExtractionService
from meetnotes.services.notes_lifecycle import NotesLifecycle
from meetnotes.services.project_directory import ProjectRagDirectory
from meetnotes.services.rag import FileSearchProvider, RagStoreService
from meetnotes.services.rag_query import RagQueryGateway

DEFAULT_VERSION = "v0.1.0"


def _build_context(logger: logging.Logger) -> AppContext:
    cwd = os.getcwd()
    default_data_dir = os.path.join(cwd, "data")
    os.makedirs(default_data_dir, exist_ok=True)
    # Config always lives in the app-level data dir regardless of custom data_dir
    config_path = os.path.join(default_data_dir, "config.json")
    ctx = AppContext(
        cwd=cwd,
        data_dir=default_data_dir,
        default_data_dir=default_data_dir,
        config_path=config_path,
    )
    if os.path.exists(config_path):
        logger.info("Boot: loading config_path=%s", config_path)
    else:
        logger.info("Boot: config_path missing=%s", config_path)
    config = ctx.read_config()

    custom_data_dir = config.get("data_dir", "")
    if custom_data_dir and os.path.isdir(custom_data_dir) and os.access(custom_data_dir, os.W_OK):
        ctx.data_dir = custom_data_dir
        logger.info("Boot: using custom data_dir=%s", custom_data_dir)
    elif custom_data_dir:
        logger.warning(
            "Boot: custom data_dir=%s is invalid or not writable, falling back to %s",
            custom_data_dir,
            default_data_dir,
        )
    else:
        logger.info("Boot: using default data_dir=%s", default_data_dir)
    return ctx


def _read_version() -> str:
    version_path = os.path.join(os.path.dirname(os.path.dirname(__file__)), "VERSION.txt")
    if os.path.exists(version_path):
        with open(version_path, "r", encoding="utf-8") as version_file:
            return version_file.read().strip() or DEFAULT_VERSION
    return DEFAULT_VERSION


def _install_error_handlers(app: FastAPI) -> None:
    logger = logging.getLogger("meetnotes.api.errors")

    @app.exception_handler(ServiceError)
    async def service_error(request: Request, exc: ServiceError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return JSONResponse(status_code=400, content={"error": message})

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app(
    *,
    ctx: Optional[AppContext] = None,
    extractor: Optional[NotesExtractor] = None,
    rag_service: Optional[RagStoreService] = None,
) -> FastAPI:
    """Build the application.

    Collaborators may be injected (the test suites pass fakes); by default the
    Gemini-backed implementations are used.  Logging is only configured when the
    context is built here, so an embedding caller keeps its own handlers.
    """
    if ctx is None:
        configure_logging(os.path.join(os.getcwd(), "logs"))
    logger = logging.getLogger("meetnotes.boot")
    logger.info("Boot: starting create_app")

    if ctx is None:
        ctx = _build_context(logger)
        enable_crash_logging(ctx.logs_dir)
    ctx.ensure_dirs()
    logger.info("Boot: AppContext ready data_dir=%s", ctx.data_dir)

    store = ArtifactStore(ctx.meetings_dir)
    metadata_index = NotesMetadataIndex(store)
    lifecycle = NotesLifecycle(store, metadata_index, extractor or NotesExtractionService(ctx))
    rag_service = rag_service or FileSearchProvider(lambda: read_gemini_settings(ctx))
    directory = ProjectRagDirectory(rag_service)
    gateway = RagQueryGateway(rag_service, directory)
    logger.info(
        "Boot: services ready extractor=%s rag=%s",
        lifecycle.extractor_name,
        rag_service.__class__.__name__,
    )

    app = FastAPI(title="Meetnotes", version="0.1.0")
    app.state.version = _read_version()
    app.state.ctx = ctx
    _install_error_handlers(app)

    app.include_router(create_meetings_router(lifecycle, metadata_index))
    logger.info("Boot: meetings router mounted")
    app.include_router(create_projects_router(directory))
    logger.info("Boot: projects router mounted")
    app.include_router(create_search_router(gateway, directory))
    logger.info("Boot: search router mounted")
    app.include_router(create_logs_router(ctx))
    app.include_router(create_testing_router(ctx))
    logger.info("Boot: logs and testing routers mounted")

    @app.get("/api/health")
    def health() -> dict:
        return {"status": "ok", "version": app.state.version}

    logger.info("Boot: create_app complete version=%s", app.state.version)
    return app
