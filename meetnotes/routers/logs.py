import logging
import os
from datetime import datetime

from fastapi import APIRouter
from pydantic import BaseModel

from meetnotes.context import AppContext

ERROR_MARKERS = ("error", "exception", "traceback")
MAX_ERROR_LINES = 200


class ClientLogRequest(BaseModel):
    level: str = "error"
    message: str
    context: dict = {}


def _latest_server_log(logs_dir: str):
    if not os.path.isdir(logs_dir):
        return None
    log_files = [
        os.path.join(logs_dir, name)
        for name in os.listdir(logs_dir)
        if name.startswith("server_") and name.endswith(".log")
    ]
    return max(log_files, key=os.path.getmtime) if log_files else None


def create_logs_router(ctx: AppContext) -> APIRouter:
    router = APIRouter(tags=["logs"])
    logger = logging.getLogger("meetnotes.client")

    @router.get("/api/logs/errors")
    def error_log() -> dict:
        """Tail of error-looking lines from the newest server log."""
        latest = _latest_server_log(ctx.logs_dir)
        if latest is None:
            return {"lines": []}
        try:
            with open(latest, "r", encoding="utf-8") as log_file:
                lines = [
                    line.rstrip("\n")
                    for line in log_file
                    if any(marker in line.lower() for marker in ERROR_MARKERS)
                ]
        except OSError as exc:
            logging.getLogger("meetnotes.api.logs").warning("Failed to read %s: %s", latest, exc)
            return {"lines": []}
        return {"lines": lines[-MAX_ERROR_LINES:]}

    @router.post("/api/logs/client")
    def client_log(payload: ClientLogRequest) -> dict:
        timestamp = datetime.now().strftime("%H:%M:%S")
        message = f"[{timestamp}] [client] {payload.message}"
        if payload.context:
            message = f"{message} | context={payload.context}"
        level = {"warning": logging.WARNING, "info": logging.INFO}.get(
            payload.level.lower(), logging.ERROR
        )
        logger.log(level, message)
        return {"status": "ok"}

    return router
