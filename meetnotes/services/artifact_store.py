from __future__ import annotations

import json
import logging
import os
import threading
from contextlib import contextmanager
from typing import Iterator, Optional
from urllib.parse import unquote

from meetnotes.errors import InvalidInputError, ServiceError


class ArtifactStoreError(ServiceError):
    """An artifact exists but could not be read or written."""


class ArtifactStore:
    """Per-meeting JSON artifacts stored as ``<meetings_dir>/<meeting id>/<key>.json``.

    Meeting ids arrive from URLs and may still be percent-encoded; they are
    decoded once here so every caller agrees on the directory name.
    """

    def __init__(self, meetings_dir: str) -> None:
        self._meetings_dir = meetings_dir
        self._locks_guard = threading.Lock()
        self._meeting_locks: dict[str, threading.Lock] = {}
        self._logger = logging.getLogger("meetnotes.artifacts")
        os.makedirs(self._meetings_dir, exist_ok=True)

    @property
    def meetings_dir(self) -> str:
        return self._meetings_dir

    @staticmethod
    def normalize_meeting_id(meeting_id: str) -> str:
        decoded = unquote(meeting_id or "").strip()
        if (
            not decoded
            or decoded in (".", "..")
            or "/" in decoded
            or "\\" in decoded
            or "\x00" in decoded
        ):
            raise InvalidInputError("Invalid meeting id")
        return decoded

    def meeting_dir(self, meeting_id: str) -> str:
        return os.path.join(self._meetings_dir, self.normalize_meeting_id(meeting_id))

    def _artifact_path(self, meeting_id: str, key: str) -> str:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise InvalidInputError("Invalid artifact key")
        return os.path.join(self.meeting_dir(meeting_id), f"{key}.json")

    def meeting_exists(self, meeting_id: str) -> bool:
        return os.path.isdir(self.meeting_dir(meeting_id))

    def exists(self, meeting_id: str, key: str) -> bool:
        return os.path.isfile(self._artifact_path(meeting_id, key))

    def list_keys(self, meeting_id: str) -> list[str]:
        """Artifact keys present for a meeting, sorted; empty if the meeting is absent."""
        try:
            names = os.listdir(self.meeting_dir(meeting_id))
        except FileNotFoundError:
            return []
        except OSError as exc:
            self._logger.warning("Failed to list meeting dir: id=%s error=%s", meeting_id, exc)
            raise ArtifactStoreError("Failed to list meeting artifacts") from exc
        return sorted(name[: -len(".json")] for name in names if name.endswith(".json"))

    def read(self, meeting_id: str, key: str) -> Optional[dict]:
        """Return the artifact's JSON object, or None if it does not exist."""
        path = self._artifact_path(meeting_id, key)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as exc:
            self._logger.error("Failed to read artifact: %s error=%s", path, exc)
            raise ArtifactStoreError(f"Failed to read {key} artifact") from exc
        if not isinstance(data, dict):
            self._logger.error("Artifact is not a JSON object: %s", path)
            raise ArtifactStoreError(f"Malformed {key} artifact")
        return data

    def write(self, meeting_id: str, key: str, payload: dict) -> None:
        """Write an artifact atomically (temp file + rename)."""
        path = self._artifact_path(meeting_id, key)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        temp_path = f"{path}.{threading.get_ident()}.tmp"
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            os.replace(temp_path, path)
        except OSError as exc:
            self._logger.error("Failed to write artifact: %s error=%s", path, exc)
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise ArtifactStoreError(f"Failed to write {key} artifact") from exc
        self._logger.debug("Artifact written: id=%s key=%s", meeting_id, key)

    @contextmanager
    def locked(self, meeting_id: str) -> Iterator[None]:
        """Serialise read-modify-write sequences on one meeting's artifacts."""
        name = self.normalize_meeting_id(meeting_id)
        with self._locks_guard:
            lock = self._meeting_locks.setdefault(name, threading.Lock())
        with lock:
            yield
