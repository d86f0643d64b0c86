"""Application context: single source of truth for all runtime paths.

Every service and router receives this object instead of individual path
strings.  Properties always return the *current* value, so pointing
``data_dir`` somewhere else at runtime propagates to every consumer without
re-constructing services.
"""

from __future__ import annotations

import json
import os
import threading


class AppContext:
    """Holds runtime directory paths and reads ``config.json``."""

    def __init__(
        self,
        *,
        cwd: str,
        data_dir: str,
        default_data_dir: str,
        config_path: str,
    ) -> None:
        self._lock = threading.Lock()
        self._cwd = cwd
        self._data_dir = data_dir
        self._default_data_dir = default_data_dir
        self._config_path = config_path

    # ── data_dir (hot-swappable) ───────────────────────────────────────

    @property
    def data_dir(self) -> str:
        with self._lock:
            return self._data_dir

    @data_dir.setter
    def data_dir(self, value: str) -> None:
        with self._lock:
            self._data_dir = value

    @property
    def default_data_dir(self) -> str:
        return self._default_data_dir

    # ── Derived data paths (always follow current data_dir) ────────────

    @property
    def meetings_dir(self) -> str:
        return os.path.join(self.data_dir, "meetings")

    # ── Config (always in the app-level default data dir) ──────────────

    @property
    def config_path(self) -> str:
        return self._config_path

    def read_config(self) -> dict:
        """Read config.json, returning an empty dict if it does not exist."""
        if not os.path.exists(self._config_path):
            return {}
        with open(self._config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return data if isinstance(data, dict) else {}

    # ── Logs (stay in cwd, not in data_dir) ────────────────────────────

    @property
    def logs_dir(self) -> str:
        return os.path.join(self._cwd, "logs")

    # ── Helpers ────────────────────────────────────────────────────────

    def ensure_dirs(self) -> None:
        """Create all required directories if they don't exist."""
        for d in (self.data_dir, self.meetings_dir, self.logs_dir):
            os.makedirs(d, exist_ok=True)
