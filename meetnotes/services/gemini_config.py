"""Gemini settings resolved from config.json on every call.

Layout inside config.json::

    {"providers": {"gemini": {"api_key": "...", "base_url": "..."}},
     "models": {"notes_model": "gemini-2.5-flash", "rag_model": "gemini-2.5-flash"}}

An empty api key falls back to the GEMINI_API_KEY / API_KEY environment variables.
"""
from __future__ import annotations

import os
from dataclasses import dataclass

from meetnotes.context import AppContext
from meetnotes.services.llm.gemini_provider import DEFAULT_GEMINI_BASE_URL

DEFAULT_MODEL = "gemini-2.5-flash"


@dataclass(frozen=True)
class GeminiSettings:
    api_key: str
    base_url: str
    notes_model: str
    rag_model: str


def read_gemini_settings(ctx: AppContext) -> GeminiSettings:
    config = ctx.read_config()
    provider_cfg = config.get("providers", {}).get("gemini", {}) or {}
    models_cfg = config.get("models", {}) or {}
    api_key = (
        provider_cfg.get("api_key")
        or os.environ.get("GEMINI_API_KEY")
        or os.environ.get("API_KEY")
        or ""
    )
    return GeminiSettings(
        api_key=api_key,
        base_url=provider_cfg.get("base_url") or DEFAULT_GEMINI_BASE_URL,
        notes_model=models_cfg.get("notes_model") or DEFAULT_MODEL,
        rag_model=models_cfg.get("rag_model") or DEFAULT_MODEL,
    )
