"""Gemini LLM provider using Google's Generative Language REST API."""
from __future__ import annotations

import requests

from meetnotes.services.llm.base import BaseLLMProvider, LLMProviderError

DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com"


class GeminiProvider(BaseLLMProvider):
    """Notes extraction backed by a Gemini model."""

    def __init__(
        self, api_key: str, model: str, base_url: str = DEFAULT_GEMINI_BASE_URL
    ) -> None:
        super().__init__(logger_name="meetnotes.llm.gemini")
        self._api_key = api_key
        self._model = model
        self._base_url = (base_url or DEFAULT_GEMINI_BASE_URL).rstrip("/")

    def _call_api(
        self,
        prompt: str,
        temperature: float = 0.2,
        timeout: int = 120,
        json_mode: bool = False,
    ) -> str:
        """Make a call to the Gemini API and return the response text."""
        # Handle model name format (may include "models/" prefix)
        model_name = self._model
        if not model_name.startswith("models/"):
            model_name = f"models/{model_name}"

        generation_config: dict = {"temperature": temperature}
        if json_mode:
            generation_config["responseMimeType"] = "application/json"

        try:
            response = requests.post(
                f"{self._base_url}/v1beta/{model_name}:generateContent",
                params={"key": self._api_key},
                headers={"Content-Type": "application/json"},
                json={
                    "contents": [{"role": "user", "parts": [{"text": prompt}]}],
                    "generationConfig": generation_config,
                },
                timeout=timeout,
            )
        except requests.RequestException as exc:
            raise LLMProviderError(f"Failed to reach Gemini API: {exc.__class__.__name__}") from exc

        if response.status_code != 200:
            self._logger.error("Gemini error: %s - %s", response.status_code, response.text[:500])
            raise LLMProviderError(f"Gemini error: {response.status_code}")

        data = response.json()
        candidates = data.get("candidates", [])
        if not candidates:
            raise LLMProviderError("Gemini response missing candidates")

        content = candidates[0].get("content", {})
        parts = content.get("parts", [])
        if not parts:
            raise LLMProviderError("Gemini response missing parts")

        return "".join(part.get("text", "") for part in parts).strip()
