"""Gemini LLM provider using Google's Generative AI API."""
from __future__ import annotations

import requests

from meetmate.services.llm.base import BaseLLMProvider, LLMProviderError

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com"


class GeminiProvider(BaseLLMProvider):
    """LLM provider for Google Gemini models.

    One instance is created at startup and shared by every consumer; a
    ``requests.Session`` keeps connections to the API warm between chunks.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = DEFAULT_BASE_URL,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(logger_name="meetmate.llm.gemini")
        self._api_key = api_key
        self._model = model
        self._base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self._session = session or requests.Session()

    @property
    def model(self) -> str:
        return self._model

    def _call_api(
        self,
        prompt: str,
        temperature: float = 0.2,
        timeout: int = 120,
        system_prompt: str | None = None,
        json_mode: bool = False,
        inline_data: dict | None = None,
    ) -> str:
        """Make a call to the Gemini API and return the response text."""
        # Handle model name format (may include "models/" prefix)
        model_name = self._model
        if not model_name.startswith("models/"):
            model_name = f"models/{model_name}"

        url = f"{self._base_url}/v1beta/{model_name}:generateContent"

        full_prompt = prompt
        if system_prompt:
            full_prompt = f"{system_prompt}\n\n{prompt}"

        parts: list[dict] = [{"text": full_prompt}]
        if inline_data:
            parts.append(
                {
                    "inline_data": {
                        "mime_type": inline_data["mime_type"],
                        "data": inline_data["data"],
                    }
                }
            )

        generation_config: dict = {"temperature": temperature}
        if json_mode:
            generation_config.update({"topP": 0.8, "topK": 40})

        try:
            response = self._session.post(
                url,
                params={"key": self._api_key},
                headers={"Content-Type": "application/json"},
                json={
                    "contents": [{"role": "user", "parts": parts}],
                    "generationConfig": generation_config,
                },
                timeout=timeout,
            )
        except requests.RequestException as exc:
            raise LLMProviderError("Failed to reach Gemini API") from exc

        if response.status_code != 200:
            self._logger.error("Gemini error: %s - %s", response.status_code, response.text[:500])
            raise LLMProviderError(
                f"Gemini error: {response.status_code} {_error_message(response)}".strip(),
                status_code=response.status_code,
            )

        data = response.json()
        candidates = data.get("candidates", [])
        if not candidates:
            # Blocked prompts and silent audio both come back without candidates.
            self._logger.debug("Gemini response without candidates: %s", str(data)[:300])
            return ""

        content = candidates[0].get("content", {})
        parts = content.get("parts", [])
        if not parts:
            return ""

        return "".join(part.get("text", "") for part in parts).strip()


def _error_message(response: requests.Response) -> str:
    try:
        return str(response.json().get("error", {}).get("message", ""))
    except (ValueError, AttributeError):
        return ""
