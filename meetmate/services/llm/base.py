from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Optional


class LLMProviderError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LLMProvider(ABC):
    @abstractmethod
    def transcribe_audio(self, audio_b64: str, mime_type: str) -> str:
        """Return the raw model transcription of an inline audio payload."""
        raise NotImplementedError

    @abstractmethod
    def summarize(self, transcript: str) -> str:
        raise NotImplementedError

    @abstractmethod
    def extract_action_items(self, transcript: str) -> list[str]:
        raise NotImplementedError

    @abstractmethod
    def generate_insights(self, transcript: str) -> dict:
        raise NotImplementedError

    @abstractmethod
    def clean_segment(self, text: str) -> str:
        raise NotImplementedError

    @abstractmethod
    def answer_question(self, transcript: str, question: str) -> str:
        raise NotImplementedError


class BaseLLMProvider(LLMProvider):
    """Base implementation with shared prompts, JSON recovery and response handling.

    Subclasses only need to implement _call_api() for their specific API client.
    """

    # Shared prompts - single source of truth
    PROMPTS = {
        "transcribe": (
            "You are a speech-to-text transcription service. Transcribe the following "
            "audio exactly as spoken. If there is no speech, return nothing. Do not add "
            "any commentary or explanations."
        ),
        "clean_segment": (
            "Clean up and summarize this segment of a meeting transcript. \n"
            "Preserve natural flow, fix grammar, and remove any disfluencies. "
            "Don't fabricate. Just clean and present clearly:\n---\n{text}\n---"
        ),
        "summarize": (
            "Please summarize this meeting transcript:\n{transcript}\n\n"
            "Focus on:\n1. Main topics discussed\n2. Key decisions made\n"
            "3. Action items\n4. Summary in bullet points"
        ),
        "action_items": (
            "Extract all action items from this transcript:\n{transcript}\n\n"
            "Format each like:\n- Who is responsible\n- What needs to be done\n"
            "- When it is due (if mentioned)"
        ),
        "insights": (
            "Analyze this meeting transcript and return a JSON object with the following "
            "structure:\n"
            "{{\n"
            '  "sentiment": "positive|neutral|negative",\n'
            '  "keyTopics": ["topic1", "topic2", ...],\n'
            '  "decisions": ["decision1", "decision2", ...]\n'
            "}}\n\n"
            "Transcript:\n{transcript}\n\n"
            "Return ONLY the JSON object, no other text."
        ),
        "chat": (
            "You are an AI assistant for a meeting transcript.\n\n"
            "Transcript:\n{transcript}\n\n"
            "User Question: {question}\n\n"
            "Give a helpful answer based only on the transcript. If it's not present, say so."
        ),
    }

    def __init__(self, logger_name: str = "meetmate.llm") -> None:
        self._logger = logging.getLogger(logger_name)

    @abstractmethod
    def _call_api(
        self,
        prompt: str,
        temperature: float = 0.2,
        timeout: int = 120,
        system_prompt: str | None = None,
        json_mode: bool = False,
        inline_data: dict | None = None,
    ) -> str:
        """Make an API call and return the raw response text.

        Args:
            prompt: The user prompt to send
            temperature: Sampling temperature (0.0-1.0)
            timeout: Request timeout in seconds
            system_prompt: Optional system prompt
            json_mode: Request JSON-formatted response if supported
            inline_data: Optional {"mime_type", "data"} binary part (base64 data)

        Returns:
            The response text content

        Raises:
            LLMProviderError with ``status_code`` set for HTTP failures
        """
        raise NotImplementedError

    @staticmethod
    def _strip_markdown_code_blocks(text: str) -> str:
        """Remove markdown code block wrappers from text."""
        text = text.strip()
        if not text.startswith("```"):
            return text

        lines = text.split("\n")
        json_lines = []
        in_block = False
        for line in lines:
            if line.startswith("```"):
                in_block = not in_block
                continue
            json_lines.append(line)
        return "\n".join(json_lines).strip()

    @classmethod
    def _extract_json_object(cls, text: str) -> dict:
        """Recover a JSON object from model output.

        Strips markdown fences anywhere in the text plus any prose before the
        first ``{`` and after the last ``}``.

        Raises:
            LLMProviderError: If no JSON object can be parsed
        """
        cleaned = re.sub(r"```(?:json)?", "", text, flags=re.IGNORECASE)
        cleaned = cls._strip_markdown_code_blocks(cleaned)
        start = cleaned.find("{")
        end = cleaned.rfind("}")
        if start == -1 or end < start:
            raise LLMProviderError(f"No JSON object in response: {text[:200]}")
        try:
            parsed = json.loads(cleaned[start : end + 1])
        except json.JSONDecodeError as exc:
            raise LLMProviderError(f"Invalid JSON in response: {text[:200]}") from exc
        if not isinstance(parsed, dict):
            raise LLMProviderError(f"Expected JSON object, got {type(parsed).__name__}")
        return parsed

    def transcribe_audio(self, audio_b64: str, mime_type: str) -> str:
        self._logger.debug("Transcribing audio: mime=%s base64_len=%d", mime_type, len(audio_b64))
        return self._call_api(
            self.PROMPTS["transcribe"],
            temperature=0.0,
            timeout=60,
            inline_data={"mime_type": mime_type, "data": audio_b64},
        )

    def summarize(self, transcript: str) -> str:
        prompt = self.PROMPTS["summarize"].format(transcript=transcript)
        return self._call_api(prompt, temperature=0.2, timeout=120)

    def extract_action_items(self, transcript: str) -> list[str]:
        prompt = self.PROMPTS["action_items"].format(transcript=transcript)
        content = self._call_api(prompt, temperature=0.2, timeout=120)
        return [line for line in content.split("\n") if line.strip()]

    def generate_insights(self, transcript: str) -> dict:
        prompt = self.PROMPTS["insights"].format(transcript=transcript)
        content = self._call_api(prompt, temperature=0.1, timeout=90, json_mode=True)
        try:
            return self._extract_json_object(content)
        except LLMProviderError:
            self._logger.warning("Non-JSON insights response: %s", content[:500])
            raise

    def clean_segment(self, text: str) -> str:
        prompt = self.PROMPTS["clean_segment"].format(text=text)
        return self._call_api(prompt, temperature=0.1, timeout=60)

    def answer_question(self, transcript: str, question: str) -> str:
        prompt = self.PROMPTS["chat"].format(transcript=transcript, question=question)
        return self._call_api(prompt, temperature=0.3, timeout=60)
