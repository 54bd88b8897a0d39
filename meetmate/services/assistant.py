import logging
from dataclasses import asdict, dataclass, field
from typing import Iterable, Optional

from meetmate.services.llm import LLMProvider, LLMProviderError
from meetmate.services.llm.base import BaseLLMProvider
from meetmate.services.transcript_utils import format_transcript
from meetmate.services.transcription.base import TranscriptSegment

ALLOWED_SENTIMENTS = ("positive", "neutral", "negative")


@dataclass
class MeetingInsights:
    sentiment: str = "neutral"
    key_topics: list[str] = field(default_factory=list)
    decisions: list[str] = field(default_factory=list)

    @classmethod
    def fallback(cls, reason: str = "Could not analyze") -> "MeetingInsights":
        return cls(sentiment="neutral", key_topics=[reason], decisions=[reason])

    def to_dict(self) -> dict:
        return asdict(self)


def parse_insights(raw) -> MeetingInsights:
    """Validate model insights output, accepting raw text or a decoded object.

    Raises:
        LLMProviderError: no JSON object, or the object lacks the expected shape
    """
    data = raw if isinstance(raw, dict) else BaseLLMProvider._extract_json_object(str(raw or ""))
    sentiment = data.get("sentiment")
    topics = data.get("key_topics", data.get("keyTopics"))
    decisions = data.get("decisions")
    if not sentiment or not isinstance(topics, list) or not isinstance(decisions, list):
        raise LLMProviderError("Invalid insights structure")
    sentiment = str(sentiment).strip().lower()
    if sentiment not in ALLOWED_SENTIMENTS:
        sentiment = "neutral"
    return MeetingInsights(
        sentiment=sentiment,
        key_topics=[str(topic) for topic in topics],
        decisions=[str(decision) for decision in decisions],
    )


class AssistantService:
    """Meeting-level AI features over the injected provider.

    Each operation degrades to a fixed user-facing message instead of raising,
    except ``answer_question`` without a provider.
    """

    def __init__(self, provider: Optional[LLMProvider]) -> None:
        self._provider = provider
        self._logger = logging.getLogger("meetmate.assistant")

    @property
    def available(self) -> bool:
        return self._provider is not None

    @staticmethod
    def _plain(transcript: Iterable[TranscriptSegment]) -> str:
        return format_transcript(transcript)

    def summarize(self, transcript: Iterable[TranscriptSegment]) -> str:
        if self._provider is None:
            return "AI unavailable."
        try:
            return self._provider.summarize(self._plain(transcript))
        except Exception as exc:
            self._logger.error("Summary generation failed: %s", exc)
            return "Failed to generate summary."

    def extract_action_items(self, transcript: Iterable[TranscriptSegment]) -> list[str]:
        if self._provider is None:
            return ["AI unavailable."]
        try:
            return self._provider.extract_action_items(self._plain(transcript))
        except Exception as exc:
            self._logger.error("Action item extraction failed: %s", exc)
            return ["Failed to extract action items."]

    def generate_insights(self, transcript: Iterable[TranscriptSegment]) -> MeetingInsights:
        if self._provider is None:
            return MeetingInsights.fallback("AI unavailable")
        try:
            raw = self._provider.generate_insights(self._plain(transcript))
            return parse_insights(raw)
        except Exception as exc:
            self._logger.error("Insight generation failed: %s", exc)
            return MeetingInsights.fallback()

    def clean_segment(self, text: str) -> str:
        if self._provider is None:
            return "AI unavailable."
        try:
            cleaned = self._provider.clean_segment(text).strip()
        except Exception as exc:
            self._logger.error("Segment cleanup failed: %s", exc)
            return "Failed to clean this segment."
        return cleaned or "No meaningful content found."

    def answer_question(self, transcript: Iterable[TranscriptSegment], question: str) -> str:
        if self._provider is None:
            raise LLMProviderError("AI service unavailable.")
        formatted = format_transcript(transcript, with_timestamps=True)
        try:
            return self._provider.answer_question(formatted, question)
        except Exception as exc:
            self._logger.error("Chat answer failed: %s", exc)
            return "Unable to answer the question."
