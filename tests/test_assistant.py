import pytest

from meetmate.services.assistant import AssistantService, MeetingInsights, parse_insights
from meetmate.services.chat_service import ChatService
from meetmate.services.llm.base import BaseLLMProvider, LLMProviderError
from meetmate.services.meeting_store import MeetingStore
from meetmate.services.transcription.base import TranscriptSegment


class ScriptedProvider(BaseLLMProvider):
    """Provider whose raw model output is scripted per call."""

    def __init__(self, replies):
        super().__init__()
        self.replies = list(replies)
        self.prompts = []

    def _call_api(self, prompt, temperature=0.2, timeout=120, system_prompt=None, json_mode=False, inline_data=None):
        self.prompts.append(prompt)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


TRANSCRIPT = [
    TranscriptSegment(text="We agreed to ship on Friday.", timestamp="2024-05-01T10:00:00+00:00"),
    TranscriptSegment(text="Dana will update the docs.", timestamp="2024-05-01T10:00:06+00:00"),
]


def test_summary_uses_plain_transcript():
    provider = ScriptedProvider(["- Ship Friday"])
    assert AssistantService(provider).summarize(TRANSCRIPT) == "- Ship Friday"
    assert "We agreed to ship on Friday.\nDana will update the docs." in provider.prompts[0]


def test_fallback_messages():
    failing = AssistantService(ScriptedProvider([LLMProviderError("boom")] * 4))
    assert failing.summarize(TRANSCRIPT) == "Failed to generate summary."
    assert failing.extract_action_items(TRANSCRIPT) == ["Failed to extract action items."]
    assert failing.clean_segment("uh so") == "Failed to clean this segment."
    assert failing.answer_question(TRANSCRIPT, "when?") == "Unable to answer the question."

    disabled = AssistantService(None)
    assert disabled.summarize(TRANSCRIPT) == "AI unavailable."
    assert disabled.extract_action_items(TRANSCRIPT) == ["AI unavailable."]
    assert disabled.clean_segment("uh so") == "AI unavailable."
    with pytest.raises(LLMProviderError, match="AI service unavailable."):
        disabled.answer_question(TRANSCRIPT, "when?")


def test_action_items_are_non_empty_lines():
    provider = ScriptedProvider(["- Dana: update docs\n\n  \n- Team: ship Friday\n"])
    assert AssistantService(provider).extract_action_items(TRANSCRIPT) == [
        "- Dana: update docs",
        "- Team: ship Friday",
    ]


def test_empty_clean_segment_reply():
    assert AssistantService(ScriptedProvider(["   "])).clean_segment("um") == "No meaningful content found."


def test_insights_recovered_from_chatty_output():
    raw = 'Analysis below.\n```json\n{"sentiment": "Negative", "keyTopics": ["launch"], "decisions": []}\n```'
    insights = AssistantService(ScriptedProvider([raw])).generate_insights(TRANSCRIPT)
    assert insights == MeetingInsights("negative", ["launch"], [])


@pytest.mark.parametrize(
    "raw",
    [
        "no json here",
        '{"sentiment": "positive", "keyTopics": ["a"]}',
        '{"sentiment": "", "keyTopics": [], "decisions": []}',
        '{"sentiment": "positive", "keyTopics": [}',
    ],
)
def test_insights_fallback_on_unusable_output(raw):
    insights = AssistantService(ScriptedProvider([raw])).generate_insights(TRANSCRIPT)
    assert insights.to_dict() == {
        "sentiment": "neutral",
        "key_topics": ["Could not analyze"],
        "decisions": ["Could not analyze"],
    }


def test_parse_insights_normalises_unknown_sentiment():
    assert parse_insights('{"sentiment": "mixed", "key_topics": ["x"], "decisions": ["y"]}').sentiment == "neutral"


def test_chat_answers_with_timestamps_and_persists_history(tmp_path):
    store = MeetingStore(str(tmp_path / "meetings"))
    store.save_transcript("evt-1", TRANSCRIPT)
    provider = ScriptedProvider(["Friday."])
    chat = ChatService(store, AssistantService(provider))

    result = chat.chat_meeting("evt-1", "When do we ship?")

    assert result["answer"] == "Friday."
    assert "] We agreed to ship on Friday." in provider.prompts[0]
    assert "User Question: When do we ship?" in provider.prompts[0]
    history = store.get_chat_history("evt-1")
    assert [(m["role"], m["content"]) for m in history] == [
        ("user", "When do we ship?"),
        ("assistant", "Friday."),
    ]


def test_chat_unknown_meeting(tmp_path):
    chat = ChatService(MeetingStore(str(tmp_path / "meetings")), AssistantService(None))
    with pytest.raises(KeyError):
        chat.chat_meeting("missing", "anything?")
