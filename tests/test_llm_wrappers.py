from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from tyrant_bot.memory.models import UserMemory  # noqa: E402
from tyrant_bot.prompts.persona import fallback_empty_line, fallback_error_line  # noqa: E402
from tyrant_bot.services.classifier import (  # noqa: E402
    SAFE_DEFAULT,
    Classification,
    InsultClassifier,
    parse_classification,
)
from tyrant_bot.services.groq_client import GroqClient, LLMError  # noqa: E402
from tyrant_bot.services.responder import PersonaResponder, strip_wrapping_quotes  # noqa: E402


class _FakeLLM:
    def __init__(self, reply: str = "", error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: list[dict[str, object]] = []

    async def chat(self, messages, temperature=0.7, max_tokens=None):  # type: ignore[no-untyped-def]
        self.calls.append({"messages": messages, "temperature": temperature, "max_tokens": max_tokens})
        if self.error is not None:
            raise self.error
        return self.reply


def test_groq_chat_builds_openai_payload_and_extracts_text() -> None:
    client = GroqClient(api_key="k", model="llama-3.3-70b-versatile", timeout_seconds=30)
    captured: dict[str, object] = {}

    async def _fake_request(payload, retries=None):  # type: ignore[no-untyped-def]
        captured.update(payload)
        return {"choices": [{"message": {"content": "  Silence, citizen.  "}}]}

    client._request = _fake_request  # type: ignore[method-assign]

    text = asyncio.run(
        client.chat(
            [
                {"role": "system", "content": "sys"},
                {"role": "tool", "content": "odd role"},
                {"role": "user", "content": "   "},
            ],
            temperature=0.0,
            max_tokens=200,
        )
    )

    assert text == "Silence, citizen."
    assert captured["model"] == "llama-3.3-70b-versatile"
    assert captured["temperature"] == 0.0
    assert captured["max_tokens"] == 200
    assert captured["messages"] == [
        {"role": "system", "content": "sys"},
        {"role": "user", "content": "odd role"},
    ]
    assert client._endpoint() == "https://api.groq.com/openai/v1/chat/completions"


def test_groq_extract_text_rejects_missing_choices() -> None:
    with pytest.raises(LLMError):
        GroqClient._extract_text({"choices": []})
    assert GroqClient._extract_text({"choices": [{"message": {"content": ""}}]}) == ""


def test_strip_json_fences() -> None:
    raw = "```json\n{\"is_insult\": true}\n```"
    assert GroqClient._strip_json_fences(raw) == "{\"is_insult\": true}"
    assert GroqClient._strip_json_fences("Sure! {\"a\": 1} done") == "{\"a\": 1}"


def test_parse_classification_filters_targets_to_mentions() -> None:
    raw = '{"is_insult": true, "targets": ["bot", "user:111", "user:222", "user:111", "admin"], "severity": 9}'

    result = parse_classification(raw, ["111"])

    assert result == Classification(True, ("bot", "user:111"), 5)
    assert result.targets_bot
    assert result.user_target_ids == ["111"]


@pytest.mark.parametrize(
    "raw",
    [
        "not json at all",
        "[1, 2, 3]",
        '{"is_insult": "yes", "targets": ["bot"]}',
        '{"is_insult": false, "targets": ["bot"], "severity": 3}',
    ],
)
def test_parse_classification_falls_back_to_safe_default(raw: str) -> None:
    assert parse_classification(raw, ["111"]) == SAFE_DEFAULT


def test_classifier_sends_deterministic_single_shot_request() -> None:
    llm = _FakeLLM('{"is_insult": true, "targets": ["user:42"], "severity": 2}')
    classifier = InsultClassifier(llm, "Adolf")

    result = asyncio.run(classifier.classify("42 is a clown", ["42"]))

    assert result.user_target_ids == ["42"]
    assert len(llm.calls) == 1
    call = llm.calls[0]
    assert call["temperature"] == 0.0
    assert call["max_tokens"] == 200
    messages = call["messages"]
    assert "JSON" in messages[0]["content"]
    assert messages[1]["content"] == 'Message: "42 is a clown"\nMentions: ["42"]'


def test_classifier_transport_error_returns_exact_default() -> None:
    classifier = InsultClassifier(_FakeLLM(error=LLMError("timeout")), "Adolf")

    assert asyncio.run(classifier.classify("you fool", [])) == Classification(False, (), 0)


def test_strip_wrapping_quotes() -> None:
    assert strip_wrapping_quotes('"Kneel, citizen."') == "Kneel, citizen."
    assert strip_wrapping_quotes("“‘Obey.’”  ") == "Obey."
    assert strip_wrapping_quotes("It's 'fine' here") == "It's 'fine' here"


def test_responder_embeds_memory_and_mode() -> None:
    llm = _FakeLLM('"Your pizza habit is noted."')
    responder = PersonaResponder(llm, "Adolf")
    context = UserMemory("1", short_memory=["bob: hi", "bob: hello"], long_memory=["likes pizza", "from paris"])

    reply = asyncio.run(responder.reply("hello", "1", context, mode="defend", target="<@9>"))

    assert reply == "Your pizza habit is noted."
    call = llm.calls[0]
    assert call["temperature"] == 0.8
    assert call["max_tokens"] == 220
    system, user = call["messages"]
    assert "Adolf" in system["content"]
    assert "fictional" in system["content"]
    assert "likes pizza | from paris" in user["content"]
    assert "bob: hi | bob: hello" in user["content"]
    assert "<@9>" in user["content"]


def test_responder_without_context_uses_none_placeholder() -> None:
    llm = _FakeLLM("Noted.")
    asyncio.run(PersonaResponder(llm, "Adolf").reply("hi", "1", None))

    user_prompt = llm.calls[0]["messages"][1]["content"]
    assert "Long-term memory: none" in user_prompt
    assert "Short-term memory: none" in user_prompt


def test_responder_fallbacks_never_raise() -> None:
    empty = asyncio.run(PersonaResponder(_FakeLLM('""'), "Adolf").reply("hi", "1"))
    failed = asyncio.run(PersonaResponder(_FakeLLM(error=LLMError("503")), "Adolf").reply("hi", "1"))

    assert empty == fallback_empty_line() == "My imperial voice falters... try again later."
    assert failed == fallback_error_line() == "My imperial brain coughs... try again later, citizen."
