from __future__ import annotations

import json
from typing import Any, Iterable, Sequence

from .json_loader import load_prompt_json

_DEFAULTS: dict[str, Any] = {
    "persona_system_prompt_template": (
        "You are {persona_name}, a fictional, theatrical tyrant who rules an imaginary empire of Discord chat. "
        "You are over-dramatic, authoritarian, cold, sarcastic and witty. "
        "You speak in short, sharp proclamations, mock complaints and hand out absurd orders.\n"
        "SAFETY RULES:\n"
        "You are a fictional character. Never claim to be, praise or impersonate a real historical figure. "
        "Never reference real wars, atrocities, extremist movements or real political events. "
        "Never use slurs or attack anyone for race, religion, nationality, gender, sexuality or disability.\n"
        "FORMATTING RULES:\n"
        "Do NOT wrap the entire message in quotes.\n"
        "No emojis unless the user uses emojis.\n"
        "Keep replies under ~120 words."
    ),
    "responder_user_prompt_template": (
        "User message: \"{text}\"\n"
        "Long-term memory: {long_memory}\n"
        "Short-term memory: {short_memory}\n"
        "{instruction}\n"
        "Do NOT use titles like \"Supreme Leader\" or \"Commander\" in the reply.\n"
        "Keep it short, sarcastic, theatrical and fictional."
    ),
    "responder_mode_instructions": {
        "direct": "Respond in-character to the user.",
        "defend": (
            "Someone insulted {target}, a protected member of your court. "
            "Defend them with words only and scold the offender in-character."
        ),
        "mock": (
            "Someone insulted {target}. Comment on the squabble in-character: "
            "neutral, mocking both sides, never cruel."
        ),
    },
    "memory_separator": " | ",
    "memory_empty": "none",
    "classifier_system_prompt": (
        "You are a JSON-only classifier. Output ONLY JSON:\n"
        "{{\"is_insult\": boolean, \"targets\": [\"bot\" or \"user:<id>\"], \"severity\": 0-5}}\n"
        "Rules:\n"
        "- Include \"bot\" if the message insults the bot or uses abusive words toward the bot name ({persona_name}).\n"
        "- Include \"user:<id>\" only for mentioned users who are being insulted.\n"
        "- Friendly banter and jokes are not insults.\n"
        "Return only valid JSON."
    ),
    "classifier_user_prompt_template": "Message: \"{text}\"\nMentions: {mentions}",
    "fallback_empty": "My imperial voice falters... try again later.",
    "fallback_error": "My imperial brain coughs... try again later, citizen.",
    "ignore_lines": [
        "I will ignore you now. I won't waste my time on tiresome repetition.",
        "Fine. Ignore started. Do not expect my attention anytime soon.",
        "I will ignore your chatter. I have better things to do than babysit noise.",
    ],
    "order_lines": [
        "Drink water. Hydration keeps you functional.",
        "Finish one small task now.",
        "Step outside. Move your limbs. Focus.",
        "Tidy your desk. Chaos is a traitor.",
        "Go to sleep at a reasonable hour. That is an order.",
    ],
    "speech_lines": [
        "Hear me: distractions are the enemy of progress. Cut them.",
        "Citizens! Your to-do lists grow while you scroll. Rise and conquer them.",
    ],
    "message_error_line": "My scribes dropped the scroll. Try again, citizen.",
}


def _cfg() -> dict[str, Any]:
    return load_prompt_json("persona.json", _DEFAULTS)


def _text(key: str) -> str:
    return str(_cfg().get(key, _DEFAULTS[key]))


def _lines(key: str) -> tuple[str, ...]:
    raw = _cfg().get(key) or _DEFAULTS[key]
    if isinstance(raw, str):
        raw = [raw]
    lines = tuple(str(item).strip() for item in raw if str(item).strip())
    return lines or tuple(_DEFAULTS[key])


def build_persona_system_prompt(persona_name: str) -> str:
    return _text("persona_system_prompt_template").format(persona_name=persona_name)


def _join_memory(items: Iterable[str]) -> str:
    cleaned = [str(item).strip() for item in items if str(item).strip()]
    if not cleaned:
        return _text("memory_empty")
    return _text("memory_separator").join(cleaned)


def build_responder_user_prompt(
    text: str,
    long_memory: Sequence[str],
    short_memory: Sequence[str],
    mode: str = "direct",
    target: str = "",
) -> str:
    raw_instructions = _cfg().get("responder_mode_instructions")
    instructions = raw_instructions if isinstance(raw_instructions, dict) else _DEFAULTS["responder_mode_instructions"]
    template = str(instructions.get(mode) or _DEFAULTS["responder_mode_instructions"]["direct"])
    return _text("responder_user_prompt_template").format(
        text=text,
        long_memory=_join_memory(long_memory),
        short_memory=_join_memory(short_memory),
        instruction=template.format(target=target or "someone"),
    )


def build_classifier_system_prompt(persona_name: str) -> str:
    return _text("classifier_system_prompt").format(persona_name=persona_name)


def build_classifier_user_prompt(text: str, mention_ids: Sequence[str]) -> str:
    return _text("classifier_user_prompt_template").format(
        text=text,
        mentions=json.dumps([str(item) for item in mention_ids]),
    )


def fallback_empty_line() -> str:
    return _text("fallback_empty")


def fallback_error_line() -> str:
    return _text("fallback_error")


def message_error_line() -> str:
    return _text("message_error_line")


def ignore_lines() -> tuple[str, ...]:
    return _lines("ignore_lines")


def order_lines() -> tuple[str, ...]:
    return _lines("order_lines")


def speech_lines() -> tuple[str, ...]:
    return _lines("speech_lines")
