"""Heuristic extraction of durable personal facts from chat messages.

The rules are deliberately narrow: every extracted fact is stored without review, so a
missed fact is cheaper than a polluted memory.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Optional


_CONJUNCTION_RE = re.compile(r"\s+(?:and|but|so|because|cause|though|although|while)\b.*$")
_MAX_WORDS = 6

_IDENTITY_FILLERS = {
    "not",
    "just",
    "so",
    "going",
    "gonna",
    "sure",
    "sorry",
    "here",
    "back",
    "done",
    "fine",
    "ok",
    "okay",
    "tired",
    "kidding",
    "joking",
    "the",
    "literally",
    "really",
    "still",
    "also",
    "too",
    "very",
    "glad",
    "trying",
}
_PREFERENCE_FILLERS = {"it", "this", "that", "them", "you", "him", "her", "to", "when", "how"}


def _normalize_text(text: str) -> str:
    lowered = str(text or "").replace("’", "'").replace("‘", "'").casefold()
    return " ".join(lowered.split())


def _clean_capture(value: str, limit: int) -> Optional[str]:
    cleaned = _CONJUNCTION_RE.sub("", " " + value.strip()).strip(" ,-_")
    cleaned = " ".join(cleaned.split())
    if len(cleaned) < 2 or len(cleaned) > limit:
        return None
    if len(cleaned.split()) > _MAX_WORDS:
        return None
    return cleaned


def _starts_with_filler(value: str, fillers: set[str]) -> bool:
    first = value.split(" ", 1)[0]
    if first in fillers:
        return True
    return value.startswith("a bit") or value.startswith("a little")


@dataclass(frozen=True, slots=True)
class FactRule:
    name: str
    pattern: re.Pattern[str]
    render: Callable[[re.Match[str]], Optional[str]]


def _render_name(match: re.Match[str]) -> Optional[str]:
    value = _clean_capture(match.group(1), 40)
    return f"name is {value}" if value else None


def _render_origin(match: re.Match[str]) -> Optional[str]:
    value = _clean_capture(match.group(2), 60)
    return f"from {value}" if value else None


def _render_occupation(match: re.Match[str]) -> Optional[str]:
    value = _clean_capture(match.group(2), 40)
    if not value:
        return None
    return f"works {match.group(1)} {value}"


def _render_favorite(match: re.Match[str]) -> Optional[str]:
    subject = _clean_capture(match.group(1), 20)
    value = _clean_capture(match.group(2), 40)
    if not subject or not value:
        return None
    return f"favorite {subject} is {value}"


def _render_preference(match: re.Match[str]) -> Optional[str]:
    value = _clean_capture(match.group(1), 40)
    if not value or _starts_with_filler(value, _PREFERENCE_FILLERS):
        return None
    return f"likes {value}"


def _render_identity(match: re.Match[str]) -> Optional[str]:
    value = _clean_capture(match.group(2), 40)
    if not value or _starts_with_filler(value, _IDENTITY_FILLERS):
        return None
    return f"is {value}"


# Order matters: the first rule that produces a fact wins.
FACT_RULES: tuple[FactRule, ...] = (
    FactRule("name", re.compile(r"\b(?:my name is|call me)\s+([a-z0-9 _-]{2,40})"), _render_name),
    FactRule(
        "origin",
        re.compile(r"\b(i live in|i'm from|i am from)\s+([a-z0-9 ,\-]{2,60})"),
        _render_origin,
    ),
    FactRule(
        "occupation",
        re.compile(r"\bi work (as|at)\s+(?:an?\s+)?([a-z0-9 _-]{2,40})"),
        _render_occupation,
    ),
    FactRule(
        "favorite",
        re.compile(r"\bmy favou?rite ([a-z0-9_-]{2,20}) is\s+([a-z0-9 _-]{2,40})"),
        _render_favorite,
    ),
    FactRule(
        "preference",
        re.compile(r"\bi (?:really )?(?:love|like|enjoy)\s+([a-z0-9 _-]{2,40})"),
        _render_preference,
    ),
    FactRule("identity", re.compile(r"\b(i am|i'm)\s+([a-z0-9 _-]{2,40})"), _render_identity),
)


def extract_fact(text: str) -> Optional[str]:
    low = _normalize_text(text)
    if not low or low.endswith("?"):
        return None
    for rule in FACT_RULES:
        match = rule.pattern.search(low)
        if match is None:
            continue
        fact = rule.render(match)
        if fact:
            return fact
    return None
