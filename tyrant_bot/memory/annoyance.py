from __future__ import annotations

import random
import re
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from typing import Deque, Iterable, List, Sequence


POKE_PHRASES = (
    "are you there",
    "you there",
    "wake up",
    "answer me",
    "respond",
    "reply to me",
    "hello?",
    "ping",
    "poke",
)
NITPICK_PHRASES = (
    "you're wrong",
    "no you",
    "but",
    "actually",
    "that's wrong",
    "stop acting",
    "not like this",
    "fix your",
)


def _phrase_pattern(phrases: Iterable[str]) -> re.Pattern[str]:
    parts = []
    for phrase in phrases:
        escaped = re.escape(phrase)
        # Trailing punctuation ("hello?") cannot be followed by a word boundary.
        suffix = r"\b" if phrase[-1].isalnum() else ""
        parts.append(rf"\b{escaped}{suffix}")
    return re.compile("|".join(parts))


_POKE_RE = _phrase_pattern(POKE_PHRASES)
_NITPICK_RE = _phrase_pattern(NITPICK_PHRASES)


def message_text(entry: str) -> str:
    """Strip the ``"label: "`` prefix that short-term memory lines carry."""
    idx = entry.find(": ")
    text = entry[idx + 2 :] if idx >= 0 else entry
    return " ".join(text.replace("’", "'").split()).casefold()


def repeated_recent_messages(history: Sequence[str], last_n: int = 3) -> bool:
    recent = list(history)[-max(2, int(last_n)) :]
    if len(recent) < 2:
        return False
    texts = [message_text(item) for item in recent]
    if not texts[0]:
        return False
    return all(text == texts[0] for text in texts)


def burst_detected(
    timestamps: Sequence[float],
    now: float,
    window_seconds: float = 20.0,
    threshold: int = 8,
) -> bool:
    cutoff = now - float(window_seconds)
    recent = [ts for ts in timestamps if cutoff <= ts <= now]
    return len(recent) >= max(1, int(threshold))


def poke_detected(history: Sequence[str], last_n: int = 3, min_hits: int = 2) -> bool:
    recent = list(history)[-max(1, int(last_n)) :]
    hits = sum(1 for item in recent if _POKE_RE.search(message_text(item)))
    return hits >= max(1, int(min_hits))


def nitpick_detected(history: Sequence[str], window: int = 24, threshold: int = 6) -> bool:
    recent = list(history)[-max(1, int(window)) :]
    count = sum(1 for item in recent if _NITPICK_RE.search(message_text(item)))
    return count >= max(1, int(threshold))


@dataclass(slots=True)
class AnnoyanceSignals:
    repeated: bool = False
    burst: bool = False
    poke: bool = False
    nitpick: bool = False

    @property
    def fired(self) -> bool:
        return self.repeated or self.burst or self.poke or self.nitpick

    @property
    def reasons(self) -> List[str]:
        return [
            name
            for name, value in (
                ("repeated", self.repeated),
                ("burst", self.burst),
                ("poke", self.poke),
                ("nitpick", self.nitpick),
            )
            if value
        ]


@dataclass(slots=True)
class AnnoyanceDetector:
    probability: float = 0.04
    min_history: int = 24
    repeat_min_history: int = 30
    repeat_last_n: int = 4
    burst_window_seconds: float = 20.0
    burst_threshold: int = 8
    poke_last_n: int = 3
    poke_min_hits: int = 2
    nitpick_window: int = 24
    nitpick_threshold: int = 6

    @classmethod
    def from_settings(cls, settings: object) -> "AnnoyanceDetector":
        return cls(
            probability=float(getattr(settings, "ignore_probability", 0.04)),
            min_history=int(getattr(settings, "annoyance_min_history", 24)),
            repeat_min_history=int(getattr(settings, "repeat_min_history", 30)),
            repeat_last_n=int(getattr(settings, "repeat_last_n", 4)),
            burst_window_seconds=float(getattr(settings, "burst_window_seconds", 20)),
            burst_threshold=int(getattr(settings, "burst_threshold", 8)),
            poke_last_n=int(getattr(settings, "poke_last_n", 3)),
            poke_min_hits=int(getattr(settings, "poke_min_hits", 2)),
            nitpick_window=int(getattr(settings, "nitpick_window", 24)),
            nitpick_threshold=int(getattr(settings, "nitpick_threshold", 6)),
        )

    def evaluate(
        self,
        history: Sequence[str],
        timestamps: Sequence[float] = (),
        now: float = 0.0,
    ) -> AnnoyanceSignals:
        """Run every predicate once the user has enough short-term history.

        Below ``min_history`` lines nothing fires; the repeat check additionally
        waits for ``repeat_min_history`` lines.
        """
        depth = len(history)
        if depth < self.min_history:
            return AnnoyanceSignals()
        return AnnoyanceSignals(
            repeated=depth >= self.repeat_min_history and repeated_recent_messages(history, self.repeat_last_n),
            burst=burst_detected(timestamps, now, self.burst_window_seconds, self.burst_threshold),
            poke=poke_detected(history, self.poke_last_n, self.poke_min_hits),
            nitpick=nitpick_detected(history, self.nitpick_window, self.nitpick_threshold),
        )

    def should_ignore(self, signals: AnnoyanceSignals, rng: random.Random) -> bool:
        if not signals.fired:
            return False
        return rng.random() < self.probability


@dataclass(slots=True)
class ActivityTracker:
    """Recent message times per user, bounded in both users and samples."""

    max_users: int = 4096
    max_samples: int = 32
    retention_seconds: float = 120.0
    _entries: "OrderedDict[str, Deque[float]]" = field(default_factory=OrderedDict)

    def record(self, user_id: str, now: float) -> List[float]:
        key = str(user_id)
        samples = self._entries.pop(key, None)
        if samples is None:
            samples = deque(maxlen=self.max_samples)
        samples.append(float(now))
        cutoff = now - self.retention_seconds
        while samples and samples[0] < cutoff:
            samples.popleft()
        self._entries[key] = samples
        while len(self._entries) > self.max_users:
            self._entries.popitem(last=False)
        return list(samples)

    def timestamps(self, user_id: str) -> List[float]:
        samples = self._entries.get(str(user_id))
        return list(samples) if samples else []

    def __len__(self) -> int:
        return len(self._entries)
