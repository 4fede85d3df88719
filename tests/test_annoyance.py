from __future__ import annotations

import random
import sys
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from tyrant_bot.memory.annoyance import (  # noqa: E402
    ActivityTracker,
    AnnoyanceDetector,
    AnnoyanceSignals,
    burst_detected,
    message_text,
    nitpick_detected,
    poke_detected,
    repeated_recent_messages,
)


class _FixedRandom(random.Random):
    def __init__(self, value: float) -> None:
        super().__init__(0)
        self.value = value

    def random(self) -> float:
        return self.value


def test_message_text_strips_author_label() -> None:
    assert message_text("alice: Hello   THERE") == "hello there"
    assert message_text("no label") == "no label"


def test_repeated_messages_need_identical_tail() -> None:
    assert repeated_recent_messages(["a: hi", "a: spam", "a: SPAM", "a: spam"], last_n=3)
    assert not repeated_recent_messages(["a: spam", "a: spam", "a: other"], last_n=3)
    assert not repeated_recent_messages(["a: spam"], last_n=3)


def test_burst_counts_only_window() -> None:
    now = 100.0
    stamps = [now - 30, *[now - i for i in range(8)]]

    assert burst_detected(stamps, now, window_seconds=20, threshold=8)
    assert not burst_detected(stamps[:5], now, window_seconds=20, threshold=8)


def test_poke_needs_min_hits_in_recent_messages() -> None:
    assert poke_detected(["a: hello", "a: are you there", "a: wake up"], last_n=3, min_hits=2)
    assert not poke_detected(["a: ping", "a: cool", "a: nice"], last_n=3, min_hits=2)
    # "pinging" is not the phrase "ping".
    assert not poke_detected(["a: pinging", "a: pinging"], last_n=3, min_hits=2)


def test_nitpick_threshold_over_window() -> None:
    history = [f"a: actually that is {i}" for i in range(6)]

    assert nitpick_detected(history, window=24, threshold=6)
    assert not nitpick_detected(history[:5], window=24, threshold=6)
    assert not nitpick_detected(["a: butter is great"] * 10, window=24, threshold=6)


def test_detector_reports_reasons_and_gates_on_probability() -> None:
    detector = AnnoyanceDetector(probability=0.04, min_history=0, repeat_min_history=0, repeat_last_n=3)
    signals = detector.evaluate(["a: ping", "a: ping", "a: ping"], [], now=0.0)

    assert signals.fired
    assert set(signals.reasons) == {"repeated", "poke"}
    assert detector.should_ignore(signals, _FixedRandom(0.01)) is True
    assert detector.should_ignore(signals, _FixedRandom(0.5)) is False
    assert detector.should_ignore(AnnoyanceSignals(), _FixedRandom(0.0)) is False


def test_detector_waits_for_deep_history_before_judging() -> None:
    detector = AnnoyanceDetector()
    filler = [f"a: message {i}" for i in range(22)]

    assert not detector.evaluate(["a: lol", "a: lol"]).fired
    assert not detector.evaluate(filler[1:] + ["a: ping", "a: ping"]).fired
    assert detector.evaluate(filler + ["a: ping", "a: ping"]).reasons == ["poke"]

    # Identical lines only count as repetition once 30 lines are on record.
    assert not detector.evaluate(["a: lol"] * 29).repeated
    assert detector.evaluate(["a: lol"] * 30).repeated


def test_activity_tracker_is_bounded() -> None:
    tracker = ActivityTracker(max_users=2, max_samples=3, retention_seconds=10)

    for ts in (1.0, 2.0, 3.0, 4.0):
        tracker.record("u1", ts)
    assert tracker.timestamps("u1") == [2.0, 3.0, 4.0]

    assert tracker.record("u1", 20.0) == [20.0]

    tracker.record("u2", 21.0)
    tracker.record("u3", 22.0)
    assert len(tracker) == 2
    assert tracker.timestamps("u1") == []
