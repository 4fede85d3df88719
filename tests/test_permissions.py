from __future__ import annotations

import sys
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from tyrant_bot.discord.permissions import (  # noqa: E402
    COMMANDER_REQUIRED,
    SUPREME_REQUIRED,
    Rank,
    can_configure_roles,
    can_edit_memory,
    can_manage_whitelist,
    can_view_memory,
    channel_allowed,
    check_moderation,
    is_protected_target,
    resolve_rank,
    top_role_position,
)


def test_resolve_rank_prefers_owner_then_supreme_then_commander() -> None:
    assert resolve_rank([], "c", "s", is_owner=True) == Rank.SUPREME
    assert resolve_rank(["c", "s"], "c", "s") == Rank.SUPREME
    assert resolve_rank(["c"], "c", "s") == Rank.COMMANDER
    assert resolve_rank(["x"], "c", "s") == Rank.CITIZEN
    assert resolve_rank(["c"], None, None) == Rank.CITIZEN


def test_top_role_position_defaults_to_zero() -> None:
    assert top_role_position([]) == 0
    assert top_role_position([1, 7, 3]) == 7


def test_moderation_requires_supreme() -> None:
    decision = check_moderation(Rank.COMMANDER, bot_position=10, target_position=1)

    assert decision.allowed is False
    assert decision.reason == SUPREME_REQUIRED


@pytest.mark.parametrize(
    "flags",
    [
        {"target_is_owner": True},
        {"target_is_self": True},
        {"target_is_bot": True},
    ],
)
def test_moderation_protects_owner_self_and_bot(flags: dict[str, bool]) -> None:
    assert check_moderation(Rank.SUPREME, 10, 1, **flags).allowed is False


def test_moderation_needs_bot_strictly_above_target() -> None:
    assert check_moderation(Rank.SUPREME, bot_position=5, target_position=5).allowed is False
    assert check_moderation(Rank.SUPREME, bot_position=5, target_position=6).allowed is False
    assert check_moderation(Rank.SUPREME, bot_position=5, target_position=4).allowed is True


def test_command_gates() -> None:
    assert can_manage_whitelist(Rank.CITIZEN).reason == COMMANDER_REQUIRED
    assert can_manage_whitelist(Rank.COMMANDER).allowed
    assert can_view_memory(Rank.COMMANDER).allowed
    assert not can_edit_memory(Rank.COMMANDER).allowed
    assert can_edit_memory(Rank.SUPREME).allowed
    assert not can_configure_roles(False).allowed
    assert can_configure_roles(True).allowed


def test_protected_targets() -> None:
    assert is_protected_target(Rank.COMMANDER, target_position=1, bot_position=5)
    assert is_protected_target(Rank.CITIZEN, target_position=9, bot_position=5)
    assert not is_protected_target(Rank.CITIZEN, target_position=5, bot_position=5)


def test_channel_allowed_with_whitelist_and_threads() -> None:
    assert channel_allowed([], "1")
    assert channel_allowed(["1"], "1")
    assert not channel_allowed(["1"], "2")
    assert channel_allowed(["1"], "thread-9", parent_id="1")
