"""Rank resolution and command gates.

Everything here is pure: callers pass role ids and role positions taken from the
Discord cache, so the rules can be exercised without a gateway connection.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence


class Rank(enum.IntEnum):
    CITIZEN = 0
    COMMANDER = 1
    SUPREME = 2


SUPREME_REQUIRED = "You lack permission (Supreme role required)."
COMMANDER_REQUIRED = "Permission denied (Commander or Supreme required)."
OWNER_REQUIRED = "Only server owner can set roles."


@dataclass(frozen=True, slots=True)
class PermissionDecision:
    allowed: bool
    reason: str = ""


ALLOWED = PermissionDecision(True)


def resolve_rank(
    role_ids: Iterable[str],
    commander_role_id: Optional[str],
    supreme_role_id: Optional[str],
    *,
    is_owner: bool = False,
) -> Rank:
    if is_owner:
        return Rank.SUPREME
    held = {str(item) for item in role_ids}
    if supreme_role_id and str(supreme_role_id) in held:
        return Rank.SUPREME
    if commander_role_id and str(commander_role_id) in held:
        return Rank.COMMANDER
    return Rank.CITIZEN


def top_role_position(positions: Sequence[int]) -> int:
    return max(positions) if positions else 0


def check_moderation(
    invoker_rank: Rank,
    bot_position: int,
    target_position: int,
    *,
    target_is_owner: bool = False,
    target_is_self: bool = False,
    target_is_bot: bool = False,
) -> PermissionDecision:
    """Gate for kick/ban/timeout.

    The invoker must be SUPREME, the target cannot be the owner, the invoker or the
    bot itself, and the bot's highest role has to sit strictly above the target's.
    """
    if invoker_rank < Rank.SUPREME:
        return PermissionDecision(False, SUPREME_REQUIRED)
    if target_is_self:
        return PermissionDecision(False, "You cannot use this on yourself.")
    if target_is_bot:
        return PermissionDecision(False, "I will not act against myself.")
    if target_is_owner:
        return PermissionDecision(False, "The server owner cannot be targeted.")
    if bot_position <= target_position:
        return PermissionDecision(False, "That member's top role is not below mine.")
    return ALLOWED


def can_manage_whitelist(rank: Rank) -> PermissionDecision:
    return ALLOWED if rank >= Rank.COMMANDER else PermissionDecision(False, COMMANDER_REQUIRED)


def can_view_memory(rank: Rank) -> PermissionDecision:
    return ALLOWED if rank >= Rank.COMMANDER else PermissionDecision(False, COMMANDER_REQUIRED)


def can_edit_memory(rank: Rank) -> PermissionDecision:
    return ALLOWED if rank >= Rank.SUPREME else PermissionDecision(False, SUPREME_REQUIRED)


def can_configure_roles(is_owner: bool) -> PermissionDecision:
    return ALLOWED if is_owner else PermissionDecision(False, OWNER_REQUIRED)


def is_protected_target(target_rank: Rank, target_position: int, bot_position: int) -> bool:
    return target_rank >= Rank.COMMANDER or target_position > bot_position


def channel_allowed(whitelist: Sequence[str], channel_id: str, parent_id: Optional[str] = None) -> bool:
    if not whitelist:
        return True
    allowed = {str(item) for item in whitelist}
    if str(channel_id) in allowed:
        return True
    return parent_id is not None and str(parent_id) in allowed
