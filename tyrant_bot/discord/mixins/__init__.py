from .commands_mixin import CommandsMixin
from .identity_mixin import IdentityMixin
from .message_mixin import MessageMixin
from .moderation_mixin import ModerationMixin

__all__ = [
    "CommandsMixin",
    "IdentityMixin",
    "MessageMixin",
    "ModerationMixin",
]
