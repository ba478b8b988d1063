"""autoreply - agent turns in, ordered replies out."""

from .reply import FollowupQueue, FollowupRun, FollowupRunner, ReplyDispatcher, TypingController
from .types import DispatchInfo, ReplyPayload

__version__ = "0.1.0"

__all__ = [
    "DispatchInfo",
    "FollowupQueue",
    "FollowupRun",
    "FollowupRunner",
    "ReplyDispatcher",
    "ReplyPayload",
    "TypingController",
]
