"""Reply pipeline: typing indicator, ordered dispatch and followup turns."""

from autoreply.reply.dispatcher import ReplyDispatcher, normalize_reply_payload
from autoreply.reply.followup import FollowupRun, FollowupRunner, sanitize_agent_payloads
from autoreply.reply.heartbeat import StripResult, strip_heartbeat_token
from autoreply.reply.queue import FollowupQueue
from autoreply.reply.tags import ReplyTagResult, extract_reply_to_tag
from autoreply.reply.typing import TypingController, TypingState, advance

__all__ = [
    "FollowupQueue",
    "FollowupRun",
    "FollowupRunner",
    "ReplyDispatcher",
    "ReplyTagResult",
    "StripResult",
    "TypingController",
    "TypingState",
    "advance",
    "extract_reply_to_tag",
    "normalize_reply_payload",
    "sanitize_agent_payloads",
    "strip_heartbeat_token",
]
