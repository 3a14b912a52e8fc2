"""Nextcloud Talk bot integration: webhook parsing, signing and reply delivery."""

from talkbridge.talk.client import TalkClient, TalkConfig
from talkbridge.talk.payload import InboundMessage, parse_activity, unwrap_message
from talkbridge.talk.signing import sign, verify_signature

__all__ = [
    "InboundMessage",
    "TalkClient",
    "TalkConfig",
    "parse_activity",
    "sign",
    "unwrap_message",
    "verify_signature",
]
