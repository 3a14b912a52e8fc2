"""Database models and typed settings for TalkBridge."""

from talkbridge.models.bot_settings import BotSettings
from talkbridge.models.db import (
    Base,
    BotSetting,
    ConversationSession,
    Document,
    DocumentChunk,
    DocumentStatus,
    Embedding,
    Job,
    JobStatus,
    Message,
    MessageRole,
)

__all__ = [
    "Base",
    "BotSetting",
    "BotSettings",
    "ConversationSession",
    "Document",
    "DocumentChunk",
    "DocumentStatus",
    "Embedding",
    "Job",
    "JobStatus",
    "Message",
    "MessageRole",
]
