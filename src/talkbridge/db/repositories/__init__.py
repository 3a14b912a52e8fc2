"""
Repository layer for database operations.

Provides a clean API for CRUD operations on database models.
"""

from talkbridge.db.repositories.base import BaseRepository
from talkbridge.db.repositories.conversation_session import ConversationSessionRepository
from talkbridge.db.repositories.document import DocumentRepository
from talkbridge.db.repositories.embedding import EmbeddingRepository
from talkbridge.db.repositories.message import MessageRepository
from talkbridge.db.repositories.setting import SettingRepository

__all__ = [
    "BaseRepository",
    "ConversationSessionRepository",
    "DocumentRepository",
    "EmbeddingRepository",
    "MessageRepository",
    "SettingRepository",
]
