"""
Message repository.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from talkbridge.db.repositories.base import BaseRepository
from talkbridge.models.db import Message, MessageRole


class MessageRepository(BaseRepository[Message]):
    """Repository for the append-only chat history."""

    def __init__(self, session: Session):
        super().__init__(Message, session)

    def append(self, user_id: str, target_id: str, role: str, content: str) -> Message:
        """
        Append a message to the history.

        Args:
            user_id: Author (for assistant messages, the user being answered)
            target_id: Chat id
            role: 'user' or 'assistant'
            content: Message text

        Returns:
            Created Message
        """
        if role not in (MessageRole.USER.value, MessageRole.ASSISTANT.value):
            raise ValueError(f"Invalid message role: {role}")
        return self.create(user_id=user_id, target_id=target_id, role=role, content=content)

    def get_history(
        self,
        target_id: str,
        user_id: Optional[str] = None,
        limit: int = 30,
    ) -> List[Message]:
        """
        Get the most recent messages of a chat, oldest first.

        Group chats share one history per chat; one-on-one chats are scoped
        to the user as well, so pass ``user_id`` for those.

        Args:
            target_id: Chat id
            user_id: Restrict to one user's conversation (one-on-one chats)
            limit: Window size

        Returns:
            Up to ``limit`` messages in chronological order
        """
        query = self.session.query(Message).filter(Message.target_id == target_id)
        if user_id is not None:
            query = query.filter(Message.user_id == user_id)
        recent = query.order_by(Message.created_at.desc(), Message.id.desc()).limit(limit).all()
        return list(reversed(recent))

    def count_for_target(self, target_id: str) -> int:
        """Count stored messages of a chat."""
        return (
            self.session.query(func.count(Message.id))
            .filter(Message.target_id == target_id)
            .scalar()
            or 0
        )

    def delete_for_target(self, target_id: str) -> int:
        """
        Delete all messages of a chat.

        Returns:
            Number of messages deleted
        """
        deleted = (
            self.session.query(Message)
            .filter(Message.target_id == target_id)
            .delete(synchronize_session="fetch")
        )
        self.session.flush()
        return deleted

    def get_stats(self, target_id: str) -> dict[str, object]:
        """
        Message statistics for a chat.

        Returns:
            Dict with total, per-role counts and first/last timestamps
        """
        rows = (
            self.session.query(
                Message.role,
                func.count(Message.id),
                func.min(Message.created_at),
                func.max(Message.created_at),
            )
            .filter(Message.target_id == target_id)
            .group_by(Message.role)
            .all()
        )

        by_role: dict[str, int] = {}
        first: Optional[datetime] = None
        last: Optional[datetime] = None
        for role, count, role_first, role_last in rows:
            by_role[role] = count
            if role_first is not None and (first is None or role_first < first):
                first = role_first
            if role_last is not None and (last is None or role_last > last):
                last = role_last

        return {
            "total": sum(by_role.values()),
            "user": by_role.get(MessageRole.USER.value, 0),
            "assistant": by_role.get(MessageRole.ASSISTANT.value, 0),
            "first_message_at": first,
            "last_message_at": last,
        }
