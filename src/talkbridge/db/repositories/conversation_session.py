"""
Conversation session repository.
"""

from typing import Optional

from sqlalchemy.orm import Session

from talkbridge.db.repositories.base import BaseRepository
from talkbridge.models.db import ConversationSession


class ConversationSessionRepository(BaseRepository[ConversationSession]):
    """Repository for ConversationSession model."""

    def __init__(self, session: Session):
        super().__init__(ConversationSession, session)

    def get_by_target(self, target_id: str) -> Optional[ConversationSession]:
        """
        Get the session for a chat.

        Args:
            target_id: Chat (room) id

        Returns:
            ConversationSession or None
        """
        return (
            self.session.query(ConversationSession)
            .filter(ConversationSession.target_id == target_id)
            .first()
        )

    def get_or_create(self, target_id: str) -> ConversationSession:
        """
        Get the session for a chat, creating a NEW one if unknown.

        Args:
            target_id: Chat (room) id

        Returns:
            Existing or newly created session (step 0)
        """
        existing = self.get_by_target(target_id)
        if existing:
            return existing
        return self.create(
            target_id=target_id,
            is_group_chat=False,
            requires_mention=False,
            onboarding_step=0,
            current_question_index=0,
            onboarding_answers={},
            settings={},
        )

    def delete_by_target(self, target_id: str) -> int:
        """
        Hard-delete the session for a chat.

        Returns:
            Number of rows deleted (0 or 1)
        """
        deleted = (
            self.session.query(ConversationSession)
            .filter(ConversationSession.target_id == target_id)
            .delete(synchronize_session="fetch")
        )
        self.session.flush()
        return deleted
