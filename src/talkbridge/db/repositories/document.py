"""
Document repository.
"""

import uuid
from typing import List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from talkbridge.db.repositories.base import BaseRepository
from talkbridge.models.db import Document, DocumentStatus


class DocumentRepository(BaseRepository[Document]):
    """Repository for knowledge base documents."""

    def __init__(self, session: Session):
        super().__init__(Document, session)

    def get_by_status(self, status: str, limit: Optional[int] = None) -> List[Document]:
        """
        Get documents with a given status, oldest first.

        Args:
            status: One of 'uploaded', 'pending', 'processed', 'failed'
            limit: Maximum number of records

        Returns:
            List of documents
        """
        query = (
            self.session.query(Document)
            .filter(Document.status == status)
            .order_by(Document.created_at, Document.id)
        )
        if limit:
            query = query.limit(limit)
        return query.all()

    def get_recent(self, limit: int = 50, offset: int = 0) -> List[Document]:
        """Get recently uploaded documents."""
        return (
            self.session.query(Document)
            .order_by(desc(Document.created_at))
            .offset(offset)
            .limit(limit)
            .all()
        )

    def set_status(
        self, document_id: uuid.UUID, status: DocumentStatus, error: Optional[str] = None
    ) -> Optional[Document]:
        """
        Update a document's processing status.

        Args:
            document_id: Document UUID
            status: New status
            error: Failure reason, or the failed chunks of a partially
                processed document (cleared when None)

        Returns:
            Updated document or None if not found
        """
        document = self.get(document_id)
        if not document:
            return None
        return self.update(document, status=status.value, error_message=error)
