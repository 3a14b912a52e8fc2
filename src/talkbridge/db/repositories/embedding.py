"""
Embedding repository.

Stores chunk rows and their vectors. Similarity search lives in
``talkbridge.rag.vector_store``, which builds on :meth:`candidate_query`.
"""

import uuid
from typing import Any, Optional, Sequence

from sqlalchemy import distinct, func
from sqlalchemy.orm import Query, Session

from talkbridge.db.repositories.base import BaseRepository
from talkbridge.models.db import Document, DocumentChunk, DocumentStatus, Embedding


class EmbeddingRepository(BaseRepository[Embedding]):
    """Repository for document chunks and their embeddings."""

    def __init__(self, session: Session):
        super().__init__(Embedding, session)

    def add_chunk(
        self, document_id: uuid.UUID, chunk_index: int, content: str
    ) -> DocumentChunk:
        """Store one chunk of a document."""
        chunk = DocumentChunk(document_id=document_id, chunk_index=chunk_index, content=content)
        self.session.add(chunk)
        self.session.flush()
        return chunk

    def add_embedding(
        self,
        chunk: DocumentChunk,
        vector: Sequence[float],
        model: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Embedding:
        """
        Store the embedding for a chunk.

        Args:
            chunk: Chunk the vector belongs to
            vector: Embedding values
            model: Embedding model name
            metadata: Extra metadata (source filename, chunk index...)

        Returns:
            Created Embedding
        """
        values = [float(v) for v in vector]
        return self.create(
            chunk_id=chunk.id,
            vector=values,
            dimension=len(values),
            model=model,
            extra_metadata=metadata or {},
        )

    def delete_for_document(self, document_id: uuid.UUID) -> int:
        """
        Delete all chunks and embeddings of a document as one unit.

        Returns:
            Number of chunks deleted
        """
        chunk_ids = [
            row[0]
            for row in self.session.query(DocumentChunk.id)
            .filter(DocumentChunk.document_id == document_id)
            .all()
        ]
        if not chunk_ids:
            return 0
        self.session.query(Embedding).filter(Embedding.chunk_id.in_(chunk_ids)).delete(
            synchronize_session=False
        )
        deleted = (
            self.session.query(DocumentChunk)
            .filter(DocumentChunk.id.in_(chunk_ids))
            .delete(synchronize_session=False)
        )
        self.session.flush()
        self.session.expire_all()
        return deleted

    def candidate_query(
        self,
        document_ids: Optional[Sequence[uuid.UUID]] = None,
        filename_pattern: Optional[str] = None,
    ) -> Query:
        """
        Base query over searchable embeddings.

        Only embeddings of processed documents are candidates. Optional
        filters restrict the set before ranking.

        Args:
            document_ids: Only search these documents
            filename_pattern: Case-insensitive substring of the filename

        Returns:
            Query yielding (Embedding, DocumentChunk, Document) rows
        """
        query = (
            self.session.query(Embedding, DocumentChunk, Document)
            .join(DocumentChunk, Embedding.chunk_id == DocumentChunk.id)
            .join(Document, DocumentChunk.document_id == Document.id)
            .filter(Document.status == DocumentStatus.PROCESSED.value)
        )
        if document_ids:
            query = query.filter(Document.id.in_(list(document_ids)))
        if filename_pattern:
            query = query.filter(Document.filename.ilike(f"%{filename_pattern}%"))
        return query

    def get_dimension(self) -> Optional[int]:
        """Dimension of stored embeddings (None when empty)."""
        return self.session.query(Embedding.dimension).limit(1).scalar()

    def get_stats(self) -> dict[str, Any]:
        """
        Embedding statistics.

        Returns:
            Dict with embedding count, document count, average embeddings
            per document and the vector dimension
        """
        total = self.count()
        documents = (
            self.session.query(func.count(distinct(DocumentChunk.document_id)))
            .join(Embedding, Embedding.chunk_id == DocumentChunk.id)
            .scalar()
            or 0
        )
        return {
            "total_embeddings": total,
            "total_documents": documents,
            "avg_embeddings_per_document": round(total / documents, 2) if documents else 0.0,
            "dimension": self.get_dimension(),
        }
