"""
Chunk embedding with partial-success reporting.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.orm import Session

from talkbridge.db.repositories.embedding import EmbeddingRepository
from talkbridge.llm.gateway import LLMGateway

logger = logging.getLogger(__name__)


@dataclass
class EmbeddingBatchResult:
    """Outcome of embedding all chunks of one document."""

    success: bool
    stored: int = 0
    failed_chunks: list[int] = field(default_factory=list)
    errors: dict[int, str] = field(default_factory=dict)


class EmbeddingService:
    """Requests embeddings through the gateway and stores them."""

    def __init__(
        self,
        session: Session,
        gateway: LLMGateway,
        model: Optional[str] = None,
        log: Optional[logging.Logger] = None,
    ):
        self.session = session
        self.gateway = gateway
        self.model = model
        self.repository = EmbeddingRepository(session)
        self.log = log or logger

    def embed(self, text: str) -> Optional[list[float]]:
        """
        Get the embedding vector for a text.

        Returns:
            Vector, or None when the gateway call failed
        """
        result = self.gateway.embedding(text, model=self.model)
        if not result.ok:
            self.log.warning(f"Embedding request failed: {result.error}")
            return None
        return result.embedding

    def embed_chunks(
        self, document_id: uuid.UUID, filename: str, chunks: list[str]
    ) -> EmbeddingBatchResult:
        """
        Store every chunk of a document and embed each one.

        A failed chunk is logged and skipped; the batch continues.

        Args:
            document_id: Owning document
            filename: Source filename recorded in embedding metadata
            chunks: Chunk texts, stored with zero-based contiguous indexes

        Returns:
            EmbeddingBatchResult with the failed chunk indexes
        """
        result = EmbeddingBatchResult(success=True)

        for index, content in enumerate(chunks):
            chunk = self.repository.add_chunk(document_id, index, content)
            gateway_result = self.gateway.embedding(content, model=self.model)
            vector = gateway_result.embedding if gateway_result.ok else None

            if vector is None:
                error = gateway_result.error or "Empty embedding"
                self.log.warning(
                    f"Failed to embed chunk {index} of document {document_id}: {error}"
                )
                result.failed_chunks.append(index)
                result.errors[index] = error
                continue

            self.repository.add_embedding(
                chunk,
                vector,
                model=self.model or self.gateway.config.embedding_model,
                metadata={"source": filename, "chunk_index": index},
            )
            result.stored += 1

        result.success = not result.failed_chunks
        return result
