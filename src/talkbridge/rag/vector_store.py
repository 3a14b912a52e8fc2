"""
Similarity search over stored embeddings.

Two backends share one result contract:

- ``native``: PostgreSQL with the pgvector extension; candidates are
  ordered in SQL by cosine distance (ascending distance means descending
  similarity).
- ``fallback``: any database; candidate vectors are loaded and ranked by
  cosine similarity with numpy.

Both return matches sorted by score descending with ties broken by
embedding id, so callers never need to know which backend ran.
"""

import logging
import math
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from pgvector.sqlalchemy import Vector
from sqlalchemy import Float, Text, cast, func, literal, text
from sqlalchemy.orm import Query, Session

from talkbridge.db.repositories.embedding import EmbeddingRepository
from talkbridge.models.db import Embedding
from talkbridge.rag.similarity import cosine_similarities

logger = logging.getLogger(__name__)

BACKEND_AUTO = "auto"
BACKEND_NATIVE = "native"
BACKEND_FALLBACK = "fallback"


@dataclass
class SearchFilters:
    """Optional restrictions applied before ranking."""

    document_ids: Optional[Sequence[uuid.UUID]] = None
    filename_pattern: Optional[str] = None


@dataclass
class SearchMatch:
    """One ranked search hit."""

    embedding_id: int
    document_id: uuid.UUID
    filename: str
    chunk_index: int
    content: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)


class VectorStore:
    """Ranks stored chunks against a query vector."""

    def __init__(
        self,
        session: Session,
        backend: str = BACKEND_AUTO,
        log: Optional[logging.Logger] = None,
    ):
        """
        Args:
            session: Database session
            backend: 'auto' (detect pgvector), 'native' or 'fallback'
            log: Logger to use instead of the module logger
        """
        if backend not in (BACKEND_AUTO, BACKEND_NATIVE, BACKEND_FALLBACK):
            raise ValueError(f"Unknown vector backend: {backend}")
        self.session = session
        self.repository = EmbeddingRepository(session)
        self.log = log or logger
        self._backend = backend if backend != BACKEND_AUTO else None

    @property
    def backend(self) -> str:
        """Backend in use (detected on first access when 'auto')."""
        if self._backend is None:
            self._backend = BACKEND_NATIVE if self._has_pgvector() else BACKEND_FALLBACK
            self.log.info(f"Vector search backend: {self._backend}")
        return self._backend

    def _has_pgvector(self) -> bool:
        if self.session.get_bind().dialect.name != "postgresql":
            return False
        row = self.session.execute(
            text("SELECT 1 FROM pg_extension WHERE extname = 'vector'")
        ).first()
        return row is not None

    def search(
        self,
        query_vector: Sequence[float],
        k: int = 5,
        filters: Optional[SearchFilters] = None,
    ) -> list[SearchMatch]:
        """
        Find the ``k`` chunks most similar to a query vector.

        Only embeddings with the query's dimension are compared.

        Args:
            query_vector: Query embedding
            k: Number of matches to return
            filters: Optional document id / filename restrictions

        Returns:
            Matches sorted by score descending, ties by embedding id
        """
        if k <= 0 or not query_vector:
            return []
        if self.backend == BACKEND_NATIVE:
            return self._search_native(query_vector, k, filters)
        return self._search_fallback(query_vector, k, filters)

    def _candidates(self, dimension: int, filters: Optional[SearchFilters]):
        filters = filters or SearchFilters()
        return self.repository.candidate_query(
            document_ids=filters.document_ids,
            filename_pattern=filters.filename_pattern,
        ).filter(Embedding.dimension == dimension)

    def native_query(
        self, query_vector: Sequence[float], k: int, filters: Optional[SearchFilters] = None
    ) -> Query:
        """
        Query ranking candidates by pgvector cosine distance, then embedding id.

        pgvector yields NaN for zero-norm vectors; those rows get distance 1
        (similarity 0), which is how the fallback scores them.

        Returns:
            Query yielding (Embedding, DocumentChunk, Document, distance) rows
        """
        values = [float(v) for v in query_vector]
        raw_distance = cast(cast(Embedding.vector, Text), Vector(len(values))).cosine_distance(
            values
        )
        distance = func.coalesce(func.nullif(raw_distance, cast(literal("NaN"), Float)), 1.0)
        return (
            self._candidates(len(values), filters)
            .add_columns(distance.label("distance"))
            .order_by(distance, Embedding.id)
            .limit(k)
        )

    def _search_native(
        self, query_vector: Sequence[float], k: int, filters: Optional[SearchFilters]
    ) -> list[SearchMatch]:
        rows = self.native_query(query_vector, k, filters).all()
        return [
            _to_match(embedding, chunk, document, similarity_from_distance(dist))
            for embedding, chunk, document, dist in rows
        ]

    def _search_fallback(
        self, query_vector: Sequence[float], k: int, filters: Optional[SearchFilters]
    ) -> list[SearchMatch]:
        rows = self._candidates(len(query_vector), filters).order_by(Embedding.id).all()
        if not rows:
            return []

        scores = cosine_similarities(query_vector, [embedding.vector for embedding, _, _ in rows])
        ranked = sorted(
            zip(rows, scores), key=lambda item: (-float(item[1]), item[0][0].id)
        )
        return [
            _to_match(embedding, chunk, document, float(score))
            for (embedding, chunk, document), score in ranked[:k]
        ]

    def stats(self) -> dict[str, Any]:
        """Embedding statistics plus the backend in use."""
        stats = self.repository.get_stats()
        stats["backend"] = self.backend
        return stats


def similarity_from_distance(distance: Optional[float]) -> float:
    """Cosine similarity for a cosine distance; missing or NaN distances score 0."""
    if distance is None or math.isnan(distance):
        return 0.0
    return 1.0 - float(distance)


def _to_match(embedding, chunk, document, score: float) -> SearchMatch:
    return SearchMatch(
        embedding_id=embedding.id,
        document_id=document.id,
        filename=document.filename,
        chunk_index=chunk.chunk_index,
        content=chunk.content,
        score=score,
        metadata=dict(embedding.extra_metadata or {}),
    )
