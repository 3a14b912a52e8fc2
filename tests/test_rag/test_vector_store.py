"""Tests for the vector store (numpy fallback on SQLite, pgvector query compiled)."""

import re

import pytest
from sqlalchemy.dialects import postgresql

from talkbridge.db.repositories import DocumentRepository, EmbeddingRepository
from talkbridge.rag.vector_store import SearchFilters, VectorStore, similarity_from_distance


@pytest.fixture
def add_document(db_session):
    """Create a document whose chunks carry the given vectors."""

    def _add(filename: str, vectors: list[list[float]], status: str = "processed"):
        document = DocumentRepository(db_session).create(
            filename=filename,
            original_filename=filename,
            mime_type="text/plain",
            file_size=1,
            content="x",
            status=status,
        )
        repo = EmbeddingRepository(db_session)
        for index, vector in enumerate(vectors):
            chunk = repo.add_chunk(document.id, index, f"{filename} chunk {index}")
            repo.add_embedding(chunk, vector, metadata={"source": filename})
        return document

    return _add


class TestVectorStore:
    """Tests for VectorStore search."""

    def test_auto_backend_on_sqlite_is_fallback(self, db_session):
        assert VectorStore(db_session).backend == "fallback"

    def test_unknown_backend(self, db_session):
        with pytest.raises(ValueError):
            VectorStore(db_session, backend="faiss")

    def test_ranked_by_similarity(self, db_session, add_document):
        add_document("a.txt", [[1.0, 0.0], [0.0, 1.0], [0.7, 0.7]])

        matches = VectorStore(db_session).search([1.0, 0.0], k=3)

        assert [m.content for m in matches] == [
            "a.txt chunk 0",
            "a.txt chunk 2",
            "a.txt chunk 1",
        ]
        assert matches[0].score == pytest.approx(1.0)
        assert matches[0].filename == "a.txt"
        assert matches[0].metadata == {"source": "a.txt"}

    def test_k_limits_results(self, db_session, add_document):
        add_document("a.txt", [[1.0, 0.0], [0.9, 0.1], [0.5, 0.5]])

        assert len(VectorStore(db_session).search([1.0, 0.0], k=2)) == 2

    def test_ties_broken_by_embedding_id(self, db_session, add_document):
        add_document("a.txt", [[2.0, 0.0], [1.0, 0.0], [3.0, 0.0]])

        matches = VectorStore(db_session).search([1.0, 0.0], k=3)

        ids = [m.embedding_id for m in matches]
        assert ids == sorted(ids)

    def test_only_processed_documents(self, db_session, add_document):
        add_document("done.txt", [[0.0, 1.0]])
        add_document("draft.txt", [[1.0, 0.0]], status="pending")

        matches = VectorStore(db_session).search([1.0, 0.0], k=5)

        assert [m.filename for m in matches] == ["done.txt"]

    def test_other_dimensions_ignored(self, db_session, add_document):
        add_document("small.txt", [[1.0, 0.0]])
        add_document("large.txt", [[1.0, 0.0, 0.0]])

        matches = VectorStore(db_session).search([1.0, 0.0, 0.0], k=5)

        assert [m.filename for m in matches] == ["large.txt"]

    def test_document_filter(self, db_session, add_document):
        add_document("a.txt", [[1.0, 0.0]])
        wanted = add_document("b.txt", [[0.0, 1.0]])

        matches = VectorStore(db_session).search(
            [1.0, 0.0], k=5, filters=SearchFilters(document_ids=[wanted.id])
        )

        assert [m.document_id for m in matches] == [wanted.id]

    def test_filename_filter(self, db_session, add_document):
        add_document("policy.md", [[1.0, 0.0]])
        add_document("notes.md", [[1.0, 0.0]])

        matches = VectorStore(db_session).search(
            [1.0, 0.0], k=5, filters=SearchFilters(filename_pattern="POLICY")
        )

        assert [m.filename for m in matches] == ["policy.md"]

    def test_empty_query_or_k(self, db_session, add_document):
        add_document("a.txt", [[1.0, 0.0]])
        store = VectorStore(db_session)

        assert store.search([], k=3) == []
        assert store.search([1.0, 0.0], k=0) == []

    def test_stats_include_backend(self, db_session, add_document):
        add_document("a.txt", [[1.0, 0.0], [0.0, 1.0]])

        stats = VectorStore(db_session).stats()

        assert stats["backend"] == "fallback"
        assert stats["total_embeddings"] == 2

    def test_zero_vector_scores_zero(self, db_session, add_document):
        """A zero-norm row scores 0 and ranks between positive and negative matches."""
        add_document("a.txt", [[0.0, 0.0], [-1.0, 0.0], [1.0, 0.0]])

        matches = VectorStore(db_session).search([1.0, 0.0], k=3)

        assert [m.content for m in matches] == [
            "a.txt chunk 2",
            "a.txt chunk 0",
            "a.txt chunk 1",
        ]
        assert [m.score for m in matches] == pytest.approx([1.0, 0.0, -1.0])


class TestNativeQuery:
    """Tests for the pgvector query, compiled for PostgreSQL."""

    def _sql(self, db_session, **kwargs) -> str:
        query = VectorStore(db_session, backend="native").native_query([1.0, 0.0], k=3, **kwargs)
        return str(query.statement.compile(dialect=postgresql.dialect()))

    def test_orders_by_distance_then_embedding_id(self, db_session):
        sql = self._sql(db_session)

        assert "<=>" in sql
        assert "VECTOR(2)" in sql
        assert re.search(r"ORDER BY (distance|coalesce\(.*\)), embeddings\.id\s+LIMIT", sql, re.S)

    def test_nan_distance_mapped_to_one(self, db_session):
        sql = self._sql(db_session).lower()

        assert "coalesce(nullif(" in sql
        assert "as float)" in sql

    def test_filters_and_dimension_applied(self, db_session):
        sql = self._sql(db_session, filters=SearchFilters(filename_pattern="policy"))

        assert "documents.status" in sql
        assert "embeddings.dimension" in sql
        assert "ILIKE" in sql.upper()


class TestSimilarityFromDistance:
    """Tests for converting pgvector distances to scores."""

    def test_distance_to_similarity(self):
        assert similarity_from_distance(0.25) == pytest.approx(0.75)
        assert similarity_from_distance(2.0) == pytest.approx(-1.0)

    def test_nan_and_missing_score_zero(self):
        assert similarity_from_distance(float("nan")) == 0.0
        assert similarity_from_distance(None) == 0.0
