"""Retrieval-augmented generation: chunking, embedding, search and augmentation."""

from talkbridge.rag.chunker import chunk_text
from talkbridge.rag.documents import DocumentProcessor
from talkbridge.rag.embedding_service import EmbeddingBatchResult, EmbeddingService
from talkbridge.rag.retriever import RetrievalResult, Retriever, augment_messages, augment_prompt
from talkbridge.rag.similarity import cosine_similarity
from talkbridge.rag.vector_store import SearchFilters, SearchMatch, VectorStore

__all__ = [
    "DocumentProcessor",
    "EmbeddingBatchResult",
    "EmbeddingService",
    "RetrievalResult",
    "Retriever",
    "SearchFilters",
    "SearchMatch",
    "VectorStore",
    "augment_messages",
    "augment_prompt",
    "chunk_text",
    "cosine_similarity",
]
