"""
Retrieval and prompt augmentation.

:func:`augment_prompt` and :func:`augment_messages` are pure: they return
new values and never modify their inputs.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.orm import Session

from talkbridge.llm.gateway import LLMGateway
from talkbridge.rag.vector_store import SearchFilters, SearchMatch, VectorStore

logger = logging.getLogger(__name__)

CONTEXT_HEADER = "--- Knowledge Base Context ---"
CONTEXT_FOOTER = "--- End of Knowledge Base Context ---"
CONTEXT_INSTRUCTIONS = (
    "Use the following excerpts from the knowledge base when they are relevant "
    "to the user's question. They are reference material, not part of the "
    "conversation."
)
MAX_EXCERPT_CHARS = 500


@dataclass
class RetrievalResult:
    """Outcome of a retrieval query."""

    success: bool
    matches: list[SearchMatch] = field(default_factory=list)
    error: Optional[str] = None


def truncate_excerpt(content: str, limit: int = MAX_EXCERPT_CHARS) -> str:
    """Cut text at a word boundary near ``limit`` characters."""
    if len(content) <= limit:
        return content
    cut = content[:limit]
    space = cut.rfind(" ")
    if space > limit // 2:
        cut = cut[:space]
    return cut.rstrip() + "..."


def format_matches(matches: list[SearchMatch]) -> str:
    """Render matches as labeled excerpts."""
    sections = []
    for match in matches:
        relevance = max(0.0, match.score) * 100
        sections.append(
            f"--- {match.filename} (Relevance: {relevance:.1f}%) ---\n"
            f"{truncate_excerpt(match.content)}"
        )
    return "\n\n".join(sections)


def augment_prompt(system_prompt: str, matches: list[SearchMatch]) -> str:
    """
    Extend a system prompt with retrieved excerpts.

    Args:
        system_prompt: Original prompt
        matches: Retrieved chunks

    Returns:
        New prompt string; the original when there are no matches
    """
    if not matches:
        return system_prompt
    return (
        f"{system_prompt}\n\n{CONTEXT_HEADER}\n{CONTEXT_INSTRUCTIONS}\n\n"
        f"{format_matches(matches)}\n{CONTEXT_FOOTER}"
    )


def augment_messages(
    messages: list[dict[str, str]], matches: list[SearchMatch]
) -> list[dict[str, str]]:
    """
    Return a copy of a chat message list with the system prompt augmented.

    A system message is inserted at the front when the list has none.
    """
    augmented = copy.deepcopy(messages)
    if not matches:
        return augmented
    for message in augmented:
        if message.get("role") == "system":
            message["content"] = augment_prompt(message.get("content", ""), matches)
            return augmented
    return [{"role": "system", "content": augment_prompt("", matches).lstrip()}] + augmented


class Retriever:
    """Embeds a query and searches the vector store."""

    def __init__(
        self,
        session: Session,
        gateway: LLMGateway,
        embedding_model: Optional[str] = None,
        vector_store: Optional[VectorStore] = None,
        log: Optional[logging.Logger] = None,
    ):
        self.gateway = gateway
        self.embedding_model = embedding_model
        self.vector_store = vector_store or VectorStore(session)
        self.log = log or logger

    def retrieve(
        self, query: str, k: int = 3, filters: Optional[SearchFilters] = None
    ) -> RetrievalResult:
        """
        Find knowledge base chunks relevant to a query.

        Returns:
            RetrievalResult; ``success`` is False when the query could not be
            embedded (callers continue without context)
        """
        if not query.strip():
            return RetrievalResult(success=True)

        result = self.gateway.embedding(query, model=self.embedding_model)
        vector = result.embedding if result.ok else None
        if vector is None:
            error = result.error or "Empty embedding"
            self.log.warning(f"Retrieval skipped, query embedding failed: {error}")
            return RetrievalResult(success=False, error=error)

        matches = self.vector_store.search(vector, k=k, filters=filters)
        self.log.debug(f"Retrieved {len(matches)} chunk(s) for query")
        return RetrievalResult(success=True, matches=matches)
