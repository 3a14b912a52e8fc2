"""Tests for retrieval and prompt augmentation."""

import copy
import uuid
from unittest.mock import MagicMock

from talkbridge.llm.base import GatewayResult
from talkbridge.rag.retriever import (
    CONTEXT_HEADER,
    Retriever,
    augment_messages,
    augment_prompt,
    format_matches,
    truncate_excerpt,
)
from talkbridge.rag.vector_store import SearchMatch, VectorStore


def _match(content: str = "Opening hours are 9 to 5.", score: float = 0.876) -> SearchMatch:
    return SearchMatch(
        embedding_id=1,
        document_id=uuid.uuid4(),
        filename="faq.md",
        chunk_index=0,
        content=content,
        score=score,
    )


class TestAugmentation:
    """Tests for the pure augmentation helpers."""

    def test_no_matches_returns_prompt_unchanged(self):
        assert augment_prompt("Be helpful.", []) == "Be helpful."

    def test_prompt_contains_labeled_excerpt(self):
        prompt = augment_prompt("Be helpful.", [_match()])

        assert prompt.startswith("Be helpful.")
        assert CONTEXT_HEADER in prompt
        assert "--- faq.md (Relevance: 87.6%) ---" in prompt
        assert "Opening hours are 9 to 5." in prompt

    def test_messages_not_mutated(self):
        messages = [
            {"role": "system", "content": "Be helpful."},
            {"role": "user", "content": "When are you open?"},
        ]
        original = copy.deepcopy(messages)

        augmented = augment_messages(messages, [_match()])

        assert messages == original
        assert CONTEXT_HEADER in augmented[0]["content"]
        assert augmented[1] == original[1]

    def test_system_message_inserted_when_missing(self):
        augmented = augment_messages([{"role": "user", "content": "Hi"}], [_match()])

        assert augmented[0]["role"] == "system"
        assert augmented[0]["content"].startswith(CONTEXT_HEADER)
        assert augmented[1] == {"role": "user", "content": "Hi"}

    def test_truncate_excerpt(self):
        text = "word " * 200

        excerpt = truncate_excerpt(text, limit=50)

        assert excerpt.endswith("...")
        assert len(excerpt) <= 53
        assert truncate_excerpt("short") == "short"

    def test_negative_score_shown_as_zero(self):
        assert "(Relevance: 0.0%)" in format_matches([_match(score=-0.3)])


class TestRetriever:
    """Tests for Retriever."""

    def test_retrieve_embeds_and_searches(self):
        gateway = MagicMock()
        gateway.embedding.return_value = GatewayResult(
            ok=True, data={"data": [{"embedding": [0.1, 0.2]}]}
        )
        store = MagicMock(spec=VectorStore)
        store.search.return_value = [_match()]

        result = Retriever(
            MagicMock(), gateway, embedding_model="embed-1", vector_store=store
        ).retrieve("opening hours", k=2)

        assert result.success
        assert len(result.matches) == 1
        gateway.embedding.assert_called_once_with("opening hours", model="embed-1")
        store.search.assert_called_once_with([0.1, 0.2], k=2, filters=None)

    def test_embedding_failure_degrades(self):
        gateway = MagicMock()
        gateway.embedding.return_value = GatewayResult(ok=False, error="down")
        store = MagicMock(spec=VectorStore)

        result = Retriever(MagicMock(), gateway, vector_store=store).retrieve("question")

        assert not result.success
        assert result.matches == []
        assert result.error == "down"
        store.search.assert_not_called()

    def test_blank_query_skips_embedding(self):
        gateway = MagicMock()

        result = Retriever(MagicMock(), gateway, vector_store=MagicMock()).retrieve("   ")

        assert result.success
        gateway.embedding.assert_not_called()
