"""Result types returned by the LLM gateway."""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class GatewayResult:
    """Outcome of one logical gateway call (after all retries).

    Attributes:
        ok: True when the upstream returned a usable payload
        data: Parsed JSON payload of the successful response
        status_code: HTTP status of the last attempt (None for network errors)
        error: Error message when not ok (upstream message for 4xx)
        retryable: Whether the final error was of a transient kind
        attempts: Number of HTTP attempts made
        duration_ms: Wall time across all attempts
    """

    ok: bool
    data: dict[str, Any] = field(default_factory=dict)
    status_code: Optional[int] = None
    error: Optional[str] = None
    retryable: bool = False
    attempts: int = 0
    duration_ms: float = 0.0

    @property
    def content(self) -> Optional[str]:
        """Assistant text of a chat completion response."""
        try:
            return self.data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            return None

    @property
    def embedding(self) -> Optional[list[float]]:
        """Vector of an embeddings response."""
        try:
            return [float(v) for v in self.data["data"][0]["embedding"]]
        except (KeyError, IndexError, TypeError, ValueError):
            return None

    @property
    def usage(self) -> dict[str, Any]:
        """Token usage block when the API reports one."""
        usage = self.data.get("usage") if isinstance(self.data, dict) else None
        return usage if isinstance(usage, dict) else {}


@dataclass
class AttemptOutcome:
    """Classification of a single HTTP attempt.

    ``kind`` is one of ``success``, ``retry`` or ``fail``. ``retry_after``
    carries the server's delay hint (seconds) when one was given.
    """

    kind: str
    data: dict[str, Any] = field(default_factory=dict)
    status_code: Optional[int] = None
    error: Optional[str] = None
    retry_after: Optional[float] = None

    SUCCESS = "success"
    RETRY = "retry"
    FAIL = "fail"
