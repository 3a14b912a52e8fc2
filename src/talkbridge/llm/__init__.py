"""LLM API gateway: chat completions, embeddings, retry and rate limiting."""

from talkbridge.llm.base import GatewayResult
from talkbridge.llm.gateway import GatewayConfig, LLMGateway
from talkbridge.llm.rate_limit import (
    FileLockRateLimiter,
    NullRateLimiter,
    RateLimiter,
    create_rate_limiter,
)
from talkbridge.llm.retry import RetryConfig

__all__ = [
    "FileLockRateLimiter",
    "GatewayConfig",
    "GatewayResult",
    "LLMGateway",
    "NullRateLimiter",
    "RateLimiter",
    "RetryConfig",
    "create_rate_limiter",
]
