"""
HTTP gateway to an OpenAI-compatible LLM API.

Provides chat completions, embeddings and model listing with bearer-token
auth, a total request timeout, retry with exponential backoff and optional
cross-process rate limiting. Upstream failures never raise: every call
returns a :class:`GatewayResult`.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx

from talkbridge.config import Settings
from talkbridge.llm.base import AttemptOutcome, GatewayResult
from talkbridge.llm.llm_logger import LLMLogger
from talkbridge.llm.rate_limit import NullRateLimiter, RateLimiter, create_rate_limiter
from talkbridge.llm.retry import PayloadValidator, RetryConfig, calculate_delay, classify_response

logger = logging.getLogger(__name__)


@dataclass
class GatewayConfig:
    """Configuration for the LLM gateway."""

    api_key: str
    endpoint: str = "https://chat-ai.academiccloud.de/v1"
    default_model: str = "meta-llama-3.1-8b-instruct"
    embedding_model: str = "e5-mistral-7b-instruct"
    timeout: float = 180.0

    @classmethod
    def from_settings(cls, config: Settings) -> "GatewayConfig":
        return cls(
            api_key=config.ai_api_key,
            endpoint=config.ai_api_endpoint,
            default_model=config.ai_default_model,
            embedding_model=config.ai_embedding_model,
            timeout=config.ai_request_timeout,
        )


def _validate_chat(data: Any) -> Optional[str]:
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return "Response is missing choices[0].message.content"
    if content is None:
        return "Response content is empty"
    return None


def _validate_embedding(data: Any) -> Optional[str]:
    try:
        vector = data["data"][0]["embedding"]
    except (KeyError, IndexError, TypeError):
        return "Response is missing data[0].embedding"
    if not isinstance(vector, list) or not vector:
        return "Embedding vector is empty"
    return None


def _validate_models(data: Any) -> Optional[str]:
    if not isinstance(data, dict) or not isinstance(data.get("data"), list):
        return "Response is missing the model list"
    return None


class LLMGateway:
    """
    Client for chat completion, embedding and model-listing endpoints.

    The retry loop is a plain state machine over :class:`AttemptOutcome`:
    each attempt is classified as success, retry or fail, and only
    ``retry`` outcomes consume backoff sleeps.
    """

    def __init__(
        self,
        config: GatewayConfig,
        retry_config: Optional[RetryConfig] = None,
        rate_limiter: Optional[RateLimiter] = None,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
        llm_logger: Optional[LLMLogger] = None,
        log: Optional[logging.Logger] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the gateway.

        Args:
            config: Endpoint, key, model defaults and the total timeout of
                one HTTP attempt
            retry_config: Retry policy (defaults to 3 attempts)
            rate_limiter: Limiter wrapping each HTTP attempt
            client: Pre-built httpx client (tests pass one with a mock transport)
            sleep: Sleep function used for backoff
            llm_logger: Optional request/response logger
            log: Logger to use instead of the module logger
            clock: Monotonic clock for the attempt deadline and durations
        """
        self.config = config
        self.retry_config = retry_config or RetryConfig()
        self.rate_limiter = rate_limiter or NullRateLimiter()
        self._sleep = sleep
        self._clock = clock
        self.llm_logger = llm_logger
        self.log = log or logger
        self._client = client or httpx.Client(timeout=httpx.Timeout(config.timeout))
        self._base_url = config.endpoint.rstrip("/")

    @classmethod
    def from_settings(cls, config: Settings, **kwargs: Any) -> "LLMGateway":
        """Build a gateway (with rate limiter and LLM logger) from settings."""
        kwargs.setdefault(
            "retry_config",
            RetryConfig(
                max_retries=config.ai_max_retries,
                initial_delay=config.ai_initial_backoff,
                max_delay=config.ai_max_backoff,
            ),
        )
        kwargs.setdefault(
            "rate_limiter",
            create_rate_limiter(
                config.rate_limit_enabled,
                config.rate_limit_lock_path,
                config.rate_limit_min_interval,
            ),
        )
        kwargs.setdefault("llm_logger", LLMLogger(config))
        return cls(GatewayConfig.from_settings(config), **kwargs)

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> "LLMGateway":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def chat_completion(
        self,
        messages: list[dict[str, str]],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        extra: Optional[dict[str, Any]] = None,
    ) -> GatewayResult:
        """
        Request a chat completion.

        Args:
            messages: OpenAI-style message list
            model: Model name (defaults to the configured model)
            temperature: Sampling temperature
            max_tokens: Maximum tokens in the completion
            extra: Additional request fields (top_p, stop, ...)

        Returns:
            GatewayResult; ``result.content`` holds the assistant text
        """
        payload: dict[str, Any] = {
            "model": model or self.config.default_model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        if extra:
            payload.update(extra)
        return self._request("POST", "/chat/completions", payload, _validate_chat)

    def embedding(self, text: str, model: Optional[str] = None) -> GatewayResult:
        """
        Request an embedding vector for a text.

        Returns:
            GatewayResult; ``result.embedding`` holds the vector
        """
        payload = {
            "input": text,
            "model": model or self.config.embedding_model,
            "encoding_format": "float",
        }
        return self._request("POST", "/embeddings", payload, _validate_embedding)

    def list_models(self) -> GatewayResult:
        """List models offered by the API (``result.data['data']``)."""
        return self._request("GET", "/models", None, _validate_models)

    def _send(
        self, method: str, url: str, payload: Optional[dict[str, Any]]
    ) -> httpx.Response:
        """
        Send one request and read its body within ``config.timeout`` in total.

        httpx timeouts bound each phase (connect, write, each read) on their
        own; a server trickling bytes could keep a plain request alive far
        longer. The body is streamed and the attempt abandoned once the whole
        request is older than the timeout.

        Raises:
            httpx.TimeoutException: Phase timeout or total deadline exceeded
            httpx.RequestError: Network failure
        """
        deadline = self._clock() + self.config.timeout
        with self._client.stream(
            method, url, json=payload, headers=self._headers, timeout=self.config.timeout
        ) as response:
            body = bytearray()
            for chunk in response.iter_bytes():
                body.extend(chunk)
                if self._clock() > deadline:
                    raise httpx.ReadTimeout(
                        f"Total timeout of {self.config.timeout:g}s exceeded",
                        request=response.request,
                    )
        # The body is already decoded
        headers = {
            key: value
            for key, value in response.headers.items()
            if key.lower() not in ("content-encoding", "content-length", "transfer-encoding")
        }
        return httpx.Response(
            response.status_code,
            headers=headers,
            content=bytes(body),
            request=response.request,
        )

    def _attempt(
        self,
        method: str,
        url: str,
        payload: Optional[dict[str, Any]],
        validator: PayloadValidator,
    ) -> AttemptOutcome:
        """Run one HTTP attempt and classify it."""
        try:
            with self.rate_limiter.slot():
                response = self._send(method, url, payload)
        except httpx.TimeoutException as e:
            return AttemptOutcome(AttemptOutcome.RETRY, error=f"Request timed out: {e}")
        except httpx.RequestError as e:
            return AttemptOutcome(AttemptOutcome.RETRY, error=f"Network error: {e}")
        return classify_response(response, self.retry_config, validator)

    def _request(
        self,
        method: str,
        path: str,
        payload: Optional[dict[str, Any]],
        validator: PayloadValidator,
    ) -> GatewayResult:
        url = f"{self._base_url}{path}"
        request_id = self.llm_logger.log_request(path, payload or {}) if self.llm_logger else ""
        max_attempts = max(1, self.retry_config.max_retries)
        started = self._clock()
        outcome = AttemptOutcome(AttemptOutcome.FAIL, error="No attempt made")
        attempt = 0

        while attempt < max_attempts:
            outcome = self._attempt(method, url, payload, validator)
            attempt += 1

            if outcome.kind == AttemptOutcome.SUCCESS:
                result = GatewayResult(
                    ok=True,
                    data=outcome.data,
                    status_code=outcome.status_code,
                    attempts=attempt,
                    duration_ms=(self._clock() - started) * 1000,
                )
                break

            if outcome.kind == AttemptOutcome.FAIL:
                self.log.error(f"LLM API {path} failed (non-retryable): {outcome.error}")
                result = GatewayResult(
                    ok=False,
                    status_code=outcome.status_code,
                    error=outcome.error,
                    retryable=False,
                    attempts=attempt,
                    duration_ms=(self._clock() - started) * 1000,
                )
                break

            if attempt < max_attempts:
                if outcome.retry_after is not None:
                    delay = min(outcome.retry_after, self.retry_config.max_delay)
                else:
                    delay = calculate_delay(attempt - 1, self.retry_config)
                self.log.warning(
                    f"LLM API {path} attempt {attempt}/{max_attempts} failed: "
                    f"{outcome.error}; retrying in {delay:.2f}s"
                )
                self._sleep(delay)
        else:
            self.log.error(
                f"LLM API {path} failed after {attempt} attempts: {outcome.error}"
            )
            result = GatewayResult(
                ok=False,
                status_code=outcome.status_code,
                error=f"Max retries exceeded: {outcome.error}",
                retryable=True,
                attempts=attempt,
                duration_ms=(self._clock() - started) * 1000,
            )

        if self.llm_logger:
            self.llm_logger.log_result(request_id, path, result)
        return result
