"""
LLM interaction logging.

Writes one JSON record per gateway request, response and terminal error to
a dedicated rotating log file when LLM logging is enabled. Message bodies
are reduced to short previews.
"""

import json
import logging
import logging.handlers
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from talkbridge.config import Settings, settings
from talkbridge.llm.base import GatewayResult

logger = logging.getLogger(__name__)


def _preview(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


class LLMLogger:
    """Logger for LLM API interactions (separate file, no propagation)."""

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or settings
        self.llm_logger = logging.getLogger("talkbridge.llm.requests")
        self.enabled = self.config.llm_logging_enabled

        if self.enabled and self.config.log_file_enabled and not self.llm_logger.handlers:
            self._setup_file_handler()

    def _setup_file_handler(self) -> None:
        """Setup dedicated file handler for LLM logs."""
        llm_dir = self.config.log_directory / "llm"
        llm_dir.mkdir(parents=True, exist_ok=True)

        handler = logging.handlers.RotatingFileHandler(
            llm_dir / "requests.log",
            maxBytes=self.config.log_max_bytes,
            backupCount=self.config.log_backup_count,
            encoding="utf-8",
        )
        handler.setFormatter(
            logging.Formatter(
                fmt="[%(asctime)s] [%(levelname)s] %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        self.llm_logger.addHandler(handler)
        self.llm_logger.setLevel(logging.INFO)
        self.llm_logger.propagate = False

    def log_request(self, endpoint: str, payload: dict[str, Any]) -> str:
        """
        Log an outgoing request.

        Args:
            endpoint: Path such as '/chat/completions'
            payload: JSON body (only sizes and previews are logged)

        Returns:
            Request id for correlating the response ('' when disabled)
        """
        if not self.enabled or not self.config.llm_log_requests:
            return ""

        request_id = f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"
        entry: dict[str, Any] = {
            "type": "request",
            "request_id": request_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "endpoint": endpoint,
            "model": payload.get("model"),
        }
        messages = payload.get("messages")
        if isinstance(messages, list):
            entry["message_count"] = len(messages)
            if messages:
                entry["last_message_preview"] = _preview(
                    str(messages[-1].get("content", "")), 200
                )
        if "input" in payload:
            entry["input_length"] = len(str(payload["input"]))
        for key in ("temperature", "max_tokens"):
            if key in payload:
                entry[key] = payload[key]

        self.llm_logger.info(f"REQUEST: {json.dumps(entry)}")
        return request_id

    def log_result(self, request_id: str, endpoint: str, result: GatewayResult) -> None:
        """Log the final result of a logical call."""
        if not self.enabled:
            return

        entry: dict[str, Any] = {
            "request_id": request_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "endpoint": endpoint,
            "status_code": result.status_code,
            "attempts": result.attempts,
            "duration_ms": round(result.duration_ms, 2),
        }

        if not result.ok:
            entry["type"] = "error"
            entry["error_message"] = result.error
            entry["retryable"] = result.retryable
            self.llm_logger.error(f"ERROR: {json.dumps(entry)}")
            return

        if not self.config.llm_log_responses:
            return

        entry["type"] = "response"
        if result.usage:
            entry["tokens"] = {
                "prompt": result.usage.get("prompt_tokens"),
                "completion": result.usage.get("completion_tokens"),
                "total": result.usage.get("total_tokens"),
            }
        content = result.content
        if content:
            entry["content_length"] = len(content)
            entry["content_preview"] = _preview(content, 200)
        self.llm_logger.info(f"RESPONSE: {json.dumps(entry)}")
