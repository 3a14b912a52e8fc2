"""
Reply delivery to Nextcloud Talk.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from talkbridge.config import Settings
from talkbridge.exceptions import ReplyDeliveryError
from talkbridge.talk.signing import generate_random, sign

logger = logging.getLogger(__name__)

# Talk rejects chat messages longer than this
MAX_MESSAGE_LENGTH = 32000


@dataclass
class TalkConfig:
    """Configuration for the Talk bot client."""

    server: str
    secret: str
    timeout: float = 30.0

    @classmethod
    def from_settings(cls, config: Settings) -> "TalkConfig":
        return cls(
            server=config.talk_server,
            secret=config.talk_bot_secret,
            timeout=config.talk_timeout,
        )

    @property
    def base_url(self) -> str:
        server = self.server.rstrip("/")
        if server.startswith(("http://", "https://")):
            return server
        return f"https://{server}"


class TalkClient:
    """Posts signed bot messages into Talk conversations."""

    def __init__(self, config: TalkConfig, client: Optional[httpx.Client] = None):
        self.config = config
        self._client = client or httpx.Client(timeout=config.timeout)

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> "TalkClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def message_url(self, target_id: str) -> str:
        return f"{self.config.base_url}/ocs/v2.php/apps/spreed/api/v1/bot/{target_id}/message"

    def send_reply(
        self, target_id: str, message: str, reply_to: Optional[int] = None
    ) -> None:
        """
        Post a message to a conversation.

        The signature covers ``random + message`` (the text, not the JSON
        body). Every request gets a fresh reference id, so a retried delivery
        is a new message.

        Args:
            target_id: Conversation token
            message: Text to post
            reply_to: Id of the message being answered

        Raises:
            ReplyDeliveryError: On network errors or a non-2xx response
        """
        if not self.config.server or not self.config.secret:
            raise ReplyDeliveryError("Talk server or bot secret not configured")

        message = message[:MAX_MESSAGE_LENGTH]
        random = generate_random()
        body: dict[str, Any] = {
            "message": message,
            "referenceId": generate_random(),
            "silent": False,
        }
        if reply_to is not None:
            body["replyTo"] = reply_to

        headers = {
            "OCS-APIRequest": "true",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-Nextcloud-Talk-Bot-Random": random,
            "X-Nextcloud-Talk-Bot-Signature": sign(self.config.secret, random, message),
        }

        try:
            response = self._client.post(self.message_url(target_id), json=body, headers=headers)
        except httpx.RequestError as e:
            raise ReplyDeliveryError(f"Failed to reach Talk server: {e}") from e

        if response.status_code >= 400:
            raise ReplyDeliveryError(
                f"Talk rejected reply with HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        logger.debug(f"Delivered reply to {target_id} (HTTP {response.status_code})")
