"""
Inbound Nextcloud Talk webhook payloads.

Talk posts Activity Streams 2.0 objects. Chat messages arrive as ``Create``
activities whose ``object.content`` is itself a JSON string holding the
message text and rich-object parameters (mentions, files...).
"""

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from talkbridge.exceptions import WebhookPayloadError

logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r"\{([A-Za-z0-9_-]+)\}")


class _Actor(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str = ""
    id: str
    name: str = ""


class _Object(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str = ""
    id: str | int
    name: str = ""
    content: Any = ""
    mediaType: str = ""
    published: Optional[datetime] = None


class _Target(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str = ""
    id: str
    name: str = ""


class TalkActivity(BaseModel):
    """Activity Streams envelope posted by Talk."""

    model_config = ConfigDict(extra="ignore")

    type: str
    actor: _Actor
    object: _Object
    target: _Target
    published: Optional[datetime] = None


@dataclass
class InboundMessage:
    """A chat message addressed to the bot."""

    message: str
    user_id: str
    user_name: str
    target_id: str
    message_id: Optional[int] = None
    timestamp: Optional[datetime] = None


def unwrap_message(content: Any) -> str:
    """
    Extract plain text from a (possibly JSON-wrapped) message body.

    ``{"message": "...", "parameters": {...}}`` is unwrapped and
    placeholders such as ``{mention-user1}`` are replaced with ``@Name``.
    Anything that does not look like that envelope is returned as text.
    """
    data = content
    if isinstance(content, str):
        stripped = content.strip()
        if not stripped.startswith("{"):
            return content
        try:
            data = json.loads(stripped)
        except json.JSONDecodeError:
            return content

    if not isinstance(data, dict) or "message" not in data:
        return content if isinstance(content, str) else json.dumps(content)

    message = str(data.get("message") or "")
    parameters = data.get("parameters")
    if not isinstance(parameters, dict):
        return message

    def _replace(match: re.Match) -> str:
        param = parameters.get(match.group(1))
        if not isinstance(param, dict):
            return match.group(0)
        name = param.get("name") or param.get("id") or ""
        if param.get("type") in ("user", "guest", "call", "user-group", "group"):
            return f"@{name}"
        return str(name) or match.group(0)

    return _PLACEHOLDER_RE.sub(_replace, message)


def parse_activity(body: bytes | str) -> Optional[InboundMessage]:
    """
    Parse a webhook body into an inbound message.

    Returns:
        InboundMessage for chat messages, None for other activity types
        (joins, leaves, reactions)

    Raises:
        WebhookPayloadError: If the body is not a valid Talk activity
    """
    try:
        activity = TalkActivity.model_validate_json(body)
    except ValidationError as e:
        raise WebhookPayloadError(f"Invalid webhook payload: {e.error_count()} error(s)") from e

    if activity.type != "Create":
        logger.debug(f"Ignoring Talk activity of type {activity.type}")
        return None

    object_id = str(activity.object.id)
    return InboundMessage(
        message=unwrap_message(activity.object.content),
        user_id=activity.actor.id,
        user_name=activity.actor.name or activity.actor.id,
        target_id=activity.target.id,
        message_id=int(object_id) if object_id.isdigit() else None,
        timestamp=_published_at(activity),
    )


def _published_at(activity: TalkActivity) -> Optional[datetime]:
    """Publication time of the message (object first, then activity), in UTC."""
    published = activity.object.published or activity.published
    if published is None:
        return None
    if published.tzinfo is None:
        return published.replace(tzinfo=timezone.utc)
    return published.astimezone(timezone.utc)
