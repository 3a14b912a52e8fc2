"""
Typed snapshot of the runtime-editable bot settings.

The admin side writes plain key/value strings into the ``bot_settings``
table. The conversation engine and the worker read them once per message
or job through :meth:`BotSettings.from_mapping`, so every consumer works
with validated, typed values instead of raw strings.
"""

import json
import logging
from typing import Any, Mapping

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant in a Nextcloud Talk chat. "
    "Answer concisely and in the language of the user."
)

DEFAULT_GROUP_QUESTIONS = [
    "What is the main purpose of this group?",
    "What topics should I help with here?",
]

DEFAULT_DM_QUESTIONS = [
    "What would you like me to help you with?",
]

# Keys that may hold a list of questions
LIST_KEYS = ("onboarding_group_questions", "onboarding_dm_questions")


class BotSettings(BaseModel):
    """Validated bot configuration, read-only for the duration of one message."""

    model_config = {"frozen": True}

    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    model: str = "meta-llama-3.1-8b-instruct"
    onboarding_group_questions: list[str] = Field(
        default_factory=lambda: list(DEFAULT_GROUP_QUESTIONS)
    )
    onboarding_dm_questions: list[str] = Field(
        default_factory=lambda: list(DEFAULT_DM_QUESTIONS)
    )
    bot_mention: str = "@assistant"
    rag_chunk_size: int = Field(default=1000, ge=1)
    rag_chunk_overlap: int = Field(default=200, ge=0)
    temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1024, ge=1)
    rag_enabled: bool = True
    rag_top_k: int = Field(default=3, ge=1)
    embedding_model: str = "e5-mistral-7b-instruct"
    history_limit: int = Field(default=30, ge=1)

    @classmethod
    def recognized_keys(cls) -> tuple[str, ...]:
        """Setting keys understood by the bot."""
        return tuple(cls.model_fields)

    def questions_for(self, is_group_chat: bool) -> list[str]:
        """Onboarding question list for a chat type."""
        if is_group_chat:
            return list(self.onboarding_group_questions)
        return list(self.onboarding_dm_questions)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "BotSettings":
        """
        Build a snapshot from raw key/value settings.

        Unknown keys are ignored. Empty strings mean "use the default".
        A value that fails validation is dropped (with a warning) so a single
        bad admin edit cannot take the bot offline.

        Args:
            raw: Mapping of setting key to stored value

        Returns:
            BotSettings snapshot
        """
        values: dict[str, Any] = {}
        for key in cls.recognized_keys():
            if key not in raw:
                continue
            value = raw[key]
            if value is None or (isinstance(value, str) and not value.strip()):
                continue
            if key in LIST_KEYS:
                value = _parse_question_list(value)
            values[key] = value

        try:
            return cls(**values)
        except ValidationError as e:
            bad_keys = {str(err["loc"][0]) for err in e.errors() if err["loc"]}
            logger.warning(
                f"Ignoring invalid bot settings {sorted(bad_keys)}: {e.error_count()} error(s)"
            )
            cleaned = {k: v for k, v in values.items() if k not in bad_keys}
            return cls(**cleaned)


def _parse_question_list(value: Any) -> list[str]:
    """Accept a JSON array, a list, or newline separated text."""
    if isinstance(value, list):
        items = value
    else:
        text = str(value).strip()
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            items = parsed
        else:
            items = text.splitlines()
    return [str(item).strip() for item in items if str(item).strip()]
