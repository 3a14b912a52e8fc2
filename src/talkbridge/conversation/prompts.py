"""User-facing texts and system prompt assembly."""

from datetime import datetime
from typing import Any, Mapping

APOLOGY = (
    "I apologize, but I encountered an error processing your message. "
    "Please try again."
)

RESET_CONFIRMATION = (
    "Are you sure you want to reset all configurations and message history for "
    'this chat? This cannot be undone. Please answer with "YES" to confirm, or '
    "anything else to cancel."
)
RESET_DONE = (
    "Configuration and message history for this chat have been reset. "
    "We can start fresh now! Send any message to begin onboarding."
)
RESET_CANCELLED = "Reset cancelled. Let's continue where we left off."

MENTION_POLICY_REPROMPT = (
    "Sorry, I didn't understand that. Please reply with 'every' or 'mentioned'."
)
CHAT_TYPE_QUESTION = (
    "Got it. Is this a one-on-one chat with you, or a group chat? "
    "Reply with 'one-on-one' or 'group'."
)
CHAT_TYPE_REPROMPT = (
    "Sorry, I didn't understand that. Please reply with 'one-on-one' or 'group'."
)
ONBOARDING_COMPLETE = "Thanks for answering those questions! I'm all set up for this chat."


def mention_policy_question(bot_mention: str) -> str:
    """First onboarding question, naming the mention string."""
    return (
        "Welcome! To start, should I respond to every message in this chat, or "
        f"only when I'm mentioned ({bot_mention})? Reply with 'every' or 'mentioned'."
    )


def completion_message(is_group_chat: bool, requires_mention: bool, bot_mention: str) -> str:
    """Message sent when onboarding finishes."""
    if is_group_chat and requires_mention:
        return f"{ONBOARDING_COMPLETE} Mention me with {bot_mention} whenever you need me."
    return ONBOARDING_COMPLETE


def build_system_prompt(
    base_prompt: str,
    user_name: str,
    target_id: str,
    onboarding_answers: Mapping[str, Any],
    now: datetime,
) -> str:
    """
    Assemble the system prompt for a generation request.

    Prepends the current time, the user and chat, and the onboarding
    answers (as Q/A pairs) to the configured base prompt.
    """
    lines = [
        f"Current Time: {now.strftime('%Y-%m-%d %H:%M:%S %Z').strip()}",
        f"User Name: {user_name}",
        f"Target ID: {target_id}",
    ]
    if onboarding_answers:
        lines.append("")
        lines.append("--- Onboarding Information for this Chat ---")
        for question, answer in onboarding_answers.items():
            lines.append(f"Q: {question}")
            lines.append(f"A: {answer}")
        lines.append("--- End of Onboarding Information ---")
    lines.append("")
    lines.append(base_prompt)
    return "\n".join(lines)
