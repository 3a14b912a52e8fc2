"""
Onboarding state machine definition.

The engine classifies each inbound message into an :class:`InputKind`
for the session's current :class:`OnboardingStep` and looks up the
:class:`Transition` in :data:`TRANSITIONS`. Keeping the table as data makes
every state/input pair enumerable in tests.
"""

import enum
import re
from dataclasses import dataclass
from typing import Optional


class OnboardingStep(int, enum.Enum):
    """Value of ``ConversationSession.onboarding_step``."""

    RESET_CONFIRM = -1
    NEW = 0
    ASK_MENTION_POLICY = 1
    ASK_CHAT_TYPE = 2
    CUSTOM_QUESTIONS = 3
    ACTIVE = 4


class InputKind(str, enum.Enum):
    """What an inbound message means in the current step."""

    RESET = "reset"
    CONFIRM_YES = "confirm_yes"
    EVERY = "every"
    MENTIONED = "mentioned"
    ONE_ON_ONE = "one_on_one"
    GROUP = "group"
    UNRECOGNIZED = "unrecognized"
    ANY = "any"


class Action(str, enum.Enum):
    """Side effect performed by a transition."""

    CONFIRM_RESET = "confirm_reset"
    WIPE = "wipe"
    CANCEL_RESET = "cancel_reset"
    ASK_MENTION_POLICY = "ask_mention_policy"
    SET_MENTION_POLICY = "set_mention_policy"
    REPROMPT_MENTION_POLICY = "reprompt_mention_policy"
    SET_CHAT_TYPE = "set_chat_type"
    REPROMPT_CHAT_TYPE = "reprompt_chat_type"
    ASK_CUSTOM_QUESTION = "ask_custom_question"
    ANSWER = "answer"


@dataclass(frozen=True)
class Transition:
    """Next step and side effect for one (step, input) pair.

    ``next_step`` is None when the action decides it (restoring the
    pre-reset step, or finishing the custom questions).
    """

    next_step: Optional[OnboardingStep]
    action: Action


_EVERY_RE = re.compile(r"every", re.IGNORECASE)
_MENTIONED_RE = re.compile(r"mentioned", re.IGNORECASE)
_ONE_ON_ONE_RE = re.compile(r"one-on-one", re.IGNORECASE)
_GROUP_RE = re.compile(r"group", re.IGNORECASE)

S = OnboardingStep
K = InputKind

TRANSITIONS: dict[tuple[OnboardingStep, InputKind], Transition] = {
    (S.RESET_CONFIRM, K.CONFIRM_YES): Transition(S.NEW, Action.WIPE),
    (S.RESET_CONFIRM, K.UNRECOGNIZED): Transition(None, Action.CANCEL_RESET),
    (S.NEW, K.ANY): Transition(S.ASK_MENTION_POLICY, Action.ASK_MENTION_POLICY),
    (S.ASK_MENTION_POLICY, K.EVERY): Transition(S.ASK_CHAT_TYPE, Action.SET_MENTION_POLICY),
    (S.ASK_MENTION_POLICY, K.MENTIONED): Transition(S.ASK_CHAT_TYPE, Action.SET_MENTION_POLICY),
    (S.ASK_MENTION_POLICY, K.UNRECOGNIZED): Transition(
        S.ASK_MENTION_POLICY, Action.REPROMPT_MENTION_POLICY
    ),
    (S.ASK_CHAT_TYPE, K.ONE_ON_ONE): Transition(S.CUSTOM_QUESTIONS, Action.SET_CHAT_TYPE),
    (S.ASK_CHAT_TYPE, K.GROUP): Transition(S.CUSTOM_QUESTIONS, Action.SET_CHAT_TYPE),
    (S.ASK_CHAT_TYPE, K.UNRECOGNIZED): Transition(S.ASK_CHAT_TYPE, Action.REPROMPT_CHAT_TYPE),
    (S.CUSTOM_QUESTIONS, K.ANY): Transition(None, Action.ASK_CUSTOM_QUESTION),
    (S.ACTIVE, K.ANY): Transition(S.ACTIVE, Action.ANSWER),
}

# The reset command is accepted everywhere except while confirming a reset
for _step in OnboardingStep:
    if _step is not S.RESET_CONFIRM:
        TRANSITIONS[(_step, K.RESET)] = Transition(S.RESET_CONFIRM, Action.CONFIRM_RESET)


def classify_input(step: OnboardingStep, text: str, reset_command: str) -> InputKind:
    """
    Classify a message for the given step.

    Args:
        step: Current onboarding step
        text: Unwrapped message text
        reset_command: Configured reset command, compared case-insensitively

    Returns:
        InputKind with a defined transition for ``step``
    """
    stripped = text.strip()

    if step is S.RESET_CONFIRM:
        return K.CONFIRM_YES if stripped.upper() == "YES" else K.UNRECOGNIZED

    if stripped.lower() == reset_command.strip().lower():
        return K.RESET

    if step is S.ASK_MENTION_POLICY:
        if _EVERY_RE.search(stripped):
            return K.EVERY
        if _MENTIONED_RE.search(stripped):
            return K.MENTIONED
        return K.UNRECOGNIZED

    if step is S.ASK_CHAT_TYPE:
        if _ONE_ON_ONE_RE.search(stripped):
            return K.ONE_ON_ONE
        if _GROUP_RE.search(stripped):
            return K.GROUP
        return K.UNRECOGNIZED

    return K.ANY


def coerce_step(value: Optional[int]) -> OnboardingStep:
    """Map a stored integer to a step; unknown values restart onboarding."""
    try:
        return OnboardingStep(value if value is not None else 0)
    except ValueError:
        return OnboardingStep.NEW
