"""Conversation engine: onboarding state machine and answer dispatch."""

from talkbridge.conversation.engine import ConversationEngine, EngineResult
from talkbridge.conversation.states import InputKind, OnboardingStep, classify_input

__all__ = [
    "ConversationEngine",
    "EngineResult",
    "InputKind",
    "OnboardingStep",
    "classify_input",
]
