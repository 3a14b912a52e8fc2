"""
Conversation engine.

Turns one inbound chat message into either an immediate reply (onboarding
questions, reset confirmation) or a queued generation job. Every message
is recorded before any reply is computed; replies produced here are
recorded after they are final. Generated answers are recorded by the
worker when the job completes.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from talkbridge.conversation import prompts
from talkbridge.conversation.states import (
    TRANSITIONS,
    Action,
    InputKind,
    OnboardingStep,
    classify_input,
    coerce_step,
)
from talkbridge.db.repositories.conversation_session import ConversationSessionRepository
from talkbridge.db.repositories.message import MessageRepository
from talkbridge.db.repositories.setting import SettingRepository
from talkbridge.jobs.queue import JobQueue
from talkbridge.models.bot_settings import BotSettings
from talkbridge.models.db import ConversationSession, MessageRole
from talkbridge.talk.payload import InboundMessage

logger = logging.getLogger(__name__)

STATUS_REPLY = "reply"
STATUS_QUEUED = "queued"
STATUS_IGNORED = "ignored"
STATUS_ERROR = "error"


@dataclass
class EngineResult:
    """What the webhook should do after a message was processed.

    Attributes:
        status: 'reply', 'queued', 'ignored' or 'error'
        reply: Text to send right away (None when nothing is sent now)
        job_id: Queued generation job, if any
        step: Onboarding step after processing
    """

    status: str
    reply: Optional[str] = None
    job_id: Optional[int] = None
    step: Optional[int] = None


@dataclass
class _Turn:
    """Per-message context passed to action handlers."""

    inbound: InboundMessage
    text: str
    kind: InputKind
    conversation: ConversationSession
    bot_settings: BotSettings
    previous_step: OnboardingStep


class ConversationEngine:
    """Onboarding state machine and answer dispatch for one chat message."""

    def __init__(
        self,
        session: Session,
        reset_command: str = "((reset))",
        settings_loader: Optional[Callable[[], BotSettings]] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        log: Optional[logging.Logger] = None,
    ):
        """
        Initialize the engine.

        Args:
            session: Database session (committed once per message)
            reset_command: Text that starts the reset dialogue
            settings_loader: Returns the bot settings snapshot; defaults to
                reading the settings table
            clock: Current time (for the system prompt)
            log: Logger to use instead of the module logger
        """
        self.session = session
        self.reset_command = reset_command
        self.sessions = ConversationSessionRepository(session)
        self.messages = MessageRepository(session)
        self.queue = JobQueue(session)
        self._load_settings = settings_loader or SettingRepository(session).load_snapshot
        self._clock = clock
        self.log = log or logger

        self._handlers: dict[Action, Callable[[_Turn], EngineResult]] = {
            Action.CONFIRM_RESET: self._confirm_reset,
            Action.WIPE: self._wipe,
            Action.CANCEL_RESET: self._cancel_reset,
            Action.ASK_MENTION_POLICY: self._ask_mention_policy,
            Action.SET_MENTION_POLICY: self._set_mention_policy,
            Action.REPROMPT_MENTION_POLICY: self._reprompt_mention_policy,
            Action.SET_CHAT_TYPE: self._set_chat_type,
            Action.REPROMPT_CHAT_TYPE: self._reprompt_chat_type,
            Action.ASK_CUSTOM_QUESTION: self._ask_custom_question,
            Action.ANSWER: self._answer,
        }

    def process_message(self, inbound: InboundMessage) -> EngineResult:
        """
        Process one inbound message.

        Never raises: unexpected errors roll back the transaction and are
        turned into a generic apology.

        Args:
            inbound: Parsed chat message

        Returns:
            EngineResult describing the reply or queued job
        """
        try:
            result = self._process(inbound)
            self.session.commit()
            return result
        except Exception as e:
            self.log.error(
                f"Error processing message for {inbound.target_id}: {e}", exc_info=True
            )
            self.session.rollback()
            return EngineResult(status=STATUS_ERROR, reply=prompts.APOLOGY)

    def _process(self, inbound: InboundMessage) -> EngineResult:
        bot_settings = self._load_settings()
        conversation = self.sessions.get_or_create(inbound.target_id)
        text = inbound.message

        self.messages.append(inbound.user_id, inbound.target_id, MessageRole.USER.value, text)

        step = coerce_step(conversation.onboarding_step)
        kind = classify_input(step, text, self.reset_command)
        transition = TRANSITIONS[(step, kind)]
        self.log.debug(
            f"{inbound.target_id}: step={step.name} input={kind.value} -> {transition.action.value}"
        )

        turn = _Turn(inbound, text, kind, conversation, bot_settings, step)
        # Handlers may move the step further (e.g. straight to ACTIVE)
        if transition.next_step is not None and transition.action is not Action.WIPE:
            conversation.onboarding_step = transition.next_step.value
        result = self._handlers[transition.action](turn)

        if result.reply:
            self.messages.append(
                inbound.user_id, inbound.target_id, MessageRole.ASSISTANT.value, result.reply
            )
        self.session.flush()

        if result.step is None:
            remaining = self.sessions.get_by_target(inbound.target_id)
            result.step = remaining.onboarding_step if remaining else OnboardingStep.NEW.value
        return result

    def _reply(self, text: str) -> EngineResult:
        return EngineResult(status=STATUS_REPLY, reply=text)

    # Reset dialogue

    def _confirm_reset(self, turn: _Turn) -> EngineResult:
        turn.conversation.pre_reset_step = turn.previous_step.value
        return self._reply(prompts.RESET_CONFIRMATION)

    def _wipe(self, turn: _Turn) -> EngineResult:
        target_id = turn.inbound.target_id
        deleted_messages = self.messages.delete_for_target(target_id)
        self.sessions.delete_by_target(target_id)
        self.log.info(f"Reset chat {target_id}: removed session and {deleted_messages} message(s)")
        return EngineResult(
            status=STATUS_REPLY, reply=prompts.RESET_DONE, step=OnboardingStep.NEW.value
        )

    def _cancel_reset(self, turn: _Turn) -> EngineResult:
        conversation = turn.conversation
        previous = conversation.pre_reset_step
        restored = coerce_step(previous) if previous is not None else OnboardingStep.NEW
        if restored is OnboardingStep.RESET_CONFIRM:
            restored = OnboardingStep.NEW
        conversation.onboarding_step = restored.value
        conversation.pre_reset_step = None
        return self._reply(prompts.RESET_CANCELLED)

    # Onboarding

    def _ask_mention_policy(self, turn: _Turn) -> EngineResult:
        return self._reply(prompts.mention_policy_question(turn.bot_settings.bot_mention))

    def _set_mention_policy(self, turn: _Turn) -> EngineResult:
        turn.conversation.requires_mention = turn.kind is InputKind.MENTIONED
        return self._reply(prompts.CHAT_TYPE_QUESTION)

    def _reprompt_mention_policy(self, turn: _Turn) -> EngineResult:
        return self._reply(prompts.MENTION_POLICY_REPROMPT)

    def _set_chat_type(self, turn: _Turn) -> EngineResult:
        conversation = turn.conversation
        conversation.is_group_chat = turn.kind is InputKind.GROUP
        conversation.onboarding_step = OnboardingStep.CUSTOM_QUESTIONS.value
        conversation.current_question_index = 0
        conversation.onboarding_answers = {}
        # Index 0 stores no answer, so this only asks the first question
        return self._ask_custom_question(turn)

    def _reprompt_chat_type(self, turn: _Turn) -> EngineResult:
        return self._reply(prompts.CHAT_TYPE_REPROMPT)

    def _ask_custom_question(self, turn: _Turn) -> EngineResult:
        conversation = turn.conversation
        questions = turn.bot_settings.questions_for(conversation.is_group_chat)
        index = conversation.current_question_index or 0

        if 0 < index <= len(questions):
            answers = dict(conversation.onboarding_answers or {})
            answers[questions[index - 1]] = turn.text
            conversation.onboarding_answers = answers

        if index < len(questions):
            conversation.current_question_index = index + 1
            return EngineResult(
                status=STATUS_REPLY,
                reply=questions[index],
                step=OnboardingStep.CUSTOM_QUESTIONS.value,
            )

        conversation.onboarding_step = OnboardingStep.ACTIVE.value
        self.log.info(f"Onboarding complete for chat {conversation.target_id}")
        return EngineResult(
            status=STATUS_REPLY,
            reply=prompts.completion_message(
                conversation.is_group_chat,
                conversation.requires_mention,
                turn.bot_settings.bot_mention,
            ),
            step=OnboardingStep.ACTIVE.value,
        )

    # Active chat

    def _answer(self, turn: _Turn) -> EngineResult:
        conversation = turn.conversation
        mention = turn.bot_settings.bot_mention

        if conversation.is_group_chat and conversation.requires_mention:
            if mention.lower() not in turn.text.lower():
                self.log.debug(f"Ignoring unmentioned message in {conversation.target_id}")
                return EngineResult(status=STATUS_IGNORED, step=OnboardingStep.ACTIVE.value)

        payload = self.build_job_payload(turn.inbound, conversation, turn.bot_settings)
        job_id = self.queue.enqueue(payload)
        self.log.info(f"Queued generation job {job_id} for chat {conversation.target_id}")
        return EngineResult(status=STATUS_QUEUED, job_id=job_id, step=OnboardingStep.ACTIVE.value)

    def build_job_payload(
        self,
        inbound: InboundMessage,
        conversation: ConversationSession,
        bot_settings: BotSettings,
    ) -> dict[str, Any]:
        """
        Build the self-contained payload for a generation job.

        The message list is fixed here (system prompt plus the history
        window, which already ends with the current message), so the worker
        never reads session state.
        """
        history_user = None if conversation.is_group_chat else inbound.user_id
        history = self.messages.get_history(
            inbound.target_id, user_id=history_user, limit=bot_settings.history_limit
        )
        system_prompt = prompts.build_system_prompt(
            bot_settings.system_prompt,
            inbound.user_name,
            inbound.target_id,
            conversation.onboarding_answers or {},
            inbound.timestamp or self._clock(),
        )
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend({"role": m.role, "content": m.content} for m in history)

        rag_query = inbound.message
        if bot_settings.bot_mention:
            rag_query = _strip_mention(rag_query, bot_settings.bot_mention)

        return {
            "model": bot_settings.model,
            "temperature": bot_settings.temperature,
            "max_tokens": bot_settings.max_tokens,
            "messages": messages,
            "target_id": inbound.target_id,
            "user_id": inbound.user_id,
            "reply_to": inbound.message_id,
            "rag": {
                "enabled": bot_settings.rag_enabled,
                "query": rag_query,
                "top_k": bot_settings.rag_top_k,
                "embedding_model": bot_settings.embedding_model,
            },
        }

    # Reporting

    def get_chat_stats(self, target_id: str) -> dict[str, Any]:
        """Message statistics for a chat."""
        return self.messages.get_stats(target_id)

    def get_onboarding_progress(self, target_id: str) -> dict[str, Any]:
        """
        Onboarding progress of a chat.

        Returns:
            Dict with step name, answered/total questions and percentage
        """
        conversation = self.sessions.get_by_target(target_id)
        if not conversation:
            return {"step": OnboardingStep.NEW.name, "answered": 0, "total": 0, "percent": 0}

        step = coerce_step(conversation.onboarding_step)
        questions = self._load_settings().questions_for(conversation.is_group_chat)
        answered = len(conversation.onboarding_answers or {})
        # Two fixed questions (mention policy, chat type) plus the custom list
        total = 2 + len(questions)
        if step is OnboardingStep.ACTIVE:
            done = total
        elif step in (OnboardingStep.NEW, OnboardingStep.ASK_MENTION_POLICY, OnboardingStep.RESET_CONFIRM):
            done = 0
        elif step is OnboardingStep.ASK_CHAT_TYPE:
            done = 1
        else:
            done = 2 + answered
        return {
            "step": step.name,
            "answered": answered,
            "total": total,
            "percent": round(100 * done / total) if total else 100,
        }


def _strip_mention(text: str, mention: str) -> str:
    lowered = text.lower()
    needle = mention.lower()
    parts = []
    start = 0
    while True:
        found = lowered.find(needle, start)
        if found < 0:
            parts.append(text[start:])
            break
        parts.append(text[start:found])
        start = found + len(needle)
    return " ".join(" ".join(parts).split())
