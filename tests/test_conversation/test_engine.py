"""Tests for the conversation engine (onboarding, reset and answer dispatch)."""

from datetime import datetime, timezone

import pytest

from talkbridge.conversation import prompts
from talkbridge.conversation.engine import ConversationEngine
from talkbridge.db.repositories import ConversationSessionRepository, MessageRepository
from talkbridge.jobs.queue import JobQueue

FIXED_NOW = datetime(2026, 3, 1, 12, 30, tzinfo=timezone.utc)


@pytest.fixture
def send(session_factory, bot_settings, make_inbound):
    """Process one message per call in its own session, like one webhook request."""

    def _send(
        text: str, target_id: str = "room1", user_id: str = "alice", timestamp=None, **kwargs
    ):
        kwargs.setdefault("settings_loader", lambda: bot_settings)
        session = session_factory()
        try:
            engine = ConversationEngine(
                session, reset_command="((reset))", clock=lambda: FIXED_NOW, **kwargs
            )
            return engine.process_message(
                make_inbound(text, target_id=target_id, user_id=user_id, timestamp=timestamp)
            )
        finally:
            session.close()

    return _send


@pytest.fixture
def db(session_factory):
    """Session for inspecting state between messages."""
    session = session_factory()
    yield session
    session.close()


def _conversation(db, target_id="room1"):
    db.expire_all()
    return ConversationSessionRepository(db).get_by_target(target_id)


def _contents(db, target_id="room1"):
    db.expire_all()
    return [(m.role, m.content) for m in MessageRepository(db).get_history(target_id, limit=100)]


def _onboard_group(send, mention=True):
    send("hello")
    send("only when mentioned" if mention else "every message")
    send("group")
    send("Project X planning")
    send("Alice and Bob")


class TestOnboarding:
    """Tests for the onboarding dialogue."""

    def test_first_message_asks_mention_policy(self, send, db):
        result = send("hello")

        assert result.status == "reply"
        assert result.reply == prompts.mention_policy_question("@bot")
        assert result.step == 1
        assert _contents(db) == [("user", "hello"), ("assistant", result.reply)]

    def test_group_onboarding_scenario(self, send, db):
        send("hello")
        result = send("only when mentioned")
        assert result.reply == prompts.CHAT_TYPE_QUESTION
        assert result.step == 2

        result = send("group")
        assert result.reply == "What is this group about?"
        assert result.step == 3

        result = send("Project X planning")
        assert result.reply == "Who are the members?"
        assert result.step == 3

        result = send("Alice and Bob")
        assert result.step == 4
        assert result.reply == prompts.completion_message(True, True, "@bot")

        conversation = _conversation(db)
        assert conversation.onboarding_step == 4
        assert conversation.is_group_chat is True
        assert conversation.requires_mention is True
        assert list(conversation.onboarding_answers.items()) == [
            ("What is this group about?", "Project X planning"),
            ("Who are the members?", "Alice and Bob"),
        ]

    def test_one_on_one_onboarding(self, send, db):
        send("hi")
        send("every")
        result = send("one-on-one")
        assert result.reply == "What do you need help with?"

        result = send("Travel planning")

        assert result.step == 4
        assert result.reply == prompts.ONBOARDING_COMPLETE
        conversation = _conversation(db)
        assert conversation.is_group_chat is False
        assert conversation.requires_mention is False
        assert conversation.onboarding_answers == {"What do you need help with?": "Travel planning"}

    def test_empty_question_list_completes_immediately(self, send, db, bot_settings):
        no_questions = bot_settings.model_copy(update={"onboarding_dm_questions": []})
        send("hi", settings_loader=lambda: no_questions)
        send("every", settings_loader=lambda: no_questions)

        result = send("one-on-one", settings_loader=lambda: no_questions)

        assert result.step == 4
        assert result.reply == prompts.ONBOARDING_COMPLETE

    def test_unrecognized_answer_reprompts_and_keeps_step(self, send, db):
        send("hello")

        result = send("whatever")

        assert result.reply == prompts.MENTION_POLICY_REPROMPT
        assert result.step == 1
        send("every")
        result = send("not sure")
        assert result.reply == prompts.CHAT_TYPE_REPROMPT
        assert _conversation(db).onboarding_step == 2

    def test_step_never_decreases_during_onboarding(self, send, db):
        steps = []
        for text in ["hello", "??", "mentioned", "??", "group", "a1", "a2", "question"]:
            steps.append(send(text).step)

        assert steps == sorted(steps)
        assert steps[-1] == 4

    def test_chats_are_independent(self, send, db):
        send("hello", target_id="room1")
        send("every", target_id="room1")
        send("hello", target_id="room2")

        assert _conversation(db, "room1").onboarding_step == 2
        assert _conversation(db, "room2").onboarding_step == 1

    def test_onboarding_progress(self, session_factory, send, bot_settings):
        send("hello")
        send("mentioned")
        send("group")
        send("first answer")

        session = session_factory()
        engine = ConversationEngine(session, settings_loader=lambda: bot_settings)
        progress = engine.get_onboarding_progress("room1")
        session.close()

        assert progress["step"] == "CUSTOM_QUESTIONS"
        assert progress["answered"] == 1
        assert progress["total"] == 4
        assert progress["percent"] == 75


class TestReset:
    """Tests for the reset dialogue."""

    def test_reset_asks_for_confirmation(self, send, db):
        _onboard_group(send)

        result = send("((reset))")

        assert result.reply == prompts.RESET_CONFIRMATION
        assert result.step == -1
        assert _conversation(db).pre_reset_step == 4

    def test_cancel_restores_step_and_keeps_history(self, send, db):
        _onboard_group(send)
        before = len(_contents(db))

        send("((reset))")
        result = send("no thanks")

        assert result.reply == prompts.RESET_CANCELLED
        assert result.step == 4
        conversation = _conversation(db)
        assert conversation.onboarding_step == 4
        assert conversation.pre_reset_step is None
        assert conversation.onboarding_answers
        # reset, confirmation, cancel, cancel reply
        assert len(_contents(db)) == before + 4

    def test_reset_command_at_confirmation_cancels(self, send, db):
        send("hello")
        send("((reset))")

        result = send("((reset))")

        assert result.reply == prompts.RESET_CANCELLED
        assert result.step == 1

    def test_yes_wipes_session_and_history(self, send, db):
        _onboard_group(send)
        send("((reset))")

        result = send("YES")

        assert result.reply == prompts.RESET_DONE
        assert result.step == 0
        assert _conversation(db) is None
        assert _contents(db) == [("assistant", prompts.RESET_DONE)]

    def test_yes_only_wipes_own_chat(self, send, db):
        send("hello", target_id="other")
        send("hello")
        send("((reset))")

        send("yes")

        assert _conversation(db, "other") is not None
        assert len(_contents(db, "other")) == 2

    def test_onboarding_restarts_after_wipe(self, send, db):
        _onboard_group(send)
        send("((reset))")
        send("YES")

        result = send("hi again")

        assert result.reply == prompts.mention_policy_question("@bot")
        assert _conversation(db).onboarding_step == 1


class TestAnswerDispatch:
    """Tests for active chats."""

    def test_group_message_without_mention_is_ignored(self, send, db):
        _onboard_group(send, mention=True)
        before = _contents(db)

        result = send("just chatting")

        assert result.status == "ignored"
        assert result.reply is None
        assert _contents(db) == before + [("user", "just chatting")]
        assert JobQueue(db).get_stats().total == 0

    def test_mentioned_message_is_queued(self, send, db):
        _onboard_group(send, mention=True)

        result = send("@Bot what is the plan?")

        assert result.status == "queued"
        assert result.job_id is not None
        assert result.reply is None
        payload = JobQueue(db).get(result.job_id).payload
        assert payload["target_id"] == "room1"
        assert payload["model"] == "test-model"
        assert payload["reply_to"] == 1
        assert payload["messages"][-1] == {"role": "user", "content": "@Bot what is the plan?"}
        assert payload["rag"]["query"] == "what is the plan?"

    def test_every_message_policy_answers_without_mention(self, send, db):
        _onboard_group(send, mention=False)

        assert send("no mention here").status == "queued"

    def test_payload_system_prompt(self, send, db):
        _onboard_group(send)

        result = send("@bot hello")

        system = JobQueue(db).get(result.job_id).payload["messages"][0]
        assert system["role"] == "system"
        assert "Current Time: 2026-03-01 12:30:00" in system["content"]
        assert "User Name: Alice" in system["content"]
        assert "Target ID: room1" in system["content"]
        assert "Q: What is this group about?\nA: Project X planning" in system["content"]
        assert system["content"].endswith("You are a test assistant.")

    def test_system_prompt_uses_message_time(self, send, db):
        _onboard_group(send)
        published = datetime(2026, 2, 14, 8, 5, 9, tzinfo=timezone.utc)

        result = send("@bot hello", timestamp=published)

        system = JobQueue(db).get(result.job_id).payload["messages"][0]
        assert "Current Time: 2026-02-14 08:05:09" in system["content"]

    def test_payload_has_no_credentials(self, send, db):
        _onboard_group(send)

        result = send("@bot hello")

        payload = JobQueue(db).get(result.job_id).payload
        assert "secret" not in str(payload).lower()

    def test_one_on_one_history_scoped_to_user(self, send, db):
        send("hi", user_id="alice")
        send("every", user_id="alice")
        send("one-on-one", user_id="alice")
        send("Travel", user_id="alice")
        send("bob was here", user_id="bob")

        result = send("next question", user_id="alice")

        history = JobQueue(db).get(result.job_id).payload["messages"][1:]
        assert all(m["content"] != "bob was here" for m in history)
        assert history[-1]["content"] == "next question"

    def test_history_window_limited(self, send, db, bot_settings):
        limited = bot_settings.model_copy(update={"history_limit": 3})
        _onboard_group(send, mention=False)

        result = send("latest", settings_loader=lambda: limited)

        messages = JobQueue(db).get(result.job_id).payload["messages"]
        assert len(messages) == 4
        assert messages[-1]["content"] == "latest"

    def test_chat_stats(self, session_factory, send, bot_settings):
        send("hello")

        session = session_factory()
        stats = ConversationEngine(session, settings_loader=lambda: bot_settings).get_chat_stats(
            "room1"
        )
        session.close()

        assert stats["total"] == 2
        assert stats["user"] == 1
        assert stats["assistant"] == 1


class TestErrors:
    """Unexpected failures become an apology."""

    def test_apology_on_exception(self, send, db):
        def broken_settings():
            raise RuntimeError("settings table missing")

        result = send("hello", settings_loader=broken_settings)

        assert result.status == "error"
        assert result.reply == prompts.APOLOGY
        assert _contents(db) == []
