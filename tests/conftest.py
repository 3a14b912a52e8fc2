"""
Pytest configuration and fixtures for TalkBridge tests.

This module provides shared fixtures for database sessions, fake LLM
gateways and Talk clients, and the FastAPI test client.
"""

from datetime import datetime
from typing import Callable, Generator, Optional
from unittest.mock import MagicMock

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Registers the JSONB -> JSON swap used when creating tables on SQLite
import talkbridge.db.connection  # noqa: F401
from talkbridge.llm.base import GatewayResult
from talkbridge.llm.gateway import GatewayConfig, LLMGateway
from talkbridge.llm.retry import RetryConfig
from talkbridge.models.bot_settings import BotSettings
from talkbridge.models.db import Base
from talkbridge.talk.client import TalkClient
from talkbridge.talk.payload import InboundMessage


@pytest.fixture(scope="session")
def test_engine():
    """Create a test database engine using SQLite in-memory."""
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},  # Allow cross-thread access for TestClient
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(test_engine) -> Generator[Session, None, None]:
    """
    Create a new database session for a test.

    Each test gets a fresh session with a transaction that is rolled back
    after the test completes, ensuring test isolation.
    """
    connection = test_engine.connect()
    transaction = connection.begin()
    session = sessionmaker(bind=connection)()

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def session_factory() -> Generator[sessionmaker, None, None]:
    """
    Session factory over a private in-memory database.

    For code that commits and rolls back on its own (engine, queue,
    worker); every session shares the single connection.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def file_session_factory(tmp_path) -> Generator[sessionmaker, None, None]:
    """Session factory over an SQLite file (real concurrent connections)."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'queue.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def bot_settings() -> BotSettings:
    """Bot settings with short, predictable question lists."""
    return BotSettings(
        system_prompt="You are a test assistant.",
        model="test-model",
        onboarding_group_questions=["What is this group about?", "Who are the members?"],
        onboarding_dm_questions=["What do you need help with?"],
        bot_mention="@bot",
    )


@pytest.fixture
def make_inbound() -> Callable[..., InboundMessage]:
    """Factory for inbound chat messages."""

    def _make(
        message: str,
        target_id: str = "room1",
        user_id: str = "alice",
        user_name: str = "Alice",
        message_id: int = 1,
        timestamp: Optional[datetime] = None,
    ) -> InboundMessage:
        return InboundMessage(
            message=message,
            user_id=user_id,
            user_name=user_name,
            target_id=target_id,
            message_id=message_id,
            timestamp=timestamp,
        )

    return _make


def chat_result(content: str, attempts: int = 1) -> GatewayResult:
    """Successful chat completion result."""
    return GatewayResult(
        ok=True,
        data={"choices": [{"message": {"role": "assistant", "content": content}}]},
        status_code=200,
        attempts=attempts,
    )


def embedding_result(vector: list[float]) -> GatewayResult:
    """Successful embedding result."""
    return GatewayResult(
        ok=True, data={"data": [{"embedding": vector}]}, status_code=200, attempts=1
    )


@pytest.fixture
def mock_gateway() -> MagicMock:
    """Gateway double returning a fixed answer and a fixed embedding."""
    gateway = MagicMock(spec=LLMGateway)
    gateway.config = GatewayConfig(api_key="test-key", embedding_model="test-embed")
    gateway.chat_completion.return_value = chat_result("Generated answer")
    gateway.embedding.return_value = embedding_result([1.0, 0.0, 0.0])
    return gateway


@pytest.fixture
def mock_talk_client() -> MagicMock:
    """Talk client double that records deliveries."""
    return MagicMock(spec=TalkClient)


@pytest.fixture
def make_gateway():
    """
    Build a real gateway on top of an httpx mock transport.

    Returns the gateway and the list that records backoff sleeps.
    """
    gateways: list[LLMGateway] = []

    def _make(handler, max_retries: int = 3, initial_delay: float = 1.0):
        sleeps: list[float] = []
        gateway = LLMGateway(
            GatewayConfig(api_key="test-key", endpoint="https://llm.example.org/v1/"),
            retry_config=RetryConfig(max_retries=max_retries, initial_delay=initial_delay),
            client=httpx.Client(transport=httpx.MockTransport(handler)),
            sleep=sleeps.append,
        )
        gateways.append(gateway)
        return gateway, sleeps

    yield _make

    for gateway in gateways:
        gateway.close()


@pytest.fixture
def api_client(db_session: Session, mock_talk_client: MagicMock):
    """Create a test client for FastAPI with database and Talk overrides."""
    from unittest.mock import patch

    from fastapi.testclient import TestClient

    from talkbridge.api.app import app
    from talkbridge.api.dependencies import get_settings, get_talk_client
    from talkbridge.config import Settings
    from talkbridge.db.connection import get_db

    test_settings = Settings(
        talk_bot_secret="test-secret",
        talk_server="cloud.example.org",
        talk_verify_signature=True,
        reset_command="((reset))",
    )

    # Override the get_db dependency to use test database
    def override_get_db():
        try:
            yield db_session
            db_session.commit()
        except Exception:
            db_session.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_talk_client] = lambda: mock_talk_client
    app.dependency_overrides[get_settings] = lambda: test_settings

    # Disable lifespan startup side effects for testing
    with (
        patch("talkbridge.api.app.setup_logging"),
        patch("talkbridge.api.app.check_connection", return_value=True),
    ):
        with TestClient(app) as client:
            yield client

    app.dependency_overrides.clear()
