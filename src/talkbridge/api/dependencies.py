"""
FastAPI dependencies shared by the routes.
"""

from fastapi import Request

from talkbridge.config import Settings, settings
from talkbridge.talk.client import TalkClient, TalkConfig


def get_settings() -> Settings:
    """Process configuration."""
    return settings


def get_talk_client(request: Request) -> TalkClient:
    """Reply delivery client kept on the application state."""
    client = getattr(request.app.state, "talk_client", None)
    if client is None:
        client = TalkClient(TalkConfig.from_settings(settings))
        request.app.state.talk_client = client
    return client
