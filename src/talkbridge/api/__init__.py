"""FastAPI webhook surface for TalkBridge."""
