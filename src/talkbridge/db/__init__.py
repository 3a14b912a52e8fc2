"""Database access layer for TalkBridge."""
