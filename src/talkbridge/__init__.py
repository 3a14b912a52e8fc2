"""TalkBridge - Nextcloud Talk bot backend with LLM generation and document retrieval."""

__version__ = "0.1.0"
