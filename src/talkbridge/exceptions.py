"""
Custom exceptions for TalkBridge.
"""

from typing import Optional


class TalkBridgeError(Exception):
    """Base class for TalkBridge errors."""


class SignatureVerificationError(TalkBridgeError):
    """Raised when an inbound webhook signature does not match."""


class WebhookPayloadError(TalkBridgeError):
    """Raised when an inbound webhook payload cannot be parsed."""


class ReplyDeliveryError(TalkBridgeError):
    """Raised when a reply could not be posted to the chat platform."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DocumentProcessingError(TalkBridgeError):
    """Raised when a document cannot be registered, chunked or embedded."""


class GatewayError(TalkBridgeError):
    """
    Raised by callers that turn a terminal gateway result into an exception.

    The gateway itself never raises for upstream failures; it returns a
    result object. The worker converts failed results into this error so the
    job is marked failed with the upstream message.
    """

    def __init__(
        self, message: str, status_code: Optional[int] = None, attempts: int = 0
    ):
        super().__init__(message)
        self.status_code = status_code
        self.attempts = attempts
