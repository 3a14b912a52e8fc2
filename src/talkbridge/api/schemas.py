"""
API schemas for TalkBridge.

Pydantic models for response validation.
"""

from typing import Optional

from pydantic import BaseModel


class WebhookResponse(BaseModel):
    """Result of handling one webhook call."""

    status: str  # reply, queued, ignored or error
    job_id: Optional[int] = None
    step: Optional[int] = None
    delivered: Optional[bool] = None  # Whether an immediate reply reached Talk


class QueueStatsResponse(BaseModel):
    """Job counts by status."""

    pending: int
    processing: int
    completed: int
    failed: int
    total: int
