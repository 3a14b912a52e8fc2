"""
Nextcloud Talk webhook endpoint.

Verifies the signature, hands the message to the conversation engine and
delivers any immediate reply. Generated answers are delivered later by the
queue worker.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from talkbridge.api.dependencies import get_settings, get_talk_client
from talkbridge.api.schemas import QueueStatsResponse, WebhookResponse
from talkbridge.config import Settings
from talkbridge.conversation.engine import ConversationEngine
from talkbridge.db.connection import get_db
from talkbridge.exceptions import ReplyDeliveryError, WebhookPayloadError
from talkbridge.jobs.queue import JobQueue
from talkbridge.talk.client import TalkClient
from talkbridge.talk.payload import parse_activity
from talkbridge.talk.signing import verify_signature

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhook"])

RANDOM_HEADER = "X-Nextcloud-Talk-Random"
SIGNATURE_HEADER = "X-Nextcloud-Talk-Signature"


@router.post("/webhook", response_model=WebhookResponse)
async def receive_webhook(
    request: Request,
    db: Session = Depends(get_db),
    talk_client: TalkClient = Depends(get_talk_client),
    config: Settings = Depends(get_settings),
) -> WebhookResponse:
    """Handle one Talk bot event."""
    body = await request.body()

    if config.talk_verify_signature and not verify_signature(
        config.talk_bot_secret,
        request.headers.get(RANDOM_HEADER, ""),
        body,
        request.headers.get(SIGNATURE_HEADER, ""),
    ):
        logger.warning("Rejected webhook call with invalid signature")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature"
        )

    try:
        inbound = parse_activity(body)
    except WebhookPayloadError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if inbound is None:
        return WebhookResponse(status="ignored")

    engine = ConversationEngine(db, reset_command=config.reset_command)
    result = await run_in_threadpool(engine.process_message, inbound)

    delivered = None
    if result.reply:
        try:
            await run_in_threadpool(
                talk_client.send_reply, inbound.target_id, result.reply, inbound.message_id
            )
            delivered = True
        except ReplyDeliveryError as e:
            logger.error(f"Failed to deliver reply to {inbound.target_id}: {e}")
            delivered = False

    return WebhookResponse(
        status=result.status, job_id=result.job_id, step=result.step, delivered=delivered
    )


@router.get("/queue/stats", response_model=QueueStatsResponse)
def queue_stats(db: Session = Depends(get_db)) -> QueueStatsResponse:
    """Job counts by status."""
    stats = JobQueue(db).get_stats()
    return QueueStatsResponse(
        pending=stats.pending,
        processing=stats.processing,
        completed=stats.completed,
        failed=stats.failed,
        total=stats.total,
    )
