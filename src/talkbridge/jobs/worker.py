"""
Queue worker for generation jobs.

Claims batches of pending jobs, runs retrieval and the chat completion for
each, records the assistant message, delivers the reply to Talk and marks
the job. Jobs in one batch run sequentially; several worker processes can
share the queue safely.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.exc import OperationalError

from talkbridge.db.connection import SessionFactory, db_session
from talkbridge.db.repositories.message import MessageRepository
from talkbridge.exceptions import GatewayError, ReplyDeliveryError
from talkbridge.jobs.queue import JobQueue
from talkbridge.llm.gateway import LLMGateway
from talkbridge.models.db import MessageRole
from talkbridge.rag.retriever import Retriever, augment_messages
from talkbridge.talk.client import TalkClient

logger = logging.getLogger(__name__)

FAILURE_NOTICE = "Sorry, I encountered an error and cannot reply right now."


@dataclass
class QueueRunStats:
    """Result of one ``process_queue`` call."""

    processed: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.processed + self.failed

    def as_dict(self) -> dict[str, int]:
        return {"processed": self.processed, "failed": self.failed, "total": self.total}


class QueueWorker:
    """
    Worker that processes generation jobs from the queue.

    Features:
    - Lease commit before processing, so a crash never re-runs a job silently
    - Per-job error isolation (a failed job never stops the batch)
    - Graceful shutdown support for daemon mode
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        gateway: LLMGateway,
        talk_client: TalkClient,
        batch_size: int = 5,
        poll_interval: float = 5.0,
        notify_failures: bool = True,
        log: Optional[logging.Logger] = None,
    ):
        """
        Initialize the worker.

        Args:
            session_factory: Creates database sessions (one per job)
            gateway: LLM gateway for retrieval embeddings and completions
            talk_client: Reply delivery
            batch_size: Jobs claimed per batch
            poll_interval: Seconds between polls when the queue is empty
            notify_failures: Tell the chat when a generation failed
            log: Logger to use instead of the module logger
        """
        self.session_factory = session_factory
        self.gateway = gateway
        self.talk_client = talk_client
        self.batch_size = batch_size
        self.poll_interval = poll_interval
        self.notify_failures = notify_failures
        self.log = log or logger
        self._running = False
        self._stop_event = threading.Event()
        self._jobs_processed = 0
        self._jobs_failed = 0
        self._last_job_time: Optional[float] = None

    def process_queue(self, limit: Optional[int] = None) -> QueueRunStats:
        """
        Claim and process one batch of jobs.

        Args:
            limit: Maximum jobs to claim (defaults to the batch size)

        Returns:
            QueueRunStats with processed/failed counts
        """
        with db_session(self.session_factory) as session:
            jobs = JobQueue(session, log=self.log).claim_batch(
                limit if limit is not None else self.batch_size
            )
            claimed = [(job.id, dict(job.payload or {})) for job in jobs]

        stats = QueueRunStats()
        for job_id, payload in claimed:
            if self._process_job(job_id, payload):
                stats.processed += 1
            else:
                stats.failed += 1

        if claimed:
            self.log.info(
                f"Processed batch: {stats.processed} succeeded, {stats.failed} failed"
            )
        return stats

    def _process_job(self, job_id: int, payload: dict[str, Any]) -> bool:
        """
        Run one leased job.

        Returns:
            True if the job completed, False if it was marked failed
        """
        session = self.session_factory()
        queue = JobQueue(session, log=self.log)
        try:
            target_id = payload["target_id"]
            messages = self._with_context(session, payload)

            result = self.gateway.chat_completion(
                messages,
                model=payload.get("model"),
                temperature=payload.get("temperature", 0.7),
                max_tokens=payload.get("max_tokens"),
            )
            if not result.ok:
                raise GatewayError(
                    result.error or "LLM request failed",
                    status_code=result.status_code,
                    attempts=result.attempts,
                )
            content = (result.content or "").strip()
            if not content:
                raise GatewayError("LLM returned an empty response", attempts=result.attempts)

            MessageRepository(session).append(
                payload.get("user_id", ""), target_id, MessageRole.ASSISTANT.value, content
            )
            session.commit()

            self.talk_client.send_reply(target_id, content, payload.get("reply_to"))

            queue.mark_completed(job_id)
            session.commit()

            self._jobs_processed += 1
            self._last_job_time = time.time()
            self.log.info(
                f"Completed job {job_id} for chat {target_id} "
                f"({result.attempts} attempt(s), {len(content)} chars)"
            )
            return True

        except Exception as e:
            session.rollback()
            queue.mark_failed(job_id, str(e))
            session.commit()
            self._jobs_failed += 1
            self.log.warning(f"Failed job {job_id}: {e}")

            if self.notify_failures and isinstance(e, GatewayError):
                self._send_failure_notice(payload)
            return False

        finally:
            session.close()

    def _with_context(self, session, payload: dict[str, Any]) -> list[dict[str, str]]:
        """Message list with retrieved knowledge base excerpts added."""
        messages = list(payload.get("messages") or [])
        rag = payload.get("rag") or {}
        query = (rag.get("query") or "").strip()
        if not rag.get("enabled") or not query:
            return messages

        retriever = Retriever(
            session, self.gateway, embedding_model=rag.get("embedding_model"), log=self.log
        )
        retrieval = retriever.retrieve(query, k=int(rag.get("top_k") or 3))
        if not retrieval.matches:
            return messages
        return augment_messages(messages, retrieval.matches)

    def _send_failure_notice(self, payload: dict[str, Any]) -> None:
        target_id = payload.get("target_id")
        if not target_id:
            return
        try:
            self.talk_client.send_reply(target_id, FAILURE_NOTICE, payload.get("reply_to"))
        except ReplyDeliveryError as e:
            self.log.warning(f"Could not deliver failure notice to {target_id}: {e}")

    def run(self) -> None:
        """
        Main worker loop.

        Processes batches until stopped; waits ``poll_interval`` when the
        queue is empty.
        """
        self.log.info("Queue worker starting")
        self._running = True

        while not self._stop_event.is_set():
            try:
                stats = self.process_queue()
                if stats.total == 0:
                    self._stop_event.wait(self.poll_interval)
            except OperationalError as e:
                self.log.warning(f"Queue worker DB unavailable: {e}")
                self._stop_event.wait(5.0)
            except Exception as e:
                self.log.error(f"Error in queue worker loop: {e}", exc_info=True)
                self._stop_event.wait(1.0)

        self.log.info(
            f"Queue worker stopped. Completed: {self._jobs_processed}, "
            f"Failed: {self._jobs_failed}"
        )
        self._running = False

    def stop(self) -> None:
        """Signal the worker to stop gracefully."""
        self.log.info("Queue worker stop requested")
        self._stop_event.set()

    @property
    def is_running(self) -> bool:
        """Check if the worker is currently running."""
        return self._running

    def get_stats(self) -> dict[str, object]:
        """Counters since the worker started."""
        return {
            "running": self._running,
            "jobs_completed": self._jobs_processed,
            "jobs_failed": self._jobs_failed,
            "last_job_time": self._last_job_time,
        }
