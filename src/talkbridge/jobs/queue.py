"""
Durable generation job queue.

Jobs live in the ``jobs`` table so they survive process restarts. Claiming
uses SELECT ... FOR UPDATE SKIP LOCKED (on PostgreSQL) followed by a
conditional UPDATE per row, so concurrent workers never claim the same job
even on databases without row locks.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from talkbridge.models.db import Job, JobStatus, utcnow

logger = logging.getLogger(__name__)


@dataclass
class QueueStats:
    """Statistics about the job queue."""

    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    total: int = 0

    @property
    def active(self) -> int:
        """Jobs that are pending or processing."""
        return self.pending + self.processing


class JobQueue:
    """Database-backed queue of LLM generation jobs."""

    def __init__(self, session: Session, log: Optional[logging.Logger] = None):
        self.session = session
        self.log = log or logger

    def enqueue(self, payload: dict[str, Any]) -> int:
        """
        Add a job to the queue.

        Args:
            payload: Everything the worker needs to run the job

        Returns:
            ID of the created job
        """
        job = Job(payload=payload, status=JobStatus.PENDING.value, attempts=0)
        self.session.add(job)
        self.session.flush()
        self.log.debug(f"Enqueued job {job.id}")
        return job.id

    def claim_batch(self, limit: int) -> list[Job]:
        """
        Lease up to ``limit`` pending jobs, oldest first, and commit.

        Each candidate is moved to 'processing' with a conditional UPDATE
        (``WHERE status = 'pending'``); a row another worker claimed in the
        meantime matches nothing and is skipped. The commit at the end is the
        lease: from then on the jobs belong to this worker.

        Args:
            limit: Maximum number of jobs to claim

        Returns:
            Claimed jobs (status 'processing', attempts incremented)
        """
        if limit <= 0:
            return []

        candidate_ids = [
            row[0]
            for row in self.session.query(Job.id)
            .filter(Job.status == JobStatus.PENDING.value)
            .order_by(Job.created_at, Job.id)
            .limit(limit)
            .with_for_update(skip_locked=True)
            .all()
        ]

        claimed: list[int] = []
        now = utcnow()
        for job_id in candidate_ids:
            updated = (
                self.session.query(Job)
                .filter(Job.id == job_id, Job.status == JobStatus.PENDING.value)
                .update(
                    {
                        Job.status: JobStatus.PROCESSING.value,
                        Job.attempts: Job.attempts + 1,
                        Job.started_at: now,
                        Job.updated_at: now,
                    },
                    synchronize_session=False,
                )
            )
            if updated:
                claimed.append(job_id)

        self.session.commit()

        if claimed:
            self.log.debug(f"Claimed {len(claimed)} job(s): {claimed}")
        return [job for job in (self.session.get(Job, job_id) for job_id in claimed) if job]

    def mark_completed(self, job_id: int) -> None:
        """Mark a job as completed."""
        self._finish(job_id, JobStatus.COMPLETED, None)

    def mark_failed(self, job_id: int, error: str) -> None:
        """Mark a job as failed and record the error. Failed jobs are not retried."""
        self._finish(job_id, JobStatus.FAILED, error)

    def _finish(self, job_id: int, status: JobStatus, error: Optional[str]) -> None:
        job = self.session.get(Job, job_id)
        if not job:
            self.log.warning(f"Job {job_id} not found when trying to mark it {status.value}")
            return
        now = utcnow()
        job.status = status.value
        job.error_message = error
        job.completed_at = now
        job.updated_at = now
        self.session.flush()

    def get(self, job_id: int) -> Optional[Job]:
        """Get a job by id."""
        return self.session.get(Job, job_id)

    def get_stats(self) -> QueueStats:
        """
        Get queue statistics.

        Returns:
            QueueStats with counts by status
        """
        results = self.session.query(Job.status, func.count(Job.id)).group_by(Job.status).all()

        stats = QueueStats()
        for status, count in results:
            if status == JobStatus.PENDING.value:
                stats.pending = count
            elif status == JobStatus.PROCESSING.value:
                stats.processing = count
            elif status == JobStatus.COMPLETED.value:
                stats.completed = count
            elif status == JobStatus.FAILED.value:
                stats.failed = count
            stats.total += count
        return stats

    def requeue(
        self,
        status: JobStatus = JobStatus.FAILED,
        job_ids: Optional[Iterable[int]] = None,
    ) -> int:
        """
        Operator tool: move jobs back to 'pending'.

        Args:
            status: Only requeue jobs in this status
            job_ids: Restrict to these job ids

        Returns:
            Number of jobs requeued
        """
        query = self.session.query(Job).filter(Job.status == status.value)
        if job_ids is not None:
            query = query.filter(Job.id.in_(list(job_ids)))
        count = query.update(
            {
                Job.status: JobStatus.PENDING.value,
                Job.started_at: None,
                Job.completed_at: None,
                Job.updated_at: utcnow(),
            },
            synchronize_session=False,
        )
        if count:
            self.log.info(f"Requeued {count} {status.value} job(s)")
        return count

    def reclaim_stale(self, older_than_minutes: int = 30) -> int:
        """
        Operator tool: return jobs stuck in 'processing' to 'pending'.

        Leases have no expiry; a worker that dies mid-job leaves its jobs in
        'processing'. Nothing calls this automatically, because a slow job
        that is still running would then be processed twice.

        Args:
            older_than_minutes: Only reclaim jobs leased longer ago than this

        Returns:
            Number of jobs reclaimed
        """
        threshold = utcnow() - timedelta(minutes=older_than_minutes)
        count = (
            self.session.query(Job)
            .filter(Job.status == JobStatus.PROCESSING.value, Job.started_at < threshold)
            .update(
                {
                    Job.status: JobStatus.PENDING.value,
                    Job.started_at: None,
                    Job.updated_at: utcnow(),
                },
                synchronize_session=False,
            )
        )
        if count:
            self.log.warning(f"Reclaimed {count} stale processing job(s)")
        return count

    def purge(
        self,
        statuses: Iterable[JobStatus] = (JobStatus.COMPLETED, JobStatus.FAILED),
        older_than_days: int = 0,
    ) -> int:
        """
        Operator tool: delete finished jobs.

        Args:
            statuses: Statuses to delete
            older_than_days: Only delete jobs last updated before this many days ago

        Returns:
            Number of jobs deleted
        """
        values = [status.value for status in statuses]
        query = self.session.query(Job).filter(Job.status.in_(values))
        if older_than_days > 0:
            query = query.filter(Job.updated_at < utcnow() - timedelta(days=older_than_days))
        count = query.delete(synchronize_session=False)
        if count:
            self.log.info(f"Purged {count} job(s) with status {values}")
        return count
