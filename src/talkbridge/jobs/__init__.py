"""Durable generation job queue and worker."""

from talkbridge.jobs.queue import JobQueue, QueueStats
from talkbridge.jobs.worker import QueueRunStats, QueueWorker

__all__ = ["JobQueue", "QueueRunStats", "QueueStats", "QueueWorker"]
