"""Tests for the durable job queue."""

import threading
from datetime import timedelta

from talkbridge.jobs.queue import JobQueue
from talkbridge.models.db import Job, JobStatus, utcnow


def _enqueue(session, count: int) -> list[int]:
    queue = JobQueue(session)
    ids = [queue.enqueue({"target_id": f"room{i}", "messages": []}) for i in range(count)]
    session.commit()
    return ids


class TestJobQueue:
    """Tests for JobQueue."""

    def test_enqueue(self, session_factory):
        session = session_factory()
        job_id = JobQueue(session).enqueue({"target_id": "room1"})
        session.commit()

        job = JobQueue(session).get(job_id)
        assert job.status == "pending"
        assert job.attempts == 0
        assert job.payload == {"target_id": "room1"}
        session.close()

    def test_claim_oldest_first(self, session_factory):
        session = session_factory()
        ids = _enqueue(session, 5)

        claimed = JobQueue(session).claim_batch(3)

        assert [job.id for job in claimed] == ids[:3]
        assert all(job.status == "processing" for job in claimed)
        assert all(job.attempts == 1 for job in claimed)
        assert all(job.started_at is not None for job in claimed)
        session.close()

    def test_claim_skips_claimed_jobs(self, session_factory):
        session = session_factory()
        ids = _enqueue(session, 3)
        queue = JobQueue(session)

        first = queue.claim_batch(2)
        second = queue.claim_batch(2)

        assert [job.id for job in first] == ids[:2]
        assert [job.id for job in second] == ids[2:]
        assert queue.claim_batch(2) == []
        session.close()

    def test_claim_zero(self, session_factory):
        session = session_factory()
        _enqueue(session, 1)

        assert JobQueue(session).claim_batch(0) == []
        session.close()

    def test_mark_completed_and_failed(self, session_factory):
        session = session_factory()
        ok_id, bad_id = _enqueue(session, 2)
        queue = JobQueue(session)
        queue.claim_batch(2)

        queue.mark_completed(ok_id)
        queue.mark_failed(bad_id, "LLM unavailable")
        session.commit()

        assert queue.get(ok_id).status == "completed"
        assert queue.get(ok_id).completed_at is not None
        assert queue.get(bad_id).status == "failed"
        assert queue.get(bad_id).error_message == "LLM unavailable"
        # Failed jobs are never picked up again
        assert queue.claim_batch(5) == []
        session.close()

    def test_mark_unknown_job(self, session_factory):
        session = session_factory()

        JobQueue(session).mark_completed(999)
        session.close()

    def test_stats(self, session_factory):
        session = session_factory()
        ids = _enqueue(session, 4)
        queue = JobQueue(session)
        queue.claim_batch(2)
        queue.mark_completed(ids[0])
        session.commit()

        stats = queue.get_stats()

        assert stats.pending == 2
        assert stats.processing == 1
        assert stats.completed == 1
        assert stats.failed == 0
        assert stats.total == 4
        assert stats.active == 3
        session.close()


class TestOperatorTools:
    """Tests for requeue, reclaim_stale and purge."""

    def test_requeue_failed(self, session_factory):
        session = session_factory()
        ids = _enqueue(session, 2)
        queue = JobQueue(session)
        queue.claim_batch(2)
        queue.mark_failed(ids[0], "boom")
        queue.mark_failed(ids[1], "boom")
        session.commit()

        assert queue.requeue(job_ids=[ids[1]]) == 1
        session.commit()

        claimed = queue.claim_batch(5)
        assert [job.id for job in claimed] == [ids[1]]
        assert claimed[0].attempts == 2
        session.close()

    def test_reclaim_stale(self, session_factory):
        session = session_factory()
        stale_id, fresh_id = _enqueue(session, 2)
        queue = JobQueue(session)
        queue.claim_batch(2)
        session.get(Job, stale_id).started_at = utcnow() - timedelta(hours=2)
        session.commit()

        assert queue.reclaim_stale(older_than_minutes=30) == 1
        session.commit()

        assert queue.get(stale_id).status == "pending"
        assert queue.get(fresh_id).status == "processing"
        session.close()

    def test_purge(self, session_factory):
        session = session_factory()
        ids = _enqueue(session, 3)
        queue = JobQueue(session)
        queue.claim_batch(3)
        queue.mark_completed(ids[0])
        queue.mark_failed(ids[1], "x")
        session.commit()

        assert queue.purge((JobStatus.COMPLETED,)) == 1
        assert queue.purge() == 1
        session.commit()

        assert queue.get_stats().total == 1
        session.close()

    def test_purge_respects_age(self, session_factory):
        session = session_factory()
        (job_id,) = _enqueue(session, 1)
        queue = JobQueue(session)
        queue.claim_batch(1)
        queue.mark_completed(job_id)
        session.commit()

        assert queue.purge(older_than_days=7) == 0
        session.close()


class TestConcurrentClaims:
    """Several workers claiming from one database never share a job."""

    def test_no_job_claimed_twice(self, file_session_factory):
        session = file_session_factory()
        ids = _enqueue(session, 40)
        session.close()

        claimed: list[list[int]] = []
        errors: list[Exception] = []
        lock = threading.Lock()

        def worker():
            mine: list[int] = []
            try:
                while True:
                    s = file_session_factory()
                    try:
                        batch = [job.id for job in JobQueue(s).claim_batch(3)]
                    finally:
                        s.close()
                    if not batch:
                        break
                    mine.extend(batch)
            except Exception as e:  # pragma: no cover - reported below
                errors.append(e)
            with lock:
                claimed.append(mine)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        all_claimed = [job_id for batch in claimed for job_id in batch]
        assert sorted(all_claimed) == ids
        assert len(all_claimed) == len(set(all_claimed))

        check = file_session_factory()
        stats = JobQueue(check).get_stats()
        assert stats.processing == 40
        assert check.query(Job).filter(Job.attempts != 1).count() == 0
        check.close()
