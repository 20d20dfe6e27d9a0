import time
import unittest

from backend.db import DbClient, JobStatus
from backend.tables import RateLimitRow, SyncJobRow


class DbClientJobTests(unittest.TestCase):
    def setUp(self):
        self.db = DbClient.in_memory()

    def test_create_and_get_job(self):
        job = self.db.create_sync_job("user-1")
        self.assertEqual(job.status, JobStatus.WAITING)
        fetched = self.db.get_job(job.job_id)
        self.assertEqual(fetched.user_id, "user-1")
        self.assertEqual(fetched.as_dict()["status"], "WAITING")
        self.assertIsNone(self.db.get_job("missing"))

    def test_claim_job_only_once(self):
        job = self.db.create_sync_job("user-1")
        claimed = self.db.claim_job(job.job_id)
        self.assertEqual(claimed.status, JobStatus.RUNNING)
        self.assertEqual(claimed.stage, "CLAIMED")
        self.assertIsNone(self.db.claim_job(job.job_id))

    def test_claim_next_waiting_job_is_oldest_first(self):
        first = self.db.create_sync_job("user-1")
        self.db.create_sync_job("user-2")
        claimed = self.db.claim_next_waiting_job()
        self.assertEqual(claimed.job_id, first.job_id)

    def test_claim_next_waiting_job_when_empty(self):
        self.assertIsNone(self.db.claim_next_waiting_job())

    def test_update_job_progress(self):
        job = self.db.create_sync_job("user-1")
        self.db.update_job_progress(
            job.job_id, status=JobStatus.SUCCESS, stage="SUCCESS", result={"ok": True}
        )
        updated = self.db.get_job(job.job_id)
        self.assertEqual(updated.status, JobStatus.SUCCESS)
        self.assertEqual(updated.result, {"ok": True})
        # Unknown ids are ignored.
        self.db.update_job_progress("missing", status=JobStatus.ERROR)

    def test_requeue_stale_locks(self):
        job = self.db.create_sync_job("user-1")
        self.db.claim_job(job.job_id)
        with self.db.Session() as session:
            row = session.get(SyncJobRow, job.job_id)
            row.locked_at = time.time() - 3600
            session.commit()

        self.assertEqual(self.db.requeue_stale_locks(lock_timeout_seconds=600), 1)
        requeued = self.db.get_job(job.job_id)
        self.assertEqual(requeued.status, JobStatus.WAITING)
        self.assertIsNone(requeued.locked_at)

    def test_fresh_locks_are_kept(self):
        job = self.db.create_sync_job("user-1")
        self.db.claim_job(job.job_id)
        self.assertEqual(self.db.requeue_stale_locks(lock_timeout_seconds=600), 0)


class DbClientRateLimitTests(unittest.TestCase):
    def setUp(self):
        self.db = DbClient.in_memory()

    def test_allows_until_limit(self):
        for _ in range(3):
            self.assertIsNone(
                self.db.hit_rate_limit("user-1", "manage-task", limit=3, window_seconds=60)
            )
        retry_after = self.db.hit_rate_limit(
            "user-1", "manage-task", limit=3, window_seconds=60
        )
        self.assertIsNotNone(retry_after)
        self.assertGreaterEqual(retry_after, 1)
        self.assertLessEqual(retry_after, 60)

    def test_counts_per_user_and_endpoint(self):
        self.db.hit_rate_limit("user-1", "manage-task", limit=1, window_seconds=60)
        self.assertIsNone(
            self.db.hit_rate_limit("user-2", "manage-task", limit=1, window_seconds=60)
        )
        self.assertIsNone(
            self.db.hit_rate_limit("user-1", "manage-habit", limit=1, window_seconds=60)
        )

    def test_window_resets(self):
        self.db.hit_rate_limit("user-1", "manage-task", limit=1, window_seconds=60)
        self.assertIsNotNone(
            self.db.hit_rate_limit("user-1", "manage-task", limit=1, window_seconds=60)
        )
        with self.db.Session() as session:
            row = session.get(RateLimitRow, ("user-1", "manage-task"))
            row.window_start -= 120
            session.commit()
        self.assertIsNone(
            self.db.hit_rate_limit("user-1", "manage-task", limit=1, window_seconds=60)
        )

    def test_reset_drops_rows(self):
        self.db.create_sync_job("user-1")
        self.db.reset()
        self.assertIsNone(self.db.claim_next_waiting_job())


if __name__ == "__main__":
    unittest.main()
