import unittest
from unittest.mock import MagicMock, patch

from backend.db import DbClient, JobStatus
from backend.errors import ApiError
from backend.queue import InMemoryJobQueue
from backend.tables import GoogleCalendarConnectionRow
from backend.worker import process_job, process_next
from scripts.calendar_sync_daemon import enqueue_polls


@patch("backend.worker.get_google_client", return_value=MagicMock())
@patch("backend.worker.get_settings", return_value=MagicMock())
class WorkerTests(unittest.TestCase):
    def setUp(self):
        self.db = DbClient.in_memory()
        self.queue = InMemoryJobQueue()

    @patch("backend.worker.google_calendar.poll_changes")
    def test_process_once_records_result(self, mock_poll, *_):
        mock_poll.return_value = {"success": True, "calendarsPolled": 1}
        job = self.db.create_sync_job("user-1")
        self.assertEqual(job.status, JobStatus.WAITING)

        self.queue.enqueue(job.job_id)
        processed = process_next(db=self.db, queue=self.queue, block=False)
        self.assertTrue(processed)

        updated = self.db.get_job(job.job_id)
        self.assertEqual(updated.status, JobStatus.SUCCESS)
        self.assertEqual(updated.stage, "SUCCESS")
        self.assertEqual(updated.result["calendarsPolled"], 1)
        self.assertEqual(mock_poll.call_args[0][3], "user-1")

    def test_process_once_no_jobs(self, *_):
        processed = process_next(db=self.db, queue=self.queue, block=False)
        self.assertFalse(processed)

    @patch("backend.worker.google_calendar.poll_changes")
    def test_waiting_job_without_queue_entry_is_picked_up(self, mock_poll, *_):
        mock_poll.return_value = {"success": True}
        job = self.db.create_sync_job("user-1")

        self.assertTrue(process_next(db=self.db, queue=self.queue, block=False))
        self.assertEqual(self.db.get_job(job.job_id).status, JobStatus.SUCCESS)

    @patch("backend.worker.google_calendar.poll_changes")
    def test_unknown_job_id_is_skipped(self, mock_poll, *_):
        self.queue.enqueue("missing")
        self.assertFalse(process_next(db=self.db, queue=self.queue, block=False))
        mock_poll.assert_not_called()

    @patch("backend.worker.google_calendar.poll_changes")
    def test_already_claimed_job_is_skipped(self, mock_poll, *_):
        job = self.db.create_sync_job("user-1")
        self.db.claim_job(job.job_id)
        self.queue.enqueue(job.job_id)
        self.assertFalse(process_next(db=self.db, queue=self.queue, block=False))
        mock_poll.assert_not_called()

    @patch("backend.worker.google_calendar.poll_changes")
    def test_expired_sync_token_retries_once(self, mock_poll, *_):
        mock_poll.side_effect = [
            {"requiresRetry": True, "message": "expired"},
            {"success": True, "calendarsPolled": 1},
        ]
        job = self.db.claim_job(self.db.create_sync_job("user-1").job_id)

        process_job(job, self.db, google=MagicMock(), settings=MagicMock())

        self.assertEqual(mock_poll.call_count, 2)
        self.assertEqual(self.db.get_job(job.job_id).result["success"], True)

    @patch("backend.worker.google_calendar.poll_changes")
    def test_failed_retry_marks_job_failed(self, mock_poll, *_):
        mock_poll.side_effect = [
            {"requiresRetry": True, "message": "expired"},
            ApiError(401, "Google Calendar authorization expired"),
        ]
        job = self.db.claim_job(self.db.create_sync_job("user-1").job_id)

        process_job(job, self.db, google=MagicMock(), settings=MagicMock())

        failed = self.db.get_job(job.job_id)
        self.assertEqual(failed.status, JobStatus.ERROR)
        self.assertEqual(failed.stage, "ERROR")
        self.assertEqual(failed.error, "Google Calendar authorization expired")

    @patch("backend.worker.google_calendar.poll_changes")
    def test_unexpected_error_in_retry_is_recorded(self, mock_poll, *_):
        mock_poll.side_effect = [{"requiresRetry": True}, RuntimeError("boom")]
        job = self.db.claim_job(self.db.create_sync_job("user-1").job_id)

        with self.assertRaises(RuntimeError):
            process_job(job, self.db, google=MagicMock(), settings=MagicMock())

        self.assertEqual(self.db.get_job(job.job_id).status, JobStatus.ERROR)

    @patch("backend.worker.google_calendar.poll_changes")
    def test_api_error_marks_job_failed(self, mock_poll, *_):
        mock_poll.side_effect = ApiError(400, "No active Google Calendar connection")
        job = self.db.claim_job(self.db.create_sync_job("user-1").job_id)

        process_job(job, self.db, google=MagicMock(), settings=MagicMock())

        failed = self.db.get_job(job.job_id)
        self.assertEqual(failed.status, JobStatus.ERROR)
        self.assertEqual(failed.error, "No active Google Calendar connection")

    @patch("backend.worker.google_calendar.poll_changes")
    def test_unexpected_error_is_recorded_and_raised(self, mock_poll, *_):
        mock_poll.side_effect = RuntimeError("boom")
        job = self.db.claim_job(self.db.create_sync_job("user-1").job_id)

        with self.assertRaises(RuntimeError):
            process_job(job, self.db, google=MagicMock(), settings=MagicMock())

        failed = self.db.get_job(job.job_id)
        self.assertEqual(failed.status, JobStatus.ERROR)
        self.assertEqual(failed.error, "Internal error")


class SchedulerTests(unittest.TestCase):
    def setUp(self):
        self.db = DbClient.in_memory()
        self.queue = InMemoryJobQueue()
        with self.db.Session() as session:
            for user_id in ("user-1", "user-2", "user-3"):
                session.add(GoogleCalendarConnectionRow(user_id=user_id, is_active=True))
            session.commit()

    def test_queues_one_poll_per_connected_user(self):
        self.assertEqual(enqueue_polls(self.db, self.queue), 3)
        self.assertEqual(self.queue.depth(), 3)
        # Users with a job outstanding are skipped on the next round.
        self.assertEqual(enqueue_polls(self.db, self.queue), 0)

    def test_limit_caps_a_round(self):
        self.assertEqual(enqueue_polls(self.db, self.queue, limit=2), 2)
        self.assertEqual(self.queue.depth(), 2)

    def test_backlog_skips_round(self):
        self.queue.enqueue("stale-1")
        self.queue.enqueue("stale-2")
        self.assertEqual(enqueue_polls(self.db, self.queue, max_backlog=2), 0)
        self.assertEqual(self.queue.depth(), 2)

        self.queue.dequeue(block=False)
        self.assertEqual(enqueue_polls(self.db, self.queue, max_backlog=2), 3)


if __name__ == "__main__":
    unittest.main()
