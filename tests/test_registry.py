import threading
import unittest
from datetime import datetime, timedelta, timezone

from genstudio.exceptions import InvalidTransitionError, JobNotFoundError
from genstudio.models import ErrorInfo, JobState, ProviderHandle
from genstudio.registry import JobRegistry
from genstudio.storage import InMemoryStore


class FakeClock:
    def __init__(self):
        self.now = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class TestJobRegistry(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.registry = JobRegistry(
            retention_seconds=60,
            undelivered_retention_seconds=600,
            clock=self.clock,
        )

    def test_create_starts_pending_with_unique_ids(self):
        first = self.registry.create("fal-ai/recraft-v3", "client-a")
        second = self.registry.create("fal-ai/recraft-v3", "client-a")

        self.assertEqual(first.state, JobState.PENDING)
        self.assertNotEqual(first.job_id, second.job_id)
        self.assertEqual(first.submitted_at, self.clock.now)
        self.assertEqual(len(self.registry), 2)

    def test_transition_patches_fields(self):
        job = self.registry.create("fal-ai/veo3", "client-a")
        handle = ProviderHandle(ref="req-1", model_id="fal-ai/veo3", data={"status_url": "u"})

        updated = self.registry.transition(
            job.job_id, {JobState.PENDING}, JobState.SUBMITTED, provider_handle=handle
        )

        self.assertEqual(updated.state, JobState.SUBMITTED)
        self.assertEqual(updated.provider_handle.ref, "req-1")
        # The old snapshot is untouched
        self.assertEqual(job.state, JobState.PENDING)

    def test_transition_rejects_wrong_from_state(self):
        job = self.registry.create("fal-ai/veo3", "client-a")
        with self.assertRaises(InvalidTransitionError):
            self.registry.transition(job.job_id, {JobState.SUBMITTED}, JobState.IN_PROGRESS)

    def test_terminal_states_have_no_outgoing_edges(self):
        job = self.registry.create("fal-ai/veo3", "client-a")
        self.registry.transition(job.job_id, {JobState.PENDING}, JobState.CANCELLED)

        for target in (JobState.SUBMITTED, JobState.SUCCEEDED, JobState.FAILED):
            with self.assertRaises(InvalidTransitionError):
                self.registry.transition(job.job_id, {JobState.CANCELLED}, target)

    def test_in_progress_can_refresh_progress(self):
        job = self.registry.create("fal-ai/veo3", "client-a")
        self.registry.transition(job.job_id, {JobState.PENDING}, JobState.SUBMITTED)
        self.registry.transition(
            job.job_id, {JobState.SUBMITTED}, JobState.IN_PROGRESS, progress={"queue_position": 3}
        )
        updated = self.registry.transition(
            job.job_id, {JobState.IN_PROGRESS}, JobState.IN_PROGRESS, progress={"queue_position": 1}
        )
        self.assertEqual(updated.progress, {"queue_position": 1})

    def test_transition_rejects_unknown_patch_fields(self):
        job = self.registry.create("fal-ai/veo3", "client-a")
        with self.assertRaises(ValueError):
            self.registry.transition(job.job_id, {JobState.PENDING}, JobState.SUBMITTED, client_id="x")

    def test_unknown_job(self):
        with self.assertRaises(JobNotFoundError):
            self.registry.get("missing")
        with self.assertRaises(JobNotFoundError):
            self.registry.transition("missing", {JobState.PENDING}, JobState.SUBMITTED)

    def test_concurrent_terminal_transitions_have_one_winner(self):
        job = self.registry.create("fal-ai/veo3", "client-a")
        self.registry.transition(job.job_id, {JobState.PENDING}, JobState.SUBMITTED)

        winners = []
        losers = []
        barrier = threading.Barrier(8)

        def finish(target):
            barrier.wait()
            try:
                self.registry.transition(
                    job.job_id, {JobState.SUBMITTED, JobState.IN_PROGRESS}, target
                )
                winners.append(target)
            except InvalidTransitionError:
                losers.append(target)

        targets = [JobState.SUCCEEDED, JobState.FAILED, JobState.CANCELLED, JobState.TIMED_OUT] * 2
        threads = [threading.Thread(target=finish, args=(t,)) for t in targets]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(len(winners), 1)
        self.assertEqual(len(losers), 7)
        self.assertEqual(self.registry.get(job.job_id).state, winners[0])

    def test_mark_delivered_only_for_terminal_jobs(self):
        job = self.registry.create("fal-ai/veo3", "client-a")
        self.assertFalse(self.registry.mark_delivered(job.job_id).delivered)

        self.registry.transition(job.job_id, {JobState.PENDING}, JobState.FAILED,
                                 error=ErrorInfo(kind="provider_error", message="boom"))
        self.assertTrue(self.registry.mark_delivered(job.job_id).delivered)

    def test_eviction_respects_delivery(self):
        delivered = self.registry.create("fal-ai/recraft-v3", "client-a")
        undelivered = self.registry.create("fal-ai/recraft-v3", "client-a")
        running = self.registry.create("fal-ai/veo3", "client-a")
        for job in (delivered, undelivered):
            self.registry.transition(job.job_id, {JobState.PENDING}, JobState.CANCELLED)
        self.registry.mark_delivered(delivered.job_id)

        self.clock.advance(120)
        self.assertEqual(self.registry.evict_expired(), [delivered.job_id])

        self.clock.advance(600)
        self.assertEqual(self.registry.evict_expired(), [undelivered.job_id])

        # Non-terminal jobs stay regardless of age
        self.assertEqual(self.registry.get(running.job_id).state, JobState.PENDING)
        with self.assertRaises(JobNotFoundError):
            self.registry.get(delivered.job_id)

    def test_list_by_client_oldest_first(self):
        first = self.registry.create("fal-ai/recraft-v3", "client-a")
        self.clock.advance(1)
        self.registry.create("fal-ai/recraft-v3", "client-b")
        self.clock.advance(1)
        third = self.registry.create("fal-ai/veo3", "client-a")

        jobs = self.registry.list_by_client("client-a")
        self.assertEqual([j.job_id for j in jobs], [first.job_id, third.job_id])

    def test_write_through_store_survives_restart(self):
        store = InMemoryStore()
        registry = JobRegistry(store=store, clock=self.clock)
        job = registry.create("runway/gen4_turbo", "client-a")
        handle = ProviderHandle(ref="task-1", model_id="runway/gen4_turbo", data={"task_id": "task-1"})
        registry.transition(job.job_id, {JobState.PENDING}, JobState.SUBMITTED, provider_handle=handle)

        reloaded = JobRegistry(store=store, clock=self.clock)
        restored = reloaded.get(job.job_id)
        self.assertEqual(restored.state, JobState.SUBMITTED)
        self.assertEqual(restored.provider_handle.data, {"task_id": "task-1"})
        self.assertEqual(restored.submitted_at, job.submitted_at)

    def test_unreadable_records_are_skipped(self):
        store = InMemoryStore({"bad": {"job_id": "bad"}})
        registry = JobRegistry(store=store, clock=self.clock)
        self.assertEqual(len(registry), 0)


if __name__ == "__main__":
    unittest.main()
