import threading
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from genstudio.exceptions import (
    AdapterSubmissionError,
    InsufficientCreditsError,
    JobNotFoundError,
    QuotaExceededError,
    UnsupportedModelError,
    ValidationError,
)
from genstudio.models import AdapterProtocol, GenerationRequest, JobState, ProviderHandle, ResultKind
from genstudio.orchestrator import Orchestrator
from genstudio.providers.base import (
    ProviderAdapter,
    cancelled,
    failed,
    in_progress,
    noop_cancel,
    resolved_poll,
    succeeded,
)
from genstudio.quota import QuotaGuard
from genstudio.registry import JobRegistry
from genstudio.routing import AdapterRouter
from genstudio.storage import InMemoryStore

IMAGE_RESULT = {"images": [{"url": "https://x/1.png"}]}


class FakeClock:
    def __init__(self):
        self.now = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class ScriptedQueueAdapter:
    """QueueAndPoll stub that replays a list of outcomes, one per poll."""

    def __init__(self, outcomes, patterns=("fal-ai/recraft*",)):
        self.outcomes = list(outcomes)
        self.submitted = []
        self.polls = 0
        self.cancelled = []
        self._lock = threading.Lock()
        self.adapter = ProviderAdapter(
            name="stub-queue",
            provider="stub",
            protocol=AdapterProtocol.QUEUE_AND_POLL,
            model_patterns=tuple(patterns),
            submit=self.submit,
            poll=self.poll,
            cancel=self.cancel,
        )

    def submit(self, request):
        self.submitted.append(request)
        ref = f"req-{len(self.submitted)}"
        return ProviderHandle(ref=ref, model_id=request.model_id, data={"request_id": ref})

    def poll(self, handle):
        with self._lock:
            self.polls += 1
            if len(self.outcomes) > 1:
                return self.outcomes.pop(0)
            return self.outcomes[0]

    def cancel(self, handle):
        self.cancelled.append(handle.ref)


def build(adapters, limit=10, clock=None, max_job_age_seconds=900):
    clock = clock or FakeClock()
    registry = JobRegistry(clock=clock)
    quota = QuotaGuard(InMemoryStore(), limit=limit)
    orchestrator = Orchestrator(
        AdapterRouter(adapters), registry, quota, max_job_age_seconds=max_job_age_seconds, clock=clock
    )
    return orchestrator, clock


def request(model_id="fal-ai/recraft-20b", client_id="client-a", **data):
    return GenerationRequest(model_id=model_id, input=data or {"prompt": "a red fox"}, client_id=client_id)


class TestSubmitAndPoll(unittest.TestCase):
    def test_queue_job_end_to_end(self):
        stub = ScriptedQueueAdapter([in_progress({"queue_position": 2}), succeeded(IMAGE_RESULT)])
        orchestrator, _ = build([stub.adapter])

        job = orchestrator.submit_generation(request())
        self.assertEqual(job.state, JobState.SUBMITTED)
        self.assertEqual(job.provider_handle.ref, "req-1")

        job = orchestrator.poll_generation(job.job_id)
        self.assertEqual(job.state, JobState.IN_PROGRESS)
        self.assertEqual(job.progress, {"queue_position": 2})

        job = orchestrator.poll_generation(job.job_id)
        self.assertEqual(job.state, JobState.SUCCEEDED)
        self.assertEqual(job.result.kind, ResultKind.IMAGE)
        self.assertEqual(job.result.assets[0].url, "https://x/1.png")
        self.assertIsNone(job.progress)
        self.assertTrue(job.delivered)
        self.assertEqual(orchestrator.quota.peek("client-a").used_count, 1)

    def test_terminal_poll_makes_no_adapter_call(self):
        stub = ScriptedQueueAdapter([succeeded(IMAGE_RESULT)])
        orchestrator, _ = build([stub.adapter])
        job = orchestrator.submit_generation(request())
        orchestrator.poll_generation(job.job_id)
        polls = stub.polls

        for _ in range(3):
            again = orchestrator.poll_generation(job.job_id)
            self.assertEqual(again.state, JobState.SUCCEEDED)
        self.assertEqual(stub.polls, polls)
        self.assertEqual(orchestrator.quota.peek("client-a").used_count, 1)

    def test_unchanged_or_empty_progress_is_not_rewritten(self):
        stub = ScriptedQueueAdapter([in_progress({"status": "IN_QUEUE"}), in_progress(), in_progress({"status": "IN_QUEUE"})])
        orchestrator, _ = build([stub.adapter])
        job = orchestrator.submit_generation(request())

        first = orchestrator.poll_generation(job.job_id)
        second = orchestrator.poll_generation(job.job_id)
        third = orchestrator.poll_generation(job.job_id)
        self.assertEqual(first.progress, {"status": "IN_QUEUE"})
        self.assertEqual(second.updated_at, first.updated_at)
        self.assertEqual(third.progress, {"status": "IN_QUEUE"})

    def test_first_running_poll_moves_job_to_in_progress(self):
        stub = ScriptedQueueAdapter([in_progress(), succeeded(IMAGE_RESULT)])
        orchestrator, _ = build([stub.adapter])
        job = orchestrator.submit_generation(request())

        job = orchestrator.poll_generation(job.job_id)
        self.assertEqual(job.state, JobState.IN_PROGRESS)
        self.assertIsNone(job.progress)

        job = orchestrator.poll_generation(job.job_id)
        self.assertEqual(job.state, JobState.SUCCEEDED)

    def test_unsupported_model_creates_no_job(self):
        stub = ScriptedQueueAdapter([succeeded(IMAGE_RESULT)])
        orchestrator, _ = build([stub.adapter])

        with self.assertRaises(UnsupportedModelError):
            orchestrator.submit_generation(request(model_id="fal-ai/unknown-model"))
        self.assertEqual(len(orchestrator.registry), 0)
        self.assertEqual(stub.submitted, [])
        self.assertEqual(orchestrator.quota.peek("client-a").reserved, 0)

    def test_invalid_request(self):
        orchestrator, _ = build([ScriptedQueueAdapter([in_progress()]).adapter])
        with self.assertRaises(ValidationError):
            orchestrator.submit_generation(GenerationRequest("fal-ai/recraft-v3", {}, "  "))
        with self.assertRaises(ValidationError):
            orchestrator.submit_generation(GenerationRequest("fal-ai/recraft-v3", None, "client-a"))
        with self.assertRaises(ValidationError):
            GenerationRequest("fal-ai/recraft-v3", ["prompt"], "client-a")
        self.assertEqual(len(orchestrator.registry), 0)

    def test_submission_rejection_fails_job_and_releases_quota(self):
        def reject(req):
            raise InsufficientCreditsError("no credits", provider="stub")

        adapter = ProviderAdapter("rejecting", "stub", AdapterProtocol.QUEUE_AND_POLL,
                                  ("fal-ai/recraft*",), reject, lambda h: in_progress(), noop_cancel)
        orchestrator, _ = build([adapter])

        with self.assertRaises(InsufficientCreditsError):
            orchestrator.submit_generation(request())

        [job] = orchestrator.list_jobs("client-a")
        self.assertEqual(job.state, JobState.FAILED)
        self.assertEqual(job.error.kind, "insufficient_credits")
        state = orchestrator.quota.peek("client-a")
        self.assertEqual((state.used_count, state.reserved), (0, 0))

    def test_unexpected_submit_exception_is_wrapped(self):
        def explode(req):
            raise RuntimeError("socket closed")

        adapter = ProviderAdapter("exploding", "stub", AdapterProtocol.QUEUE_AND_POLL,
                                  ("fal-ai/recraft*",), explode, lambda h: in_progress(), noop_cancel)
        orchestrator, _ = build([adapter])

        with self.assertRaises(AdapterSubmissionError) as ctx:
            orchestrator.submit_generation(request())
        self.assertIn("socket closed", str(ctx.exception))
        self.assertEqual(orchestrator.list_jobs("client-a")[0].state, JobState.FAILED)

    def test_sync_subscribe_handle_resolves_at_submit(self):
        def submit(req):
            return ProviderHandle(ref="r1", model_id=req.model_id, resolved=succeeded(IMAGE_RESULT))

        poll = MagicMock(return_value=in_progress())
        adapter = ProviderAdapter("sync", "stub", AdapterProtocol.SYNC_SUBSCRIBE, ("fal-ai/recraft*",),
                                  submit, lambda h: resolved_poll(h, poll), noop_cancel)
        orchestrator, _ = build([adapter])

        job = orchestrator.submit_generation(request())
        self.assertEqual(job.state, JobState.SUCCEEDED)
        self.assertEqual(orchestrator.quota.peek("client-a").used_count, 1)
        poll.assert_not_called()

    def test_malformed_result_fails_job(self):
        stub = ScriptedQueueAdapter([succeeded({"seed": 1})])
        orchestrator, _ = build([stub.adapter])
        job = orchestrator.submit_generation(request())

        job = orchestrator.poll_generation(job.job_id)
        self.assertEqual(job.state, JobState.FAILED)
        self.assertEqual(job.error.kind, "malformed_result")
        self.assertEqual(orchestrator.quota.peek("client-a").used_count, 0)

    def test_unreadable_result_fails_job_once(self):
        stub = ScriptedQueueAdapter([succeeded({"images": [{"url": "https://x/1.png", "file_size": float("inf")}]})])
        orchestrator, _ = build([stub.adapter])
        job = orchestrator.poll_generation(orchestrator.submit_generation(request()).job_id)
        self.assertEqual(job.state, JobState.SUCCEEDED)
        self.assertIsNone(job.result.assets[0].size_bytes)

        def explode(model_id, payload):
            raise OverflowError("cannot convert float infinity to integer")

        stub = ScriptedQueueAdapter([succeeded(IMAGE_RESULT)])
        orchestrator, _ = build([stub.adapter])
        orchestrator.normalizer = MagicMock(normalize=explode)
        job = orchestrator.poll_generation(orchestrator.submit_generation(request()).job_id)
        self.assertEqual(job.state, JobState.FAILED)
        self.assertEqual(job.error.kind, "malformed_result")

        polls = stub.polls
        orchestrator.poll_generation(job.job_id)
        self.assertEqual(stub.polls, polls)
        self.assertEqual(orchestrator.quota.peek("client-a").reserved, 0)

    def test_provider_failure_and_cancel_outcomes(self):
        stub = ScriptedQueueAdapter([failed("content policy")])
        orchestrator, _ = build([stub.adapter])
        job = orchestrator.poll_generation(orchestrator.submit_generation(request()).job_id)
        self.assertEqual(job.state, JobState.FAILED)
        self.assertEqual(job.error.kind, "provider_error")
        self.assertIn("content policy", job.error.message)

        stub = ScriptedQueueAdapter([cancelled()])
        orchestrator, _ = build([stub.adapter])
        job = orchestrator.poll_generation(orchestrator.submit_generation(request()).job_id)
        self.assertEqual(job.state, JobState.CANCELLED)

    def test_adapter_poll_exception_fails_job(self):
        def poll(handle):
            raise KeyError("status_url")

        adapter = ProviderAdapter("broken-poll", "stub", AdapterProtocol.QUEUE_AND_POLL, ("fal-ai/recraft*",),
                                  lambda r: ProviderHandle("r1", r.model_id), poll, noop_cancel)
        orchestrator, _ = build([adapter])
        job = orchestrator.poll_generation(orchestrator.submit_generation(request()).job_id)
        self.assertEqual(job.state, JobState.FAILED)

    def test_unknown_job(self):
        orchestrator, _ = build([ScriptedQueueAdapter([in_progress()]).adapter])
        with self.assertRaises(JobNotFoundError):
            orchestrator.poll_generation("nope")
        with self.assertRaises(JobNotFoundError):
            orchestrator.cancel_generation("nope")


class TestQuotaAccounting(unittest.TestCase):
    def test_only_successes_are_counted(self):
        orchestrator, _ = build([
            ScriptedQueueAdapter([succeeded(IMAGE_RESULT)], patterns=("fal-ai/recraft*",)).adapter,
            ScriptedQueueAdapter([failed("boom")], patterns=("fal-ai/veo3*",)).adapter,
        ])
        jobs = [
            orchestrator.submit_generation(request()),
            orchestrator.submit_generation(request()),
            orchestrator.submit_generation(request(model_id="fal-ai/veo3")),
        ]
        final = [orchestrator.poll_generation(j.job_id).state for j in jobs]

        self.assertEqual(final, [JobState.SUCCEEDED, JobState.SUCCEEDED, JobState.FAILED])
        state = orchestrator.quota.peek("client-a")
        self.assertEqual(state.used_count, 2)
        self.assertEqual(state.reserved, 0)

    def test_exhausted_quota_rejects_before_provider_call(self):
        stub = ScriptedQueueAdapter([in_progress()])
        orchestrator, _ = build([stub.adapter], limit=2)
        orchestrator.submit_generation(request())
        orchestrator.submit_generation(request())

        with self.assertRaises(QuotaExceededError) as ctx:
            orchestrator.submit_generation(request())
        self.assertEqual(ctx.exception.limit, 2)
        self.assertEqual(len(stub.submitted), 2)
        self.assertEqual(len(orchestrator.registry), 2)


class TestTimeoutsAndCancel(unittest.TestCase):
    def test_stale_job_times_out_without_consuming(self):
        stub = ScriptedQueueAdapter([in_progress({"status": "IN_PROGRESS"})])
        orchestrator, clock = build([stub.adapter], max_job_age_seconds=60)
        job = orchestrator.submit_generation(request())
        orchestrator.poll_generation(job.job_id)

        clock.advance(61)
        job = orchestrator.poll_generation(job.job_id)

        self.assertEqual(job.state, JobState.TIMED_OUT)
        self.assertEqual(job.error.kind, "timeout")
        self.assertEqual(stub.cancelled, ["req-1"])
        state = orchestrator.quota.peek("client-a")
        self.assertEqual((state.used_count, state.reserved), (0, 0))

    def test_sweep_times_out_and_evicts(self):
        stub = ScriptedQueueAdapter([in_progress()])
        orchestrator, clock = build([stub.adapter], max_job_age_seconds=60)
        job = orchestrator.submit_generation(request())

        clock.advance(120)
        timed_out = orchestrator.sweep()
        self.assertEqual([j.job_id for j in timed_out], [job.job_id])
        self.assertEqual(orchestrator.sweep(), [])

    def test_cancel_is_local_and_best_effort(self):
        def cancel(handle):
            raise ConnectionError("provider down")

        adapter = ProviderAdapter("stub", "stub", AdapterProtocol.QUEUE_AND_POLL, ("fal-ai/recraft*",),
                                  lambda r: ProviderHandle("r1", r.model_id), lambda h: in_progress(), cancel)
        orchestrator, _ = build([adapter])
        job = orchestrator.submit_generation(request())

        job = orchestrator.cancel_generation(job.job_id)
        self.assertEqual(job.state, JobState.CANCELLED)
        self.assertEqual(orchestrator.quota.peek("client-a").reserved, 0)

        # Cancelling again, or polling, leaves the terminal job alone
        self.assertEqual(orchestrator.cancel_generation(job.job_id).state, JobState.CANCELLED)
        self.assertEqual(orchestrator.poll_generation(job.job_id).state, JobState.CANCELLED)

    def test_cancel_after_success_keeps_success(self):
        stub = ScriptedQueueAdapter([succeeded(IMAGE_RESULT)])
        orchestrator, _ = build([stub.adapter])
        job = orchestrator.poll_generation(orchestrator.submit_generation(request()).job_id)

        self.assertEqual(orchestrator.cancel_generation(job.job_id).state, JobState.SUCCEEDED)
        self.assertEqual(stub.cancelled, [])


class TestConcurrentPolling(unittest.TestCase):
    def test_concurrent_polls_settle_once(self):
        stub = ScriptedQueueAdapter([succeeded(IMAGE_RESULT)])
        orchestrator, _ = build([stub.adapter])
        job = orchestrator.submit_generation(request())

        barrier = threading.Barrier(8)
        states = []

        def poll():
            barrier.wait()
            states.append(orchestrator.poll_generation(job.job_id).state)

        threads = [threading.Thread(target=poll) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(states, [JobState.SUCCEEDED] * 8)
        state = orchestrator.quota.peek("client-a")
        self.assertEqual(state.used_count, 1)
        self.assertEqual(state.reserved, 0)

    def test_cancel_racing_success_settles_quota_once(self):
        release = threading.Event()

        def slow_poll(handle):
            release.wait(5)
            return succeeded(IMAGE_RESULT)

        adapter = ProviderAdapter("slow", "stub", AdapterProtocol.QUEUE_AND_POLL, ("fal-ai/recraft*",),
                                  lambda r: ProviderHandle("r1", r.model_id), slow_poll, noop_cancel)
        orchestrator, _ = build([adapter])
        job = orchestrator.submit_generation(request())

        poller = threading.Thread(target=orchestrator.poll_generation, args=(job.job_id,))
        poller.start()
        cancelled_job = orchestrator.cancel_generation(job.job_id)
        release.set()
        poller.join()

        final = orchestrator.get_job(job.job_id)
        self.assertEqual(cancelled_job.state, JobState.CANCELLED)
        self.assertEqual(final.state, JobState.CANCELLED)
        state = orchestrator.quota.peek("client-a")
        self.assertEqual((state.used_count, state.reserved), (0, 0))


class TestRestart(unittest.TestCase):
    def reopen(self, adapter, job_store, quota_store, limit=1):
        return Orchestrator(
            AdapterRouter([adapter]),
            JobRegistry(store=job_store),
            QuotaGuard(quota_store, limit=limit),
        )

    def test_in_flight_jobs_keep_their_slot_after_restart(self):
        stub = ScriptedQueueAdapter([in_progress({"status": "IN_QUEUE"}), succeeded(IMAGE_RESULT)])
        job_store, quota_store = InMemoryStore(), InMemoryStore()
        first = self.reopen(stub.adapter, job_store, quota_store)
        job = first.submit_generation(request())

        second = self.reopen(stub.adapter, job_store, quota_store)
        self.assertEqual(second.quota.peek("client-a").reserved, 1)
        with self.assertRaises(QuotaExceededError):
            second.submit_generation(request())

        second.poll_generation(job.job_id)
        self.assertEqual(second.poll_generation(job.job_id).state, JobState.SUCCEEDED)
        state = second.quota.peek("client-a")
        self.assertEqual((state.used_count, state.reserved), (1, 0))

    def test_failed_job_releases_only_its_own_slot(self):
        stub = ScriptedQueueAdapter([in_progress({"status": "IN_QUEUE"})])
        job_store, quota_store = InMemoryStore(), InMemoryStore()
        first = self.reopen(stub.adapter, job_store, quota_store, limit=3)
        old = first.submit_generation(request())

        second = self.reopen(stub.adapter, job_store, quota_store, limit=3)
        second.submit_generation(request())
        self.assertEqual(second.quota.peek("client-a").reserved, 2)

        second.cancel_generation(old.job_id)
        second.cancel_generation(old.job_id)
        self.assertEqual(second.quota.peek("client-a").reserved, 1)


if __name__ == "__main__":
    unittest.main()
