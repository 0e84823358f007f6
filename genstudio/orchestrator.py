"""
Generation job orchestration.

This module provides the uniform "submit a job, poll it, get a normalized
result" interface across providers with different completion protocols.
The orchestrator never holds a lock while talking to a provider: it reads a
job snapshot, calls the adapter, then records what it saw through the
registry's guarded transition. If another caller got there first the
transition is refused and the already-updated job is returned instead.

Quota is success-gated. A slot is reserved at submission, consumed only by
the caller whose transition to SUCCEEDED wins, and released by whichever
caller wins any other terminal transition.

Polling is caller-driven: nothing here schedules timers. A UI, a worker or
the ``genjob.py wait`` command decides the cadence.
"""

from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .exceptions import (
    AdapterSubmissionError,
    GenerationError,
    InvalidTransitionError,
    JobTimeoutError,
    MalformedResultError,
    QuotaExceededError,
    UnsupportedModelError,
    ValidationError,
)
from .logger import get_library_logger
from .models import (
    ACTIVE_STATES,
    ErrorInfo,
    GenerationRequest,
    Job,
    JobState,
    PollOutcome,
    ProviderHandle,
)
from .normalizer import ResultNormalizer
from .providers.base import ProviderAdapter, failed
from .quota import QuotaGuard
from .registry import JobRegistry, utcnow
from .routing import AdapterRouter

# States in which a provider has accepted the job
RUNNING_STATES = frozenset({JobState.SUBMITTED, JobState.IN_PROGRESS})


class Orchestrator:
    """Drives generation jobs through their adapters and the job registry."""

    def __init__(
        self,
        router: AdapterRouter,
        registry: JobRegistry,
        quota: QuotaGuard,
        normalizer: Optional[ResultNormalizer] = None,
        max_job_age_seconds: float = 900,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize the orchestrator.

        Args:
            router: Resolves model ids to adapters
            registry: Owns job records and state transitions
            quota: Per-client generation allowance
            normalizer: Maps provider payloads to normalized results
            max_job_age_seconds: Non-terminal jobs older than this time out
            clock: Source of timezone-aware timestamps
        """
        self.router = router
        self.registry = registry
        self.quota = quota
        self.normalizer = normalizer or ResultNormalizer()
        self.max_job_age_seconds = max_job_age_seconds
        self._clock = clock
        self.logger = get_library_logger()
        self._restore_reservations()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def submit_generation(self, request: GenerationRequest) -> Job:
        """
        Submit a generation request.

        Returns as soon as the provider has accepted the job. SyncSubscribe
        and OneShot adapters return already-finished handles, so their jobs
        come back terminal; QueueAndPoll jobs come back SUBMITTED and must be
        polled with ``poll_generation``.

        Args:
            request: Model id, provider input and client id

        Returns:
            The job snapshot after submission

        Raises:
            ValidationError: If the request is malformed
            UnsupportedModelError: If no adapter serves the model
            QuotaExceededError: If the client has no generations left
            AdapterSubmissionError: If the provider rejected the request
        """
        self._validate_request(request)
        adapter = self.router.resolve(request.model_id)

        job_id = self.registry.new_job_id()
        if not self.quota.check_and_reserve(request.client_id, job_id):
            state = self.quota.peek(request.client_id)
            raise QuotaExceededError(request.client_id, state.used_count, state.limit)

        job = self.registry.create(request.model_id, request.client_id, job_id=job_id)
        self.logger.info(
            f"Submitting job {job.job_id}: model={request.model_id} via {adapter.name} "
            f"({adapter.protocol.value})"
        )

        try:
            handle = adapter.submit(request)
        except (AdapterSubmissionError, ValidationError) as e:
            self._fail_submission(job, e)
            raise
        except Exception as e:
            error = AdapterSubmissionError(
                f"{adapter.name} submission failed: {e}", provider=adapter.provider
            )
            self._fail_submission(job, error)
            raise error from e

        try:
            job = self.registry.transition(
                job.job_id, {JobState.PENDING}, JobState.SUBMITTED, provider_handle=handle
            )
        except InvalidTransitionError:
            # Cancelled or timed out while the provider call was in flight
            self.logger.warning(f"Job {job.job_id} ended during submission; cancelling provider request")
            self._cancel_quietly(adapter, handle)
            return self.registry.get(job.job_id)

        self.logger.info(f"Job {job.job_id} submitted (provider ref {handle.ref})")

        if handle.resolved is not None:
            job = self._apply_outcome(job, handle.resolved)
        return job

    def poll_generation(self, job_id: str) -> Job:
        """
        Refresh a job from its provider and return the current snapshot.

        Terminal jobs are returned as-is with no provider call, so repeated
        polls after completion are idempotent and cheap.

        Raises:
            JobNotFoundError: If the job is unknown or has been evicted
        """
        job = self.registry.get(job_id)
        if job.is_terminal:
            return self.registry.mark_delivered(job_id)

        if self._is_expired(job):
            job = self._time_out(job)
            return self.registry.mark_delivered(job_id) if job.is_terminal else job

        if job.provider_handle is None:
            # Still PENDING: the submission call hasn't returned yet
            return job

        outcome = self._poll_adapter(job)
        job = self._apply_outcome(job, outcome)
        if job.is_terminal:
            job = self.registry.mark_delivered(job_id)
        return job

    def cancel_generation(self, job_id: str) -> Job:
        """
        Cancel a job locally and ask the provider to stop, best-effort.

        The job becomes CANCELLED whether or not the provider acknowledges.
        Cancelling a terminal job returns it unchanged.
        """
        job = self.registry.get(job_id)
        if job.is_terminal:
            return job

        updated, won = self._finish(
            job,
            JobState.CANCELLED,
            from_states=ACTIVE_STATES,
            error=ErrorInfo(kind="cancelled", message="Cancelled by caller"),
        )
        if won and job.provider_handle is not None:
            self._cancel_provider(job.model_id, job.provider_handle)
        return updated

    def sweep(self) -> List[Job]:
        """
        Time out stale jobs and evict expired ones.

        Meant for a periodic scheduler; polling alone also enforces timeouts.

        Returns:
            Jobs that were timed out by this sweep
        """
        timed_out = []
        for job in self.registry.list_active():
            if self._is_expired(job):
                updated = self._time_out(job)
                if updated.state == JobState.TIMED_OUT:
                    timed_out.append(updated)
        self.registry.evict_expired()
        return timed_out

    def get_job(self, job_id: str) -> Job:
        return self.registry.get(job_id)

    def list_jobs(self, client_id: str) -> List[Job]:
        return self.registry.list_by_client(client_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _validate_request(self, request: GenerationRequest) -> None:
        if not isinstance(request.client_id, str) or not request.client_id.strip():
            raise ValidationError("client_id is required")

    def _poll_adapter(self, job: Job) -> PollOutcome:
        try:
            adapter = self.router.resolve(job.model_id)
        except UnsupportedModelError as e:
            self.logger.error(f"Job {job.job_id}: no adapter for {job.model_id} any more")
            return failed(str(e))

        try:
            outcome = adapter.poll(job.provider_handle)
        except Exception as e:
            self.logger.error(f"Polling job {job.job_id} via {adapter.name} failed: {e}")
            return failed(f"Polling failed: {e}")

        logs = outcome.payload.get("logs") if outcome.state == JobState.IN_PROGRESS else None
        if logs:
            for entry in logs:
                message = entry.get("message") if isinstance(entry, dict) else entry
                self.logger.debug(f"[{job.job_id}] {message}")
        return outcome

    def _apply_outcome(self, job: Job, outcome: PollOutcome) -> Job:
        """Record an adapter outcome against the job."""
        if outcome.state == JobState.IN_PROGRESS:
            progress = dict(outcome.payload)
            # Once running, an empty or repeated payload carries no news
            if job.state == JobState.IN_PROGRESS and (not progress or progress == job.progress):
                return job
            try:
                return self.registry.transition(
                    job.job_id, RUNNING_STATES, JobState.IN_PROGRESS, progress=progress or job.progress
                )
            except InvalidTransitionError:
                return self._lost_race(job.job_id, JobState.IN_PROGRESS)

        if outcome.state == JobState.SUCCEEDED:
            try:
                result = self.normalizer.normalize(job.model_id, outcome.payload)
            except MalformedResultError as e:
                return self._fail_result(job, e)
            except Exception as e:
                return self._fail_result(job, MalformedResultError(job.model_id, f"Unreadable result payload: {e}"))
            updated, _ = self._finish(job, JobState.SUCCEEDED, result=result, progress=None)
            return updated

        if outcome.state == JobState.CANCELLED:
            error = ErrorInfo(kind="cancelled", message=outcome.error or "Cancelled by provider")
            updated, _ = self._finish(job, JobState.CANCELLED, error=error)
            return updated

        error = ErrorInfo(kind="provider_error", message=outcome.error or "Generation failed")
        updated, _ = self._finish(job, JobState.FAILED, error=error)
        return updated

    def _finish(
        self,
        job: Job,
        to_state: JobState,
        from_states: Iterable[JobState] = RUNNING_STATES,
        **patch,
    ) -> Tuple[Job, bool]:
        """
        Make a terminal transition and settle quota if this caller won it.

        Returns:
            The current job and whether this call performed the transition
        """
        try:
            updated = self.registry.transition(job.job_id, from_states, to_state, **patch)
        except InvalidTransitionError:
            return self._lost_race(job.job_id, to_state), False

        if to_state == JobState.SUCCEEDED:
            self.quota.consume(job.client_id, job.job_id)
            self.logger.info(f"Job {job.job_id} succeeded ({len(updated.result.assets)} asset(s))")
        else:
            self.quota.release(job.client_id, job.job_id)
            reason = updated.error.message if updated.error else ""
            self.logger.info(f"Job {job.job_id} {to_state.value}: {reason}")
        return updated, True

    def _fail_result(self, job: Job, error: MalformedResultError) -> Job:
        self.logger.error(f"Job {job.job_id}: {error}")
        updated, _ = self._finish(job, JobState.FAILED, error=ErrorInfo.from_exception(error))
        return updated

    def _restore_reservations(self) -> None:
        """Hold quota again for jobs that were still in flight at the last shutdown."""
        held: Dict[str, List[str]] = {}
        for job in self.registry.list_active():
            held.setdefault(job.client_id, []).append(job.job_id)
        if held:
            self.quota.restore_reservations(held)

    def _lost_race(self, job_id: str, attempted: JobState) -> Job:
        current = self.registry.get(job_id)
        if current.is_terminal:
            self.logger.debug(
                f"Job {job_id} already {current.state.value}; dropped {attempted.value} update"
            )
        else:
            # A non-terminal job refusing a running-state update means a bug
            self.logger.error(
                f"Job {job_id} refused {attempted.value} while {current.state.value}"
            )
        return current

    def _fail_submission(self, job: Job, error: GenerationError) -> None:
        self.logger.error(f"Job {job.job_id} rejected by provider: {error}")
        self._finish(
            job,
            JobState.FAILED,
            from_states={JobState.PENDING},
            error=ErrorInfo.from_exception(error),
        )

    def _age_seconds(self, job: Job) -> float:
        return (self._clock() - job.submitted_at).total_seconds()

    def _is_expired(self, job: Job) -> bool:
        return not job.is_terminal and self._age_seconds(job) > self.max_job_age_seconds

    def _time_out(self, job: Job) -> Job:
        timeout = JobTimeoutError(job.job_id, self._age_seconds(job), self.max_job_age_seconds)
        updated, won = self._finish(
            job,
            JobState.TIMED_OUT,
            from_states=ACTIVE_STATES,
            error=ErrorInfo.from_exception(timeout),
        )
        if won:
            self.logger.warning(str(timeout))
            if job.provider_handle is not None:
                self._cancel_provider(job.model_id, job.provider_handle)
        return updated

    def _cancel_provider(self, model_id: str, handle: ProviderHandle) -> None:
        try:
            adapter = self.router.resolve(model_id)
        except UnsupportedModelError:
            self.logger.warning(f"Cannot cancel provider request {handle.ref}: no adapter for {model_id}")
            return
        self._cancel_quietly(adapter, handle)

    def _cancel_quietly(self, adapter: ProviderAdapter, handle: ProviderHandle) -> None:
        try:
            adapter.cancel(handle)
            self.logger.debug(f"Cancel sent to {adapter.name} for {handle.ref}")
        except Exception as e:
            self.logger.warning(f"Best-effort cancel via {adapter.name} failed for {handle.ref}: {e}")
