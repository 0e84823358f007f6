"""
Job registry: the single source of truth for job existence and state.

All state changes go through ``transition``, which compares the job's current
state against an allowed from-set under a per-job lock before writing. Two
callers racing to finish the same job therefore cannot both win; the loser
gets ``InvalidTransitionError`` and re-reads the job. Unrelated jobs never
share a lock on this path.
"""

import threading
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from .exceptions import InvalidTransitionError, JobNotFoundError
from .logger import get_library_logger
from .models import ALLOWED_TRANSITIONS, Job, JobState
from .storage import KeyValueStore

# Fields a transition may patch alongside the state change
PATCHABLE_FIELDS = frozenset({"provider_handle", "result", "error", "progress"})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobRegistry:
    """In-memory job table with optional write-through persistence."""

    def __init__(
        self,
        retention_seconds: float = 3600,
        undelivered_retention_seconds: float = 86400,
        store: Optional[KeyValueStore] = None,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ):
        """
        Initialize the registry.

        Args:
            retention_seconds: How long a terminal job whose result has been
                delivered at least once is kept before eviction
            undelivered_retention_seconds: How long a terminal job is kept
                when nobody has read its result yet
            store: Optional durable store; jobs are loaded from it on start
                and written through on every change
            clock: Source of timezone-aware timestamps
            id_factory: Generator for opaque job ids
        """
        self.retention_seconds = retention_seconds
        self.undelivered_retention_seconds = undelivered_retention_seconds
        self.logger = get_library_logger()
        self._store = store
        self._clock = clock
        self._id_factory = id_factory
        self._jobs: Dict[str, Job] = {}
        self._locks: Dict[str, threading.Lock] = {}
        # Guards membership of _jobs/_locks only, never a state check
        self._index_lock = threading.Lock()
        self._load()

    def _load(self) -> None:
        if self._store is None:
            return
        loaded = []
        for job_id, data in self._store.items().items():
            try:
                loaded.append(Job.from_dict(data))
            except (KeyError, ValueError, TypeError) as e:
                self.logger.warning(f"Skipping unreadable job record {job_id}: {e}")
        for job in sorted(loaded, key=lambda j: j.submitted_at):
            self._jobs[job.job_id] = job
            self._locks[job.job_id] = threading.Lock()
        if loaded:
            self.logger.debug(f"Loaded {len(loaded)} job(s) from store")

    def _persist(self, job: Job) -> None:
        if self._store is not None:
            self._store.put(job.job_id, job.to_dict())

    def _lock_for(self, job_id: str) -> threading.Lock:
        with self._index_lock:
            lock = self._locks.get(job_id)
        if lock is None:
            raise JobNotFoundError(job_id)
        return lock

    def new_job_id(self) -> str:
        return self._id_factory()

    def create(self, model_id: str, client_id: str, job_id: Optional[str] = None) -> Job:
        """Allocate a new job in the PENDING state, optionally under a pre-allocated id."""
        now = self._clock()
        job = Job(
            job_id=job_id or self._id_factory(),
            model_id=model_id,
            client_id=client_id,
            state=JobState.PENDING,
            submitted_at=now,
            updated_at=now,
        )
        lock = threading.Lock()
        with self._index_lock:
            if job.job_id in self._jobs:
                raise ValueError(f"Duplicate job id: {job.job_id}")
            self._locks[job.job_id] = lock
            self._jobs[job.job_id] = job
        with lock:
            self._persist(job)
        self.logger.debug(f"Created job {job.job_id} for {model_id} (client {client_id})")
        return job

    def transition(
        self,
        job_id: str,
        from_states: Iterable[JobState],
        to_state: JobState,
        **patch,
    ) -> Job:
        """
        Move a job to ``to_state`` if its current state is in ``from_states``.

        Args:
            job_id: Job to update
            from_states: States the caller expects the job to be in
            to_state: Target state; must be an edge of the job state graph
            **patch: Replacement values for provider_handle, result, error
                or progress

        Returns:
            The updated job

        Raises:
            JobNotFoundError: If the job does not exist
            InvalidTransitionError: If the current state is not in
                ``from_states`` or the edge is not allowed
        """
        unknown = set(patch) - PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot patch job fields: {', '.join(sorted(unknown))}")

        allowed_from = frozenset(from_states)
        lock = self._lock_for(job_id)
        with lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            if job.state not in allowed_from or to_state not in ALLOWED_TRANSITIONS[job.state]:
                raise InvalidTransitionError(job_id, job.state, to_state)
            updated = replace(job, state=to_state, updated_at=self._clock(), **patch)
            self._jobs[job_id] = updated
            self._persist(updated)

        if job.state != to_state:
            self.logger.debug(f"Job {job_id}: {job.state.value} -> {to_state.value}")
        return updated

    def mark_delivered(self, job_id: str) -> Job:
        """Record that a terminal job's outcome has been returned to a caller."""
        lock = self._lock_for(job_id)
        with lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            if not job.is_terminal or job.delivered:
                return job
            updated = replace(job, delivered=True)
            self._jobs[job_id] = updated
            self._persist(updated)
        return updated

    def get(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def list_by_client(self, client_id: str) -> List[Job]:
        """Jobs for a client, oldest submission first."""
        with self._index_lock:
            jobs = [j for j in self._jobs.values() if j.client_id == client_id]
        return sorted(jobs, key=lambda j: j.submitted_at)

    def list_active(self) -> List[Job]:
        with self._index_lock:
            jobs = [j for j in self._jobs.values() if not j.is_terminal]
        return sorted(jobs, key=lambda j: j.submitted_at)

    def evict_expired(self, now: Optional[datetime] = None) -> List[str]:
        """
        Drop terminal jobs past their retention window.

        A delivered job is evicted ``retention_seconds`` after it became
        terminal; an undelivered one only after
        ``undelivered_retention_seconds``. Non-terminal jobs are never evicted.

        Returns:
            Ids of the evicted jobs
        """
        now = now or self._clock()
        with self._index_lock:
            candidates = list(self._jobs.values())

        evicted = []
        for job in candidates:
            if not job.is_terminal:
                continue
            age = (now - job.updated_at).total_seconds()
            window = self.retention_seconds if job.delivered else self.undelivered_retention_seconds
            if age < window:
                continue
            with self._index_lock:
                lock = self._locks.get(job.job_id)
            if lock is None:
                continue
            with lock:
                with self._index_lock:
                    self._jobs.pop(job.job_id, None)
                    self._locks.pop(job.job_id, None)
                if self._store is not None:
                    self._store.delete(job.job_id)
            evicted.append(job.job_id)

        if evicted:
            self.logger.info(f"Evicted {len(evicted)} expired job(s)")
        return evicted

    def __len__(self) -> int:
        return len(self._jobs)
