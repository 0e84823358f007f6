"""
Per-client generation quota.

Usage is success-gated: ``check_and_reserve`` only holds a slot for an
in-flight job, ``consume`` turns that slot into a used generation once the
job has succeeded, and ``release`` gives the slot back when it did not.
``used_count`` is persisted through a ``KeyValueStore`` and never goes down
within a period, even if the store hands back a stale value.
"""

import threading
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, Mapping, Optional, Set

from .logger import get_library_logger
from .models import QuotaState, ResetPolicy
from .storage import KeyValueStore

FREE_GENERATION_LIMIT = 10


class QuotaGuard:
    """Tracks per-client generation counts against a free-tier limit."""

    def __init__(
        self,
        store: KeyValueStore,
        limit: int = FREE_GENERATION_LIMIT,
        reset_policy: ResetPolicy = ResetPolicy.NEVER,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.limit = limit
        self.reset_policy = ResetPolicy(reset_policy)
        self.logger = get_library_logger()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._states: Dict[str, QuotaState] = {}
        self._reserved: Dict[str, Set[str]] = {}
        self._client_locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._initialized = False
        self._init_lock = threading.Lock()

    def initialize(self) -> None:
        """Load persisted quota state. Safe to call more than once."""
        with self._init_lock:
            if self._initialized:
                return
            reload = getattr(self.store, "reload", None)
            if callable(reload):
                reload()
            for client_id, data in self.store.items().items():
                self._states[client_id] = self._state_from_record(client_id, data)
            self._initialized = True
            self.logger.debug(f"Quota state loaded for {len(self._states)} client(s)")

    def _lock_for(self, client_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._client_locks.get(client_id)
            if lock is None:
                lock = self._client_locks[client_id] = threading.Lock()
            return lock

    def _current_period(self) -> Optional[str]:
        if self.reset_policy == ResetPolicy.DAILY:
            return self._clock().date().isoformat()
        return None

    def _state_from_record(self, client_id: str, data: Optional[dict]) -> QuotaState:
        data = data or {}
        return QuotaState(
            client_id=client_id,
            used_count=int(data.get("used_count", 0)),
            limit=self.limit,
            reset_policy=self.reset_policy,
            period=data.get("period"),
        )

    def _load_state(self, client_id: str) -> QuotaState:
        """Merge the cached and stored views; caller holds the client lock."""
        period = self._current_period()
        stored = self._state_from_record(client_id, self.store.get(client_id))
        # A record from another period (or policy) starts the count afresh
        used = stored.used_count if stored.period == period else 0

        cached = self._states.get(client_id)
        if cached is not None and cached.period == period:
            # A stale store read must not roll usage back
            used = max(used, cached.used_count)

        state = QuotaState(
            client_id=client_id,
            used_count=used,
            limit=self.limit,
            reset_policy=self.reset_policy,
            period=period,
            reserved=len(self._reserved.get(client_id, ())),
        )
        self._states[client_id] = state
        return state

    def check_and_reserve(self, client_id: str, reservation_id: Optional[str] = None) -> Optional[str]:
        """
        Check whether a client may submit another generation.

        A successful check holds one in-flight slot so concurrent submissions
        can't overshoot the limit. It does not change ``used_count``. The
        orchestrator uses the job id as the reservation id, which lets the
        slot be settled by exactly the job that holds it.

        Returns:
            The reservation id if the submission may proceed, otherwise None
        """
        self.initialize()
        reservation_id = reservation_id or uuid.uuid4().hex
        with self._lock_for(client_id):
            state = self._load_state(client_id)
            if state.used_count + state.reserved >= state.limit:
                self.logger.info(
                    f"Quota exhausted for client {client_id}: "
                    f"{state.used_count} used, {state.reserved} in flight, limit {state.limit}"
                )
                return None
            self._reserved.setdefault(client_id, set()).add(reservation_id)
            return reservation_id

    def restore_reservations(self, reservations: Mapping[str, Iterable[str]]) -> None:
        """
        Re-hold slots for jobs that were in flight before a restart.

        Args:
            reservations: Reservation ids (job ids) keyed by client id
        """
        self.initialize()
        restored = 0
        for client_id, reservation_ids in reservations.items():
            with self._lock_for(client_id):
                held = self._reserved.setdefault(client_id, set())
                before = len(held)
                held.update(reservation_ids)
                restored += len(held) - before
        if restored:
            self.logger.debug(f"Restored {restored} in-flight quota reservation(s)")

    def release(self, client_id: str, reservation_id: str) -> None:
        """Return the slot held by a job that did not succeed."""
        self.initialize()
        with self._lock_for(client_id):
            self._reserved.get(client_id, set()).discard(reservation_id)

    def consume(self, client_id: str, reservation_id: Optional[str] = None) -> QuotaState:
        """
        Count one successful generation against the client.

        Only called after a job reached SUCCEEDED. Converts the job's
        reservation if it holds one.

        Returns:
            The updated quota state
        """
        self.initialize()
        with self._lock_for(client_id):
            state = self._load_state(client_id)
            held = self._reserved.setdefault(client_id, set())
            if reservation_id is not None:
                held.discard(reservation_id)
            updated = QuotaState(
                client_id=client_id,
                used_count=state.used_count + 1,
                limit=state.limit,
                reset_policy=state.reset_policy,
                period=state.period,
                reserved=len(held),
            )
            self.store.put(client_id, {"used_count": updated.used_count, "period": updated.period})
            self._states[client_id] = updated
        self.logger.debug(f"Client {client_id} used {updated.used_count}/{updated.limit} generations")
        return updated

    def peek(self, client_id: str) -> QuotaState:
        self.initialize()
        with self._lock_for(client_id):
            return self._load_state(client_id)
