"""
Data model for generation jobs.

Jobs are immutable snapshots: the job registry replaces a job with an
updated copy on every transition, so holders of a ``Job`` can never
mutate registry state behind its back.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from .exceptions import ValidationError


class JobState(str, Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    IN_PROGRESS = "in_progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({
    JobState.SUCCEEDED,
    JobState.FAILED,
    JobState.CANCELLED,
    JobState.TIMED_OUT,
})

ACTIVE_STATES = frozenset({JobState.PENDING, JobState.SUBMITTED, JobState.IN_PROGRESS})

# Edges of the job state graph. IN_PROGRESS -> IN_PROGRESS records fresh
# provider progress without changing state.
ALLOWED_TRANSITIONS: Dict[JobState, frozenset] = {
    JobState.PENDING: frozenset({
        JobState.SUBMITTED, JobState.FAILED, JobState.CANCELLED, JobState.TIMED_OUT,
    }),
    JobState.SUBMITTED: frozenset({
        JobState.IN_PROGRESS, JobState.SUCCEEDED, JobState.FAILED,
        JobState.CANCELLED, JobState.TIMED_OUT,
    }),
    JobState.IN_PROGRESS: frozenset({
        JobState.IN_PROGRESS, JobState.SUCCEEDED, JobState.FAILED,
        JobState.CANCELLED, JobState.TIMED_OUT,
    }),
    JobState.SUCCEEDED: frozenset(),
    JobState.FAILED: frozenset(),
    JobState.CANCELLED: frozenset(),
    JobState.TIMED_OUT: frozenset(),
}


class ResultKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    MODEL = "model"


class AdapterProtocol(str, Enum):
    """How a provider reports completion."""
    SYNC_SUBSCRIBE = "sync_subscribe"
    QUEUE_AND_POLL = "queue_and_poll"
    ONE_SHOT = "one_shot"


class ResetPolicy(str, Enum):
    NEVER = "never"
    DAILY = "daily"


@dataclass(frozen=True)
class GenerationRequest:
    """A client's request to run one generation on one model."""
    model_id: str
    input: Mapping[str, Any]
    client_id: str

    def __post_init__(self):
        if not isinstance(self.input, Mapping):
            raise ValidationError("input must be an object")
        # Copy the caller's mapping so later edits on their side don't leak in
        object.__setattr__(self, "input", dict(self.input))


@dataclass(frozen=True)
class Asset:
    url: str
    content_type: Optional[str] = None
    size_bytes: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"url": self.url, "content_type": self.content_type}
        if self.size_bytes is not None:
            data["size_bytes"] = self.size_bytes
        return data


@dataclass(frozen=True)
class NormalizedResult:
    kind: ResultKind
    assets: Tuple[Asset, ...]
    provider_metadata: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "assets": [a.to_dict() for a in self.assets],
            "provider_metadata": dict(self.provider_metadata),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NormalizedResult":
        return cls(
            kind=ResultKind(data["kind"]),
            assets=tuple(Asset(**a) for a in data.get("assets", [])),
            provider_metadata=dict(data.get("provider_metadata") or {}),
        )


@dataclass(frozen=True)
class ErrorInfo:
    kind: str
    message: str
    retryable: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_exception(cls, error: Exception) -> "ErrorInfo":
        return cls(
            kind=getattr(error, "error_kind", type(error).__name__),
            message=str(error),
            retryable=bool(getattr(error, "retryable", False)),
        )


@dataclass(frozen=True)
class ProviderHandle:
    """Opaque reference an adapter returns from ``submit``.

    ``data`` holds whatever the adapter needs to poll or cancel later
    (status URLs, task ids); it must stay JSON-serialisable. ``resolved``
    is set by SyncSubscribe and OneShot adapters whose submission already
    reached a terminal outcome and is never persisted.
    """
    ref: str
    model_id: str
    data: Mapping[str, Any] = field(default_factory=dict)
    resolved: Optional["PollOutcome"] = field(default=None, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"ref": self.ref, "model_id": self.model_id, "data": dict(self.data)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProviderHandle":
        return cls(ref=data["ref"], model_id=data["model_id"], data=dict(data.get("data") or {}))


@dataclass(frozen=True)
class PollOutcome:
    """What an adapter observed about a submission.

    ``state`` is one of IN_PROGRESS, SUCCEEDED, FAILED or CANCELLED.
    ``payload`` is the raw provider result on success, or progress details
    (``logs``, ``queue_position``, ``progress``) while running.
    """
    state: JobState
    payload: Mapping[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal


@dataclass(frozen=True)
class Job:
    job_id: str
    model_id: str
    client_id: str
    state: JobState
    submitted_at: datetime
    updated_at: datetime
    provider_handle: Optional[ProviderHandle] = None
    result: Optional[NormalizedResult] = None
    error: Optional[ErrorInfo] = None
    progress: Optional[Mapping[str, Any]] = None
    delivered: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def to_view(self) -> Dict[str, Any]:
        """Client-facing view: state, plus result or error when terminal."""
        view: Dict[str, Any] = {
            "job_id": self.job_id,
            "model_id": self.model_id,
            "state": self.state.value,
            "submitted_at": self.submitted_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
        if self.progress:
            view["progress"] = dict(self.progress)
        if self.result is not None:
            view["result"] = self.result.to_dict()
        if self.error is not None:
            view["error"] = {"error_kind": self.error.kind, "message": self.error.message}
        return view

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "model_id": self.model_id,
            "client_id": self.client_id,
            "state": self.state.value,
            "submitted_at": self.submitted_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "provider_handle": self.provider_handle.to_dict() if self.provider_handle else None,
            "result": self.result.to_dict() if self.result else None,
            "error": self.error.to_dict() if self.error else None,
            "progress": dict(self.progress) if self.progress else None,
            "delivered": self.delivered,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Job":
        handle = data.get("provider_handle")
        result = data.get("result")
        error = data.get("error")
        return cls(
            job_id=data["job_id"],
            model_id=data["model_id"],
            client_id=data["client_id"],
            state=JobState(data["state"]),
            submitted_at=datetime.fromisoformat(data["submitted_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            provider_handle=ProviderHandle.from_dict(handle) if handle else None,
            result=NormalizedResult.from_dict(result) if result else None,
            error=ErrorInfo(**error) if error else None,
            progress=data.get("progress"),
            delivered=bool(data.get("delivered", False)),
        )


@dataclass(frozen=True)
class QuotaState:
    client_id: str
    used_count: int
    limit: int
    reset_policy: ResetPolicy = ResetPolicy.NEVER
    period: Optional[str] = None
    reserved: int = 0

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used_count)

    @property
    def exhausted(self) -> bool:
        return self.used_count >= self.limit

    def to_dict(self) -> Dict[str, Any]:
        return {
            "client_id": self.client_id,
            "used_count": self.used_count,
            "limit": self.limit,
            "reset_policy": self.reset_policy.value,
            "period": self.period,
            "reserved": self.reserved,
        }


