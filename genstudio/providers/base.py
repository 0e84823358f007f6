"""
Uniform adapter descriptor for generation providers.

An adapter is a value, not a subclass: the three protocols (SyncSubscribe,
QueueAndPoll, OneShot) are expressed by which callables a provider module
plugs into the same ``submit`` / ``poll`` / ``cancel`` slots, so the
orchestrator never branches on provider type.
"""

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Tuple

from ..models import AdapterProtocol, GenerationRequest, JobState, PollOutcome, ProviderHandle

SubmitFn = Callable[[GenerationRequest], ProviderHandle]
PollFn = Callable[[ProviderHandle], PollOutcome]
CancelFn = Callable[[ProviderHandle], None]


@dataclass(frozen=True)
class ProviderAdapter:
    """
    One provider family behind the uniform interface.

    Attributes:
        name: Adapter name used in logs (e.g. ``fal-queue``)
        provider: Provider the adapter talks to (``fal``, ``runway``, ...)
        protocol: How completion is reported
        model_patterns: Exact model ids, or prefixes ending in ``*``
        submit: Sends a request; raises ``AdapterSubmissionError`` on rejection
        poll: Reports the current outcome; never raises for "still running"
        cancel: Best-effort cancellation
    """
    name: str
    provider: str
    protocol: AdapterProtocol
    model_patterns: Tuple[str, ...]
    submit: SubmitFn
    poll: PollFn
    cancel: CancelFn


def in_progress(payload: Optional[Mapping[str, Any]] = None) -> PollOutcome:
    return PollOutcome(state=JobState.IN_PROGRESS, payload=dict(payload or {}))


def succeeded(payload: Mapping[str, Any]) -> PollOutcome:
    return PollOutcome(state=JobState.SUCCEEDED, payload=dict(payload))


def failed(error: str, payload: Optional[Mapping[str, Any]] = None) -> PollOutcome:
    return PollOutcome(state=JobState.FAILED, payload=dict(payload or {}), error=error)


def cancelled(payload: Optional[Mapping[str, Any]] = None) -> PollOutcome:
    return PollOutcome(state=JobState.CANCELLED, payload=dict(payload or {}), error="Cancelled by provider")


def resolved_poll(handle: ProviderHandle, fallback: PollFn) -> PollOutcome:
    """Return a handle's resolved outcome, or defer to ``fallback``."""
    if handle.resolved is not None:
        return handle.resolved
    return fallback(handle)


def noop_cancel(handle: ProviderHandle) -> None:
    """Cancel for handles that are already finished."""
    return None
