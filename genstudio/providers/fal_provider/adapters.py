"""
fal.ai adapters for the three completion protocols.

All three share one ``FalClient``:

- QueueAndPoll: submit to the queue, poll the status URL on each call.
- SyncSubscribe: submit to the queue and wait inside ``submit`` until the
  request finishes or the subscribe timeout passes. A request that outlives
  the wait is handed back unresolved and polled like a queued one.
- OneShot: a single blocking call to ``fal.run``.
"""

import time
import uuid
from typing import Callable, Iterable, Optional, Tuple

from ...catalog import PROVIDER_FAL, specs_for_provider
from ...logger import get_library_logger
from ...models import AdapterProtocol, GenerationRequest, PollOutcome, ProviderHandle
from ..base import ProviderAdapter, failed, in_progress, noop_cancel, resolved_poll, succeeded
from ..http_support import polling_exception_outcome
from .fal_client import FalClient
from .inputs import sanitize_input

_RUNNING = ("IN_QUEUE", "IN_PROGRESS")


def _catalog_patterns(protocol: AdapterProtocol) -> Tuple[str, ...]:
    return tuple(s.pattern for s in specs_for_provider(PROVIDER_FAL) if s.protocol == protocol)


def _queue_progress(status: dict) -> dict:
    progress = {"status": status.get("status")}
    if status.get("queue_position") is not None:
        progress["queue_position"] = status["queue_position"]
    if status.get("logs"):
        progress["logs"] = list(status["logs"])
    return progress


def _submit_to_queue(client: FalClient, request: GenerationRequest) -> ProviderHandle:
    payload = sanitize_input(request.model_id, request.input)
    receipt = client.submit(request.model_id, payload)
    return ProviderHandle(
        ref=receipt["request_id"],
        model_id=request.model_id,
        data={
            "status_url": receipt["status_url"],
            "response_url": receipt["response_url"],
            "cancel_url": receipt["cancel_url"],
        },
    )


def _poll_queue(client: FalClient, handle: ProviderHandle) -> PollOutcome:
    logger = client.logger
    try:
        status = client.status(handle.data["status_url"])
    except Exception as e:
        outcome = polling_exception_outcome(e, logger, PROVIDER_FAL)
        if outcome is None:
            raise
        return outcome

    state = status.get("status")
    if state in _RUNNING:
        return in_progress(_queue_progress(status))

    if state != "COMPLETED":
        logger.error(f"Unexpected fal.ai queue status for {handle.ref}: {state}")
        return failed(f"Unexpected fal.ai queue status: {state}")

    if status.get("error"):
        return failed(f"fal.ai request failed: {status['error']}", {"logs": status.get("logs") or []})

    try:
        result = client.result(handle.data["response_url"])
    except Exception as e:
        outcome = polling_exception_outcome(e, logger, PROVIDER_FAL)
        if outcome is None:
            raise
        return outcome
    return succeeded(result)


def _cancel_queue(client: FalClient, handle: ProviderHandle) -> None:
    cancel_url = handle.data.get("cancel_url")
    if cancel_url:
        client.cancel(cancel_url)


def fal_queue_adapter(
    client: FalClient,
    patterns: Optional[Iterable[str]] = None,
) -> ProviderAdapter:
    """QueueAndPoll adapter for long-running fal.ai models (video, training)."""
    if patterns is None:
        patterns = _catalog_patterns(AdapterProtocol.QUEUE_AND_POLL)
    return ProviderAdapter(
        name="fal-queue",
        provider=PROVIDER_FAL,
        protocol=AdapterProtocol.QUEUE_AND_POLL,
        model_patterns=tuple(patterns),
        submit=lambda request: _submit_to_queue(client, request),
        poll=lambda handle: _poll_queue(client, handle),
        cancel=lambda handle: _cancel_queue(client, handle),
    )


def fal_subscribe_adapter(
    client: FalClient,
    patterns: Optional[Iterable[str]] = None,
    sleep: Callable[[float], None] = time.sleep,
    monotonic: Callable[[], float] = time.monotonic,
) -> ProviderAdapter:
    """SyncSubscribe adapter for fal.ai models that usually finish in seconds."""
    logger = get_library_logger()
    interval = client.config.subscribe_poll_interval
    timeout = client.config.subscribe_timeout

    def submit(request: GenerationRequest) -> ProviderHandle:
        handle = _submit_to_queue(client, request)
        deadline = monotonic() + timeout
        last_status = None
        while True:
            outcome = _poll_queue(client, handle)
            if outcome.is_terminal:
                return ProviderHandle(
                    ref=handle.ref, model_id=handle.model_id, data=handle.data, resolved=outcome
                )

            status = outcome.payload.get("status")
            if status and status != last_status:
                logger.info(f"fal.ai {handle.ref}: {status}")
                last_status = status
            for entry in outcome.payload.get("logs") or []:
                logger.debug(f"fal.ai {handle.ref}: {entry.get('message') if isinstance(entry, dict) else entry}")

            if monotonic() >= deadline:
                logger.info(f"fal.ai {handle.ref} still running after {timeout:.0f}s; continuing by polling")
                return handle
            sleep(interval)

    return ProviderAdapter(
        name="fal-subscribe",
        provider=PROVIDER_FAL,
        protocol=AdapterProtocol.SYNC_SUBSCRIBE,
        model_patterns=tuple(patterns if patterns is not None else _catalog_patterns(AdapterProtocol.SYNC_SUBSCRIBE)),
        submit=submit,
        poll=lambda handle: resolved_poll(handle, lambda h: _poll_queue(client, h)),
        cancel=lambda handle: None if handle.resolved is not None else _cancel_queue(client, handle),
    )


def _lost_one_shot(handle: ProviderHandle) -> PollOutcome:
    return failed(f"Result of one-shot request {handle.ref} is no longer available")


def fal_run_adapter(
    client: FalClient,
    patterns: Optional[Iterable[str]] = None,
) -> ProviderAdapter:
    """OneShot adapter: one blocking ``fal.run`` call per request."""

    def submit(request: GenerationRequest) -> ProviderHandle:
        payload = sanitize_input(request.model_id, request.input)
        result = client.run(request.model_id, payload)
        ref = str(result.get("request_id") or result.get("requestId") or f"run-{uuid.uuid4().hex}")
        return ProviderHandle(ref=ref, model_id=request.model_id, resolved=succeeded(result))

    return ProviderAdapter(
        name="fal-run",
        provider=PROVIDER_FAL,
        protocol=AdapterProtocol.ONE_SHOT,
        model_patterns=tuple(patterns if patterns is not None else _catalog_patterns(AdapterProtocol.ONE_SHOT)),
        submit=submit,
        poll=lambda handle: resolved_poll(handle, _lost_one_shot),
        cancel=noop_cancel,
    )
