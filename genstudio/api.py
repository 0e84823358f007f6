"""
Framework-free request handlers.

Each handler takes the orchestrator and a decoded JSON body and returns a
``(status, body)`` pair that any web framework (or the CLI) can send on.
Errors become ``{"error_kind", "message"}`` envelopes. Internal failures,
including invalid state transitions, are logged and reported generically.
"""

from typing import Any, Dict, Mapping, Tuple

from .exceptions import (
    AdapterSubmissionError,
    JobNotFoundError,
    MalformedResultError,
    QuotaExceededError,
    UnsupportedModelError,
    ValidationError,
)
from .logger import get_library_logger
from .models import GenerationRequest
from .orchestrator import Orchestrator

Response = Tuple[int, Dict[str, Any]]

# Most specific class first
ERROR_STATUS = (
    (ValidationError, 400),
    (UnsupportedModelError, 400),
    (QuotaExceededError, 402),
    (JobNotFoundError, 404),
    (AdapterSubmissionError, 500),
    (MalformedResultError, 500),
)

INTERNAL_ERROR = {"error_kind": "internal_error", "message": "Internal error"}


def error_response(error: Exception) -> Response:
    """Map an exception to a status code and error envelope."""
    for error_class, status in ERROR_STATUS:
        if isinstance(error, error_class):
            return status, {"error_kind": error.error_kind, "message": str(error)}
    get_library_logger().error(f"Unhandled {type(error).__name__} in request handler: {error}")
    return 500, dict(INTERNAL_ERROR)


def _field(payload: Mapping[str, Any], snake: str, camel: str) -> Any:
    return payload.get(snake, payload.get(camel))


def _required_str(payload: Mapping[str, Any], snake: str, camel: str) -> str:
    value = _field(payload, snake, camel)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{snake} is required")
    return value.strip()


def parse_submit(payload: Any) -> GenerationRequest:
    """
    Build a request from ``{model_id, input, client_id}``.

    camelCase keys (``modelId``, ``clientId``) are accepted as well.

    Raises:
        ValidationError: If a field is missing or has the wrong type
    """
    if not isinstance(payload, Mapping):
        raise ValidationError("Request body must be an object")
    data = payload.get("input", {})
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ValidationError("input must be an object")
    return GenerationRequest(
        model_id=_required_str(payload, "model_id", "modelId"),
        input=data,
        client_id=_required_str(payload, "client_id", "clientId"),
    )


def handle_submit(orchestrator: Orchestrator, payload: Any) -> Response:
    """``{model_id, input, client_id}`` -> ``{job_id, state}``."""
    try:
        job = orchestrator.submit_generation(parse_submit(payload))
    except Exception as e:
        return error_response(e)
    return 200, {"job_id": job.job_id, "state": job.state.value}


def _job_id(payload: Any) -> str:
    if not isinstance(payload, Mapping):
        raise ValidationError("Request body must be an object")
    return _required_str(payload, "job_id", "jobId")


def handle_poll(orchestrator: Orchestrator, payload: Any) -> Response:
    """``{job_id}`` -> job view, with result or error once terminal."""
    try:
        job = orchestrator.poll_generation(_job_id(payload))
    except Exception as e:
        return error_response(e)
    return 200, job.to_view()


def handle_cancel(orchestrator: Orchestrator, payload: Any) -> Response:
    """``{job_id}`` -> job view after cancellation."""
    try:
        job = orchestrator.cancel_generation(_job_id(payload))
    except Exception as e:
        return error_response(e)
    return 200, job.to_view()
