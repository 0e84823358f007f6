"""QueueAndPoll adapter over the RunwayML task API."""

from typing import Any, Dict, Iterable, Mapping, Optional

from ...catalog import PROVIDER_RUNWAY, classify_model, specs_for_provider
from ...exceptions import ValidationError
from ...models import AdapterProtocol, GenerationRequest, PollOutcome, ProviderHandle, ResultKind
from ..base import ProviderAdapter, cancelled, failed, in_progress, succeeded
from ..http_support import polling_exception_outcome
from .runway_client import RunwayClient

MODEL_PREFIX = "runway/"


def runway_model_name(model_id: str) -> str:
    """``runway/gen4_turbo`` -> ``gen4_turbo``."""
    return model_id[len(MODEL_PREFIX):] if model_id.startswith(MODEL_PREFIX) else model_id


def _ratio(data: Mapping[str, Any], default: str) -> str:
    if data.get("ratio"):
        return str(data["ratio"])
    if data.get("width") and data.get("height"):
        return f"{int(data['width'])}:{int(data['height'])}"
    return default


def _int_field(data: Mapping[str, Any], name: str, default: Optional[int]) -> Optional[int]:
    value = data.get(name)
    if value is None or value == "":
        return default
    try:
        return int(str(value).rstrip("s"))
    except ValueError:
        raise ValidationError(f"{name} must be a whole number, got {value!r}")


def build_task(client: RunwayClient, model_id: str, data: Mapping[str, Any], kind: ResultKind):
    """
    Map a generation input onto a Runway endpoint and request body.

    Returns:
        ``(endpoint, payload)``

    Raises:
        ValidationError: If the prompt (or, for video, both prompt and image)
            is missing, or a numeric field is not a number
    """
    model = runway_model_name(model_id)
    prompt = (data.get("prompt") or data.get("promptText") or "").strip()
    image = data.get("image_url") or data.get("promptImage") or data.get("image_path")

    if kind == ResultKind.IMAGE:
        if not prompt:
            raise ValidationError("Prompt is required for image generation")
        payload: Dict[str, Any] = {
            "model": model,
            "promptText": prompt,
            "ratio": _ratio(data, client.config.default_image_ratio),
        }
        references = data.get("reference_images") or data.get("referenceImages") or []
        if references:
            payload["referenceImages"] = [
                {"uri": client.prepare_image(r["uri"] if isinstance(r, Mapping) else r)}
                for r in references
            ]
        endpoint = "text_to_image"
    else:
        if not prompt and not image:
            raise ValidationError("Prompt or image is required for video generation")
        payload = {
            "model": model,
            "ratio": _ratio(data, client.config.default_video_ratio),
            "duration": _int_field(data, "duration", client.config.default_duration),
        }
        if prompt:
            payload["promptText"] = prompt
        if image:
            payload["promptImage"] = client.prepare_image(str(image))
        endpoint = "image_to_video"

    if data.get("seed") is not None:
        payload["seed"] = _int_field(data, "seed", None)
    return endpoint, payload


def _task_outcome(task: Mapping[str, Any]) -> PollOutcome:
    status = task.get("status")
    if status == "SUCCEEDED":
        return succeeded(task)
    if status == "FAILED":
        reason = task.get("failure") or task.get("failureCode") or "Unknown error"
        if isinstance(reason, Mapping):
            reason = reason.get("reason", "Unknown error")
        return failed(f"RunwayML task failed: {reason}")
    if status == "CANCELLED":
        return cancelled()

    progress: Dict[str, Any] = {"status": status or "PENDING"}
    if task.get("progress") is not None:
        progress["progress"] = task["progress"]
    return in_progress(progress)


def runway_adapter(client: RunwayClient, patterns: Optional[Iterable[str]] = None) -> ProviderAdapter:
    """QueueAndPoll adapter for Runway Gen-4 and Veo models."""

    def submit(request: GenerationRequest) -> ProviderHandle:
        endpoint, payload = build_task(client, request.model_id, request.input, classify_model(request.model_id))
        task = client.create_task(endpoint, payload)
        return ProviderHandle(ref=task["id"], model_id=request.model_id, data={"task_id": task["id"]})

    def poll(handle: ProviderHandle) -> PollOutcome:
        try:
            task = client.get_task(handle.data["task_id"])
        except Exception as e:
            outcome = polling_exception_outcome(e, client.logger, PROVIDER_RUNWAY)
            if outcome is None:
                raise
            return outcome
        return _task_outcome(task)

    return ProviderAdapter(
        name="runway",
        provider=PROVIDER_RUNWAY,
        protocol=AdapterProtocol.QUEUE_AND_POLL,
        model_patterns=tuple(patterns if patterns is not None else (s.pattern for s in specs_for_provider(PROVIDER_RUNWAY))),
        submit=submit,
        poll=poll,
        cancel=lambda handle: client.cancel_task(handle.data["task_id"]),
    )
