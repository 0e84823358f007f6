"""QueueAndPoll adapter over the OpenAI videos API."""

from typing import Any, Dict, Iterable, Mapping, Optional

import openai

from ...catalog import PROVIDER_OPENAI, specs_for_provider
from ...exceptions import ValidationError
from ...models import AdapterProtocol, GenerationRequest, PollOutcome, ProviderHandle
from ..base import ProviderAdapter, cancelled, failed, in_progress, succeeded
from .config import SUPPORTED_SECONDS
from .sora_client import SoraClient

MODEL_PREFIX = "openai/"

# Errors worth polling through
_TRANSIENT_ERRORS = (openai.APIConnectionError, openai.InternalServerError, openai.RateLimitError)


def sora_model_name(model_id: str) -> str:
    return model_id[len(MODEL_PREFIX):] if model_id.startswith(MODEL_PREFIX) else model_id


def _seconds(data: Mapping[str, Any], default: str) -> str:
    value = data.get("seconds", data.get("duration"))
    if value is None or value == "":
        return default
    seconds = str(value).rstrip("s")
    if seconds not in SUPPORTED_SECONDS:
        raise ValidationError(f"Sora supports {', '.join(SUPPORTED_SECONDS)} second clips, got {value!r}")
    return seconds


def _size(data: Mapping[str, Any], default: str) -> str:
    if data.get("size"):
        return str(data["size"])
    if data.get("width") and data.get("height"):
        return f"{int(data['width'])}x{int(data['height'])}"
    return default


def _video_outcome(client: SoraClient, video: Any) -> PollOutcome:
    status = getattr(video, "status", None) or "queued"
    if status == "completed":
        return succeeded({
            "video": {"url": client.content_url(video.id), "content_type": "video/mp4"},
            "id": video.id,
            "model": getattr(video, "model", None),
            "seconds": getattr(video, "seconds", None),
            "size": getattr(video, "size", None),
        })
    if status == "failed":
        error = getattr(video, "error", None)
        message = getattr(error, "message", None) or "Video job did not complete successfully"
        return failed(f"Sora video job failed: {message}")
    if status == "cancelled":
        return cancelled()

    progress: Dict[str, Any] = {"status": status}
    if getattr(video, "progress", None) is not None:
        progress["progress"] = video.progress
    return in_progress(progress)


def sora_adapter(client: SoraClient, patterns: Optional[Iterable[str]] = None) -> ProviderAdapter:
    """QueueAndPoll adapter for Sora 2 models."""
    logger = client.logger

    def submit(request: GenerationRequest) -> ProviderHandle:
        data = request.input
        prompt = str(data.get("prompt") or "").strip()
        if not prompt:
            raise ValidationError("Prompt is required for video generation")
        video = client.create_video(
            model=sora_model_name(request.model_id),
            prompt=prompt,
            seconds=_seconds(data, client.config.default_seconds),
            size=_size(data, client.config.default_size),
            input_reference=data.get("input_reference") or data.get("image_path"),
        )
        return ProviderHandle(ref=video.id, model_id=request.model_id, data={"video_id": video.id})

    def poll(handle: ProviderHandle) -> PollOutcome:
        try:
            video = client.retrieve_video(handle.data["video_id"])
        except _TRANSIENT_ERRORS as e:
            logger.warning(f"Transient error polling Sora job {handle.ref}, will retry on next poll: {e}")
            return in_progress()
        except openai.APIStatusError as e:
            logger.error(f"Client error {e.status_code} polling Sora job {handle.ref}, giving up")
            return failed(f"OpenAI returned {e.status_code}: {e}")
        return _video_outcome(client, video)

    return ProviderAdapter(
        name="openai-sora",
        provider=PROVIDER_OPENAI,
        protocol=AdapterProtocol.QUEUE_AND_POLL,
        model_patterns=tuple(patterns if patterns is not None else (s.pattern for s in specs_for_provider(PROVIDER_OPENAI))),
        submit=submit,
        poll=poll,
        cancel=lambda handle: client.delete_video(handle.data["video_id"]),
    )
