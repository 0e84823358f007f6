"""
Result normalization.

Maps provider-specific success payloads to ``NormalizedResult``. The kind
comes from the model id, never from the payload shape; assets are pulled
from the fields each kind is known to use; every other field is passed
through untouched as provider metadata (seed, logs, NSFW flags, timings).
"""

import math
import mimetypes
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import urlparse

from .catalog import classify_model
from .exceptions import MalformedResultError
from .models import Asset, NormalizedResult, ResultKind

# Payload fields that hold the output assets, per kind, in priority order
ASSET_FIELDS: Dict[ResultKind, Tuple[str, ...]] = {
    ResultKind.IMAGE: ("images", "image", "output"),
    ResultKind.VIDEO: ("video", "videos", "output"),
    ResultKind.AUDIO: ("audio", "audio_file", "audio_url", "output"),
    ResultKind.MODEL: ("diffusers_lora_file", "lora_file", "output"),
}

# Training results carry companion files worth returning alongside the weights
COMPANION_FIELDS: Dict[ResultKind, Tuple[str, ...]] = {
    ResultKind.MODEL: ("config_file",),
}


def _guess_content_type(url: str) -> Optional[str]:
    if url.startswith("data:"):
        return url[5:].split(";", 1)[0] or None
    content_type, _ = mimetypes.guess_type(urlparse(url).path)
    return content_type


def _size(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return int(value)


def _to_assets(value: Any) -> List[Asset]:
    """Coerce a URL string, a file dict or a list of either into assets."""
    if value is None:
        return []
    if isinstance(value, str):
        return [Asset(url=value, content_type=_guess_content_type(value))] if value else []
    if isinstance(value, Mapping):
        url = value.get("url")
        if not isinstance(url, str) or not url:
            return []
        size = value.get("file_size", value.get("size_bytes"))
        return [Asset(
            url=url,
            content_type=value.get("content_type") or _guess_content_type(url),
            size_bytes=_size(size),
        )]
    if isinstance(value, Sequence):
        assets: List[Asset] = []
        for item in value:
            assets.extend(_to_assets(item))
        return assets
    return []


def _unwrap(payload: Mapping[str, Any]) -> Tuple[Mapping[str, Any], Dict[str, Any]]:
    """Split a ``{"data": ..., "requestId": ...}`` envelope from its body."""
    inner = payload.get("data")
    if isinstance(inner, Mapping) and not any(
        f in payload for fields in ASSET_FIELDS.values() for f in fields
    ):
        envelope = {k: v for k, v in payload.items() if k != "data"}
        return inner, envelope
    return payload, {}


class ResultNormalizer:
    """Turns raw provider payloads into ``NormalizedResult`` envelopes."""

    def normalize(self, model_id: str, payload: Mapping[str, Any]) -> NormalizedResult:
        """
        Normalize one successful provider payload.

        Args:
            model_id: Model the job ran on; decides the result kind
            payload: Raw provider result

        Returns:
            The normalized result

        Raises:
            MalformedResultError: If no asset field holds a usable URL
        """
        if not isinstance(payload, Mapping):
            raise MalformedResultError(model_id, f"expected an object payload, got {type(payload).__name__}")

        kind = classify_model(model_id)
        body, envelope = _unwrap(payload)

        assets: List[Asset] = []
        used_fields = set()
        for field_name in ASSET_FIELDS[kind]:
            found = _to_assets(body.get(field_name))
            if found:
                assets.extend(found)
                used_fields.add(field_name)
                break

        if not assets:
            expected = ", ".join(ASSET_FIELDS[kind])
            raise MalformedResultError(model_id, f"no {kind.value} asset in response (looked for {expected})")

        for field_name in COMPANION_FIELDS.get(kind, ()):
            found = _to_assets(body.get(field_name))
            if found:
                assets.extend(found)
                used_fields.add(field_name)

        metadata = {k: v for k, v in body.items() if k not in used_fields}
        metadata.update(envelope)
        return NormalizedResult(kind=kind, assets=tuple(assets), provider_metadata=metadata)
