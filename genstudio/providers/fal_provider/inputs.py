"""
Model-specific input clean-up for fal.ai endpoints.

Callers build one loose input object per request; individual fal models
are strict about names and types, so the quirks are fixed here before
anything is sent.
"""

from typing import Any, Dict, Mapping

# Models whose duration is a bare number ("5"), not "5s"
_BARE_DURATION_MODELS = ("minimax", "veo3", "luma-dream-machine/ray-2")

# Text-to-speech models read "text" rather than "prompt"
_TTS_MODELS = ("playht", "elevenlabs", "f5-tts")


def _coerce_number(value: Any, cast) -> Any:
    if not isinstance(value, str):
        return value
    try:
        return cast(value.strip())
    except ValueError:
        # Let the provider reject it with its own message
        return value


def sanitize_input(model_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Return a cleaned copy of ``data`` for ``model_id``.

    Drops ``None`` values, trims the prompt, coerces numeric strings for
    flux models, strips the unit from durations where the model wants a
    bare number, and moves ``text``/``prompt`` to the field the model reads.
    """
    sanitized = {k: v for k, v in data.items() if v is not None}

    if isinstance(sanitized.get("prompt"), str):
        sanitized["prompt"] = sanitized["prompt"].strip()

    if "flux" in model_id:
        if "num_inference_steps" in sanitized:
            sanitized["num_inference_steps"] = _coerce_number(sanitized["num_inference_steps"], int)
        if "guidance_scale" in sanitized:
            sanitized["guidance_scale"] = _coerce_number(sanitized["guidance_scale"], float)

    if "minimax" in model_id and sanitized.get("text") and not sanitized.get("prompt"):
        sanitized["prompt"] = sanitized.pop("text")

    if any(m in model_id for m in _BARE_DURATION_MODELS):
        duration = sanitized.get("duration")
        if isinstance(duration, str) and duration.endswith("s"):
            sanitized["duration"] = duration[:-1]

    if any(m in model_id for m in _TTS_MODELS) and sanitized.get("prompt") and not sanitized.get("text"):
        sanitized["text"] = sanitized.pop("prompt")

    return sanitized
