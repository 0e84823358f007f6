"""
Catalog of known generation models.

Each entry names the provider that serves a model (or a model family, when
the pattern ends with ``*``), the submission protocol used for it, and the
kind of output it produces. The default router is wired from this table and
the result normalizer uses it to classify outputs.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from .models import AdapterProtocol, ResultKind

PREFIX_WILDCARD = "*"

PROVIDER_FAL = "fal"
PROVIDER_RUNWAY = "runway"
PROVIDER_OPENAI = "openai"
SUPPORTED_PROVIDERS = [PROVIDER_FAL, PROVIDER_RUNWAY, PROVIDER_OPENAI]

_SYNC = AdapterProtocol.SYNC_SUBSCRIBE
_QUEUE = AdapterProtocol.QUEUE_AND_POLL
_ONE_SHOT = AdapterProtocol.ONE_SHOT


@dataclass(frozen=True)
class ModelSpec:
    pattern: str
    provider: str
    protocol: AdapterProtocol
    kind: ResultKind
    label: str = ""

    @property
    def is_prefix(self) -> bool:
        return self.pattern.endswith(PREFIX_WILDCARD)

    @property
    def stem(self) -> str:
        return self.pattern[:-1] if self.is_prefix else self.pattern

    def matches(self, model_id: str) -> bool:
        if self.is_prefix:
            return model_id.startswith(self.stem)
        return model_id == self.pattern


MODEL_CATALOG: List[ModelSpec] = [
    # Image models: quick enough to wait on
    ModelSpec("fal-ai/imagen4/preview", PROVIDER_FAL, _SYNC, ResultKind.IMAGE, "Google Imagen 4"),
    ModelSpec("fal-ai/stable-diffusion-v35-large", PROVIDER_FAL, _SYNC, ResultKind.IMAGE, "Stable Diffusion 3.5 Large"),
    ModelSpec("fal-ai/bytedance/dreamina/v3.1/text-to-image", PROVIDER_FAL, _SYNC, ResultKind.IMAGE, "Dreamina v3.1"),
    ModelSpec("fal-ai/flux-pro/*", PROVIDER_FAL, _SYNC, ResultKind.IMAGE, "FLUX Pro"),
    ModelSpec("fal-ai/flux/pro/*", PROVIDER_FAL, _SYNC, ResultKind.IMAGE, "FLUX Pro 1.1"),
    ModelSpec("fal-ai/flux-krea-lora/image-to-image", PROVIDER_FAL, _SYNC, ResultKind.IMAGE, "FLUX Krea LoRA (I2I)"),
    ModelSpec("fal-ai/nano-banana/edit", PROVIDER_FAL, _SYNC, ResultKind.IMAGE, "Nano Banana Edit"),
    ModelSpec("fal-ai/ideogram/character", PROVIDER_FAL, _SYNC, ResultKind.IMAGE, "Ideogram Character"),
    ModelSpec("fal-ai/recraft*", PROVIDER_FAL, _SYNC, ResultKind.IMAGE, "Recraft"),
    ModelSpec("fal-ai/luma-photon*", PROVIDER_FAL, _SYNC, ResultKind.IMAGE, "Luma Photon"),
    ModelSpec("fal-ai/flux/schnell", PROVIDER_FAL, _ONE_SHOT, ResultKind.IMAGE, "FLUX Schnell"),
    ModelSpec("fal-ai/image-editing/style-transfer", PROVIDER_FAL, _ONE_SHOT, ResultKind.IMAGE, "Style Transfer"),
    # Video models: minutes of queue time
    ModelSpec("fal-ai/veo3*", PROVIDER_FAL, _QUEUE, ResultKind.VIDEO, "Google Veo3"),
    ModelSpec("fal-ai/kling-video/*", PROVIDER_FAL, _QUEUE, ResultKind.VIDEO, "Kling"),
    ModelSpec("fal-ai/luma-dream-machine/*", PROVIDER_FAL, _QUEUE, ResultKind.VIDEO, "Luma Ray 2"),
    ModelSpec("fal-ai/minimax/video-01*", PROVIDER_FAL, _QUEUE, ResultKind.VIDEO, "Minimax Video-01"),
    ModelSpec("fal-ai/minimax/hailuo-02/*", PROVIDER_FAL, _QUEUE, ResultKind.VIDEO, "Minimax Hailuo 02"),
    ModelSpec("fal-ai/hunyuan-video", PROVIDER_FAL, _QUEUE, ResultKind.VIDEO, "Hunyuan Video"),
    ModelSpec("fal-ai/pixverse/*", PROVIDER_FAL, _QUEUE, ResultKind.VIDEO, "Pixverse"),
    ModelSpec("fal-ai/bytedance/seedance/*", PROVIDER_FAL, _QUEUE, ResultKind.VIDEO, "Seedance"),
    ModelSpec("fal-ai/sync-lipsync*", PROVIDER_FAL, _QUEUE, ResultKind.VIDEO, "Sync Lipsync"),
    ModelSpec("fal-ai/ray2", PROVIDER_FAL, _QUEUE, ResultKind.VIDEO, "Ray2"),
    # Audio models
    ModelSpec("fal-ai/mmaudio-v2*", PROVIDER_FAL, _QUEUE, ResultKind.AUDIO, "MMAudio v2"),
    ModelSpec("fal-ai/elevenlabs/tts/*", PROVIDER_FAL, _SYNC, ResultKind.AUDIO, "ElevenLabs TTS"),
    ModelSpec("fal-ai/minimax/speech-02*", PROVIDER_FAL, _SYNC, ResultKind.AUDIO, "Minimax Speech"),
    # LoRA training
    ModelSpec("fal-ai/flux-lora-training", PROVIDER_FAL, _QUEUE, ResultKind.MODEL, "FLUX LoRA Training"),
    ModelSpec("fal-ai/flux-lora-fast-training", PROVIDER_FAL, _QUEUE, ResultKind.MODEL, "FLUX LoRA Fast Training"),
    ModelSpec("fal-ai/hunyuan-video-lora-training", PROVIDER_FAL, _QUEUE, ResultKind.MODEL, "Hunyuan LoRA Training"),
    # RunwayML task API
    ModelSpec("runway/gen4_turbo", PROVIDER_RUNWAY, _QUEUE, ResultKind.VIDEO, "Runway Gen-4 Turbo"),
    ModelSpec("runway/gen4", PROVIDER_RUNWAY, _QUEUE, ResultKind.VIDEO, "Runway Gen-4"),
    ModelSpec("runway/veo3*", PROVIDER_RUNWAY, _QUEUE, ResultKind.VIDEO, "Google Veo via Runway"),
    ModelSpec("runway/gen4_image", PROVIDER_RUNWAY, _QUEUE, ResultKind.IMAGE, "Runway Gen-4 Image"),
    # OpenAI video API
    ModelSpec("openai/sora-2", PROVIDER_OPENAI, _QUEUE, ResultKind.VIDEO, "Sora 2"),
    ModelSpec("openai/sora-2-pro", PROVIDER_OPENAI, _QUEUE, ResultKind.VIDEO, "Sora 2 Pro"),
]

# Keyword fallback for model ids that aren't in the catalog. Checked in order.
_KIND_KEYWORDS = [
    (ResultKind.MODEL, ("lora-training", "lora-fast-training", "-training", "/train")),
    (ResultKind.AUDIO, ("tts", "text-to-audio", "audio", "speech", "music", "voice")),
    (ResultKind.VIDEO, ("video", "lipsync", "veo", "kling", "luma-dream", "hailuo",
                        "pixverse", "seedance", "sora", "gen4_turbo", "ray")),
]


def find_spec(model_id: str, catalog: Optional[List[ModelSpec]] = None) -> Optional[ModelSpec]:
    """
    Find the most specific catalog entry for a model id.

    Exact entries win over prefix entries; among prefixes the longest wins.
    """
    catalog = MODEL_CATALOG if catalog is None else catalog
    best: Optional[ModelSpec] = None
    for spec in catalog:
        if not spec.matches(model_id):
            continue
        if not spec.is_prefix:
            return spec
        if best is None or len(spec.stem) > len(best.stem):
            best = spec
    return best


def classify_model(model_id: str) -> ResultKind:
    """Output kind for a model id: catalog first, then keywords, else image."""
    spec = find_spec(model_id)
    if spec is not None:
        return spec.kind

    lowered = model_id.lower()
    for kind, keywords in _KIND_KEYWORDS:
        if any(k in lowered for k in keywords):
            return kind
    return ResultKind.IMAGE


def specs_for_provider(provider: str) -> List[ModelSpec]:
    return [s for s in MODEL_CATALOG if s.provider == provider]


def print_available_models(provider: Optional[str] = None) -> None:
    """Print catalog entries for one or all providers."""
    providers_to_show = [provider] if provider else SUPPORTED_PROVIDERS

    print("=" * 70)
    print("Available Models by provider")
    print("=" * 70)

    for name in providers_to_show:
        print(f"\n{name} provider:")
        print("-" * 70)
        by_kind: Dict[ResultKind, List[ModelSpec]] = {}
        for spec in specs_for_provider(name):
            by_kind.setdefault(spec.kind, []).append(spec)
        for kind, specs in by_kind.items():
            print(f"  [{kind.value}]")
            for spec in specs:
                print(f"    • {spec.pattern:<48} {spec.protocol.value}")
                if spec.label:
                    print(f"      {spec.label}")

    print("\n" + "=" * 70)
    print("Patterns ending in '*' match every model id with that prefix.")
    print("=" * 70)
