"""fal.ai provider for image, video, audio and LoRA-training models."""

from .adapters import fal_queue_adapter, fal_run_adapter, fal_subscribe_adapter
from .config import FalConfig
from .fal_client import FalClient
from .inputs import sanitize_input

__all__ = [
    "FalClient",
    "FalConfig",
    "fal_queue_adapter",
    "fal_run_adapter",
    "fal_subscribe_adapter",
    "sanitize_input",
]
