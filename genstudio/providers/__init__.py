"""
Provider modules for generation backends.

Each provider package is named with a '_provider' suffix to prevent package
shadowing issues with standard Python packages from PyPI.

Provider Modules:
- fal_provider: fal.ai image, video, audio and LoRA-training models
  - REST queue API plus the synchronous run endpoint
  - QueueAndPoll, SyncSubscribe and OneShot adapters over one client

- runway_provider: RunwayML Gen-4, Veo and Gen-4 Image tasks
  - QueueAndPoll over the task API
  - Local images compressed into data URIs

- openai_provider: OpenAI Sora-2 video generation
  - QueueAndPoll over the videos API

All providers export their API client class, configuration class and
adapter factories. ``base.ProviderAdapter`` is the uniform descriptor the
orchestrator works with.
"""

from .base import ProviderAdapter
from .fal_provider import FalClient, fal_queue_adapter, fal_run_adapter, fal_subscribe_adapter
from .openai_provider import SoraClient, sora_adapter
from .runway_provider import RunwayClient, runway_adapter

__all__ = [
    "ProviderAdapter",
    "FalClient",
    "fal_queue_adapter",
    "fal_run_adapter",
    "fal_subscribe_adapter",
    "RunwayClient",
    "runway_adapter",
    "SoraClient",
    "sora_adapter",
]
