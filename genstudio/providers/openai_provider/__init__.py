"""OpenAI provider for Sora-2 video generation."""

from .adapter import sora_adapter
from .config import SoraConfig
from .sora_client import SoraClient

__all__ = ["SoraClient", "SoraConfig", "sora_adapter"]
