"""RunwayML provider for Gen-4, Veo and Gen-4 Image tasks."""

from .adapter import runway_adapter
from .config import RunwayConfig
from .runway_client import RunwayClient

__all__ = ["RunwayClient", "RunwayConfig", "runway_adapter"]
