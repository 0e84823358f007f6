"""
Configuration module for generation orchestration.

Handles environment variables, API keys and default settings for the
orchestrator and for each provider.
"""

import os
from dataclasses import dataclass
from typing import List, Literal

from dotenv import load_dotenv

from .catalog import SUPPORTED_PROVIDERS
from .exceptions import ConfigurationError
from .models import ResetPolicy
from .providers.fal_provider import FalConfig
from .providers.openai_provider import SoraConfig
from .providers.runway_provider import RunwayConfig
from .quota import FREE_GENERATION_LIMIT

load_dotenv()

ENV_PREFIX = "GENSTUDIO_"

GenerationProvider = Literal["fal", "runway", "openai"]


def _env(name: str, default: str) -> str:
    return os.getenv(f"{ENV_PREFIX}{name}", default)


@dataclass
class OrchestratorConfig:
    """Settings for the orchestrator, registry and quota guard."""

    # Jobs still running after this long are timed out
    max_job_age_seconds: float = 900
    # Terminal jobs whose result was read at least once
    retention_seconds: float = 3600
    # Terminal jobs nobody has read yet
    undelivered_retention_seconds: float = 86400

    free_generation_limit: int = FREE_GENERATION_LIMIT
    quota_reset_policy: ResetPolicy = ResetPolicy.NEVER

    # JSON-file stores; empty means in-memory only
    quota_file: str = ".genstudio/quota.json"
    jobs_file: str = ".genstudio/jobs.json"

    # Cadence used by the CLI "wait" command
    poll_interval_seconds: float = 5

    @classmethod
    def from_environment(cls) -> "OrchestratorConfig":
        """
        Create configuration from GENSTUDIO_* environment variables.

        Raises:
            ConfigurationError: If a value can't be parsed
        """
        try:
            config = cls(
                max_job_age_seconds=float(_env("MAX_JOB_AGE_SECONDS", "900")),
                retention_seconds=float(_env("RETENTION_SECONDS", "3600")),
                undelivered_retention_seconds=float(_env("UNDELIVERED_RETENTION_SECONDS", "86400")),
                free_generation_limit=int(_env("FREE_GENERATION_LIMIT", str(FREE_GENERATION_LIMIT))),
                quota_reset_policy=ResetPolicy(_env("QUOTA_RESET_POLICY", "never").lower()),
                quota_file=_env("QUOTA_FILE", ".genstudio/quota.json"),
                jobs_file=_env("JOBS_FILE", ".genstudio/jobs.json"),
                poll_interval_seconds=float(_env("POLL_INTERVAL_SECONDS", "5")),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid {ENV_PREFIX}* setting: {e}") from e
        config.validate()
        return config

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ConfigurationError: If any configuration values are invalid
        """
        if self.max_job_age_seconds <= 0:
            raise ConfigurationError("Maximum job age must be positive")
        if self.retention_seconds < 0 or self.undelivered_retention_seconds < 0:
            raise ConfigurationError("Retention windows cannot be negative")
        if self.undelivered_retention_seconds < self.retention_seconds:
            raise ConfigurationError(
                "Undelivered retention must be at least as long as delivered retention"
            )
        if self.free_generation_limit < 0:
            raise ConfigurationError("Free generation limit cannot be negative")
        if self.poll_interval_seconds <= 0:
            raise ConfigurationError("Poll interval must be positive")


_CONFIG_CLASSES = {
    "fal": FalConfig,
    "runway": RunwayConfig,
    "openai": SoraConfig,
}


def create_config_for_provider(provider: GenerationProvider):
    """
    Create appropriate configuration for the specified provider.

    Args:
        provider: The generation provider to use

    Returns:
        Configuration instance for the specified provider

    Raises:
        ConfigurationError: If provider is not supported or configuration is invalid
    """
    config_class = _CONFIG_CLASSES.get(provider)
    if not config_class:
        raise ConfigurationError(
            f"Unsupported provider: {provider}. Use {', '.join(repr(p) for p in SUPPORTED_PROVIDERS)}"
        )
    config = config_class.from_environment()
    config.validate()
    return config


def get_available_providers() -> List[GenerationProvider]:
    """
    Get list of available providers based on environment configuration.

    Returns:
        List of available provider names
    """
    provider_checks = {
        "fal": lambda: bool(os.getenv("FAL_KEY")),
        "runway": lambda: bool(os.getenv("RUNWAY_API_KEY")),
        "openai": lambda: bool(os.getenv("OPENAI_API_KEY")),
    }
    return [provider for provider, check in provider_checks.items() if check()]


def _get_provider_descriptions() -> dict:
    return {
        "fal": "fal.ai (image, video, audio, LoRA training)",
        "runway": "RunwayML task API (Gen-4, Veo)",
        "openai": "OpenAI Sora-2 (Direct API)",
    }


def _get_provider_env_requirements(provider: str) -> str:
    requirements = {
        "fal": "FAL_KEY",
        "runway": "RUNWAY_API_KEY",
        "openai": "OPENAI_API_KEY",
    }
    return requirements.get(provider, "Unknown")


def print_available_providers() -> None:
    """
    Print all providers with their availability status and requirements.
    """
    print("=" * 70)
    print("Available Generation Providers")
    print("=" * 70)

    available = get_available_providers()
    descriptions = _get_provider_descriptions()

    print("\nConfigured Providers:")
    print("-" * 70)

    for provider in SUPPORTED_PROVIDERS:
        status = "✅ Available" if provider in available else "❌ Not configured"
        print(f"\n  {provider:<10} {status}")
        print(f"  {descriptions.get(provider, provider.upper())}")
        print(f"  Requires: {_get_provider_env_requirements(provider)}")

    print("\n" + "=" * 70)
    print("\nTo configure a provider, set the required environment variables:")
    print("  export FAL_KEY='your-key'          # For fal.ai")
    print("  export RUNWAY_API_KEY='your-key'   # For Runway")
    print("  export OPENAI_API_KEY='your-key'   # For OpenAI")
    print("\nUse 'genjob.py models [provider]' to see the models each provider serves")
    print("=" * 70)
