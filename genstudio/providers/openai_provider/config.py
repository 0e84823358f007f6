"""
Configuration for OpenAI Sora video generation.
"""

import os
from dataclasses import dataclass

from ...exceptions import ConfigurationError

ERROR_API_KEY_EMPTY = "API key cannot be empty"

PLACEHOLDER_KEYS = ("your_openai_api_key_here", "your_api_key_here", "sk-...")

# Clip lengths the videos API accepts
SUPPORTED_SECONDS = ("4", "8", "12")


@dataclass
class SoraConfig:
    """Configuration class for Sora-2 video generation."""

    # API Configuration
    api_key: str
    base_url: str = "https://api.openai.com/v1"

    # Defaults applied when a request leaves them out
    default_seconds: str = "8"
    default_size: str = "1280x720"

    # Retry configuration (rate limits and capacity errors on create)
    retry_base_delay: float = 5
    retry_max_delay: float = 60
    retry_jitter_percent: float = 0.2  # Jitter percentage (±20%)
    max_retries: int = 3

    @classmethod
    def from_environment(cls) -> "SoraConfig":
        """
        Create configuration from environment variables.

        Returns:
            SoraConfig: Configuration instance

        Raises:
            ConfigurationError: If required environment variables are missing
        """
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ConfigurationError(
                "Missing OPENAI_API_KEY in environment or .env file\n"
                "Set it with: export OPENAI_API_KEY=your_key_here\n"
                "Or create a .env file with: OPENAI_API_KEY=your_key_here"
            )

        base_url = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/")
        return cls(api_key=api_key, base_url=base_url)

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ConfigurationError: If any configuration values are invalid
        """
        if not self.api_key:
            raise ConfigurationError(ERROR_API_KEY_EMPTY)

        if self.api_key in PLACEHOLDER_KEYS:
            raise ConfigurationError(
                f"OPENAI_API_KEY appears to be a placeholder: '{self.api_key}'\n"
                "Replace it with your actual API key from:\n"
                "https://platform.openai.com/api-keys"
            )

        if self.default_seconds not in SUPPORTED_SECONDS:
            raise ConfigurationError(
                f"Sora supports {', '.join(SUPPORTED_SECONDS)} second clips, not {self.default_seconds}"
            )
