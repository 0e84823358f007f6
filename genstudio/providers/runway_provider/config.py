"""RunwayML task API configuration."""

import os
from dataclasses import dataclass

from ...exceptions import ConfigurationError

ERROR_API_KEY_EMPTY = "API key cannot be empty"

PLACEHOLDER_KEYS = ("your_runway_api_key_here", "your_api_key_here", "sk-...")


@dataclass
class RunwayConfig:
    """Configuration class for RunwayML generation."""

    # API Configuration
    api_key: str
    base_url: str = "https://api.dev.runwayml.com/v1"
    api_version: str = "2024-11-06"
    request_timeout: float = 30

    # Defaults applied when a request leaves them out
    default_video_ratio: str = "1280:720"
    default_image_ratio: str = "1920:1080"
    default_duration: int = 5

    # Local images above this size are recompressed before upload
    max_image_kb: int = 800

    # Retry configuration
    retry_base_delay: float = 5
    retry_max_delay: float = 60
    retry_jitter_percent: float = 0.2  # Jitter percentage (±20%)
    max_retries: int = 3

    @classmethod
    def from_environment(cls) -> "RunwayConfig":
        """
        Create configuration from environment variables.

        Returns:
            RunwayConfig: Configuration instance

        Raises:
            ConfigurationError: If required environment variables are missing
        """
        api_key = os.getenv("RUNWAY_API_KEY")

        if not api_key:
            raise ConfigurationError(
                "Missing RUNWAY_API_KEY in environment or .env file\n"
                "Set it with: export RUNWAY_API_KEY=your_key_here\n"
                "Or create a .env file with: RUNWAY_API_KEY=your_key_here"
            )

        base_url = os.getenv("RUNWAY_BASE_URL", "https://api.dev.runwayml.com/v1").rstrip("/")
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
                f"RUNWAY_API_KEY appears to be a placeholder: '{self.api_key}'\n"
                "Replace it with your actual API key from:\n"
                "https://app.runwayml.com/settings/api-keys"
            )

        if not self.base_url:
            raise ConfigurationError("Base URL cannot be empty")

        if self.default_duration <= 0:
            raise ConfigurationError("Duration must be positive")

        if self.max_image_kb <= 0:
            raise ConfigurationError("Maximum image size must be positive")
