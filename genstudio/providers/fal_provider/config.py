"""fal.ai configuration."""

import os
from dataclasses import dataclass

from ...exceptions import ConfigurationError

ERROR_API_KEY_EMPTY = "API key cannot be empty"

PLACEHOLDER_KEYS = ("your_fal_key_here", "your_api_key_here", "fal-...")


@dataclass
class FalConfig:
    """Configuration class for fal.ai generation."""

    # API Configuration
    api_key: str
    queue_base_url: str = "https://queue.fal.run"
    run_base_url: str = "https://fal.run"

    # Request timeouts in seconds
    request_timeout: float = 30
    run_timeout: float = 300

    # SyncSubscribe: how long submit() waits for a result before handing
    # the job over to normal polling
    subscribe_poll_interval: float = 2
    subscribe_timeout: float = 120

    # Retry configuration (429/503 and timeouts during submission)
    retry_base_delay: float = 2
    retry_max_delay: float = 30
    retry_jitter_percent: float = 0.2
    max_retries: int = 3

    @classmethod
    def from_environment(cls) -> "FalConfig":
        """
        Create configuration from environment variables.

        Returns:
            FalConfig: Configuration instance

        Raises:
            ConfigurationError: If required environment variables are missing
        """
        api_key = os.getenv("FAL_KEY")
        if not api_key:
            raise ConfigurationError(
                "Missing FAL_KEY in environment or .env file\n"
                "Set it with: export FAL_KEY=your_key_here\n"
                "Or create a .env file with: FAL_KEY=your_key_here"
            )

        try:
            return cls(
                api_key=api_key,
                queue_base_url=os.getenv("FAL_QUEUE_URL", "https://queue.fal.run").rstrip("/"),
                run_base_url=os.getenv("FAL_RUN_URL", "https://fal.run").rstrip("/"),
                subscribe_timeout=float(os.getenv("FAL_SUBSCRIBE_TIMEOUT", "120")),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid FAL_SUBSCRIBE_TIMEOUT: {e}") from e

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
                f"FAL_KEY appears to be a placeholder: '{self.api_key}'\n"
                "Replace it with your actual key from:\n"
                "https://fal.ai/dashboard/keys"
            )

        if not self.queue_base_url or not self.run_base_url:
            raise ConfigurationError("Base URLs cannot be empty")

        if self.subscribe_poll_interval <= 0:
            raise ConfigurationError("Subscribe poll interval must be positive")

        if self.subscribe_timeout < 0:
            raise ConfigurationError("Subscribe timeout cannot be negative")

        if self.max_retries < 0:
            raise ConfigurationError("max_retries cannot be negative")
