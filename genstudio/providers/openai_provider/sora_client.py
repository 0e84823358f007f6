"""
OpenAI Sora API client.

Wraps the ``openai`` SDK's videos endpoints and translates SDK errors into
adapter errors.
"""

import mimetypes
from pathlib import Path
from typing import Any, Optional

import openai
from openai import OpenAI

from ...exceptions import (
    AdapterSubmissionError,
    AuthenticationError,
    ConfigurationError,
    InsufficientCreditsError,
    RateLimitError,
    ValidationError,
)
from ...logger import get_library_logger
from ...retry_utils import call_with_retry
from .config import PLACEHOLDER_KEYS, SoraConfig

PROVIDER = "openai"

_QUOTA_PHRASES = ("insufficient_quota", "billing_hard_limit", "exceeded your current quota")


class SoraClient:
    """OpenAI videos API client with Sora-specific error handling."""

    def __init__(self, config: SoraConfig, client: Optional[Any] = None):
        """
        Initialize the API client.

        Args:
            config: Sora configuration containing API key and retry settings
            client: Pre-built ``openai.OpenAI`` instance (tests pass a fake)
        """
        self.config = config
        self.logger = get_library_logger()

        if not config.api_key:
            raise ConfigurationError(
                "OPENAI_API_KEY not set. Get your API key from:\n"
                "https://platform.openai.com/api-keys\n"
                "and set it in your .env file: OPENAI_API_KEY=sk-..."
            )
        if config.api_key in PLACEHOLDER_KEYS:
            raise ConfigurationError(
                f"OPENAI_API_KEY appears to be a placeholder: '{config.api_key}'\n"
                "Replace it with your actual API key from:\n"
                "https://platform.openai.com/api-keys"
            )

        self.client = client or OpenAI(api_key=config.api_key, base_url=config.base_url)
        self.logger.debug("SoraClient initialized")

    def content_url(self, video_id: str) -> str:
        """Download URL of a finished video; requires the API key to fetch."""
        return f"{self.config.base_url}/videos/{video_id}/content"

    def create_video(
        self,
        model: str,
        prompt: str,
        seconds: str,
        size: str,
        input_reference: Optional[str] = None,
    ) -> Any:
        """
        Start a video job.

        Args:
            model: ``sora-2`` or ``sora-2-pro``
            prompt: Text prompt
            seconds: Clip length
            size: ``WIDTHxHEIGHT``
            input_reference: Optional local image path used as the first frame

        Returns:
            The SDK video object

        Raises:
            AdapterSubmissionError: If the API rejected the request
        """
        params = {"model": model, "prompt": prompt, "seconds": seconds, "size": size}
        if input_reference:
            params["input_reference"] = self._reference_file(input_reference)

        self.logger.info(f"Creating Sora video request: model={model}, {size}, {seconds}s")
        try:
            video = call_with_retry(
                lambda: self.client.videos.create(**params),
                self.config,
                self.logger,
                retry_on=(openai.RateLimitError, openai.InternalServerError, openai.APITimeoutError),
            )
        except openai.APIError as e:
            self._raise_submission_error(e, model, seconds)
        self.logger.info(f"Sora video job created: {video.id}")
        return video

    def retrieve_video(self, video_id: str) -> Any:
        """Fetch a video job; SDK errors propagate to the caller."""
        return self.client.videos.retrieve(video_id)

    def delete_video(self, video_id: str) -> None:
        self.client.videos.delete(video_id)

    def _reference_file(self, path_str: str):
        path = Path(path_str)
        if not path.is_file():
            raise ValidationError(f"Reference image not found: {path_str}")
        mime_type, _ = mimetypes.guess_type(str(path))
        return (path.name, path.read_bytes(), mime_type or "image/jpeg")

    def _raise_submission_error(self, error: Exception, model: str, seconds: str) -> None:
        """Translate an SDK error raised by ``videos.create``."""
        message = str(error)
        lowered = message.lower()
        status = getattr(error, "status_code", None)
        self.logger.error(f"Sora API error ({status}): {message}")

        if any(phrase in lowered for phrase in _QUOTA_PHRASES):
            raise InsufficientCreditsError(
                "OpenAI: quota or billing limit reached for Sora. "
                "Check https://platform.openai.com/settings/organization/billing",
                provider=PROVIDER,
            ) from error
        if isinstance(error, openai.RateLimitError):
            raise RateLimitError(
                f"OpenAI rate limit persisted after retries: {message}", provider=PROVIDER, status_code=status
            ) from error
        if isinstance(error, openai.AuthenticationError):
            raise AuthenticationError(
                "OpenAI authentication failed. Invalid API key or no Sora access.\n"
                "Verify your key at https://platform.openai.com/api-keys",
                provider=PROVIDER,
                status_code=status,
            ) from error
        if isinstance(error, openai.PermissionDeniedError) and "organization must be verified" in lowered:
            raise AuthenticationError(
                "OpenAI organization verification required for Sora models. "
                "Verify at https://platform.openai.com/settings/organization/general "
                "and allow up to 15 minutes for access to propagate.",
                provider=PROVIDER,
                status_code=status,
            ) from error
        if isinstance(error, openai.NotFoundError):
            raise AdapterSubmissionError(
                f"Sora model not found or not enabled for this account: {model}",
                provider=PROVIDER,
                status_code=status,
            ) from error
        if isinstance(error, openai.BadRequestError) and "seconds" in lowered:
            raise AdapterSubmissionError(
                f"Invalid duration: {seconds}s. OpenAI Sora only supports 4, 8, or 12 seconds.",
                provider=PROVIDER,
                status_code=status,
            ) from error
        if isinstance(error, (openai.APIConnectionError, openai.InternalServerError)):
            raise AdapterSubmissionError(
                f"Could not reach OpenAI: {message}", provider=PROVIDER, retryable=True, status_code=status
            ) from error
        raise AdapterSubmissionError(f"OpenAI API error: {message}", provider=PROVIDER, status_code=status) from error
