"""
fal.ai REST client.

Talks to the queue API (``queue.fal.run``) for submit / status / result /
cancel, and to the synchronous endpoint (``fal.run``) for one-shot runs.
"""

from typing import Any, Dict, Optional

import requests

from ...exceptions import AdapterSubmissionError, ConfigurationError
from ...logger import get_library_logger
from ..http_support import raise_for_submission_status, send_with_retry
from .config import PLACEHOLDER_KEYS, FalConfig

PROVIDER = "fal"


def app_root(model_id: str) -> str:
    """Queue URLs live under the first two path segments of a model id."""
    parts = model_id.strip("/").split("/")
    return "/".join(parts[:2])


class FalClient:
    """fal.ai queue and run API client."""

    def __init__(self, config: FalConfig):
        """
        Initialize the fal.ai API client.

        Args:
            config: Configuration containing API credentials and settings
        """
        self.config = config
        self.logger = get_library_logger()
        self.api_key = config.api_key

        if not self.api_key:
            raise ConfigurationError(
                "FAL_KEY not set. Get your API key from:\n"
                "https://fal.ai/dashboard/keys\n"
                "and set it in your .env file: FAL_KEY=your_actual_key"
            )
        if self.api_key in PLACEHOLDER_KEYS:
            raise ConfigurationError(
                f"FAL_KEY appears to be a placeholder: '{self.api_key}'\n"
                "Replace it with your actual key from https://fal.ai/dashboard/keys"
            )

        self.logger.debug("FalClient initialized")

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Key {self.api_key}",
            "Content-Type": "application/json",
        }

    def _parse_json(self, response: requests.Response, what: str) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            self.logger.error(f"Failed to parse {what} response: {response.text[:500]}")
            raise AdapterSubmissionError(
                f"Invalid JSON in fal.ai {what} response: {e}", provider=PROVIDER
            ) from e
        if not isinstance(data, dict):
            raise AdapterSubmissionError(
                f"Unexpected fal.ai {what} response format: {type(data).__name__}",
                provider=PROVIDER,
            )
        return data

    def queue_urls(self, model_id: str, request_id: str) -> Dict[str, str]:
        """Status, response and cancel URLs for a queued request."""
        base = f"{self.config.queue_base_url}/{app_root(model_id)}/requests/{request_id}"
        return {
            "status_url": f"{base}/status",
            "response_url": base,
            "cancel_url": f"{base}/cancel",
        }

    def submit(self, model_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Put a request on the fal.ai queue.

        Returns:
            Queue receipt with ``request_id`` and the status, response and
            cancel URLs

        Raises:
            AdapterSubmissionError: If the request was rejected
        """
        url = f"{self.config.queue_base_url}/{model_id}"
        self.logger.info(f"Queueing fal.ai request: model={model_id}")
        self.logger.debug(f"Input: {payload}")

        response = send_with_retry(
            lambda: requests.post(
                url, headers=self._get_headers(), json=payload, timeout=self.config.request_timeout
            ),
            self.config,
            self.logger,
            PROVIDER,
        )
        raise_for_submission_status(response, self.logger, PROVIDER, "FAL_KEY")
        receipt = self._parse_json(response, "queue")

        request_id = receipt.get("request_id")
        if not request_id:
            raise AdapterSubmissionError("fal.ai queue response had no request_id", provider=PROVIDER)

        for key, fallback in self.queue_urls(model_id, request_id).items():
            receipt.setdefault(key, fallback)
        self.logger.info(f"fal.ai request queued: {request_id}")
        return receipt

    def status(self, status_url: str, with_logs: bool = True) -> Dict[str, Any]:
        """Fetch queue status; ``requests`` errors propagate to the caller."""
        response = requests.get(
            status_url,
            headers=self._get_headers(),
            params={"logs": 1} if with_logs else None,
            timeout=self.config.request_timeout,
        )
        response.raise_for_status()
        return response.json()

    def result(self, response_url: str) -> Dict[str, Any]:
        """Fetch the result of a completed request."""
        response = requests.get(
            response_url, headers=self._get_headers(), timeout=self.config.request_timeout
        )
        response.raise_for_status()
        return response.json()

    def cancel(self, cancel_url: str) -> bool:
        """
        Ask fal.ai to cancel a queued request.

        Returns:
            True if fal.ai accepted the cancellation
        """
        response = requests.put(
            cancel_url, headers=self._get_headers(), timeout=self.config.request_timeout
        )
        if response.status_code >= 400:
            self.logger.warning(f"fal.ai cancel returned {response.status_code}: {response.text[:200]}")
            return False
        return True

    def run(self, model_id: str, payload: Dict[str, Any], timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Run a model synchronously and return its result.

        Raises:
            AdapterSubmissionError: If the request was rejected
        """
        url = f"{self.config.run_base_url}/{model_id}"
        self.logger.info(f"Running fal.ai model: {model_id}")
        self.logger.debug(f"Input: {payload}")

        response = send_with_retry(
            lambda: requests.post(
                url,
                headers=self._get_headers(),
                json=payload,
                timeout=timeout or self.config.run_timeout,
            ),
            self.config,
            self.logger,
            PROVIDER,
        )
        raise_for_submission_status(response, self.logger, PROVIDER, "FAL_KEY")
        return self._parse_json(response, "run")
