"""
Shared ``requests`` handling for REST providers.

Submission calls translate HTTP status codes into adapter errors and retry
capacity responses with backoff; polling calls translate transport errors
into outcomes so that a flaky network never fails a job that is still
running at the provider.
"""

import logging
from typing import Any, Callable, Optional

import requests

from ..exceptions import (
    AdapterSubmissionError,
    AuthenticationError,
    InsufficientCreditsError,
    RateLimitError,
)
from ..models import PollOutcome
from ..retry_utils import RetryConfig, call_with_retry
from .base import failed, in_progress

RETRYABLE_STATUS_CODES = (429, 503)

_CREDIT_PHRASES = (
    "insufficient credits",
    "not enough credit",
    "not enough credits",
    "do not have enough credits",
    "exhausted balance",
)


class CapacityResponse(Exception):
    """A 429/503 response that should be retried."""

    def __init__(self, response: requests.Response):
        self.response = response
        self.status_code = response.status_code
        super().__init__(f"HTTP {response.status_code}")


def is_insufficient_credits(response_text: str, error_message: Any) -> bool:
    """Return True if response indicates insufficient credits."""
    parts = []
    if error_message is not None:
        parts.append(str(error_message))
    if response_text:
        parts.append(response_text)
    combined = " ".join(parts).lower()
    return any(phrase in combined for phrase in _CREDIT_PHRASES)


def error_detail(response: requests.Response) -> Any:
    """Best-effort error message from a JSON or text error body."""
    try:
        data = response.json()
    except ValueError:
        return response.text[:500] or None
    if isinstance(data, dict):
        return data.get("detail") or data.get("error") or data.get("message") or data
    return data


def send_with_retry(
    send: Callable[[], requests.Response],
    config: RetryConfig,
    logger: logging.Logger,
    provider: str,
) -> requests.Response:
    """
    Send a submission request, retrying capacity responses and timeouts.

    Raises:
        RateLimitError: If the provider stayed over capacity
        AdapterSubmissionError: For timeouts and transport failures
    """
    def attempt() -> requests.Response:
        response = send()
        if response.status_code in RETRYABLE_STATUS_CODES:
            logger.warning(f"{provider} responded {response.status_code}, backing off")
            raise CapacityResponse(response)
        return response

    try:
        return call_with_retry(
            attempt, config, logger, retry_on=(CapacityResponse, requests.exceptions.Timeout)
        )
    except CapacityResponse as e:
        raise RateLimitError(
            f"{provider} is rate limiting or over capacity (HTTP {e.status_code}); try again later",
            provider=provider,
            status_code=e.status_code,
        ) from e
    except requests.exceptions.Timeout as e:
        raise AdapterSubmissionError(
            f"{provider} request timed out: {e}", provider=provider, retryable=True
        ) from e
    except requests.exceptions.SSLError as e:
        if "CERTIFICATE_VERIFY_FAILED" in str(e):
            logger.error(
                "SSL certificate verification failed. This is usually caused by:\n"
                "  1. Corporate firewall/proxy intercepting SSL connections\n"
                "  2. Missing or outdated system CA certificates\n\n"
                "Quick fix: 'pip install --upgrade certifi'"
            )
        raise AdapterSubmissionError(
            f"SSL error connecting to {provider}: {e}", provider=provider
        ) from e
    except requests.exceptions.RequestException as e:
        logger.error(f"{provider} API error: {e}")
        raise AdapterSubmissionError(
            f"{provider} API request failed: {e}", provider=provider, retryable=True
        ) from e


def raise_for_submission_status(
    response: requests.Response,
    logger: logging.Logger,
    provider: str,
    key_hint: str,
) -> None:
    """
    Translate an unsuccessful submission response into an adapter error.

    Args:
        response: Provider response
        logger: Logger instance for output
        provider: Provider name for messages
        key_hint: Name of the environment variable holding the API key
    """
    status = response.status_code
    if status < 400:
        return

    detail = error_detail(response)
    logger.error(f"{provider} rejected the request ({status}): {detail}")

    if status in (400, 402, 403) and is_insufficient_credits(response.text, detail):
        raise InsufficientCreditsError(
            f"{provider}: insufficient credits for this request. "
            "Add credits to the account or choose another model.",
            provider=provider,
        )
    if status in (401, 403):
        raise AuthenticationError(
            f"{provider} authentication failed. Invalid or missing API key; check {key_hint}.",
            provider=provider,
            status_code=status,
        )
    if status == 413:
        raise AdapterSubmissionError(
            f"{provider} rejected the request: payload too large (413). "
            "Try a smaller or compressed input file.",
            provider=provider,
            status_code=status,
        )
    raise AdapterSubmissionError(
        f"{provider} rejected the request ({status}): {detail}",
        provider=provider,
        retryable=status >= 500,
        status_code=status,
    )


def polling_exception_outcome(
    error: Exception,
    logger: logging.Logger,
    provider: str,
) -> Optional[PollOutcome]:
    """
    Decide what a polling failure means for the job.

    Timeouts, connection errors and 5xx responses are transient: the job is
    reported as still running with no new progress. 4xx responses mean the
    provider no longer knows the request, so the job has failed.

    Returns:
        The outcome to report, or None if ``error`` is not a ``requests``
        error and should propagate
    """
    if isinstance(error, requests.exceptions.SSLError) and "CERTIFICATE_VERIFY_FAILED" in str(error):
        logger.error(f"SSL certificate verification failed while polling {provider}")
        return failed(f"SSL certificate verification failed: {error}")

    if isinstance(error, (requests.exceptions.Timeout, requests.exceptions.ConnectionError)):
        logger.warning(f"Transient error polling {provider}, will retry on next poll: {error}")
        return in_progress()

    if isinstance(error, requests.exceptions.HTTPError):
        status_code = getattr(error.response, "status_code", None)
        if status_code and 500 <= status_code < 600:
            logger.warning(f"Server error {status_code} polling {provider}, will retry on next poll")
            return in_progress()
        detail = error_detail(error.response) if error.response is not None else str(error)
        logger.error(f"Client error {status_code} polling {provider}, giving up")
        return failed(f"{provider} returned {status_code}: {detail}")

    if isinstance(error, requests.exceptions.RequestException):
        logger.warning(f"Request exception polling {provider}, will retry on next poll: {error}")
        return in_progress()

    return None
