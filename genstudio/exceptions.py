"""
Custom exceptions for generation job orchestration.

Every exception carries a stable ``error_kind`` string so the request API
can build error envelopes without inspecting class names.
"""

from typing import Optional


class GenerationError(Exception):
    """Base exception for generation orchestration errors."""
    error_kind = "generation_error"


class ConfigurationError(GenerationError):
    """Exception for configuration errors."""
    error_kind = "configuration_error"


class ValidationError(GenerationError):
    """Exception for malformed inbound requests."""
    error_kind = "validation_error"


class UnsupportedModelError(GenerationError):
    """Raised when no adapter (or more than one) serves a model identifier."""
    error_kind = "unsupported_model"

    def __init__(self, model_id: str, message: Optional[str] = None):
        self.model_id = model_id
        super().__init__(message or f"Unsupported model: {model_id}")


class QuotaExceededError(GenerationError):
    """Raised when a client has used up its generation allowance."""
    error_kind = "quota_exceeded"

    def __init__(self, client_id: str, used_count: int, limit: int):
        self.client_id = client_id
        self.used_count = used_count
        self.limit = limit
        super().__init__(
            f"Generation limit reached for client {client_id} ({used_count}/{limit})"
        )


class AdapterSubmissionError(GenerationError):
    """Raised when a provider rejects a submission synchronously."""
    error_kind = "adapter_submission_error"

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        retryable: bool = False,
        status_code: Optional[int] = None,
    ):
        self.provider = provider
        self.retryable = retryable
        self.status_code = status_code
        super().__init__(message)


class AuthenticationError(AdapterSubmissionError):
    """Exception for authentication failures."""
    error_kind = "authentication_error"


class RateLimitError(AdapterSubmissionError):
    """Exception for rate limiting that outlasted the retry budget."""
    error_kind = "rate_limited"

    def __init__(self, message: str, provider: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, provider=provider, retryable=True, status_code=status_code)


class InsufficientCreditsError(AdapterSubmissionError):
    """Exception for provider billing/credit exhaustion.

    Raised when a provider indicates the account does not have enough credits
    to perform the requested operation. Treat as non-retryable until credits
    are added or another model is chosen.
    """
    error_kind = "insufficient_credits"

    def __init__(self, message: str = "Insufficient credits", provider: Optional[str] = None):
        super().__init__(message, provider=provider, retryable=False)


class InvalidTransitionError(GenerationError):
    """Raised when a job transition does not match its current state.

    This signals a lost race or a programming error; it is never shown to
    end callers verbatim.
    """
    error_kind = "invalid_transition"

    def __init__(self, job_id: str, current_state, to_state):
        self.job_id = job_id
        self.current_state = current_state
        self.to_state = to_state
        super().__init__(
            f"Job {job_id} cannot move from {current_state.value} to {to_state.value}"
        )


class JobNotFoundError(GenerationError):
    """Raised when a job id is unknown or has been evicted."""
    error_kind = "job_not_found"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class MalformedResultError(GenerationError):
    """Raised when a successful provider response has no usable asset."""
    error_kind = "malformed_result"

    def __init__(self, model_id: str, message: str):
        self.model_id = model_id
        super().__init__(f"{model_id}: {message}")


class JobTimeoutError(GenerationError):
    """Describes a job that outlived the maximum job age."""
    error_kind = "timeout"

    def __init__(self, job_id: str, age_seconds: float, max_age_seconds: float):
        self.job_id = job_id
        self.age_seconds = age_seconds
        self.max_age_seconds = max_age_seconds
        super().__init__(
            f"Job {job_id} exceeded maximum age ({age_seconds:.0f}s > {max_age_seconds:.0f}s)"
        )


class DownloadError(GenerationError):
    """Raised when a result asset can't be fetched to local storage."""
    error_kind = "download_error"
