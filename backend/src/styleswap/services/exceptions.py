"""Service error hierarchy for generation providers and the payment gateway.

This module defines the exception hierarchy for service-level errors:
- ServiceError: Base for all service errors
- TransientError: Retryable errors (network, rate limits, timeouts)
- PermanentError: Non-retryable errors (configuration, rejected requests, terminal failures)
"""


class ServiceError(Exception):
    """Base exception for all service errors."""

    pass


class TransientError(ServiceError):
    """Transient error that may succeed on retry.

    Examples:
    - Network timeouts
    - Rate limit exceeded (429)
    - Service unavailable (503)
    - Malformed poll response
    """

    pass


class PermanentError(ServiceError):
    """Permanent error that will not succeed on retry.

    Examples:
    - Missing credentials
    - Request rejected by the provider
    - Explicit failure status for a task
    """

    pass


class ConfigurationError(PermanentError):
    """No usable credential or missing keys; raised before any network call."""

    pass


# Generation-specific errors
class SubmissionError(PermanentError):
    """Provider did not accept the job (non-success status or no task id)."""

    pass


class ContentPolicyError(PermanentError):
    """Provider refused the prompt or image, or returned no result for it."""

    pass


class ProviderUnavailableError(TransientError):
    """Network timeout, connection error or 5xx from the provider."""

    pass


class QuotaExceededError(TransientError):
    """Credential is rate limited, out of quota or lacks permission."""

    pass


class ProviderFailure(PermanentError):
    """Provider reported a terminal failure for a submitted task."""

    def __init__(self, message: str, reason: str | None = None):
        super().__init__(message)
        self.reason = reason or message


class ArtifactMissingError(ProviderFailure):
    """Provider reported success but never exposed a result location."""

    pass


class GenerationTimeout(PermanentError):
    """Poll attempt budget exhausted without a terminal status."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


# Payment-specific errors
class PaymentError(ServiceError):
    """Base exception for payment gateway errors."""

    pass


class CaptureError(PaymentError):
    """Capture call failed."""

    pass


class RefundError(PaymentError):
    """Refund call failed."""

    pass


def is_quota_error(exception: BaseException) -> bool:
    """Return True for errors that mean the credential itself is unusable."""
    if isinstance(exception, QuotaExceededError):
        return True
    message = str(exception).lower()
    return (
        "429" in message
        or "quota" in message
        or "resource_exhausted" in message
        or "permission denied" in message
        or "403" in message
    )
