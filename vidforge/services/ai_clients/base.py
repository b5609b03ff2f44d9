"""
Shared pieces of the provider clients: connection config, error types,
transport retry and HTTP error mapping.

Clients raise AIClientError subclasses. ProviderGenerativeGateway turns
them into GenerativeError, so stages only ever see gateway failures.
"""

import logging
from dataclasses import dataclass

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

# Worth another attempt: the request may never have reached the provider.
TRANSIENT_ERRORS = (httpx.ConnectError, httpx.TimeoutException)


def transport_retry(attempts: int = 3):
    """
    Retry decorator for provider calls.

    Only transient transport failures are retried, with exponential
    backoff (4s up to 60s). HTTP error responses are returned to the
    caller untouched.
    """
    return retry(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=1, min=4, max=60),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


@dataclass
class AIClientConfig:
    """
    Connection settings of one provider.

    Attributes:
        base_url: Provider endpoint
        timeout: Request timeout, seconds
        api_key: Credential, None for unauthenticated self-hosted services
        max_retries: Attempts for transient failures
    """

    base_url: str
    timeout: float = 300.0
    api_key: str | None = None
    max_retries: int = 3

    @property
    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}


class AIClientError(Exception):
    """
    Provider call failed.

    Attributes:
        message: Error description
        provider: "whisper", "claude" or "speech"
        model: Model involved (if known)
        original_error: Underlying exception (if any)
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        model: str | None = None,
        original_error: Exception | None = None,
    ):
        self.message = message
        self.provider = provider
        self.model = model
        self.original_error = original_error
        super().__init__(message)

    def __str__(self) -> str:
        source = "/".join(part for part in (self.provider, self.model) if part)
        return f"{self.message} ({source})" if source else self.message


class AIClientTimeoutError(AIClientError):
    """Provider did not answer in time."""


class AIClientConnectionError(AIClientError):
    """Provider unreachable or answered with an unreadable body."""


class AIClientResponseError(AIClientError):
    """
    Provider answered with an error status or an unusable payload.

    Attributes:
        status_code: HTTP status (if any)
        response_body: Start of the response body (if any)
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.response_body = response_body


def map_http_error(
    error: Exception,
    provider: str,
    action: str,
    model: str | None = None,
) -> AIClientError:
    """
    Translate an httpx failure into the AIClientError family.

    Args:
        error: Exception raised while calling the provider
        provider: Provider name for the error
        action: What was attempted ("Transcription", "Speech synthesis")
        model: Model involved (if known)

    Returns:
        Matching AIClientError subclass, ready to raise
    """
    if isinstance(error, httpx.TimeoutException):
        logger.error(f"{provider}: {action} timed out: {error}")
        return AIClientTimeoutError(
            f"{action} timed out", provider=provider, model=model, original_error=error
        )

    if isinstance(error, httpx.HTTPStatusError):
        body = error.response.text[:500]
        logger.error(f"{provider}: {action} HTTP {error.response.status_code}: {body[:200]}")
        return AIClientResponseError(
            f"{action} failed: HTTP {error.response.status_code}",
            provider=provider,
            model=model,
            status_code=error.response.status_code,
            response_body=body,
            original_error=error,
        )

    logger.error(f"{provider}: {action} failed: {type(error).__name__}: {error}")
    return AIClientConnectionError(
        f"{action} failed: {error}", provider=provider, model=model, original_error=error
    )
