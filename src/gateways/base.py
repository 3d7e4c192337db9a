"""
Base Gateway for outbound claim submission.

Implements:
- IntegrationError hierarchy with retryable classification
- HTTP status classification
- Bounded timeouts on every external call
- Retry with exponential backoff for retryable failures only
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar
import asyncio
import logging
from functools import wraps
from uuid import UUID

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Same value on every retry of one logical POST so the receiver can drop duplicates
IDEMPOTENCY_HEADER = "Idempotency-Key"


# =============================================================================
# Errors
# =============================================================================


class IntegrationError(Exception):
    """Base exception for failures talking to a payer or clearinghouse."""

    code = "integration-error"
    retryable = False

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        retryable: Optional[bool] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.status_code = status_code
        if retryable is not None:
            self.retryable = retryable
        self.original_error = original_error

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": {
                "provider": self.provider,
                "status_code": self.status_code,
                "retryable": self.retryable,
            },
        }


class IntegrationTimeoutError(IntegrationError):
    """Raised when an external call exceeds its timeout."""

    code = "integration-timeout"
    retryable = True


class IntegrationUnavailableError(IntegrationError):
    """Raised on connection failures and 5xx responses."""

    code = "integration-unavailable"
    retryable = True


class IntegrationRateLimitError(IntegrationError):
    """Raised when the remote side answers 429."""

    code = "integration-rate-limited"
    retryable = True


class IntegrationRejectedError(IntegrationError):
    """Raised when the remote side rejects the request (4xx other than 429)."""

    code = "integration-rejected"
    retryable = False


def classify_http_status(
    status_code: int,
    message: str = "",
    provider: Optional[str] = None,
) -> Optional[IntegrationError]:
    """Map an HTTP status to the matching IntegrationError, or None on success."""
    if status_code < 400:
        return None
    text = message or f"HTTP {status_code}"
    if status_code == 429:
        return IntegrationRateLimitError(text, provider=provider, status_code=status_code)
    if status_code >= 500:
        return IntegrationUnavailableError(text, provider=provider, status_code=status_code)
    return IntegrationRejectedError(text, provider=provider, status_code=status_code)


# =============================================================================
# Payload
# =============================================================================


@dataclass
class ClaimEnvelope:
    """A rendered claim ready to leave the system."""

    claim_id: UUID
    claim_number: str
    billing_format: str
    content_type: str
    body: str
    payer_code: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "claim_id": str(self.claim_id),
            "claim_number": self.claim_number,
            "billing_format": self.billing_format,
            "content_type": self.content_type,
            "payer_code": self.payer_code,
            "body": self.body,
        }


# =============================================================================
# Configuration
# =============================================================================


@dataclass
class GatewayConfig:
    """Configuration for a gateway instance."""

    provider: str
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    timeout_seconds: float = 60.0
    batch_timeout_seconds: float = 120.0
    retry_attempts: int = 3
    retry_delay_seconds: float = 2.0
    backoff_factor: float = 2.0


def with_retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff_factor: float = 2.0,
):
    """Decorator retrying retryable IntegrationErrors with exponential backoff."""

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            current_delay = delay

            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)
                except IntegrationError as e:
                    if not e.retryable or attempt == max_attempts - 1:
                        if e.retryable:
                            logger.error(f"All {max_attempts} attempts failed. Last error: {e}")
                        raise
                    logger.warning(
                        f"Attempt {attempt + 1}/{max_attempts} failed: {e}. "
                        f"Retrying in {current_delay:.1f}s..."
                    )
                    await asyncio.sleep(current_delay)
                    current_delay *= backoff_factor

            raise IntegrationError("No attempts made")

        return wrapper

    return decorator


# =============================================================================
# HTTP Gateway
# =============================================================================


class BaseHttpGateway:
    """
    Shared HTTP plumbing for submission gateways.

    Every call is bounded by asyncio.wait_for and retried per config.
    Submission POSTs carry an Idempotency-Key that stays fixed across the
    retries of one call.
    Pass an httpx.AsyncClient to reuse a connection pool or to inject a
    mock transport.
    """

    def __init__(self, config: GatewayConfig, http_client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._http_client = http_client
        self._owns_client = http_client is None

    @property
    def gateway_name(self) -> str:
        return self.config.provider

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            headers = {}
            if self.config.api_key:
                headers["Authorization"] = f"Bearer {self.config.api_key}"
            self._http_client = httpx.AsyncClient(
                base_url=self.config.base_url or "",
                timeout=self.config.timeout_seconds,
                headers=headers,
            )
        return self._http_client

    async def _post_json(
        self,
        url: str,
        payload: dict[str, Any],
        timeout: Optional[float] = None,
        idempotency_key: Optional[str] = None,
    ) -> dict[str, Any]:
        """POST and decode; transport failures and error statuses become IntegrationErrors."""
        try:
            response = await self._client().post(
                url,
                json=payload,
                timeout=timeout or self.config.timeout_seconds,
                headers={IDEMPOTENCY_HEADER: idempotency_key} if idempotency_key else None,
            )
        except httpx.TimeoutException as e:
            raise IntegrationTimeoutError(
                f"{self.gateway_name} request timed out", provider=self.gateway_name, original_error=e
            )
        except httpx.TransportError as e:
            raise IntegrationUnavailableError(
                f"Could not reach {self.gateway_name}: {e}", provider=self.gateway_name, original_error=e
            )

        error = classify_http_status(
            response.status_code,
            f"{self.gateway_name} returned {response.status_code}: {response.text[:200]}",
            provider=self.gateway_name,
        )
        if error is not None:
            raise error

        try:
            return response.json()
        except ValueError as e:
            raise IntegrationRejectedError(
                f"{self.gateway_name} returned a non-JSON body",
                provider=self.gateway_name,
                status_code=response.status_code,
                original_error=e,
            )

    async def _call(
        self,
        operation: Callable[[], Awaitable[T]],
        timeout_seconds: Optional[float] = None,
    ) -> T:
        """Run operation with a timeout per attempt and retries for retryable errors."""
        timeout = timeout_seconds or self.config.timeout_seconds

        async def attempt() -> T:
            try:
                return await asyncio.wait_for(operation(), timeout=timeout)
            except asyncio.TimeoutError as e:
                raise IntegrationTimeoutError(
                    f"{self.gateway_name} timed out after {timeout}s",
                    provider=self.gateway_name,
                    original_error=e,
                )

        retrying = with_retry(
            max_attempts=max(self.config.retry_attempts, 1),
            delay=self.config.retry_delay_seconds,
            backoff_factor=self.config.backoff_factor,
        )(attempt)
        return await retrying()

    async def close(self) -> None:
        """Clean up gateway resources."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None
        logger.info(f"{self.gateway_name} gateway closed")
