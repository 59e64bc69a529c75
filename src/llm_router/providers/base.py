"""ProviderAdapter protocol for vendor integrations.

An adapter performs exactly one vendor call and classifies vendor failures.
Classification works on ErrorDetails (message text plus optional HTTP status)
rather than on SDK exception classes, so the rest of the package never
imports a vendor SDK.

Implementations:
- OpenAIAdapter: OpenAI REST API over httpx
- AzureOpenAIAdapter: Azure OpenAI deployments over httpx
"""

import asyncio
from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

import httpx

from ..types import LLMPurpose, ResponseSummary


@dataclass(frozen=True)
class ErrorDetails:
    """Vendor-neutral view of an exception raised during a vendor call.

    Attributes:
        message: Error text, including any response body
        status_code: HTTP status code if the error came from an HTTP response
        error_type: Name of the raised exception class
        is_timeout: True for client-side or server-side timeouts
    """

    message: str
    status_code: Optional[int] = None
    error_type: str = ""
    is_timeout: bool = False

    @classmethod
    def from_exception(cls, error: BaseException) -> "ErrorDetails":
        """Build ErrorDetails from any exception."""
        error_type = type(error).__name__

        if isinstance(error, httpx.HTTPStatusError):
            body = ""
            try:
                body = error.response.text
            except httpx.ResponseNotRead:
                pass
            return cls(
                message=f"{error} {body}".strip(),
                status_code=error.response.status_code,
                error_type=error_type,
                is_timeout=error.response.status_code in (408, 504),
            )

        if isinstance(error, (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError)):
            return cls(
                message=str(error) or "Request timed out",
                error_type=error_type,
                is_timeout=True,
            )

        status_code = getattr(error, "status_code", None)
        return cls(
            message=str(error),
            status_code=status_code if isinstance(status_code, int) else None,
            error_type=error_type,
        )


@runtime_checkable
class ProviderAdapter(Protocol):
    """Contract implemented by each vendor integration.

    ``invoke`` may raise for any vendor failure; the owning LLMProvider
    decides, via the two predicates, whether a failure is an overload, a
    token-limit overrun, or fatal.

    ``ResponseSummary.is_incomplete_response`` must be True whenever the
    vendor reports truncation by length or returns empty content.
    """

    async def invoke(
        self,
        task_type: LLMPurpose,
        model_key: str,
        prompt: str,
    ) -> ResponseSummary:
        """Execute one vendor call for one model."""
        ...

    def is_overloaded(self, error: ErrorDetails) -> bool:
        """Rate limiting, throttling, service unavailable or timeout."""
        ...

    def is_token_limit_exceeded(self, error: ErrorDetails) -> bool:
        """Validation error reporting a context or input length overrun."""
        ...

    async def close(self) -> None:
        """Release vendor client resources."""
        ...
