"""Core types for the LLM router.

This module defines the data structures shared by the router, the provider
layer and the response-processing helpers:

- LLMPurpose / ModelQuality / ResponseStatus: enumerations
- ModelMetadata: frozen description of one model's token budget
- TokensUsage: token accounting with the ``-1`` "unknown" sentinel
- ErrorPattern: per-vendor recipe for reading numbers out of error text
- InvocationResponse: outcome of a single attempt against one model
"""

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from .errors import BadConfigurationError

# Sentinel for a token count that was not measured
UNKNOWN_TOKENS = -1

GeneratedContent = Union[str, Dict[str, Any], List[float], None]


class LLMPurpose(Enum):
    """What a model is used for."""

    EMBEDDINGS = "embeddings"
    COMPLETIONS = "completions"


class ModelQuality(Enum):
    """Quality tier of a completion model within one provider."""

    PRIMARY = "primary"
    SECONDARY = "secondary"


class ResponseStatus(Enum):
    """Status of a single invocation attempt."""

    UNKNOWN = "unknown"  # Not yet classified, never a valid final outcome
    COMPLETED = "completed"
    EXCEEDED = "exceeded"  # Token budget exhausted
    OVERLOADED = "overloaded"  # Transient, retry or switch


@dataclass(frozen=True)
class ModelMetadata:
    """Immutable metadata for one model.

    Attributes:
        key: Internal model key (distinct from the vendor identifier)
        urn: Vendor's external model identifier
        purpose: Embeddings or completions
        max_total_tokens: Prompt + completion token budget
        dimensions: Embedding vector size (embeddings only)
        max_completion_tokens: Completion token ceiling (completions only)
    """

    key: str
    urn: str
    purpose: LLMPurpose
    max_total_tokens: int
    dimensions: Optional[int] = None
    max_completion_tokens: Optional[int] = None

    def __post_init__(self):
        """Validate purpose-dependent fields."""
        if not self.key or not self.key.strip():
            raise BadConfigurationError("ModelMetadata.key cannot be empty")
        if not self.urn or not self.urn.strip():
            raise BadConfigurationError(f"Model '{self.key}' has an empty urn")
        if self.max_total_tokens <= 0:
            raise BadConfigurationError(
                f"Model '{self.key}' must have a positive max_total_tokens",
                self.max_total_tokens,
            )
        if self.purpose == LLMPurpose.EMBEDDINGS and self.dimensions is None:
            raise BadConfigurationError(
                f"Embeddings model '{self.key}' is missing dimensions"
            )
        if self.purpose == LLMPurpose.COMPLETIONS:
            if self.max_completion_tokens is None:
                raise BadConfigurationError(
                    f"Completions model '{self.key}' is missing max_completion_tokens"
                )
            if self.max_completion_tokens > self.max_total_tokens:
                raise BadConfigurationError(
                    f"Model '{self.key}' has max_completion_tokens greater than max_total_tokens",
                    {
                        "max_completion_tokens": self.max_completion_tokens,
                        "max_total_tokens": self.max_total_tokens,
                    },
                )


def lookup_model(models_metadata: Mapping[str, ModelMetadata], model_key: str) -> ModelMetadata:
    """Get a model's metadata, raising BadConfigurationError for an unknown key."""
    try:
        return models_metadata[model_key]
    except KeyError:
        raise BadConfigurationError(
            f"No metadata registered for model key '{model_key}'",
            sorted(models_metadata),
        ) from None


@dataclass(frozen=True)
class ModelKeysSet:
    """Maps logical model roles to internal model keys."""

    embeddings_key: str
    primary_completion_key: str
    secondary_completion_key: Optional[str] = None


@dataclass(frozen=True)
class TokensUsage:
    """Token accounting for one attempt.

    Any field may hold ``UNKNOWN_TOKENS`` (-1) until normalized.
    """

    prompt_tokens: int = UNKNOWN_TOKENS
    completion_tokens: int = UNKNOWN_TOKENS
    max_total_tokens: int = UNKNOWN_TOKENS


@dataclass(frozen=True)
class ErrorPattern:
    """How to read a limit and a usage value out of a vendor error message.

    Attributes:
        pattern: Compiled regex with capture groups for the numbers
        units: "tokens" or "chars"
        is_max_first: True if the limit is captured before the usage value
    """

    pattern: "re.Pattern[str]"
    units: str = "tokens"
    is_max_first: bool = True

    def __post_init__(self):
        if self.units not in ("tokens", "chars"):
            raise BadConfigurationError(f"Invalid error pattern units '{self.units}'")


@dataclass(frozen=True)
class ResponseSummary:
    """Vendor-neutral summary of a raw vendor response."""

    is_incomplete_response: bool
    response_content: GeneratedContent
    token_usage: TokensUsage = field(default_factory=TokensUsage)


@dataclass(frozen=True)
class InvocationResponse:
    """Outcome of one attempt against one model.

    Created fresh per attempt and never mutated; use ``with_changes`` to
    derive a copy with overrides. ``context`` is the shared free-form bag
    for the whole invocation.
    """

    status: ResponseStatus
    request: str
    model_key: str
    context: Dict[str, Any] = field(default_factory=dict)
    generated: GeneratedContent = None
    tokens_usage: Optional[TokensUsage] = None

    def with_changes(self, **changes: Any) -> "InvocationResponse":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)
