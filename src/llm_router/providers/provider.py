"""LLMProvider: one vendor adapter plus its models and classification pipeline.

The provider turns every adapter call into an InvocationResponse:

    adapter.invoke -> incomplete?   -> EXCEEDED (usage from response metadata)
                   -> complete      -> post_process (COMPLETED / OVERLOADED)
                   -> raised error  -> timeout / overloaded -> OVERLOADED
                                    -> token limit exceeded -> EXCEEDED (usage from error text)
                                    -> anything else        -> re-raised unchanged
"""

import asyncio
import logging
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from ..config import RetryConfig, TokenBudgetConfig
from ..error_patterns import extract_from_error_message
from ..errors import BadConfigurationError, LLMError
from ..response_tools import default_missing_values, post_process
from ..types import (
    ErrorPattern,
    InvocationResponse,
    LLMPurpose,
    ModelKeysSet,
    ModelMetadata,
    ModelQuality,
    ResponseStatus,
    lookup_model,
)
from .base import ErrorDetails, ProviderAdapter

logger = logging.getLogger(__name__)

LLMFunction = Callable[
    [str, bool, Dict[str, Any], Optional[int]], Awaitable[InvocationResponse]
]


class LLMProvider:
    """Executes vendor calls for the embeddings, primary and secondary models.

    Args:
        adapter: Vendor integration performing the raw calls.
        model_family: Family name reported to callers (e.g. "OpenAI").
        model_keys: Mapping of model roles to internal keys.
        models_metadata: Resolved metadata for every key in ``model_keys``.
        error_patterns: Ordered patterns for reading token counts from errors.
        retry_config: Supplies the default per-attempt request timeout.
        token_budget: Supplies the chars-per-token estimate.
    """

    def __init__(
        self,
        adapter: ProviderAdapter,
        model_family: str,
        model_keys: ModelKeysSet,
        models_metadata: Mapping[str, ModelMetadata],
        error_patterns: Sequence[ErrorPattern] = (),
        retry_config: Optional[RetryConfig] = None,
        token_budget: Optional[TokenBudgetConfig] = None,
    ):
        self.adapter = adapter
        self.model_family = model_family
        self.model_keys = model_keys
        self._models_metadata = MappingProxyType(dict(models_metadata))
        self._error_patterns = tuple(error_patterns)
        self.retry_config = retry_config or RetryConfig()
        self.token_budget = token_budget or TokenBudgetConfig()

        for key in (
            model_keys.embeddings_key,
            model_keys.primary_completion_key,
            model_keys.secondary_completion_key,
        ):
            if key is not None:
                lookup_model(self._models_metadata, key)

    def get_model_family(self) -> str:
        return self.model_family

    def get_models_metadata(self) -> Mapping[str, ModelMetadata]:
        """Read-only view of the models metadata."""
        return self._models_metadata

    def get_error_patterns(self) -> Tuple[ErrorPattern, ...]:
        return self._error_patterns

    def available_completion_qualities(self) -> List[ModelQuality]:
        qualities = [ModelQuality.PRIMARY]
        if self.model_keys.secondary_completion_key:
            qualities.append(ModelQuality.SECONDARY)
        return qualities

    def get_models_names(self) -> Tuple[str, str, str]:
        """Vendor identifiers of the embeddings, primary and secondary models."""
        secondary_key = self.model_keys.secondary_completion_key
        return (
            self._models_metadata[self.model_keys.embeddings_key].urn,
            self._models_metadata[self.model_keys.primary_completion_key].urn,
            self._models_metadata[secondary_key].urn if secondary_key else "n/a",
        )

    def get_embedded_model_dimensions(self) -> Optional[int]:
        return self._models_metadata[self.model_keys.embeddings_key].dimensions

    async def generate_embeddings(
        self,
        content: str,
        as_json: bool = False,
        context: Optional[Dict[str, Any]] = None,
        timeout_millis: Optional[int] = None,
    ) -> InvocationResponse:
        return await self.execute(
            self.model_keys.embeddings_key,
            LLMPurpose.EMBEDDINGS,
            content,
            as_json,
            context,
            timeout_millis,
        )

    async def execute_completion_primary(
        self,
        prompt: str,
        as_json: bool = False,
        context: Optional[Dict[str, Any]] = None,
        timeout_millis: Optional[int] = None,
    ) -> InvocationResponse:
        return await self.execute(
            self.model_keys.primary_completion_key,
            LLMPurpose.COMPLETIONS,
            prompt,
            as_json,
            context,
            timeout_millis,
        )

    async def execute_completion_secondary(
        self,
        prompt: str,
        as_json: bool = False,
        context: Optional[Dict[str, Any]] = None,
        timeout_millis: Optional[int] = None,
    ) -> InvocationResponse:
        secondary_key = self.model_keys.secondary_completion_key
        if not secondary_key:
            raise BadConfigurationError(
                f"Secondary completion model for '{self.model_family}' was not defined"
            )
        return await self.execute(
            secondary_key, LLMPurpose.COMPLETIONS, prompt, as_json, context, timeout_millis
        )

    async def execute(
        self,
        model_key: str,
        task_type: LLMPurpose,
        request: str,
        as_json: bool = False,
        context: Optional[Dict[str, Any]] = None,
        timeout_millis: Optional[int] = None,
    ) -> InvocationResponse:
        """Run one attempt against one model and classify the outcome.

        ``timeout_millis`` overrides the provider's configured request timeout.

        Raises:
            Exception: Any vendor error that is neither an overload nor a
                token-limit overrun, unchanged.
        """
        if context is None:
            context = {}
        skeleton = InvocationResponse(
            status=ResponseStatus.UNKNOWN,
            request=request,
            model_key=model_key,
            context=context,
        )
        timeout_seconds = (timeout_millis or self.retry_config.request_timeout_millis) / 1000

        try:
            summary = await asyncio.wait_for(
                self.adapter.invoke(task_type, model_key, request),
                timeout=timeout_seconds,
            )
        except LLMError:
            raise
        except Exception as e:
            details = ErrorDetails.from_exception(e)

            if details.is_timeout or self.adapter.is_overloaded(details):
                logger.debug(
                    f"Model '{model_key}' overloaded or timed out: {details.error_type}"
                )
                return skeleton.with_changes(status=ResponseStatus.OVERLOADED)

            if self.adapter.is_token_limit_exceeded(details):
                return skeleton.with_changes(
                    status=ResponseStatus.EXCEEDED,
                    tokens_usage=extract_from_error_message(
                        model_key,
                        request,
                        details.message,
                        self._models_metadata,
                        self._error_patterns,
                        self.token_budget.chars_per_token_estimate,
                    ),
                )

            raise

        if summary.is_incomplete_response:
            return skeleton.with_changes(
                status=ResponseStatus.EXCEEDED,
                tokens_usage=default_missing_values(
                    model_key, summary.token_usage, self._models_metadata
                ),
            )

        return post_process(
            skeleton,
            model_key,
            task_type,
            summary.response_content,
            as_json,
            context,
            self._models_metadata,
        )

    async def close(self) -> None:
        await self.adapter.close()
