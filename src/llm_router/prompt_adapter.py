"""Prompt adaptation after a token-budget overrun.

The adapter is strategy based: the router only calls
``PromptAdapter.adapt_prompt_from_response`` and the active strategy decides
how the prompt shrinks. The default strategy truncates the prompt by a ratio
derived from the reported token usage.
"""

import math
from typing import Mapping, Optional, Protocol, runtime_checkable

from .config import TokenBudgetConfig
from .errors import BadResponseMetadataError
from .types import InvocationResponse, ModelMetadata, TokensUsage, lookup_model


@runtime_checkable
class PromptAdaptationStrategy(Protocol):
    """Computes a smaller prompt from token-usage feedback."""

    def adapt_prompt(
        self,
        prompt: str,
        model_key: str,
        tokens_usage: TokensUsage,
        models_metadata: Mapping[str, ModelMetadata],
    ) -> str:
        ...


class TokenLimitReductionStrategy:
    """Truncate the prompt proportionally to the token overrun.

    If the completion used up (nearly) all of its own budget the prompt is
    shrunk by at least ``completion_tokens_reduce_min_ratio`` to nudge the
    model toward a shorter answer; otherwise it is shrunk to fit the total
    budget, by at least ``prompt_tokens_reduce_min_ratio``. The ratio is
    always below 1, so repeated overruns keep shrinking the prompt.
    """

    def __init__(self, budget: Optional[TokenBudgetConfig] = None):
        self.budget = budget or TokenBudgetConfig()

    def compute_reduction_ratio(
        self,
        model: ModelMetadata,
        tokens_usage: TokensUsage,
    ) -> float:
        """Fraction of the prompt to keep."""
        ratio = 1.0
        completion_limit = model.max_completion_tokens
        completion_tokens = tokens_usage.completion_tokens

        if completion_limit and completion_tokens >= (
            completion_limit - self.budget.completion_max_tokens_limit_buffer
        ):
            ratio = min(
                completion_limit / (completion_tokens + 1),
                self.budget.completion_tokens_reduce_min_ratio,
            )

        if ratio >= 1:
            ratio = min(
                tokens_usage.max_total_tokens
                / (tokens_usage.prompt_tokens + completion_tokens + 1),
                self.budget.prompt_tokens_reduce_min_ratio,
            )

        return max(ratio, 0.0)

    def adapt_prompt(
        self,
        prompt: str,
        model_key: str,
        tokens_usage: TokensUsage,
        models_metadata: Mapping[str, ModelMetadata],
    ) -> str:
        if not prompt.strip():
            return prompt

        model = lookup_model(models_metadata, model_key)
        ratio = self.compute_reduction_ratio(model, tokens_usage)
        return prompt[: math.floor(len(prompt) * ratio)]


class PromptAdapter:
    """Applies the configured adaptation strategy to exceeded responses."""

    def __init__(self, strategy: Optional[PromptAdaptationStrategy] = None):
        self.strategy = strategy or TokenLimitReductionStrategy()

    def adapt_prompt_from_response(
        self,
        prompt: str,
        response: InvocationResponse,
        models_metadata: Mapping[str, ModelMetadata],
    ) -> str:
        """Shrink ``prompt`` using the token usage carried by an EXCEEDED response.

        Raises:
            BadResponseMetadataError: If the response has no token usage
        """
        if response.tokens_usage is None:
            raise BadResponseMetadataError(
                "LLM response indicated token limit exceeded but tokens_usage is not present",
                {"model_key": response.model_key, "status": response.status.value},
            )

        return self.strategy.adapt_prompt(
            prompt, response.model_key, response.tokens_usage, models_metadata
        )
