"""LLM router: tier selection, retries, tier switching and prompt cropping.

For each requested quality tier the router calls the provider, retrying with
a randomized backoff while the model reports OVERLOADED. Unsuccessful
outcomes are resolved by ``handle_unsuccessful_outcome``:

    OVERLOADED (or retries exhausted) -> next tier, or give up on the last tier
    EXCEEDED                          -> next tier, or crop prompt on the last tier
    UNKNOWN                           -> RejectionResponseError
    COMPLETED                         -> return generated content

Running out of options returns None so batch callers can skip one resource.
Configuration and contract violations, rejections and unclassified vendor
errors are raised.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Type, Union

from pydantic import BaseModel, ValidationError

from .config import RetryConfig
from .errors import BadConfigurationError, BadResponseContentError, RejectionResponseError
from .prompt_adapter import PromptAdapter
from .providers.manifest import ProviderManifest, create_provider
from .providers.provider import LLMFunction, LLMProvider
from .stats import StatsCategory, StatsCounter
from .types import (
    GeneratedContent,
    InvocationResponse,
    LLMPurpose,
    ModelQuality,
    ResponseStatus,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NextAction:
    """What the router does after an unsuccessful attempt."""

    should_terminate: bool
    should_crop_prompt: bool
    should_switch_to_next_llm: bool


@dataclass(frozen=True)
class CompletionCandidate:
    """One completion tier the router may try."""

    quality: ModelQuality
    func: LLMFunction
    description: str


def _log_with_context(msg: str, context: Mapping[str, Any], level: int = logging.INFO) -> None:
    details = "".join(f"\n  * {key}: {value}" for key, value in context.items())
    logger.log(level, f"{msg}{details}")


def handle_unsuccessful_outcome(
    response: Optional[InvocationResponse],
    current_tier_index: int,
    total_tiers: int,
    context: Mapping[str, Any],
    resource_name: str,
) -> NextAction:
    """Decide the next step after an attempt that did not complete.

    Args:
        response: Final response of the attempt, or None if retries ran out
        current_tier_index: Index of the tier just tried
        total_tiers: Number of tiers available for this invocation
        context: Invocation context, used for logging
        resource_name: Resource being processed, used for error messages

    Returns:
        NextAction with exactly one of terminate / crop / switch set

    Raises:
        RejectionResponseError: For an UNKNOWN (or otherwise unclassified) status
    """
    can_switch = current_tier_index + 1 < total_tiers

    if response is None or response.status == ResponseStatus.OVERLOADED:
        _log_with_context(
            "LLM problem processing prompt with current model because it is overloaded, "
            "timing out or returning invalid JSON (if JSON was requested), even after retries",
            context,
        )
        return NextAction(
            should_terminate=not can_switch,
            should_crop_prompt=False,
            should_switch_to_next_llm=can_switch,
        )

    if response.status == ResponseStatus.EXCEEDED:
        usage = response.tokens_usage
        _log_with_context(
            f"LLM prompt tokens used {usage.prompt_tokens if usage else 0} plus completion "
            f"tokens used {usage.completion_tokens if usage else 0} exceeded EITHER the "
            f"model's total token limit of {usage.max_total_tokens if usage else 0} OR the "
            f"model's completion tokens limit",
            context,
        )
        return NextAction(
            should_terminate=False,
            should_crop_prompt=not can_switch,
            should_switch_to_next_llm=can_switch,
        )

    raise RejectionResponseError(
        f"An unknown error occurred while the router processed the LLM invocation for "
        f"resource '{resource_name}' - response status received: '{response.status.value}'",
        {"model_key": response.model_key, "status": response.status.value},
    )


def build_completion_candidates(provider: LLMProvider) -> List[CompletionCandidate]:
    """Completion tiers offered by a provider, primary first."""
    candidates = [
        CompletionCandidate(
            quality=ModelQuality.PRIMARY,
            func=provider.execute_completion_primary,
            description="Primary completion model",
        )
    ]
    if ModelQuality.SECONDARY in provider.available_completion_qualities():
        candidates.append(
            CompletionCandidate(
                quality=ModelQuality.SECONDARY,
                func=provider.execute_completion_secondary,
                description="Secondary completion model (fallback)",
            )
        )
    return candidates


def get_completion_candidates(
    candidates: Sequence[CompletionCandidate],
    quality_override: Optional[ModelQuality] = None,
) -> List[CompletionCandidate]:
    """Restrict candidates to ``quality_override`` if given.

    Raises:
        BadConfigurationError: If no candidate remains
    """
    selected = [
        candidate
        for candidate in candidates
        if quality_override is None or candidate.quality == quality_override
    ]
    if not selected:
        raise BadConfigurationError(
            f"No completion candidates found for model quality: {quality_override.value}"
            if quality_override
            else "No completion candidates available"
        )
    return selected


class LLMRouter:
    """Uniform invocation layer over one LLM provider.

    Example:
        router = LLMRouter.from_manifest(get_manifest("OpenAI"), os.environ)
        summary = await router.execute_completion("README.md", prompt)
        vector = await router.generate_embeddings("README.md", text)
        await router.close()
    """

    def __init__(
        self,
        provider: LLMProvider,
        retry_config: Optional[RetryConfig] = None,
        stats: Optional[StatsCounter] = None,
        prompt_adapter: Optional[PromptAdapter] = None,
    ):
        """Initialize the router.

        Args:
            provider: Provider executing the vendor calls.
            retry_config: Attempts, backoff and per-attempt timeout; defaults to the
                provider's resolved config.
            stats: Outcome counters; pass a shared instance to aggregate routers.
            prompt_adapter: Prompt cropping strategy holder.
        """
        self._provider = provider
        self._retry_config = retry_config or provider.retry_config
        self._stats = stats or StatsCounter()
        self._prompt_adapter = prompt_adapter or PromptAdapter()
        self._completion_candidates = build_completion_candidates(provider)

        if not self._completion_candidates:
            raise BadConfigurationError(
                "At least one completion candidate function must be provided"
            )

        logger.info(f"Router LLMs to be used: {self.get_models_used_description()}")

    @classmethod
    def from_manifest(
        cls,
        manifest: ProviderManifest,
        env: Mapping[str, str],
        provider_config: Optional[Mapping[str, Any]] = None,
        stats: Optional[StatsCounter] = None,
        prompt_adapter: Optional[PromptAdapter] = None,
    ) -> "LLMRouter":
        """Build a router for a resolved provider manifest."""
        provider = create_provider(manifest, env, provider_config)
        return cls(provider, stats=stats, prompt_adapter=prompt_adapter)

    @property
    def stats(self) -> StatsCounter:
        return self._stats

    @property
    def retry_config(self) -> RetryConfig:
        return self._retry_config

    async def close(self) -> None:
        """Release the provider's client resources."""
        await self._provider.close()

    def get_model_family(self) -> str:
        return self._provider.get_model_family()

    def get_models_used_description(self) -> str:
        embeddings, primary, secondary = self._provider.get_models_names()
        completions = ", ".join(
            f"{candidate.quality.value}: "
            f"{primary if candidate.quality == ModelQuality.PRIMARY else secondary}"
            for candidate in self._completion_candidates
        )
        return (
            f"{self.get_model_family()} "
            f"(embeddings: {embeddings}, completions: {completions})"
        )

    def get_embedded_model_dimensions(self) -> Optional[int]:
        return self._provider.get_embedded_model_dimensions()

    async def generate_embeddings(
        self,
        resource_name: str,
        content: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> Optional[List[float]]:
        """Generate the embedding vector for ``content``.

        Returns:
            The vector, or None if every attempt was exhausted

        Raises:
            BadResponseContentError: If the vendor returned something other
                than a list of numbers
        """
        if context is None:
            context = {}
        context.update(resource=resource_name, purpose=LLMPurpose.EMBEDDINGS.value)

        generated = await self._invoke_with_retries_and_adaptation(
            resource_name, content, context, [self._provider.generate_embeddings]
        )
        if generated is None:
            return None

        if not (
            isinstance(generated, list)
            and all(
                isinstance(item, (int, float)) and not isinstance(item, bool)
                for item in generated
            )
        ):
            raise BadResponseContentError(
                "LLM response for embeddings was not a list of numbers",
                {"resource": resource_name, "type": type(generated).__name__},
            )
        return generated

    async def execute_completion(
        self,
        resource_name: str,
        prompt: str,
        as_json: bool = False,
        context: Optional[Dict[str, Any]] = None,
        quality_override: Optional[ModelQuality] = None,
        response_model: Optional[Type[BaseModel]] = None,
    ) -> Union[str, Dict[str, Any], BaseModel, None]:
        """Send a prompt to the completion tiers and return the answer.

        Tiers are tried in configured order (primary, then secondary) unless
        ``quality_override`` restricts the call to a single tier.

        Args:
            resource_name: Name of the resource being processed (for logging)
            prompt: Prompt text
            as_json: Parse the answer as a JSON object
            context: Optional caller context, extended in place
            quality_override: Only use this tier
            response_model: Pydantic model validating the parsed JSON answer

        Returns:
            Text, parsed JSON dict, validated model instance, or None if every
            attempt was exhausted or the answer failed validation
        """
        candidates = get_completion_candidates(self._completion_candidates, quality_override)
        if context is None:
            context = {}
        context.update(
            resource=resource_name,
            purpose=LLMPurpose.COMPLETIONS.value,
            model_quality=candidates[0].quality.value,
        )

        generated = await self._invoke_with_retries_and_adaptation(
            resource_name,
            prompt,
            context,
            [candidate.func for candidate in candidates],
            [candidate.quality for candidate in candidates],
            as_json,
        )

        if generated is None or not (as_json and response_model):
            return generated

        try:
            return response_model.model_validate(generated)
        except ValidationError as e:
            logger.error(
                f"LLM response for '{resource_name}' failed schema validation so "
                f"discarding it. Issues: {e.errors()}"
            )
            return None

    def display_status_summary(self) -> str:
        """Log and return the table of event types being recorded."""
        table = _render_stats_table(self._stats.snapshot(), include_count=False)
        logger.info(f"LLM invocation event types that will be recorded:\n{table}")
        return table

    def display_status_details(self) -> str:
        """Log and return the accumulated event counts."""
        table = _render_stats_table(self._stats.snapshot(include_total=True), include_count=True)
        logger.info(f"LLM invocation statistics:\n{table}")
        return table

    async def _invoke_with_retries_and_adaptation(
        self,
        resource_name: str,
        prompt: str,
        context: Dict[str, Any],
        funcs: Sequence[LLMFunction],
        qualities: Optional[Sequence[ModelQuality]] = None,
        as_json: bool = False,
    ) -> GeneratedContent:
        try:
            generated = await self._iterate_over_functions(
                resource_name, prompt, context, funcs, qualities, as_json
            )
        except Exception as e:
            _log_with_context(
                f"Unable to process resource '{resource_name}' with an LLM due to a "
                f"non-recoverable error: {type(e).__name__}: {e}",
                context,
                logging.ERROR,
            )
            self._stats.record_failure()
            raise

        if generated is None:
            logger.warning(
                f"Given-up on trying to fulfill the current prompt with an LLM for "
                f"resource '{resource_name}'"
            )
            self._stats.record_failure()
        return generated

    async def _iterate_over_functions(
        self,
        resource_name: str,
        prompt: str,
        context: Dict[str, Any],
        funcs: Sequence[LLMFunction],
        qualities: Optional[Sequence[ModelQuality]],
        as_json: bool,
    ) -> GeneratedContent:
        current_prompt = prompt
        index = 0
        crops = 0

        # index is not advanced after a crop so the cropped prompt goes to the same tier
        while index < len(funcs):
            response = await self._execute_with_retries(
                funcs[index], current_prompt, as_json, context
            )

            if response is not None and response.status == ResponseStatus.COMPLETED:
                self._stats.record_success()
                return response.generated

            action = handle_unsuccessful_outcome(
                response, index, len(funcs), context, resource_name
            )
            if action.should_terminate:
                break

            if action.should_crop_prompt:
                if crops >= self._retry_config.max_attempts:
                    _log_with_context(
                        f"Prompt still too large for resource '{resource_name}' after "
                        f"{crops} crops, terminating attempts",
                        context,
                    )
                    break

                crops += 1
                current_prompt = self._crop_prompt(current_prompt, response)
                if not current_prompt.strip():
                    _log_with_context(
                        f"Prompt became empty after cropping for resource "
                        f"'{resource_name}', terminating attempts",
                        context,
                    )
                    break
                continue

            if action.should_switch_to_next_llm:
                if qualities and index + 1 < len(qualities):
                    context["model_quality"] = qualities[index + 1].value
                self._stats.record_switch()
                index += 1
                crops = 0

        return None

    async def _execute_with_retries(
        self,
        func: LLMFunction,
        prompt: str,
        as_json: bool,
        context: Dict[str, Any],
    ) -> Optional[InvocationResponse]:
        """Call ``func`` until it is not OVERLOADED or the attempts run out."""
        max_attempts = self._retry_config.max_attempts

        for attempt in range(1, max_attempts + 1):
            response = await func(
                prompt, as_json, context, self._retry_config.request_timeout_millis
            )
            if response.status != ResponseStatus.OVERLOADED:
                return response

            if attempt < max_attempts:
                self._stats.record_retry()
                await asyncio.sleep(self._retry_delay_seconds())

        return None

    def _retry_delay_seconds(self) -> float:
        delay_millis = self._retry_config.min_retry_delay_millis + random.randint(
            0, self._retry_config.max_retry_additional_delay_millis
        )
        return delay_millis / 1000

    def _crop_prompt(self, prompt: str, response: InvocationResponse) -> str:
        self._stats.record_crop()
        return self._prompt_adapter.adapt_prompt_from_response(
            prompt, response, self._provider.get_models_metadata()
        )


def _render_stats_table(table: Dict[str, StatsCategory], include_count: bool) -> str:
    headers = ["category", "description", "symbol"] + (["count"] if include_count else [])
    rows = [
        [name, category.description, category.symbol]
        + ([str(category.count)] if include_count else [])
        for name, category in table.items()
    ]
    widths = [max(len(row[i]) for row in [headers] + rows) for i in range(len(headers))]
    lines = [
        " | ".join(cell.ljust(width) for cell, width in zip(row, widths))
        for row in [headers] + rows
    ]
    lines.insert(1, "-+-".join("-" * width for width in widths))
    return "\n".join(lines)
