"""Response normalization and post-processing helpers."""

import json
import logging
import re
from typing import Any, Dict, Mapping

from .errors import BadResponseContentError
from .types import (
    GeneratedContent,
    InvocationResponse,
    LLMPurpose,
    ModelMetadata,
    ResponseStatus,
    TokensUsage,
    lookup_model,
)

logger = logging.getLogger(__name__)

_CONTROL_CHARS = re.compile(r"[\x00-\x1F]")


def default_missing_values(
    model_key: str,
    token_usage: TokensUsage,
    models_metadata: Mapping[str, ModelMetadata],
) -> TokensUsage:
    """Replace unknown (-1) token counts with safe defaults.

    An unknown prompt count assumes the whole budget was consumed.
    """
    prompt_tokens = token_usage.prompt_tokens
    completion_tokens = token_usage.completion_tokens
    max_total_tokens = token_usage.max_total_tokens

    if completion_tokens < 0:
        completion_tokens = 0
    if max_total_tokens < 0:
        max_total_tokens = lookup_model(models_metadata, model_key).max_total_tokens
    if prompt_tokens < 0:
        prompt_tokens = max(1, max_total_tokens - completion_tokens + 1)

    return TokensUsage(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        max_total_tokens=max_total_tokens,
    )


def convert_text_to_json(content: str) -> Dict[str, Any]:
    """Parse the JSON object embedded in free text.

    Takes everything from the first ``{`` to the last ``}`` and replaces
    control characters with spaces before parsing.

    Raises:
        ValueError: If no JSON object can be found or parsed
    """
    start = content.find("{")
    end = content.rfind("}")
    if start == -1 or end == -1 or end < start:
        raise ValueError(f"No JSON content found in text: {content[:200]}")

    sanitized = _CONTROL_CHARS.sub(" ", content[start : end + 1])
    return json.loads(sanitized)


def post_process(
    skeleton: InvocationResponse,
    model_key: str,
    task_type: LLMPurpose,
    content: GeneratedContent,
    as_json: bool,
    context: Dict[str, Any],
    models_metadata: Mapping[str, ModelMetadata],
) -> InvocationResponse:
    """Build the final response for a complete vendor answer.

    Completions must be strings. When JSON was requested and the text does
    not parse, the response is marked OVERLOADED so the caller retries for a
    better-formed answer, and the parse error is recorded in ``context``.

    Raises:
        BadResponseContentError: If a completion is not a string
    """
    if task_type != LLMPurpose.COMPLETIONS:
        return skeleton.with_changes(status=ResponseStatus.COMPLETED, generated=content)

    if not isinstance(content, str):
        raise BadResponseContentError("Generated content is not a string", content)

    if not as_json:
        return skeleton.with_changes(status=ResponseStatus.COMPLETED, generated=content)

    try:
        generated = convert_text_to_json(content)
    except ValueError as e:
        urn = lookup_model(models_metadata, model_key).urn
        logger.warning(
            f"LLM response for model '{urn}' cannot be parsed to JSON, marking as "
            f"overloaded to try again - Error: {e}"
        )
        context["json_parse_error"] = str(e)
        return skeleton.with_changes(status=ResponseStatus.OVERLOADED)

    return skeleton.with_changes(status=ResponseStatus.COMPLETED, generated=generated)
