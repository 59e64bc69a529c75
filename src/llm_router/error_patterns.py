"""Token accounting recovered from vendor error messages.

Vendors report an oversized request as free text, e.g.:

    "Too many input tokens. Max input tokens: 8192, request input token count: 9279"
    "Malformed input request: expected maxLength: 50000, actual: 52611"

Each provider declares an ordered list of ErrorPattern entries describing
how to read the limit and the usage value out of such text. Character-based
patterns (``units="chars"``) serve Bedrock-style "maxLength: N, actual: M"
errors. Parsing is pure: the same text always yields the same TokensUsage.
"""

import math
from typing import Mapping, Optional, Sequence, Tuple

from .config import CHARS_PER_TOKEN_ESTIMATE
from .types import UNKNOWN_TOKENS, ErrorPattern, ModelMetadata, TokensUsage, lookup_model


def _no_match() -> TokensUsage:
    return TokensUsage(
        prompt_tokens=UNKNOWN_TOKENS,
        completion_tokens=0,
        max_total_tokens=UNKNOWN_TOKENS,
    )


def _group_int(groups: Tuple[Optional[str], ...], index: int, default: int) -> int:
    """Integer value of a capture group, or ``default`` if it is absent."""
    if index < len(groups) and groups[index] is not None:
        return int(groups[index])
    return default


def _tokens_from_token_groups(
    groups: Tuple[Optional[str], ...],
    pattern: ErrorPattern,
    model: ModelMetadata,
) -> TokensUsage:
    if pattern.is_max_first:
        return TokensUsage(
            max_total_tokens=_group_int(groups, 0, UNKNOWN_TOKENS),
            prompt_tokens=_group_int(groups, 1, UNKNOWN_TOKENS),
            completion_tokens=_group_int(groups, 2, 0),
        )
    return TokensUsage(
        prompt_tokens=_group_int(groups, 0, UNKNOWN_TOKENS),
        max_total_tokens=_group_int(groups, 1, model.max_total_tokens),
        completion_tokens=_group_int(groups, 2, 0),
    )


def _tokens_from_char_groups(
    groups: Tuple[Optional[str], ...],
    pattern: ErrorPattern,
    model: ModelMetadata,
) -> TokensUsage:
    first = _group_int(groups, 0, UNKNOWN_TOKENS)
    second = _group_int(groups, 1, UNKNOWN_TOKENS)
    if first < 0 or second < 0:
        return _no_match()

    chars_limit, chars_used = (first, second) if pattern.is_max_first else (second, first)
    max_total_tokens = model.max_total_tokens

    if chars_limit > 0:
        derived = math.ceil((chars_used / chars_limit) * max_total_tokens)
    else:
        derived = max_total_tokens + 1

    # Estimate must stay above the limit so the request still reads as exceeded
    return TokensUsage(
        max_total_tokens=max_total_tokens,
        prompt_tokens=max(derived, max_total_tokens + 1),
        completion_tokens=0,
    )


def parse_token_usage(
    model_key: str,
    error_text: str,
    models_metadata: Mapping[str, ModelMetadata],
    patterns: Optional[Sequence[ErrorPattern]] = None,
) -> TokensUsage:
    """Extract token counts and limits from a vendor error message.

    Patterns are tried in order and the first one that matches with at
    least one capture group wins; later patterns are not consulted.

    Args:
        model_key: Internal key of the model that raised the error
        error_text: Vendor error message
        models_metadata: Resolved metadata for the provider's models
        patterns: Ordered error patterns for the vendor

    Returns:
        TokensUsage, or (-1, 0, -1) when nothing matched
    """
    if not patterns:
        return _no_match()

    for pattern in patterns:
        match = pattern.pattern.search(error_text)
        if match is None or not match.groups():
            continue

        model = lookup_model(models_metadata, model_key)
        if pattern.units == "tokens":
            return _tokens_from_token_groups(match.groups(), pattern, model)
        return _tokens_from_char_groups(match.groups(), pattern, model)

    return _no_match()


def extract_from_error_message(
    model_key: str,
    prompt_text: str,
    error_text: str,
    models_metadata: Mapping[str, ModelMetadata],
    patterns: Optional[Sequence[ErrorPattern]] = None,
    chars_per_token: float = CHARS_PER_TOKEN_ESTIMATE,
) -> TokensUsage:
    """Derive a complete TokensUsage for a token-limit error.

    Values the error text does not reveal are estimated: prompt tokens from
    the prompt length (and never below the limit + 1), the limit from the
    model's published budget.
    """
    usage = parse_token_usage(model_key, error_text, models_metadata, patterns)
    published_max_total_tokens = lookup_model(models_metadata, model_key).max_total_tokens

    prompt_tokens = usage.prompt_tokens
    max_total_tokens = usage.max_total_tokens

    if prompt_tokens < 0:
        assumed_max_total_tokens = (
            max_total_tokens if max_total_tokens > 0 else published_max_total_tokens
        )
        estimated = math.floor(len(prompt_text) / chars_per_token)
        prompt_tokens = max(estimated, assumed_max_total_tokens + 1)

    if max_total_tokens <= 0:
        max_total_tokens = published_max_total_tokens

    return TokensUsage(
        prompt_tokens=prompt_tokens,
        completion_tokens=usage.completion_tokens,
        max_total_tokens=max_total_tokens,
    )
