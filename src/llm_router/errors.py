"""Error taxonomy for the LLM router.

Overloaded and token-exceeded conditions are not exceptions: they are
response statuses that drive the retry/switch/crop policy. The classes here
cover the conditions that must surface to the caller immediately.
"""

import json
from typing import Any, Optional


class LLMError(Exception):
    """Base class for all router errors.

    Args:
        message: Human-readable description.
        payload: Optional offending value, appended to the message as JSON.
    """

    def __init__(self, message: str, payload: Optional[Any] = None):
        self.payload = payload
        super().__init__(self._build_message(message, payload))

    @staticmethod
    def _build_message(message: str, payload: Optional[Any]) -> str:
        if payload is None:
            return message
        try:
            rendered = json.dumps(payload, default=str)
        except (TypeError, ValueError):
            rendered = repr(payload)
        return f"{message}: {rendered}"


class BadConfigurationError(LLMError):
    """Missing or invalid model key, environment value or tier list."""


class BadResponseContentError(LLMError):
    """Generated payload does not have the expected shape."""


class BadResponseMetadataError(LLMError):
    """Response metadata needed for prompt cropping is absent."""


class RejectionResponseError(LLMError):
    """Vendor refused the request or the outcome could not be classified."""
