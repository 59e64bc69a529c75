"""Shared test configuration and fixtures."""
import asyncio
from collections import defaultdict, deque

import pytest

from llm_router.config import RetryConfig
from llm_router.providers.base import ErrorDetails
from llm_router.types import (
    LLMPurpose,
    ModelKeysSet,
    ModelMetadata,
    ResponseSummary,
    TokensUsage,
)

# =============================================================================
# Environment Reset
# =============================================================================


@pytest.fixture(autouse=True)
def reset_env(monkeypatch):
    """Clear environment variables and the cached config before each test."""
    for name in (
        "LLM_ROUTER_CONFIG",
        "LLM_ROUTER_MODEL_FAMILY",
        "LLM_ROUTER_MAX_ATTEMPTS",
        "LLM_ROUTER_MIN_RETRY_DELAY_MILLIS",
        "LLM_ROUTER_MAX_RETRY_ADDITIONAL_DELAY_MILLIS",
        "LLM_ROUTER_REQUEST_TIMEOUT_MILLIS",
        "OPENAI_LLM_API_KEY",
        "OPENAI_BASE_URL",
        "AZURE_OPENAI_LLM_API_KEY",
        "AZURE_OPENAI_ENDPOINT",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("llm_router.config._global_config", None)


# =============================================================================
# Models
# =============================================================================


@pytest.fixture
def models_metadata():
    """Embeddings model plus primary and secondary completion models."""
    return {
        "EMBED": ModelMetadata(
            key="EMBED",
            urn="text-embedding-test",
            purpose=LLMPurpose.EMBEDDINGS,
            max_total_tokens=8191,
            dimensions=4,
        ),
        "PRIMARY": ModelMetadata(
            key="PRIMARY",
            urn="gpt-primary",
            purpose=LLMPurpose.COMPLETIONS,
            max_total_tokens=8192,
            max_completion_tokens=1000,
        ),
        "SECONDARY": ModelMetadata(
            key="SECONDARY",
            urn="gpt-secondary",
            purpose=LLMPurpose.COMPLETIONS,
            max_total_tokens=16384,
            max_completion_tokens=2000,
        ),
    }


@pytest.fixture
def model_keys():
    return ModelKeysSet(
        embeddings_key="EMBED",
        primary_completion_key="PRIMARY",
        secondary_completion_key="SECONDARY",
    )


@pytest.fixture
def fast_retry():
    """Retry config with no backoff so tests never sleep."""
    return RetryConfig(
        max_attempts=3,
        min_retry_delay_millis=0,
        max_retry_additional_delay_millis=0,
        request_timeout_millis=1000,
    )


# =============================================================================
# Fake Vendor Adapter
# =============================================================================


class FakeAdapter:
    """Scripted ProviderAdapter.

    Outcomes are queued per model key; each is a ResponseSummary to return,
    an exception to raise, or a float number of seconds to hang for.
    Once a queue has one entry left it is repeated.
    """

    def __init__(self):
        self.outcomes = defaultdict(deque)
        self.calls = []
        self.closed = False

    def queue(self, model_key, *outcomes):
        self.outcomes[model_key].extend(outcomes)

    async def invoke(self, task_type, model_key, prompt):
        self.calls.append((model_key, prompt))
        pending = self.outcomes[model_key]
        outcome = pending.popleft() if len(pending) > 1 else pending[0]

        if isinstance(outcome, float):
            await asyncio.sleep(outcome)
            return completed("too late")
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def is_overloaded(self, error: ErrorDetails) -> bool:
        return error.status_code == 429 or "overloaded" in error.message.lower()

    def is_token_limit_exceeded(self, error: ErrorDetails) -> bool:
        return "input tokens" in error.message.lower()

    async def close(self):
        self.closed = True


class VendorError(Exception):
    """Stand-in for a vendor SDK exception carrying an HTTP status."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


def completed(content):
    return ResponseSummary(
        is_incomplete_response=False,
        response_content=content,
        token_usage=TokensUsage(prompt_tokens=10, completion_tokens=5),
    )


def truncated(prompt_tokens=9279, completion_tokens=0, max_total_tokens=8192):
    return ResponseSummary(
        is_incomplete_response=True,
        response_content="",
        token_usage=TokensUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            max_total_tokens=max_total_tokens,
        ),
    )


def overloaded():
    return VendorError("Model is overloaded, try again later", status_code=429)


@pytest.fixture
def fake_adapter():
    return FakeAdapter()


@pytest.fixture
def make_provider(fake_adapter, models_metadata, model_keys, fast_retry):
    """Factory building an LLMProvider around the fake adapter."""
    from llm_router.providers.provider import LLMProvider

    def _make(with_secondary=True, error_patterns=(), retry_config=None):
        keys = model_keys if with_secondary else ModelKeysSet("EMBED", "PRIMARY")
        return LLMProvider(
            adapter=fake_adapter,
            model_family="Fake",
            model_keys=keys,
            models_metadata=models_metadata,
            error_patterns=error_patterns,
            retry_config=retry_config or fast_retry,
        )

    return _make


# =============================================================================
# Custom Pytest Markers
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
