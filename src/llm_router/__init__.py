"""LLM Router - uniform invocation layer over interchangeable LLM providers.

Usage:
    import os
    from llm_router import LLMRouter, get_manifest

    router = LLMRouter.from_manifest(get_manifest("OpenAI"), os.environ)
    summary = await router.execute_completion("main.py", "Summarize this code: ...")
    vector = await router.generate_embeddings("main.py", "def main(): ...")
    router.display_status_details()
    await router.close()

The router retries overloaded models, falls back from the primary to the
secondary completion model and crops prompts that overflow the context
window. It returns None when it runs out of options.
"""

from llm_router.config import (
    RetryConfig,
    RouterConfig,
    TokenBudgetConfig,
    get_config,
    load_config,
    reload_config,
)
from llm_router.errors import (
    BadConfigurationError,
    BadResponseContentError,
    BadResponseMetadataError,
    LLMError,
    RejectionResponseError,
)
from llm_router.prompt_adapter import (
    PromptAdaptationStrategy,
    PromptAdapter,
    TokenLimitReductionStrategy,
)
from llm_router.providers import (
    PROVIDER_MANIFESTS,
    LLMProvider,
    ProviderAdapter,
    ProviderManifest,
    create_provider,
    get_manifest,
)
from llm_router.router import LLMRouter, NextAction, handle_unsuccessful_outcome
from llm_router.stats import StatsCategory, StatsCounter
from llm_router.types import (
    UNKNOWN_TOKENS,
    ErrorPattern,
    InvocationResponse,
    LLMPurpose,
    ModelKeysSet,
    ModelMetadata,
    ModelQuality,
    ResponseStatus,
    ResponseSummary,
    TokensUsage,
)
from llm_router._version import __version__, __version_tuple__

__all__ = [
    # Router
    "LLMRouter",
    "NextAction",
    "handle_unsuccessful_outcome",
    # Providers
    "LLMProvider",
    "ProviderAdapter",
    "ProviderManifest",
    "PROVIDER_MANIFESTS",
    "create_provider",
    "get_manifest",
    # Prompt adaptation
    "PromptAdapter",
    "PromptAdaptationStrategy",
    "TokenLimitReductionStrategy",
    # Statistics
    "StatsCategory",
    "StatsCounter",
    # Configuration
    "RetryConfig",
    "RouterConfig",
    "TokenBudgetConfig",
    "get_config",
    "load_config",
    "reload_config",
    # Errors
    "LLMError",
    "BadConfigurationError",
    "BadResponseContentError",
    "BadResponseMetadataError",
    "RejectionResponseError",
    # Types
    "UNKNOWN_TOKENS",
    "ErrorPattern",
    "InvocationResponse",
    "LLMPurpose",
    "ModelKeysSet",
    "ModelMetadata",
    "ModelQuality",
    "ResponseStatus",
    "ResponseSummary",
    "TokensUsage",
    # Version
    "__version__",
    "__version_tuple__",
]
