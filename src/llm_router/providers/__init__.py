"""Vendor integrations for the LLM router.

Each vendor ships a ProviderAdapter and a ProviderManifest. Manifests are
registered in PROVIDER_MANIFESTS, keyed by model family.

Example usage:
    from llm_router.providers import create_provider, get_manifest

    provider = create_provider(get_manifest("OpenAI"), os.environ)
    response = await provider.execute_completion_primary("Hello")
"""

from typing import Dict

from .base import ErrorDetails, ProviderAdapter
from .manifest import (
    ManifestModels,
    ModelDecl,
    ProviderManifest,
    create_provider,
    get_manifest,
    resolve_models_metadata,
    validate_env,
)
from .openai import (
    AZURE_OPENAI_MANIFEST,
    OPENAI_ERROR_PATTERNS,
    OPENAI_MANIFEST,
    AzureOpenAIAdapter,
    OpenAIAdapter,
)
from .provider import LLMFunction, LLMProvider

PROVIDER_MANIFESTS: Dict[str, ProviderManifest] = {
    OPENAI_MANIFEST.model_family: OPENAI_MANIFEST,
    AZURE_OPENAI_MANIFEST.model_family: AZURE_OPENAI_MANIFEST,
}

__all__ = [
    # Contract
    "ErrorDetails",
    "ProviderAdapter",
    "LLMFunction",
    "LLMProvider",
    # Manifests
    "ManifestModels",
    "ModelDecl",
    "ProviderManifest",
    "PROVIDER_MANIFESTS",
    "create_provider",
    "get_manifest",
    "resolve_models_metadata",
    "validate_env",
    # OpenAI family
    "OpenAIAdapter",
    "AzureOpenAIAdapter",
    "OPENAI_MANIFEST",
    "AZURE_OPENAI_MANIFEST",
    "OPENAI_ERROR_PATTERNS",
]
