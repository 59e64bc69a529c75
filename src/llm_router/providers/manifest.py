"""Provider manifests and the static provider registry.

A ProviderManifest declares a vendor integration: its models, error patterns,
the environment values it needs and a factory that builds its adapter.
Manifests are plain values; the registry is an explicit table rather than
anything discovered at runtime.

Usage:
    >>> manifest = get_manifest("OpenAI")
    >>> provider = create_provider(manifest, {"OPENAI_LLM_API_KEY": "sk-..."})
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from ..config import RetryConfig, TokenBudgetConfig, get_config, resolve_retry_config
from ..errors import BadConfigurationError
from ..types import ErrorPattern, LLMPurpose, ModelKeysSet, ModelMetadata
from .base import ProviderAdapter
from .provider import LLMProvider

logger = logging.getLogger(__name__)

AdapterFactory = Callable[
    [
        Mapping[str, str],
        ModelKeysSet,
        Mapping[str, ModelMetadata],
        Sequence[ErrorPattern],
        RetryConfig,
    ],
    ProviderAdapter,
]


@dataclass(frozen=True)
class ModelDecl:
    """Declared model in a manifest.

    Exactly one of ``urn`` / ``urn_env_key`` identifies the vendor model;
    ``urn_env_key`` names the environment value holding it (e.g. an Azure
    deployment name).
    """

    key: str
    purpose: LLMPurpose
    max_total_tokens: int
    urn: Optional[str] = None
    urn_env_key: Optional[str] = None
    dimensions: Optional[int] = None
    max_completion_tokens: Optional[int] = None


@dataclass(frozen=True)
class ManifestModels:
    embeddings: ModelDecl
    primary_completion: ModelDecl
    secondary_completion: Optional[ModelDecl] = None


@dataclass(frozen=True)
class ProviderManifest:
    """Complete declaration of one provider.

    Attributes:
        provider_name: User-friendly name
        model_family: Unique family identifier used for lookup
        models: Embeddings, primary and optional secondary completion models
        error_patterns: Ordered patterns for reading token usage from errors
        factory: Builds the ProviderAdapter
        env_var_names: Environment values the factory requires
        provider_config: Partial RetryConfig overrides for this provider
    """

    provider_name: str
    model_family: str
    models: ManifestModels
    factory: AdapterFactory
    error_patterns: Tuple[ErrorPattern, ...] = ()
    env_var_names: Tuple[str, ...] = ()
    provider_config: Dict[str, Any] = field(default_factory=dict)

    def model_keys(self) -> ModelKeysSet:
        secondary = self.models.secondary_completion
        return ModelKeysSet(
            embeddings_key=self.models.embeddings.key,
            primary_completion_key=self.models.primary_completion.key,
            secondary_completion_key=secondary.key if secondary else None,
        )

    def model_decls(self) -> List[ModelDecl]:
        decls = [self.models.embeddings, self.models.primary_completion]
        if self.models.secondary_completion:
            decls.append(self.models.secondary_completion)
        return decls


def _resolve_urn(decl: ModelDecl, env: Mapping[str, str]) -> str:
    if decl.urn_env_key:
        urn = env.get(decl.urn_env_key)
        if not urn or not urn.strip():
            raise BadConfigurationError(
                f"Required environment value '{decl.urn_env_key}' for model "
                f"'{decl.key}' is missing or empty"
            )
        return urn
    if not decl.urn:
        raise BadConfigurationError(f"Model '{decl.key}' declares neither urn nor urn_env_key")
    return decl.urn


def resolve_models_metadata(
    manifest: ProviderManifest,
    env: Mapping[str, str],
) -> Dict[str, ModelMetadata]:
    """Resolve a manifest's model declarations into ModelMetadata keyed by model key."""
    return {
        decl.key: ModelMetadata(
            key=decl.key,
            urn=_resolve_urn(decl, env),
            purpose=decl.purpose,
            max_total_tokens=decl.max_total_tokens,
            dimensions=decl.dimensions,
            max_completion_tokens=decl.max_completion_tokens,
        )
        for decl in manifest.model_decls()
    }


def validate_env(manifest: ProviderManifest, env: Mapping[str, str]) -> None:
    """Raise BadConfigurationError naming every missing required env value."""
    missing = [name for name in manifest.env_var_names if not (env.get(name) or "").strip()]
    if missing:
        raise BadConfigurationError(
            f"Provider '{manifest.provider_name}' is missing required environment values",
            missing,
        )


def create_provider(
    manifest: ProviderManifest,
    env: Mapping[str, str],
    provider_config: Optional[Mapping[str, Any]] = None,
    token_budget: Optional[TokenBudgetConfig] = None,
) -> LLMProvider:
    """Build an LLMProvider from a manifest.

    Retry settings resolve as: ``provider_config`` > manifest
    ``provider_config`` > global configuration.

    Raises:
        BadConfigurationError: For missing env values or invalid model metadata
    """
    validate_env(manifest, env)
    models_metadata = resolve_models_metadata(manifest, env)
    model_keys = manifest.model_keys()
    config = get_config()
    retry_config = resolve_retry_config(config.retry, manifest.provider_config, provider_config)

    adapter = manifest.factory(
        env, model_keys, models_metadata, manifest.error_patterns, retry_config
    )
    logger.info(f"Created provider '{manifest.provider_name}' ({manifest.model_family})")

    return LLMProvider(
        adapter=adapter,
        model_family=manifest.model_family,
        model_keys=model_keys,
        models_metadata=models_metadata,
        error_patterns=manifest.error_patterns,
        retry_config=retry_config,
        token_budget=token_budget or config.token_budget,
    )


def get_manifest(model_family: str) -> ProviderManifest:
    """Look up a registered manifest by model family.

    Raises:
        BadConfigurationError: If no provider is registered for the family
    """
    from . import PROVIDER_MANIFESTS

    try:
        return PROVIDER_MANIFESTS[model_family]
    except KeyError:
        raise BadConfigurationError(
            f"No provider manifest found for model family: {model_family}",
            sorted(PROVIDER_MANIFESTS),
        ) from None
