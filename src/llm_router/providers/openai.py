"""OpenAI and Azure OpenAI adapters (httpx).

Both vendors share the same request/response shapes; they differ only in the
endpoint layout and the authentication header.
"""

import logging
import re
from typing import Any, Dict, Mapping, Optional, Sequence

import httpx

from ..config import RetryConfig
from ..errors import BadResponseContentError, RejectionResponseError
from ..types import (
    UNKNOWN_TOKENS,
    ErrorPattern,
    LLMPurpose,
    ModelKeysSet,
    ModelMetadata,
    ResponseSummary,
    TokensUsage,
    lookup_model,
)
from .base import ErrorDetails
from .manifest import ManifestModels, ModelDecl, ProviderManifest

logger = logging.getLogger(__name__)

OPENAI_API_URL = "https://api.openai.com/v1"
AZURE_API_VERSION = "2025-01-01-preview"

# Environment variable names
OPENAI_LLM_API_KEY = "OPENAI_LLM_API_KEY"
OPENAI_BASE_URL = "OPENAI_BASE_URL"
AZURE_OPENAI_LLM_API_KEY = "AZURE_OPENAI_LLM_API_KEY"
AZURE_OPENAI_ENDPOINT = "AZURE_OPENAI_ENDPOINT"
AZURE_OPENAI_EMBEDDINGS_DEPLOYMENT = "AZURE_OPENAI_EMBEDDINGS_MODEL_DEPLOYMENT"
AZURE_OPENAI_PRIMARY_DEPLOYMENT = "AZURE_OPENAI_COMPLETIONS_MODEL_DEPLOYMENT_PRIMARY"
AZURE_OPENAI_SECONDARY_DEPLOYMENT = "AZURE_OPENAI_COMPLETIONS_MODEL_DEPLOYMENT_SECONDARY"

# Model keys
GPT_EMBEDDINGS_TEXT_3SMALL = "GPT_EMBEDDINGS_TEXT_3SMALL"
GPT_EMBEDDINGS_ADA002 = "GPT_EMBEDDINGS_ADA002"
GPT_COMPLETIONS_GPT4_O = "GPT_COMPLETIONS_GPT4_O"
GPT_COMPLETIONS_GPT4_TURBO = "GPT_COMPLETIONS_GPT4_TURBO"
GPT_COMPLETIONS_GPT4_32K = "GPT_COMPLETIONS_GPT4_32K"

OPENAI_ERROR_PATTERNS = (
    # "This model's maximum context length is 8191 tokens, however you requested 10346 tokens
    # (10346 in your prompt; 5 for the completion). Please reduce your prompt; or completion length."
    ErrorPattern(
        re.compile(r"max.*?(\d+) tokens.*?\(.*?(\d+).*?prompt.*?(\d+).*?completion"),
        units="tokens",
        is_max_first=True,
    ),
    # "This model's maximum context length is 8192 tokens. However, your messages resulted in
    # 8545 tokens. Please reduce the length of the messages."
    ErrorPattern(
        re.compile(r"max.*?(\d+) tokens.*?(\d+) "),
        units="tokens",
        is_max_first=True,
    ),
)

_CONTENT_FILTER = "content_filter"
_OVERLOADED_STATUS_CODES = {429, 500, 502, 503, 504}
_OVERLOADED_PHRASES = ("rate limit", "too many requests", "overloaded", "server is busy")
_TOKEN_LIMIT_PHRASES = (
    "maximum context length",
    "context_length_exceeded",
    "token limit",
    "too long",
    "reduce the length",
)


class OpenAIAdapter:
    """OpenAI REST API adapter.

    Args:
        api_key: OpenAI API key.
        models_metadata: Resolved metadata for the provider's models.
        base_url: API root, defaults to the public OpenAI endpoint.
        timeout: HTTP timeout in seconds.
        client: Optional pre-built httpx.AsyncClient (used for testing).
    """

    def __init__(
        self,
        api_key: str,
        models_metadata: Mapping[str, ModelMetadata],
        base_url: str = OPENAI_API_URL,
        timeout: float = 420.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._api_key = api_key
        self._models_metadata = models_metadata
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def _endpoint(self, task_type: LLMPurpose, model: ModelMetadata) -> str:
        path = "embeddings" if task_type == LLMPurpose.EMBEDDINGS else "chat/completions"
        return f"{self._base_url}/{path}"

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def _build_payload(
        self, task_type: LLMPurpose, model: ModelMetadata, prompt: str
    ) -> Dict[str, Any]:
        if task_type == LLMPurpose.EMBEDDINGS:
            return {"model": model.urn, "input": prompt}

        return {
            "model": model.urn,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": 0,
            "max_tokens": model.max_completion_tokens,
        }

    async def invoke(
        self,
        task_type: LLMPurpose,
        model_key: str,
        prompt: str,
    ) -> ResponseSummary:
        model = lookup_model(self._models_metadata, model_key)
        response = await self._client.post(
            self._endpoint(task_type, model),
            headers=self._headers(),
            json=self._build_payload(task_type, model, prompt),
        )
        if response.status_code == 400 and _CONTENT_FILTER in response.text:
            raise RejectionResponseError(
                f"Vendor content filter rejected the prompt for model '{model.urn}'",
                response.text,
            )
        response.raise_for_status()
        data = response.json()

        if task_type == LLMPurpose.EMBEDDINGS:
            return self._summarize_embeddings(data)
        return self._summarize_completion(data)

    def _summarize_embeddings(self, data: Dict[str, Any]) -> ResponseSummary:
        try:
            embedding = data["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError):
            raise BadResponseContentError("Embeddings response has no embedding data", data)

        usage = data.get("usage") or {}
        return ResponseSummary(
            is_incomplete_response=not embedding,
            response_content=embedding,
            token_usage=TokensUsage(
                prompt_tokens=usage.get("prompt_tokens", UNKNOWN_TOKENS),
                completion_tokens=UNKNOWN_TOKENS,
                max_total_tokens=UNKNOWN_TOKENS,
            ),
        )

    def _summarize_completion(self, data: Dict[str, Any]) -> ResponseSummary:
        try:
            choice = data["choices"][0]
        except (KeyError, IndexError, TypeError):
            raise BadResponseContentError("Completion response has no choices", data)

        content = (choice.get("message") or {}).get("content") or ""
        finish_reason = choice.get("finish_reason")
        if finish_reason == _CONTENT_FILTER:
            raise RejectionResponseError(
                "Vendor content filter stopped the completion", {"finish_reason": finish_reason}
            )

        usage = data.get("usage") or {}
        return ResponseSummary(
            is_incomplete_response=finish_reason == "length" or not content,
            response_content=content,
            token_usage=TokensUsage(
                prompt_tokens=usage.get("prompt_tokens", UNKNOWN_TOKENS),
                completion_tokens=usage.get("completion_tokens", UNKNOWN_TOKENS),
                max_total_tokens=UNKNOWN_TOKENS,
            ),
        )

    def is_overloaded(self, error: ErrorDetails) -> bool:
        if error.is_timeout or error.status_code in _OVERLOADED_STATUS_CODES:
            return True
        message = error.message.lower()
        return any(phrase in message for phrase in _OVERLOADED_PHRASES)

    def is_token_limit_exceeded(self, error: ErrorDetails) -> bool:
        if error.status_code is not None and error.status_code not in (400, 413):
            return False
        message = error.message.lower()
        return any(phrase in message for phrase in _TOKEN_LIMIT_PHRASES)

    async def close(self) -> None:
        await self._client.aclose()


class AzureOpenAIAdapter(OpenAIAdapter):
    """Azure OpenAI adapter; model urns are deployment names."""

    def __init__(
        self,
        api_key: str,
        endpoint: str,
        models_metadata: Mapping[str, ModelMetadata],
        api_version: str = AZURE_API_VERSION,
        timeout: float = 420.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(api_key, models_metadata, endpoint, timeout, client)
        self._api_version = api_version

    def _endpoint(self, task_type: LLMPurpose, model: ModelMetadata) -> str:
        path = "embeddings" if task_type == LLMPurpose.EMBEDDINGS else "chat/completions"
        return (
            f"{self._base_url}/openai/deployments/{model.urn}/{path}"
            f"?api-version={self._api_version}"
        )

    def _headers(self) -> Dict[str, str]:
        return {"api-key": self._api_key, "Content-Type": "application/json"}


def _create_openai_adapter(
    env: Mapping[str, str],
    model_keys: ModelKeysSet,
    models_metadata: Mapping[str, ModelMetadata],
    error_patterns: Sequence[ErrorPattern],
    retry_config: RetryConfig,
) -> OpenAIAdapter:
    return OpenAIAdapter(
        api_key=env[OPENAI_LLM_API_KEY],
        models_metadata=models_metadata,
        base_url=env.get(OPENAI_BASE_URL) or OPENAI_API_URL,
        timeout=retry_config.request_timeout_millis / 1000,
    )


def _create_azure_openai_adapter(
    env: Mapping[str, str],
    model_keys: ModelKeysSet,
    models_metadata: Mapping[str, ModelMetadata],
    error_patterns: Sequence[ErrorPattern],
    retry_config: RetryConfig,
) -> AzureOpenAIAdapter:
    return AzureOpenAIAdapter(
        api_key=env[AZURE_OPENAI_LLM_API_KEY],
        endpoint=env[AZURE_OPENAI_ENDPOINT],
        models_metadata=models_metadata,
        timeout=retry_config.request_timeout_millis / 1000,
    )


OPENAI_MANIFEST = ProviderManifest(
    provider_name="OpenAI GPT",
    model_family="OpenAI",
    models=ManifestModels(
        embeddings=ModelDecl(
            key=GPT_EMBEDDINGS_TEXT_3SMALL,
            urn="text-embedding-3-small",
            purpose=LLMPurpose.EMBEDDINGS,
            dimensions=1536,
            max_total_tokens=8191,
        ),
        primary_completion=ModelDecl(
            key=GPT_COMPLETIONS_GPT4_O,
            urn="gpt-4o",
            purpose=LLMPurpose.COMPLETIONS,
            max_completion_tokens=4096,
            max_total_tokens=128000,
        ),
        secondary_completion=ModelDecl(
            key=GPT_COMPLETIONS_GPT4_TURBO,
            urn="gpt-4-turbo",
            purpose=LLMPurpose.COMPLETIONS,
            max_completion_tokens=4096,
            max_total_tokens=128000,
        ),
    ),
    factory=_create_openai_adapter,
    error_patterns=OPENAI_ERROR_PATTERNS,
    env_var_names=(OPENAI_LLM_API_KEY,),
)

AZURE_OPENAI_MANIFEST = ProviderManifest(
    provider_name="Azure OpenAI GPT",
    model_family="AzureOpenAI",
    models=ManifestModels(
        embeddings=ModelDecl(
            key=GPT_EMBEDDINGS_ADA002,
            urn_env_key=AZURE_OPENAI_EMBEDDINGS_DEPLOYMENT,
            purpose=LLMPurpose.EMBEDDINGS,
            dimensions=1536,
            max_total_tokens=8191,
        ),
        primary_completion=ModelDecl(
            key=GPT_COMPLETIONS_GPT4_O,
            urn_env_key=AZURE_OPENAI_PRIMARY_DEPLOYMENT,
            purpose=LLMPurpose.COMPLETIONS,
            max_completion_tokens=4096,
            max_total_tokens=128000,
        ),
        secondary_completion=ModelDecl(
            key=GPT_COMPLETIONS_GPT4_32K,
            urn_env_key=AZURE_OPENAI_SECONDARY_DEPLOYMENT,
            purpose=LLMPurpose.COMPLETIONS,
            max_completion_tokens=4096,
            max_total_tokens=32768,
        ),
    ),
    factory=_create_azure_openai_adapter,
    error_patterns=OPENAI_ERROR_PATTERNS,
    env_var_names=(AZURE_OPENAI_LLM_API_KEY, AZURE_OPENAI_ENDPOINT),
)
