"""Configuration for the LLM router.

Settings come from three layers:

    Environment Variables > YAML (llm_router.yaml) > Defaults

Example YAML configuration (llm_router.yaml):

    llm_router:
      model_family: OpenAI
      retry:
        max_attempts: 3
        min_retry_delay_millis: 20000
        max_retry_additional_delay_millis: 30000
        request_timeout_millis: 420000
      token_budget:
        prompt_tokens_reduce_min_ratio: 0.85
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

logger = logging.getLogger(__name__)

# Defaults for the retry loop
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_MIN_RETRY_DELAY_MILLIS = 20 * 1000
DEFAULT_MAX_RETRY_ADDITIONAL_DELAY_MILLIS = 30 * 1000
DEFAULT_REQUEST_TIMEOUT_MILLIS = 7 * 60 * 1000

# Defaults for token-budget estimation and prompt cropping
COMPLETION_MAX_TOKENS_LIMIT_BUFFER = 5
COMPLETION_TOKENS_REDUCE_MIN_RATIO = 0.75
PROMPT_TOKENS_REDUCE_MIN_RATIO = 0.85
CHARS_PER_TOKEN_ESTIMATE = 2.8

CONFIG_FILE_NAME = "llm_router.yaml"


class RetryConfig(BaseModel):
    """Retry/backoff settings for one provider."""

    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    min_retry_delay_millis: int = Field(default=DEFAULT_MIN_RETRY_DELAY_MILLIS, ge=0)
    max_retry_additional_delay_millis: int = Field(
        default=DEFAULT_MAX_RETRY_ADDITIONAL_DELAY_MILLIS, ge=0
    )
    request_timeout_millis: int = Field(default=DEFAULT_REQUEST_TIMEOUT_MILLIS, ge=1)


class TokenBudgetConfig(BaseModel):
    """Constants used when estimating tokens and cropping prompts."""

    completion_max_tokens_limit_buffer: int = Field(
        default=COMPLETION_MAX_TOKENS_LIMIT_BUFFER, ge=0
    )
    completion_tokens_reduce_min_ratio: float = Field(
        default=COMPLETION_TOKENS_REDUCE_MIN_RATIO, gt=0.0, lt=1.0
    )
    prompt_tokens_reduce_min_ratio: float = Field(
        default=PROMPT_TOKENS_REDUCE_MIN_RATIO, gt=0.0, lt=1.0
    )
    chars_per_token_estimate: float = Field(default=CHARS_PER_TOKEN_ESTIMATE, gt=0.0)


class RouterConfig(BaseModel):
    """Root configuration model."""

    model_family: Optional[str] = None
    retry: RetryConfig = Field(default_factory=RetryConfig)
    token_budget: TokenBudgetConfig = Field(default_factory=TokenBudgetConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize configuration to dictionary."""
        return self.model_dump(exclude_none=True)


def resolve_retry_config(
    base: RetryConfig,
    *overrides: Optional[Mapping[str, Any]],
) -> RetryConfig:
    """Merge partial retry overrides onto a base config.

    Later overrides win. ``None`` entries and ``None`` values are skipped so a
    provider can override a single field.

    Args:
        base: Fully populated retry config (usually the global defaults)
        *overrides: Partial dicts or RetryConfig instances

    Returns:
        New validated RetryConfig
    """
    merged = base.model_dump()
    for override in overrides:
        if override is None:
            continue
        if isinstance(override, RetryConfig):
            override = override.model_dump()
        merged.update({k: v for k, v in override.items() if v is not None})
    return RetryConfig(**merged)


# =============================================================================
# Loading
# =============================================================================


def _substitute_env_vars(value: Any) -> Any:
    """Recursively substitute ${VAR_NAME} references with environment values."""
    if isinstance(value, str):
        for var_name in re.findall(r"\$\{([^}]+)\}", value):
            value = value.replace(f"${{{var_name}}}", os.getenv(var_name, ""))
        return value
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def load_config(config_path: Optional[Path] = None, strict: bool = False) -> RouterConfig:
    """Load configuration from a YAML file.

    Args:
        config_path: Path to YAML configuration file. If None, uses defaults.
        strict: If True, raise ValueError on invalid content instead of
                falling back to defaults.

    Returns:
        RouterConfig object

    Raises:
        ValueError: If strict=True and configuration is invalid
    """
    if config_path is None or not config_path.exists():
        return RouterConfig()

    try:
        with open(config_path, "r") as f:
            raw_config = yaml.safe_load(f)

        if raw_config is None:
            return RouterConfig()

        raw_config = _substitute_env_vars(raw_config)
        return RouterConfig(**(raw_config.get("llm_router") or {}))

    except yaml.YAMLError as e:
        if strict:
            raise ValueError(f"Invalid YAML: {e}")
        logger.warning(f"Ignoring invalid YAML in {config_path}: {e}")
        return RouterConfig()
    except Exception as e:
        if strict:
            raise ValueError(f"Configuration error: {e}")
        logger.warning(f"Ignoring invalid configuration in {config_path}: {e}")
        return RouterConfig()


def _find_config_file() -> Optional[Path]:
    """Find configuration file in standard locations.

    Search order:
    1. LLM_ROUTER_CONFIG environment variable
    2. ./llm_router.yaml (current directory)
    3. ~/.config/llm-router/llm_router.yaml
    """
    env_path = os.getenv("LLM_ROUTER_CONFIG")
    if env_path:
        path = Path(env_path)
        if path.exists():
            return path

    cwd_path = Path.cwd() / CONFIG_FILE_NAME
    if cwd_path.exists():
        return cwd_path

    home_path = Path.home() / ".config" / "llm-router" / CONFIG_FILE_NAME
    if home_path.exists():
        return home_path

    return None


_RETRY_ENV_VARS = {
    "LLM_ROUTER_MAX_ATTEMPTS": "max_attempts",
    "LLM_ROUTER_MIN_RETRY_DELAY_MILLIS": "min_retry_delay_millis",
    "LLM_ROUTER_MAX_RETRY_ADDITIONAL_DELAY_MILLIS": "max_retry_additional_delay_millis",
    "LLM_ROUTER_REQUEST_TIMEOUT_MILLIS": "request_timeout_millis",
}


def _apply_env_overrides(config: RouterConfig) -> RouterConfig:
    """Apply environment variable overrides to configuration."""
    config_dict = config.to_dict()

    family_env = os.getenv("LLM_ROUTER_MODEL_FAMILY")
    if family_env:
        config_dict["model_family"] = family_env

    for env_var, field_name in _RETRY_ENV_VARS.items():
        value = os.getenv(env_var)
        if value:
            config_dict.setdefault("retry", {})[field_name] = int(value)

    return RouterConfig(**config_dict)


def get_effective_config(config_path: Optional[Path] = None) -> RouterConfig:
    """Get the effective configuration with all overrides applied.

    Args:
        config_path: Optional explicit path to configuration file.
                    If None, searches standard locations.
    """
    if config_path is None:
        config_path = _find_config_file()
    return _apply_env_overrides(load_config(config_path))


_global_config: Optional[RouterConfig] = None


def get_config() -> RouterConfig:
    """Get the cached global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = get_effective_config()
    return _global_config


def reload_config() -> RouterConfig:
    """Reload the global configuration from disk and environment."""
    global _global_config
    _global_config = get_effective_config()
    return _global_config
