"""Tests for router configuration loading (YAML + environment)."""

import pytest


class TestDefaults:

    def test_retry_defaults(self):
        from llm_router.config import RetryConfig

        config = RetryConfig()
        assert config.max_attempts == 3
        assert config.min_retry_delay_millis == 20000
        assert config.max_retry_additional_delay_millis == 30000
        assert config.request_timeout_millis == 420000

    def test_token_budget_defaults(self):
        from llm_router.config import TokenBudgetConfig

        budget = TokenBudgetConfig()
        assert budget.completion_max_tokens_limit_buffer == 5
        assert budget.completion_tokens_reduce_min_ratio == 0.75
        assert budget.prompt_tokens_reduce_min_ratio == 0.85
        assert budget.chars_per_token_estimate == 2.8

    def test_invalid_values_rejected(self):
        from pydantic import ValidationError

        from llm_router.config import RetryConfig, TokenBudgetConfig

        with pytest.raises(ValidationError):
            RetryConfig(max_attempts=0)
        with pytest.raises(ValidationError):
            TokenBudgetConfig(prompt_tokens_reduce_min_ratio=1.0)


class TestLoadConfig:

    def test_missing_file_returns_defaults(self, tmp_path):
        from llm_router.config import load_config

        config = load_config(tmp_path / "absent.yaml")
        assert config.model_family is None
        assert config.retry.max_attempts == 3

    def test_loads_yaml_section(self, tmp_path):
        from llm_router.config import load_config

        path = tmp_path / "llm_router.yaml"
        path.write_text(
            "llm_router:\n"
            "  model_family: AzureOpenAI\n"
            "  retry:\n"
            "    max_attempts: 5\n"
            "  token_budget:\n"
            "    prompt_tokens_reduce_min_ratio: 0.7\n"
        )

        config = load_config(path)
        assert config.model_family == "AzureOpenAI"
        assert config.retry.max_attempts == 5
        assert config.retry.min_retry_delay_millis == 20000
        assert config.token_budget.prompt_tokens_reduce_min_ratio == 0.7

    def test_env_var_substitution(self, tmp_path, monkeypatch):
        from llm_router.config import load_config

        monkeypatch.setenv("ROUTER_FAMILY", "OpenAI")
        path = tmp_path / "llm_router.yaml"
        path.write_text("llm_router:\n  model_family: ${ROUTER_FAMILY}\n")

        assert load_config(path).model_family == "OpenAI"

    def test_invalid_yaml_falls_back_to_defaults(self, tmp_path):
        from llm_router.config import load_config

        path = tmp_path / "llm_router.yaml"
        path.write_text("llm_router: [unclosed\n")

        assert load_config(path).retry.max_attempts == 3

    def test_invalid_yaml_strict_raises(self, tmp_path):
        from llm_router.config import load_config

        path = tmp_path / "llm_router.yaml"
        path.write_text("llm_router: [unclosed\n")

        with pytest.raises(ValueError, match="Invalid YAML"):
            load_config(path, strict=True)

    def test_invalid_values_strict_raises(self, tmp_path):
        from llm_router.config import load_config

        path = tmp_path / "llm_router.yaml"
        path.write_text("llm_router:\n  retry:\n    max_attempts: 0\n")

        with pytest.raises(ValueError, match="Configuration error"):
            load_config(path, strict=True)


class TestEnvironmentOverrides:

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        from llm_router.config import get_effective_config

        path = tmp_path / "llm_router.yaml"
        path.write_text("llm_router:\n  model_family: OpenAI\n  retry:\n    max_attempts: 5\n")
        monkeypatch.setenv("LLM_ROUTER_MODEL_FAMILY", "AzureOpenAI")
        monkeypatch.setenv("LLM_ROUTER_MAX_ATTEMPTS", "7")

        config = get_effective_config(path)
        assert config.model_family == "AzureOpenAI"
        assert config.retry.max_attempts == 7

    def test_config_path_from_env(self, tmp_path, monkeypatch):
        from llm_router.config import reload_config

        path = tmp_path / "custom.yaml"
        path.write_text("llm_router:\n  retry:\n    request_timeout_millis: 1000\n")
        monkeypatch.setenv("LLM_ROUTER_CONFIG", str(path))

        assert reload_config().retry.request_timeout_millis == 1000

    def test_get_config_is_cached(self):
        from llm_router.config import get_config

        assert get_config() is get_config()


class TestResolveRetryConfig:

    def test_later_overrides_win(self):
        from llm_router.config import RetryConfig, resolve_retry_config

        resolved = resolve_retry_config(
            RetryConfig(), {"max_attempts": 2}, {"max_attempts": 4, "min_retry_delay_millis": 10}
        )

        assert resolved.max_attempts == 4
        assert resolved.min_retry_delay_millis == 10
        assert resolved.request_timeout_millis == 420000

    def test_none_entries_skipped(self):
        from llm_router.config import RetryConfig, resolve_retry_config

        resolved = resolve_retry_config(
            RetryConfig(max_attempts=5), None, {"max_attempts": None}
        )

        assert resolved.max_attempts == 5

    def test_accepts_retry_config_override(self):
        from llm_router.config import RetryConfig, resolve_retry_config

        resolved = resolve_retry_config(RetryConfig(), RetryConfig(max_attempts=9))

        assert resolved.max_attempts == 9
