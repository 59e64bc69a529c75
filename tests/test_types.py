"""Tests for core router types and the error taxonomy."""

import re

import pytest


class TestModelMetadataValidation:
    """ModelMetadata rejects inconsistent declarations."""

    def test_valid_completions_model(self):
        from llm_router.types import LLMPurpose, ModelMetadata

        model = ModelMetadata(
            key="GPT",
            urn="gpt-4o",
            purpose=LLMPurpose.COMPLETIONS,
            max_total_tokens=128000,
            max_completion_tokens=4096,
        )
        assert model.dimensions is None

    def test_embeddings_model_requires_dimensions(self):
        from llm_router.errors import BadConfigurationError
        from llm_router.types import LLMPurpose, ModelMetadata

        with pytest.raises(BadConfigurationError, match="dimensions"):
            ModelMetadata(
                key="EMBED", urn="ada", purpose=LLMPurpose.EMBEDDINGS, max_total_tokens=8191
            )

    def test_completions_model_requires_completion_limit(self):
        from llm_router.errors import BadConfigurationError
        from llm_router.types import LLMPurpose, ModelMetadata

        with pytest.raises(BadConfigurationError, match="max_completion_tokens"):
            ModelMetadata(
                key="GPT", urn="gpt", purpose=LLMPurpose.COMPLETIONS, max_total_tokens=8192
            )

    def test_completion_limit_cannot_exceed_total(self):
        from llm_router.errors import BadConfigurationError
        from llm_router.types import LLMPurpose, ModelMetadata

        with pytest.raises(BadConfigurationError, match="greater than"):
            ModelMetadata(
                key="GPT",
                urn="gpt",
                purpose=LLMPurpose.COMPLETIONS,
                max_total_tokens=4096,
                max_completion_tokens=8192,
            )

    def test_empty_urn_rejected(self):
        from llm_router.errors import BadConfigurationError
        from llm_router.types import LLMPurpose, ModelMetadata

        with pytest.raises(BadConfigurationError):
            ModelMetadata(
                key="GPT",
                urn="  ",
                purpose=LLMPurpose.COMPLETIONS,
                max_total_tokens=8192,
                max_completion_tokens=100,
            )

    def test_metadata_is_immutable(self, models_metadata):
        from dataclasses import FrozenInstanceError

        with pytest.raises(FrozenInstanceError):
            models_metadata["PRIMARY"].max_total_tokens = 1


class TestLookupModel:

    def test_returns_registered_model(self, models_metadata):
        from llm_router.types import lookup_model

        assert lookup_model(models_metadata, "PRIMARY").urn == "gpt-primary"

    def test_unknown_key_is_configuration_error(self, models_metadata):
        from llm_router.errors import BadConfigurationError
        from llm_router.types import lookup_model

        with pytest.raises(BadConfigurationError, match="MISSING"):
            lookup_model(models_metadata, "MISSING")


class TestTokensUsage:

    def test_defaults_to_unknown_sentinel(self):
        from llm_router.types import UNKNOWN_TOKENS, TokensUsage

        usage = TokensUsage()
        assert UNKNOWN_TOKENS == -1
        assert usage.prompt_tokens == -1
        assert usage.completion_tokens == -1
        assert usage.max_total_tokens == -1


class TestErrorPattern:

    def test_rejects_unknown_units(self):
        from llm_router.errors import BadConfigurationError
        from llm_router.types import ErrorPattern

        with pytest.raises(BadConfigurationError):
            ErrorPattern(re.compile(r"(\d+)"), units="bytes")


class TestInvocationResponse:

    def test_with_changes_returns_new_instance(self):
        from llm_router.types import InvocationResponse, ResponseStatus

        skeleton = InvocationResponse(
            status=ResponseStatus.UNKNOWN, request="hi", model_key="PRIMARY"
        )
        done = skeleton.with_changes(status=ResponseStatus.COMPLETED, generated="hello")

        assert skeleton.status == ResponseStatus.UNKNOWN
        assert skeleton.generated is None
        assert done.status == ResponseStatus.COMPLETED
        assert done.generated == "hello"
        assert done.request == "hi"

    def test_context_is_shared_between_copies(self):
        from llm_router.types import InvocationResponse, ResponseStatus

        context = {"resource": "a.py"}
        skeleton = InvocationResponse(
            status=ResponseStatus.UNKNOWN, request="", model_key="PRIMARY", context=context
        )
        assert skeleton.with_changes(status=ResponseStatus.EXCEEDED).context is context


class TestErrors:

    def test_all_errors_share_base_class(self):
        from llm_router.errors import (
            BadConfigurationError,
            BadResponseContentError,
            BadResponseMetadataError,
            LLMError,
            RejectionResponseError,
        )

        for cls in (
            BadConfigurationError,
            BadResponseContentError,
            BadResponseMetadataError,
            RejectionResponseError,
        ):
            assert issubclass(cls, LLMError)

    def test_payload_appended_as_json(self):
        from llm_router.errors import BadConfigurationError

        error = BadConfigurationError("Bad value", {"key": 1})
        assert str(error) == 'Bad value: {"key": 1}'
        assert error.payload == {"key": 1}

    def test_message_without_payload(self):
        from llm_router.errors import RejectionResponseError

        assert str(RejectionResponseError("Rejected")) == "Rejected"
