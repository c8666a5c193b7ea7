"""
Tests for the adapter registry and application wiring.
"""

import pytest
from pydantic import SecretStr

from conftest import FakeAdapter
from discubot.adapters import (
    FigmaAdapter,
    SlackAdapter,
    get_adapter,
    register_adapter,
    registered_source_types,
    reset_adapter_registry,
)
from discubot.app.dependencies import build_llm_provider
from discubot.config import AppSettings
from discubot.errors import ConfigurationError
from discubot.models import SourceType
from discubot.providers.llm import AnthropicLLMProvider, OpenAILLMProvider


@pytest.fixture(autouse=True)
def clean_registry():
    reset_adapter_registry()
    yield
    reset_adapter_registry()


class TestAdapterRegistry:
    """get_adapter / register_adapter."""

    def test_defaults(self):
        assert isinstance(get_adapter(SourceType.SLACK), SlackAdapter)
        assert isinstance(get_adapter("Figma"), FigmaAdapter)
        assert set(registered_source_types()) == set(SourceType)

    def test_unknown_kind(self):
        with pytest.raises(ConfigurationError, match="Unknown source type"):
            get_adapter("teams")

    def test_register_replaces_default(self):
        fake = FakeAdapter()
        register_adapter(fake)

        assert get_adapter("slack") is fake
        assert isinstance(get_adapter(SourceType.FIGMA), FigmaAdapter)

        reset_adapter_registry()
        assert isinstance(get_adapter("slack"), SlackAdapter)


class TestBuildLLMProvider:
    """Provider selection from settings."""

    def test_no_keys(self):
        assert build_llm_provider(AppSettings()) is None

    def test_anthropic_preferred(self):
        settings = AppSettings(
            anthropic_api_key=SecretStr("sk-ant-test"),
            openai_api_key=SecretStr("sk-test"),
        )
        assert isinstance(build_llm_provider(settings), AnthropicLLMProvider)

    def test_openai_when_selected(self):
        settings = AppSettings(
            llm_provider="openai",
            llm_model="gpt-test",
            anthropic_api_key=SecretStr("sk-ant-test"),
            openai_api_key=SecretStr("sk-test"),
        )
        provider = build_llm_provider(settings)

        assert isinstance(provider, OpenAILLMProvider)
        assert provider.name == "openai"

    def test_openai_fallback(self):
        assert isinstance(build_llm_provider(AppSettings(openai_api_key=SecretStr("sk-test"))), OpenAILLMProvider)
