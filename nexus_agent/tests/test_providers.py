import pytest

from nexus_agent.domain.exceptions import BusinessError
from nexus_agent.providers import create_provider
from nexus_agent.providers.openrouter_client import OpenRouterClient
from nexus_agent.providers.registry import OPENROUTER_CONFIG, get_provider_config, resolve_model


class DummySettings:
    default_provider = "openrouter"
    openrouter_api_key = None
    http_timeout = 1.0


def test_create_provider_default(monkeypatch):
    monkeypatch.setattr("nexus_agent.providers.settings", DummySettings())
    provider = create_provider()
    assert isinstance(provider, OpenRouterClient)


def test_create_provider_name_is_case_insensitive(monkeypatch):
    monkeypatch.setattr("nexus_agent.providers.settings", DummySettings())
    assert isinstance(create_provider("OpenRouter"), OpenRouterClient)


def test_create_provider_unknown():
    with pytest.raises(BusinessError) as exc:
        create_provider("ollama")
    assert exc.value.code == "UNKNOWN_PROVIDER"
    assert "ollama" in exc.value.message


def test_create_provider_unknown_default_from_settings(monkeypatch):
    class OtherSettings(DummySettings):
        default_provider = "kimi"

    monkeypatch.setattr("nexus_agent.providers.settings", OtherSettings())
    with pytest.raises(BusinessError) as exc:
        create_provider()
    assert exc.value.code == "UNKNOWN_PROVIDER"


def test_registry_model_mapping():
    assert get_provider_config("OpenRouter") is OPENROUTER_CONFIG
    assert resolve_model(OPENROUTER_CONFIG, "nexus-chat") == "google/gemini-2.0-flash-001"
    assert resolve_model(OPENROUTER_CONFIG, "openai/gpt-4o-mini") == "openai/gpt-4o-mini"
