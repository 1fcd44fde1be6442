import pytest

from reelbatch.utils.openai_client import (
    ClientSettings,
    get_model_name,
    get_provider,
    parse_deployments,
)


def test_parse_deployments_skips_malformed_entries():
    """Test malformed deployment entries are skipped."""
    mapping = parse_deployments("gpt-4o=writers-4o, gpt-4o-mini = writers-mini,broken,=x,")
    assert mapping == {"gpt-4o": "writers-4o", "gpt-4o-mini": "writers-mini"}


def test_model_name_passthrough_without_azure(monkeypatch):
    """Test model names pass through for OpenAI."""
    monkeypatch.delenv("AZURE_OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("AZURE_OPENAI_ENDPOINT", raising=False)
    assert get_model_name("gpt-4o") == "gpt-4o"
    assert get_provider() == "openai"


def test_model_name_uses_azure_deployment(monkeypatch):
    """Test Azure deployments replace configured model names."""
    monkeypatch.setenv("AZURE_OPENAI_API_KEY", "azure-key")
    monkeypatch.setenv("AZURE_OPENAI_ENDPOINT", "https://example.openai.azure.com")
    monkeypatch.setenv("AZURE_OPENAI_DEPLOYMENTS", "gpt-4o=writers-4o")

    assert get_model_name("gpt-4o") == "writers-4o"
    assert get_model_name("gpt-4.1") == "gpt-4.1"
    assert get_provider() == "azure"


def test_client_settings_from_env(monkeypatch):
    """Test client timeout and retries are read from the environment."""
    monkeypatch.setenv("REELBATCH_OPENAI_TIMEOUT", "15")
    monkeypatch.setenv("REELBATCH_OPENAI_MAX_RETRIES", "2")
    assert ClientSettings.from_env() == ClientSettings(timeout=15.0, max_retries=2)

    monkeypatch.setenv("REELBATCH_OPENAI_MAX_RETRIES", "many")
    with pytest.raises(ValueError, match="Invalid OpenAI client setting"):
        ClientSettings.from_env()
