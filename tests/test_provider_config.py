import pytest

from app.core.exceptions import ProviderConfigError
from app.services.provider_config import (
    DEFAULT_PROMPT,
    ProviderFamily,
    build_analysis_prompt,
    config_from_settings,
    load_provider_config,
    save_provider_config,
)


def test_defaults_fill_missing_settings():
    config = config_from_settings({"provider": "Gemini", "api_key": "k"})

    assert config.family == ProviderFamily.GOOGLE
    assert config.base_url == "https://generativelanguage.googleapis.com/v1beta"
    assert config.embedding_model == "text-embedding-004"
    assert config.system_prompt == DEFAULT_PROMPT


def test_base_url_trailing_slash_is_stripped():
    config = config_from_settings({"provider": "openrouter", "base_url": "https://openrouter.ai/api/v1/"})
    assert config.base_url == "https://openrouter.ai/api/v1"
    assert config.embedding_model == "text-embedding-3-small"


def test_load_requires_api_key(db, company):
    company.ai_settings = {"provider": "openai"}
    db.commit()

    with pytest.raises(ProviderConfigError):
        load_provider_config(db, company.id)
    assert load_provider_config(db, company.id, require_key=False).api_key == ""


def test_load_unknown_company(db):
    with pytest.raises(ProviderConfigError):
        load_provider_config(db, 404)


def test_save_keeps_stored_key_when_omitted(db, company):
    config = save_provider_config(db, company.id, {"model": "gpt-4o", "api_key": ""})

    assert config.api_key == "sk-test"
    assert config.model == "gpt-4o"
    assert load_provider_config(db, company.id).model == "gpt-4o"


def test_save_is_read_back_fresh(db, company):
    save_provider_config(db, company.id, {"provider": "Google Gemini", "api_key": "g-key", "base_url": ""})

    config = load_provider_config(db, company.id)
    assert config.family == ProviderFamily.GOOGLE
    assert config.api_key == "g-key"
    assert config.base_url == "https://generativelanguage.googleapis.com/v1beta"


def test_analysis_prompt_substitution():
    config = config_from_settings({"system_prompt": "Fix ${machine_brand} ${machine_model}: ${problem_description} ($5)"})

    assert build_analysis_prompt(config, "Deere", "6110J", "no start") == "Fix Deere 6110J: no start ($5)"
    assert build_analysis_prompt(config, None, "", "no start") == "Fix Generic Standard: no start ($5)"


def test_ai_settings_endpoints(client, auth_headers, tech_headers):
    settings = client.get("/api/company/ai-settings", headers=tech_headers).json()
    assert settings["has_api_key"] is True
    assert "api_key" not in settings

    assert client.put("/api/company/ai-settings", json={"model": "x"}, headers=tech_headers).status_code == 403

    saved = client.put(
        "/api/company/ai-settings",
        json={"provider": "Google Gemini", "model": "gemini-1.5-pro"},
        headers=auth_headers,
    ).json()
    assert saved["family"] == "google"
    assert saved["embedding_model"] == "text-embedding-004"
    assert saved["has_api_key"] is True


def test_list_models_endpoint(client, auth_headers):
    response = client.post("/api/company/ai-settings/models", json={}, headers=auth_headers)
    assert response.json() == {"data": [{"id": "gpt-4o-mini"}]}


def test_switching_family_resets_base_url(db, company):
    config = save_provider_config(db, company.id, {"provider": "Google Gemini"})

    assert config.base_url == "https://generativelanguage.googleapis.com/v1beta"
    assert config.api_key == "sk-test"
