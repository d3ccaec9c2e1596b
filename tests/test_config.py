import pytest

import core.config
from core.config import (
    clear_config_cache,
    get_persona_prompt,
    get_prompt,
    get_provider_config,
    get_spatial_keywords,
    get_store_limit,
    load_config,
    resolve_model,
)


def test_defaults_without_file():
    cfg = load_config()
    assert cfg["provider"]["default"] == "openai"
    assert resolve_model("pro") == "gemini-3-pro-preview"
    assert resolve_model("spatial") == "gemini-2.5-flash"
    assert get_store_limit() == 30
    assert "restaurant" in get_spatial_keywords()


def test_config_is_cached():
    assert load_config() is load_config()


def test_yaml_overrides_are_deep_merged(tmp_path, monkeypatch):
    path = tmp_path / "settings.yaml"
    path.write_text(
        "models:\n"
        "  flash: my-flash-model\n"
        "provider:\n"
        "  timeout: 30\n"
        "store:\n"
        "  max_sessions: 0\n"
    )
    monkeypatch.setenv("OMNISEARCH_CONFIG", str(path))
    clear_config_cache()

    assert resolve_model("flash") == "my-flash-model"
    assert resolve_model("pro") == "gemini-3-pro-preview"
    assert get_provider_config()["timeout"] == 30
    assert get_provider_config()["default"] == "openai"
    assert get_store_limit() is None


def test_invalid_yaml_falls_back_to_defaults(tmp_path, monkeypatch):
    path = tmp_path / "broken.yaml"
    path.write_text("models: [unclosed\n")
    monkeypatch.setenv("OMNISEARCH_CONFIG", str(path))
    clear_config_cache()
    assert resolve_model("flash") == "gemini-3-flash-preview"


def test_resolve_model_passes_ids_through():
    assert resolve_model("gemini-2.0-flash-exp") == "gemini-2.0-flash-exp"


def test_persona_prompt_falls_back_to_general():
    general = get_persona_prompt("general")
    assert get_persona_prompt("financial") != general
    assert get_persona_prompt("pirate") == general
    assert get_persona_prompt(None) == general


def test_get_prompt():
    system = get_prompt("system")
    assert "{persona}" in system
    assert "[DATA_BOUNDARY]" in system
    with pytest.raises(KeyError):
        get_prompt("nope")


def test_helpers_return_copies():
    get_provider_config()["timeout"] = 1
    assert core.config.load_config()["provider"]["timeout"] == 120.0
