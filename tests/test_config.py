from __future__ import annotations

import pytest

from sales_intel import config as config_module
from sales_intel.config import Config, load_config

ENV_KEYS = [
    "SERPAPI_KEY", "ANTHROPIC_API_KEY", "OPENAI_API_KEY", "APOLLO_API_KEY",
    "MAX_FETCH_URLS", "RELEVANCY_THRESHOLD", "PRIORITIZE_RECENT", "CACHE_TTL_HOURS",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr(config_module, "load_dotenv", lambda: None)


def test_defaults():
    config = Config()
    assert config.max_fetch_urls == 30
    assert config.max_results_per_query == 5
    assert config.relevancy_threshold == 0.2
    assert config.max_critical_urls == 3
    assert config.cache_ttl_hours == 24


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")
    monkeypatch.setenv("MAX_FETCH_URLS", "10")
    monkeypatch.setenv("RELEVANCY_THRESHOLD", "0.3")
    monkeypatch.setenv("PRIORITIZE_RECENT", "true")
    monkeypatch.setenv("CACHE_TTL_HOURS", "48")

    config = load_config()

    assert config.anthropic_api_key == "sk-ant"
    assert config.max_fetch_urls == 10
    assert config.relevancy_threshold == 0.3
    assert config.prioritize_recent is True
    assert config.cache_ttl_hours == 48
    assert config.serpapi_key == ""


def test_missing_model_keys_exit(capsys):
    with pytest.raises(SystemExit) as exc:
        load_config()
    assert exc.value.code == 1
    assert "ANTHROPIC_API_KEY" in capsys.readouterr().err
