import os
import sys
from unittest.mock import patch

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from discovery.settings import Settings

ENV_VARS = [
    "OPENROUTER_API_KEY",
    "UNSPLASH_ACCESS_KEY",
    "DISCOVERY_MODEL",
    "DISCOVERY_CACHE_TTL_HOURS",
    "DISCOVERY_COOLDOWN_SECONDS",
    "DISCOVERY_EMPTY_RESULT_POLICY",
    "DISCOVERY_STORAGE_PATH",
    "DISCOVERY_DEBUG",
]


def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))


def test_defaults(monkeypatch, tmp_path):
    clean_env(monkeypatch, tmp_path)
    with patch("discovery.settings.load_dotenv"):
        settings = Settings.from_env()

    assert settings.openrouter_api_key is None
    assert settings.model == "perplexity/sonar-pro"
    assert settings.cache_ttl_ms == 12 * 60 * 60 * 1000
    assert settings.cooldown_seconds == 0
    assert settings.empty_result_policy == "empty"
    assert settings.storage_path is None


def test_reads_environment(monkeypatch, tmp_path):
    clean_env(monkeypatch, tmp_path)
    monkeypatch.setenv("OPENROUTER_API_KEY", "or-key")
    monkeypatch.setenv("UNSPLASH_ACCESS_KEY", "us-key")
    monkeypatch.setenv("DISCOVERY_CACHE_TTL_HOURS", "1")
    monkeypatch.setenv("DISCOVERY_COOLDOWN_SECONDS", "30")
    monkeypatch.setenv("DISCOVERY_EMPTY_RESULT_POLICY", "Fallback")
    monkeypatch.setenv("DISCOVERY_STORAGE_PATH", str(tmp_path / "store.json"))

    with patch("discovery.settings.load_dotenv"):
        settings = Settings.from_env()

    assert settings.openrouter_api_key == "or-key"
    assert settings.unsplash_access_key == "us-key"
    assert settings.cache_ttl_ms == 3_600_000
    assert settings.cooldown_seconds == 30
    assert settings.empty_result_policy == "fallback"
    assert settings.storage_path.endswith("store.json")


def test_unknown_policy_falls_back_to_empty(monkeypatch, tmp_path):
    clean_env(monkeypatch, tmp_path)
    monkeypatch.setenv("DISCOVERY_EMPTY_RESULT_POLICY", "explode")
    with patch("discovery.settings.load_dotenv"):
        assert Settings.from_env().empty_result_policy == "empty"


def test_secret_keys_file(monkeypatch, tmp_path):
    clean_env(monkeypatch, tmp_path)
    (tmp_path / ".secret_keys").write_text("OTHER=1\nOPENROUTER_API_KEY=from-file\n")
    with patch("discovery.settings.load_dotenv"):
        assert Settings.from_env().openrouter_api_key == "from-file"
