"""Tests for YAML + environment configuration loading."""
import pytest

from config import settings as settings_module
from config.settings import Settings, load_settings

ENV_VARS = [
    "OPENAI_API_HOST", "OPENAI_API_KEY", "OPENAI_ORGANIZATION", "DEFAULT_MODEL",
    "DEFAULT_IMAGE_MODEL", "VOCECHAT_ORIGIN", "VOCECHAT_BOT_ID", "VOCECHAT_BOT_SECRET",
    "BOT_TIMEOUT_MS", "BOT_MAX_RETRIES", "BOT_MAX_CONCURRENT",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    yield
    settings_module._settings = None


class TestLoadSettings:
    def test_defaults_without_file(self, tmp_path):
        s = load_settings(str(tmp_path / "missing.yaml"))
        assert s.transport.timeout_ms == 30000
        assert s.transport.max_retries == 3
        assert s.transport.backoff_base_ms == 1000
        assert s.queue.max_concurrent == 3
        assert s.llm.text_model == "gpt-3.5-turbo"
        assert s.llm.api_host == "https://api.openai.com"
        assert s.vocechat.mention_alias == "@chatgpt"

    def test_yaml_with_env_substitution(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MY_SECRET", "s3cret")
        path = tmp_path / "settings.yaml"
        path.write_text(
            "app_name: TestBot\n"
            "vocechat:\n"
            "  origin: https://chat.example.com\n"
            "  bot_id: 12\n"
            "  bot_secret: ${MY_SECRET}\n"
            "transport:\n"
            "  timeout_ms: 5000\n"
            "queue:\n"
            "  max_concurrent: 8\n"
            "llm:\n"
            "  text_model: gpt-4o-mini\n"
            "  unknown_key: ignored\n"
        )
        s = load_settings(str(path))
        assert s.app_name == "TestBot"
        assert s.vocechat.origin == "https://chat.example.com"
        assert s.vocechat.bot_id == "12"
        assert s.vocechat.bot_secret == "s3cret"
        assert s.transport.timeout_ms == 5000
        assert s.transport.max_retries == 3
        assert s.queue.max_concurrent == 8
        assert s.llm.text_model == "gpt-4o-mini"
        assert not hasattr(s.llm, "unknown_key")

    def test_unset_env_placeholder_left_intact(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("vocechat:\n  bot_secret: ${NOT_SET_ANYWHERE}\n")
        s = load_settings(str(path))
        assert s.vocechat.bot_secret == "${NOT_SET_ANYWHERE}"

    def test_environment_overrides(self, tmp_path, monkeypatch):
        path = tmp_path / "settings.yaml"
        path.write_text("queue:\n  max_concurrent: 8\n")
        monkeypatch.setenv("BOT_MAX_CONCURRENT", "2")
        monkeypatch.setenv("VOCECHAT_BOT_ID", "99")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        monkeypatch.setenv("BOT_TIMEOUT_MS", "1500")
        s = load_settings(str(path))
        assert s.queue.max_concurrent == 2
        assert s.vocechat.bot_id == "99"
        assert s.llm.api_key == "sk-env"
        assert s.transport.timeout_ms == 1500

    def test_config_path_from_env(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text("app_name: FromEnvPath\n")
        monkeypatch.setenv("VOCEBRIDGE_CONFIG", str(path))
        assert load_settings().app_name == "FromEnvPath"

    def test_get_settings_caches(self, tmp_path):
        loaded = load_settings(str(tmp_path / "missing.yaml"))
        assert settings_module.get_settings() is loaded
        assert isinstance(loaded, Settings)
