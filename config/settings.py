"""
Configuration loader for the VoceBridge bot.
Reads settings from YAML file with environment variable substitution,
then applies the deployment environment overrides.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml


@dataclass
class LLMConfig:
    api_host: str = "https://api.openai.com"
    api_key: str = ""
    organization: str = ""
    text_model: str = "gpt-3.5-turbo"
    image_model: str = "claude-3-5-sonnet-20240620"
    text_max_tokens: int = 2000
    image_max_tokens: int = 4096
    temperature: float = 1.0
    text_system_prompt: str = (
        "You are an AI assistant. Answer the user's question concisely and accurately."
    )
    image_system_prompt: str = (
        "You are GPT, a large language model trained by 探索分享. 回答全部用markdown格式。"
    )
    image_prompt: str = "这个图片描述了什么？请详细分析。"


@dataclass
class VoceChatConfig:
    origin: str = "http://localhost:3000"
    bot_id: str = ""
    bot_secret: str = ""
    mention_alias: str = "@chatgpt"


@dataclass
class TransportConfig:
    timeout_ms: int = 30000             # per attempt
    max_retries: int = 3                # total attempts
    backoff_base_ms: int = 1000         # delay after attempt n is base * 2^(n-1)
    retry_statuses: list[int] = field(default_factory=lambda: [429, 500, 502, 503, 504])


@dataclass
class QueueConfig:
    max_concurrent: int = 3             # messages in flight per batch


@dataclass
class MessagesConfig:
    text_apology: str = "抱歉，我现在无法处理您的请求。请稍后再试。"
    image_apology: str = "抱歉，我在处理图片时遇到了问题。请稍后再试或联系支持人员。"
    fallback_reply: str = "抱歉，处理您的消息时出现了问题。请稍后再试。"


@dataclass
class Settings:
    app_name: str = "VoceBridge"
    debug: bool = False
    llm: LLMConfig = field(default_factory=LLMConfig)
    vocechat: VoceChatConfig = field(default_factory=VoceChatConfig)
    transport: TransportConfig = field(default_factory=TransportConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    messages: MessagesConfig = field(default_factory=MessagesConfig)


_settings: Optional[Settings] = None


def _substitute_env_vars(value: str) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""
    pattern = re.compile(r'\$\{(\w+)\}')
    def replacer(match):
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))
    return pattern.sub(replacer, value)


def _process_values(obj: Any) -> Any:
    """Recursively substitute env vars in all string values."""
    if isinstance(obj, str):
        return _substitute_env_vars(obj)
    elif isinstance(obj, dict):
        return {k: _process_values(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_process_values(v) for v in obj]
    return obj


def _merge(section: Any, raw: dict[str, Any]) -> None:
    """Copy known keys of a raw YAML mapping onto a config dataclass."""
    for key, value in (raw or {}).items():
        if key in section.__dataclass_fields__:
            setattr(section, key, value)


# env var → (section, attribute, cast)
_ENV_OVERRIDES: dict[str, tuple[str, str, Any]] = {
    "OPENAI_API_HOST": ("llm", "api_host", str),
    "OPENAI_API_KEY": ("llm", "api_key", str),
    "OPENAI_ORGANIZATION": ("llm", "organization", str),
    "DEFAULT_MODEL": ("llm", "text_model", str),
    "DEFAULT_IMAGE_MODEL": ("llm", "image_model", str),
    "VOCECHAT_ORIGIN": ("vocechat", "origin", str),
    "VOCECHAT_BOT_ID": ("vocechat", "bot_id", str),
    "VOCECHAT_BOT_SECRET": ("vocechat", "bot_secret", str),
    "BOT_TIMEOUT_MS": ("transport", "timeout_ms", int),
    "BOT_MAX_RETRIES": ("transport", "max_retries", int),
    "BOT_MAX_CONCURRENT": ("queue", "max_concurrent", int),
}


def _apply_env_overrides(settings: Settings) -> None:
    for var_name, (section, attr, cast) in _ENV_OVERRIDES.items():
        value = os.environ.get(var_name)
        if value:
            setattr(getattr(settings, section), attr, cast(value))


def load_settings(config_path: str = None) -> Settings:
    """Load settings from YAML file, then environment overrides."""
    global _settings

    if config_path is None:
        config_path = os.environ.get(
            "VOCEBRIDGE_CONFIG",
            str(Path(__file__).parent / "settings.yaml"),
        )

    settings = Settings()

    if Path(config_path).exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        raw = _process_values(raw)

        settings.app_name = raw.get("app_name", settings.app_name)
        settings.debug = raw.get("debug", settings.debug)

        if "llm" in raw:
            _merge(settings.llm, raw["llm"])
        if "vocechat" in raw:
            _merge(settings.vocechat, raw["vocechat"])
            settings.vocechat.bot_id = str(settings.vocechat.bot_id)
        if "transport" in raw:
            _merge(settings.transport, raw["transport"])
        if "queue" in raw:
            _merge(settings.queue, raw["queue"])
        if "messages" in raw:
            _merge(settings.messages, raw["messages"])

    _apply_env_overrides(settings)

    _settings = settings
    return settings


def get_settings() -> Settings:
    """Return cached settings or load from default path."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
