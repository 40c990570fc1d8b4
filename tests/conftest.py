"""Shared test fixtures for VoceBridge."""
import json
import pytest
from typing import Any, Callable

import httpx

from config.settings import (
    Settings, LLMConfig, VoceChatConfig, TransportConfig, QueueConfig,
)
from models.schemas import InboundMessage
from channels.transport import ResilientTransport

BOT_ID = "7"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        llm=LLMConfig(api_host="http://llm.test", api_key="sk-test", organization="org-1"),
        vocechat=VoceChatConfig(
            origin="http://vocechat.test",
            bot_id=BOT_ID,
            bot_secret="secret-abcde",
        ),
        transport=TransportConfig(timeout_ms=1000, max_retries=3, backoff_base_ms=1000),
        queue=QueueConfig(max_concurrent=3),
    )


def make_raw_event(
    mid: int = 1,
    from_uid: int = 2,
    content: str = "hello",
    gid: int = None,
    mentions: list[int] = None,
    content_type: str = "text/plain",
    file_content_type: str = None,
) -> dict[str, Any]:
    """A webhook body shaped the way VoceChat pushes it."""
    properties: dict[str, Any] = {}
    if mentions is not None:
        properties["mentions"] = mentions
    if file_content_type is not None:
        properties["content_type"] = file_content_type
    return {
        "mid": mid,
        "from_uid": from_uid,
        "created_at": 1718000000000,
        "target": {"gid": gid} if gid is not None else {"uid": int(BOT_ID)},
        "detail": {
            "type": "normal",
            "content": content,
            "content_type": content_type,
            "properties": properties or None,
            "expires_in": None,
        },
    }


def make_message(**kwargs) -> InboundMessage:
    return InboundMessage.model_validate(make_raw_event(**kwargs))


class SleepRecorder:
    """Stands in for asyncio.sleep so backoff delays are recorded, not waited."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float):
        self.delays.append(seconds)


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_transport(settings, sleeper) -> Callable[..., ResilientTransport]:
    """Build a ResilientTransport over an httpx.MockTransport handler."""
    def factory(handler, **overrides) -> ResilientTransport:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        cfg = settings.transport
        params = {
            "timeout_ms": cfg.timeout_ms,
            "max_retries": cfg.max_retries,
            "backoff_base_ms": cfg.backoff_base_ms,
            "retry_statuses": cfg.retry_statuses,
            **overrides,
        }
        return ResilientTransport(client=client, sleep=sleeper, **params)
    return factory


def completion(text: str) -> dict[str, Any]:
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": text}}],
    }


def request_json(request: httpx.Request) -> Any:
    return json.loads(request.content.decode("utf-8"))
