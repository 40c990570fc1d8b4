"""
Response Generator — turns an inbound message into reply text.

Handles:
- Mention stripping for plain-text messages
- Image fetch + inline base64 encoding for image attachments
- Chat-completion call through the resilient transport
- Conversion of every failure into a modality-specific apology

generate() never raises: the scheduler relies on it returning text.
"""
from __future__ import annotations

import base64
import re
import time
import structlog
from typing import Any

from config.settings import Settings, get_settings
from channels.errors import GenerationError, TransportError
from channels.transport import ResilientTransport
from models.schemas import GenerationRequest, ImageRequest, InboundMessage, TextRequest

logger = structlog.get_logger()

_MENTION_RE = re.compile(r"@[0-9]+")


def normalize_content(content: str) -> str:
    """Strip inline @<uid> mentions and surrounding whitespace."""
    return _MENTION_RE.sub("", content).strip()


def build_request_body(request: GenerationRequest, settings: Settings) -> dict[str, Any]:
    """Chat-completion body for either request variant."""
    llm = settings.llm
    if isinstance(request, ImageRequest):
        return {
            "model": llm.image_model,
            "max_tokens": llm.image_max_tokens,
            "messages": [
                {"role": "system", "content": llm.image_system_prompt},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": llm.image_prompt},
                        {"type": "image_url", "image_url": {"url": request.data_url}},
                    ],
                },
            ],
            "stream": False,
        }
    return {
        "model": llm.text_model,
        "messages": [
            {"role": "system", "content": llm.text_system_prompt},
            {"role": "user", "content": request.prompt},
        ],
        "max_tokens": llm.text_max_tokens,
        "temperature": llm.temperature,
        "stream": False,
    }


def extract_reply(data: Any) -> str:
    """Pull choices[0].message.content out of a chat-completion response."""
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise GenerationError("Unexpected API response format", e) from e
    if not isinstance(content, str) or not content.strip():
        raise GenerationError("Empty completion content")
    return content.strip()


class ResponseGenerator:
    """
    Generates reply text with an OpenAI-compatible chat-completion backend.
    Image attachments are described by the image model; everything else
    goes to the text model.
    """

    def __init__(self, transport: ResilientTransport, settings: Settings = None):
        self.transport = transport
        self._settings = settings or get_settings()

    @property
    def completions_url(self) -> str:
        return f"{self._settings.llm.api_host.rstrip('/')}/v1/chat/completions"

    @property
    def file_url(self) -> str:
        return f"{self._settings.vocechat.origin.rstrip('/')}/api/resource/file"

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._settings.llm.api_key}",
        }
        if self._settings.llm.organization:
            headers["OpenAI-Organization"] = self._settings.llm.organization
        return headers

    def apology_for(self, message: InboundMessage) -> str:
        messages = self._settings.messages
        return messages.image_apology if message.is_image else messages.text_apology

    async def generate(self, message: InboundMessage) -> str:
        if message.is_image:
            try:
                data_url = await self.fetch_image_data_url(
                    message.content, message.attachment_content_type,
                )
            except Exception as e:
                logger.error("image_fetch_failed", mid=message.mid, error=str(e))
                return self.apology_for(message)
            request: GenerationRequest = ImageRequest(data_url=data_url)
        else:
            request = TextRequest(prompt=normalize_content(message.content))

        try:
            return await self._call_llm(request)
        except (TransportError, GenerationError) as e:
            logger.error("llm_generation_failed", mid=message.mid,
                         kind=request.kind, error=str(e))
        except Exception as e:
            logger.error("llm_generation_unexpected_error", mid=message.mid,
                         kind=request.kind, error=str(e), exc_info=True)
        return self.apology_for(message)

    async def fetch_image_data_url(self, file_path: str, content_type: str) -> str:
        """Download a VoceChat file and encode it as a data: URL."""
        response = await self.transport.call(
            self.file_url,
            method="GET",
            params={"file_path": file_path},
        )
        if response.status_code >= 400:
            raise GenerationError(f"File fetch returned HTTP {response.status_code}")
        encoded = base64.b64encode(response.content).decode("ascii")
        return f"data:{content_type};base64,{encoded}"

    async def _call_llm(self, request: GenerationRequest) -> str:
        body = build_request_body(request, self._settings)
        start = time.monotonic()
        response = await self.transport.call(
            self.completions_url,
            method="POST",
            headers=self._headers(),
            json=body,
        )
        logger.info("llm_call_complete", kind=request.kind, model=body["model"],
                    status=response.status_code,
                    duration_ms=round((time.monotonic() - start) * 1000, 1))

        if response.status_code >= 400:
            raise GenerationError(f"Completion API returned HTTP {response.status_code}")
        try:
            data = response.json()
        except ValueError as e:
            raise GenerationError("Completion API returned non-JSON body", e) from e
        return extract_reply(data)
