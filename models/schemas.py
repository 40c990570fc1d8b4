"""
Core data models for the VoceBridge bot.
Inbound VoceChat webhook events and the chat-completion request variants.
"""
from __future__ import annotations

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ──────────────────────────────────────────────────────────────
#  Inbound — a single chat event pushed by the VoceChat webhook
# ──────────────────────────────────────────────────────────────

FILE_CONTENT_TYPE = "vocechat/file"


class MessageTarget(BaseModel):
    """Where the message was sent: a user (direct) or a group."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    uid: Optional[int] = None
    gid: Optional[int] = None

    @model_validator(mode="after")
    def check_single_target(self) -> MessageTarget:
        if (self.uid is None) == (self.gid is None):
            raise ValueError("target must carry exactly one of uid or gid")
        return self

    @property
    def is_group(self) -> bool:
        return self.gid is not None


class MessageProperties(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    mentions: list[int] = []
    content_type: Optional[str] = None        # attachment MIME type for file messages
    name: Optional[str] = None
    size: Optional[int] = None


class MessageDetail(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    type: str = "normal"                      # normal | reply
    content: str
    content_type: str = "text/plain"          # text/plain | text/markdown | vocechat/file
    properties: Optional[MessageProperties] = None
    expires_in: Optional[int] = None


class InboundMessage(BaseModel):
    """A VoceChat webhook event. Immutable once parsed."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    mid: int                                  # reply address
    from_uid: int
    created_at: int = 0                       # epoch millis
    target: MessageTarget
    detail: MessageDetail

    @property
    def content(self) -> str:
        return self.detail.content

    @property
    def mentions(self) -> list[int]:
        return list(self.detail.properties.mentions) if self.detail.properties else []

    @property
    def attachment_content_type(self) -> Optional[str]:
        return self.detail.properties.content_type if self.detail.properties else None

    @property
    def is_image(self) -> bool:
        ct = self.attachment_content_type
        return (
            self.detail.content_type == FILE_CONTENT_TYPE
            and isinstance(ct, str)
            and ct.startswith("image/")
        )


# ──────────────────────────────────────────────────────────────
#  Generation requests — tagged variant, one body builder
# ──────────────────────────────────────────────────────────────

class TextRequest(BaseModel):
    kind: Literal["text"] = "text"
    prompt: str


class ImageRequest(BaseModel):
    kind: Literal["image"] = "image"
    data_url: str                             # data:<mime>;base64,<payload>


GenerationRequest = Annotated[Union[TextRequest, ImageRequest], Field(discriminator="kind")]
