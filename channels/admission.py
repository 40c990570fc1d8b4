"""
Ingress Admission — decides whether a webhook event gets queued.

Self-sent events are ignored so the bot never answers itself. Group events
are ignored unless the bot is mentioned: by uid in the mentions list, by
an inline ``@<uid>`` in the text, or by the configured alias.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from channels.errors import AdmissionError
from models.schemas import InboundMessage

IGNORE_SELF = "ignore sent by bot self"
IGNORE_UNMENTIONED = "ignore not mention at group"
QUEUED = "Message queued"


@dataclass(frozen=True)
class AdmissionDecision:
    accepted: bool
    reason: str


def parse_inbound(raw: Any) -> InboundMessage:
    """Validate a decoded webhook body. Raises AdmissionError."""
    if not isinstance(raw, dict):
        raise AdmissionError(f"Webhook body must be a JSON object, got {type(raw).__name__}")
    try:
        return InboundMessage.model_validate(raw)
    except ValidationError as e:
        raise AdmissionError(f"Malformed webhook payload: {e.error_count()} error(s)", e) from e


def mentions_bot(message: InboundMessage, bot_id: str, alias: str = "@chatgpt") -> bool:
    bot_id = str(bot_id)
    content = message.content
    if any(str(uid) == bot_id for uid in message.mentions):
        return True
    if bot_id and f"@{bot_id}" in content:
        return True
    return bool(alias) and alias.lower() in content.lower()


def admit(message: InboundMessage, bot_id: str, alias: str = "@chatgpt") -> AdmissionDecision:
    if str(message.from_uid) == str(bot_id):
        return AdmissionDecision(False, IGNORE_SELF)
    if message.target.is_group and not mentions_bot(message, bot_id, alias):
        return AdmissionDecision(False, IGNORE_UNMENTIONED)
    return AdmissionDecision(True, QUEUED)
