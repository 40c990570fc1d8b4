"""Outbound transport, VoceChat reply delivery and inbound admission."""
from channels.errors import (
    BotError,
    TransportError,
    GenerationError,
    DeliveryError,
    AdmissionError,
)
from channels.transport import ResilientTransport
from channels.vocechat import ReplyDispatcher
from channels.admission import AdmissionDecision, admit, parse_inbound

__all__ = [
    "BotError", "TransportError", "GenerationError", "DeliveryError", "AdmissionError",
    "ResilientTransport", "ReplyDispatcher",
    "AdmissionDecision", "admit", "parse_inbound",
]
