"""
Error hierarchy for the bot's outbound and inbound paths.

TransportError    : network failure or timeout after every retry
GenerationError   : unusable reply from the generation backend
DeliveryError     : a reply could not be posted back to VoceChat
AdmissionError    : malformed inbound webhook payload
"""
from __future__ import annotations

from typing import Optional


class BotError(Exception):
    """Base exception for all bot operations."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)


class TransportError(BotError):
    def __init__(self, url: str, attempts: int, cause: Optional[BaseException] = None):
        self.url = url
        self.attempts = attempts
        super().__init__(f"Request to {url} failed after {attempts} attempt(s): {cause!r}", cause)


class GenerationError(BotError):
    pass


class DeliveryError(BotError):
    def __init__(self, mid: int, cause: Optional[BaseException] = None):
        self.mid = mid
        super().__init__(f"Reply delivery for message {mid} failed: {cause}", cause)


class AdmissionError(BotError):
    pass


class RetryableStatus(Exception):
    """A response status the transport treats as a failed attempt."""

    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}")
