"""
Message Queue — in-process FIFO of pending inbound messages.

Single producer side (webhook admission) and a single consumer (the drain
loop). Items are removed exactly once; what remains keeps insertion order.
Nothing is persisted: a restart loses whatever is still pending.
"""
from __future__ import annotations

from collections import deque

from models.schemas import InboundMessage


class MessageQueue:
    """Unbounded FIFO. push() never blocks."""

    def __init__(self):
        self._items: deque[InboundMessage] = deque()

    def push(self, message: InboundMessage) -> int:
        """Append a message; returns the new depth."""
        self._items.append(message)
        return len(self._items)

    def take(self, count: int) -> list[InboundMessage]:
        """Remove and return up to ``count`` messages from the head."""
        batch: list[InboundMessage] = []
        while self._items and len(batch) < count:
            batch.append(self._items.popleft())
        return batch

    def peek(self, count: int = 10) -> list[InboundMessage]:
        return [m for _, m in zip(range(count), self._items)]

    def clear(self) -> list[InboundMessage]:
        dropped = list(self._items)
        self._items.clear()
        return dropped

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)
