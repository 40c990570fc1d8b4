"""
Drain Scheduler — owns the message queue and its single drain loop.

  webhook ──enqueue──▶ ┌──────────────┐  take(max_concurrent)  ┌───────────────┐
                       │ MessageQueue │───────────────────────▶│ batch (gather)│
                       └──────────────┘                        └──────┬────────┘
                              ▲                                       │ per message
                              └──── loop until queue observed empty ◀─┤ generate → deliver
                                                                      │   └─ fallback reply

At most one drain loop exists at a time. enqueue() and the loop's
"queue empty → idle" step never await between reading and writing the
loop handle, so on the event loop they cannot interleave: an enqueue
either lands before the loop's final emptiness check (and is drained by
it) or after the handle is cleared (and starts a new loop).
"""
from __future__ import annotations

import asyncio
import structlog
from typing import Any, Optional

from config.settings import MessagesConfig, Settings
from channels.transport import ResilientTransport
from channels.vocechat import ReplyDispatcher
from core.generator import ResponseGenerator
from job_queue.message_queue import MessageQueue
from models.schemas import InboundMessage

logger = structlog.get_logger()


class DrainScheduler:
    """
    Drains queued messages in batches of ``max_concurrent``.

    Usage:
        scheduler = DrainScheduler(generator, dispatcher)
        scheduler.enqueue(message)   # starts a drain loop if none is active
        await scheduler.wait_idle()  # resolves once the queue is drained
        await scheduler.stop()       # cancels an active loop on shutdown
    """

    def __init__(
        self,
        generator: ResponseGenerator,
        dispatcher: ReplyDispatcher,
        queue: MessageQueue = None,
        max_concurrent: int = 3,
        fallback_text: str = MessagesConfig().fallback_reply,
    ):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.generator = generator
        self.dispatcher = dispatcher
        self.max_concurrent = max_concurrent
        self.fallback_text = fallback_text
        self._queue = queue if queue is not None else MessageQueue()
        self._task: Optional[asyncio.Task] = None
        self._stats = {
            "enqueued": 0,
            "processed": 0,
            "replied": 0,
            "fallback_replied": 0,
            "dropped": 0,
            "batches": 0,
            "loops_started": 0,
        }

    # ── State ─────────────────────────────────────────────────

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def pending(self) -> int:
        return len(self._queue)

    @property
    def stats(self) -> dict[str, Any]:
        return {**self._stats, "pending": self.pending, "active": self.is_active}

    # ── Producer side ─────────────────────────────────────────

    def enqueue(self, message: InboundMessage) -> bool:
        """
        Queue a message. Never blocks.
        Returns True when this call started a new drain loop.
        """
        depth = self._queue.push(message)
        self._stats["enqueued"] += 1

        if self.is_active:
            logger.debug("message_enqueued", mid=message.mid, depth=depth)
            return False

        self._task = asyncio.get_running_loop().create_task(self._drain())
        self._stats["loops_started"] += 1
        logger.info("drain_loop_started", mid=message.mid, depth=depth,
                    max_concurrent=self.max_concurrent)
        return True

    # ── Drain loop ────────────────────────────────────────────

    async def _drain(self):
        try:
            while True:
                batch = self._queue.take(self.max_concurrent)
                if not batch:
                    # cleared with no await since the emptiness check
                    self._task = None
                    logger.info("drain_loop_idle", **self._stats)
                    return
                self._stats["batches"] += 1
                logger.debug("batch_started", size=len(batch),
                             mids=[m.mid for m in batch], remaining=len(self._queue))
                await asyncio.gather(*(self._process(m) for m in batch))
        finally:
            if self._task is asyncio.current_task():
                self._task = None

    async def _process(self, message: InboundMessage):
        """Generate and deliver one reply; degrade to the fallback reply on failure."""
        try:
            reply = await self.generator.generate(message)
            await self.dispatcher.deliver(message.mid, reply)
            self._stats["replied"] += 1
            return
        except Exception as e:
            logger.error("message_processing_failed", mid=message.mid, error=str(e))
        finally:
            self._stats["processed"] += 1

        try:
            await self.dispatcher.deliver(message.mid, self.fallback_text)
            self._stats["fallback_replied"] += 1
        except Exception as e:
            self._stats["dropped"] += 1
            logger.error("fallback_reply_failed", mid=message.mid, error=str(e))

    # ── Lifecycle ─────────────────────────────────────────────

    async def wait_idle(self):
        """Wait until no drain loop is active and the queue is empty."""
        while self._task is not None:
            await asyncio.wait({self._task})

    async def stop(self):
        """Cancel an active drain loop and discard pending messages."""
        task = self._task
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._task = None
        dropped = self._queue.clear()
        logger.info("drain_scheduler_stopped", discarded=len(dropped), **self._stats)


# ──────────────────────────────────────────────────────────────
#  Factory
# ──────────────────────────────────────────────────────────────

def create_scheduler(settings: Settings, transport: ResilientTransport) -> DrainScheduler:
    """Wire generator, dispatcher and scheduler around one shared transport."""
    return DrainScheduler(
        generator=ResponseGenerator(transport, settings),
        dispatcher=ReplyDispatcher(transport, settings.vocechat),
        max_concurrent=settings.queue.max_concurrent,
        fallback_text=settings.messages.fallback_reply,
    )
