"""Per-channel debounced accumulator of inbound messages.

Every channel key is either IDLE or BUFFERING. While buffering, the channel owns
a pending list and exactly one timer; each enqueue cancels and restarts that
timer. When the timer fires, the pending list is detached from the map before
the flush callback runs, so text arriving during the callback starts a fresh
buffer. Flushes of one channel are chained and run strictly in expiry order.
"""

import asyncio
from dataclasses import dataclass, field
from functools import partial
from typing import Awaitable, Callable, Optional

from skorbot.logging_config import get_logger
from skorbot.services.buffer_state import BufferEvent, BufferState, transition

logger = get_logger("message_buffer")

FlushCallback = Callable[[str, list[str]], Awaitable[None]]


@dataclass
class PendingBuffer:
    messages: list[str] = field(default_factory=list)
    timer: Optional[asyncio.TimerHandle] = None


class MessageBuffer:
    def __init__(self, delay_seconds: float, on_flush: FlushCallback, *, name: str = "default"):
        if delay_seconds < 0:
            raise ValueError("delay_seconds must be >= 0")
        self.delay_seconds = delay_seconds
        self.name = name
        self._on_flush = on_flush
        self._pending: dict[str, PendingBuffer] = {}
        self._inflight: dict[str, asyncio.Task] = {}

    def state(self, channel_key: str) -> BufferState:
        return BufferState.BUFFERING if channel_key in self._pending else BufferState.IDLE

    def pending(self, channel_key: str) -> list[str]:
        buffer = self._pending.get(channel_key)
        return list(buffer.messages) if buffer else []

    def enqueue(self, channel_key: str, message_text: str) -> int:
        """Append text for the channel and (re)start its quiet-period timer.

        Must be called from the event loop. Returns the number of messages now pending.
        """
        loop = asyncio.get_running_loop()
        transition(self.state(channel_key), BufferEvent.ENQUEUE)

        buffer = self._pending.get(channel_key)
        if buffer is None:
            buffer = PendingBuffer()
            self._pending[channel_key] = buffer

        buffer.messages.append(message_text)
        if buffer.timer is not None:
            buffer.timer.cancel()
        buffer.timer = loop.call_later(self.delay_seconds, self._expire, channel_key, buffer)
        return len(buffer.messages)

    def cancel(self, channel_key: str) -> list[str]:
        """Tear the channel down: stop its timer and discard unflushed text."""
        transition(self.state(channel_key), BufferEvent.TEARDOWN)
        buffer = self._pending.pop(channel_key, None)
        if buffer is None:
            return []
        if buffer.timer is not None:
            buffer.timer.cancel()
        if buffer.messages:
            logger.info(
                "Discarded unflushed messages on teardown",
                extra={"context": {"buffer": self.name, "channel_key": channel_key, "count": len(buffer.messages)}},
            )
        return buffer.messages

    def _expire(self, channel_key: str, buffer: PendingBuffer) -> None:
        # A cancelled TimerHandle never fires, but a handle racing a teardown might.
        if self._pending.get(channel_key) is not buffer:
            return
        transition(BufferState.BUFFERING, BufferEvent.EXPIRE)
        del self._pending[channel_key]
        buffer.timer = None
        messages = buffer.messages

        previous = self._inflight.get(channel_key)
        task = asyncio.get_running_loop().create_task(self._run_flush(channel_key, messages, previous))
        self._inflight[channel_key] = task
        task.add_done_callback(partial(self._forget, channel_key))

    async def _run_flush(self, channel_key: str, messages: list[str], previous: Optional[asyncio.Task]) -> None:
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
        logger.debug(
            "Flushing buffered messages",
            extra={"context": {"buffer": self.name, "channel_key": channel_key, "count": len(messages)}},
        )
        try:
            await self._on_flush(channel_key, messages)
        except Exception:
            logger.exception(
                "Flush callback failed",
                extra={"context": {"buffer": self.name, "channel_key": channel_key}},
            )

    def _forget(self, channel_key: str, task: asyncio.Task) -> None:
        if self._inflight.get(channel_key) is task:
            del self._inflight[channel_key]

    async def wait_idle(self, channel_key: Optional[str] = None) -> None:
        """Wait until in-flight flushes (of one channel, or all) have finished."""
        if channel_key is not None:
            tasks = [self._inflight[channel_key]] if channel_key in self._inflight else []
        else:
            tasks = list(self._inflight.values())
        if tasks:
            await asyncio.wait(tasks)

    async def aclose(self) -> None:
        """Drop every pending buffer and let in-flight flushes finish."""
        for channel_key in list(self._pending):
            self.cancel(channel_key)
        await self.wait_idle()
