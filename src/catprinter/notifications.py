"""
Notification mailbox between the BLE transport and command exchanges.

The transport pushes every notify-channel buffer into the router from its
callback; a command exchange then pulls the next buffer as its reply.
The protocol is strictly request/response, so a single mailbox is enough.
"""

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class NotificationRouter:
    """Bounded mailbox of inbound notification buffers."""

    DEFAULT_MAXSIZE = 10
    MAX_NOTIFICATION_SIZE = 4096  # bytes; larger buffers are discarded

    def __init__(
        self,
        maxsize: int = DEFAULT_MAXSIZE,
        max_notification_size: int = MAX_NOTIFICATION_SIZE,
    ):
        self.maxsize = maxsize
        self.max_notification_size = max_notification_size
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def deliver(self, data: bytes) -> bool:
        """
        Enqueue a notification without blocking.

        Called from the transport's notification callback. When the mailbox
        is full the new buffer is dropped; the caller is never blocked.

        Returns:
            True if the buffer was queued
        """
        if len(data) > self.max_notification_size:
            logger.warning("Dropping oversized notification (%d bytes)", len(data))
            self.dropped += 1
            return False

        try:
            self._queue.put_nowait(bytes(data))
        except asyncio.QueueFull:
            logger.debug("Mailbox full, dropping notification: %s", bytes(data).hex())
            self.dropped += 1
            return False

        logger.debug("RX: %s", bytes(data).hex())
        return True

    def drain(self) -> int:
        """Discard stale notifications. Returns the number discarded."""
        count = 0
        while True:
            try:
                stale = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            count += 1
            logger.debug("Cleared pending notification: %s", stale.hex())
        return count

    async def receive(self, timeout: float) -> Optional[bytes]:
        """Wait for the next notification, or None on timeout."""
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    @property
    def pending(self) -> int:
        return self._queue.qsize()
