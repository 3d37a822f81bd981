"""Tests for the notification mailbox."""

import pytest

from catprinter.notifications import NotificationRouter


class TestDeliver:
    """Test enqueueing notifications."""

    def test_default_capacity(self):
        """Mailbox holds ten buffers by default."""
        assert NotificationRouter().maxsize == 10

    def test_deliver_queues_buffer(self):
        """A delivered buffer is pending."""
        router = NotificationRouter()
        assert router.deliver(b"\x22\x21") is True
        assert router.pending == 1

    def test_full_mailbox_drops_new_buffer(self):
        """Overflow keeps the queued buffers and drops the newcomer."""
        router = NotificationRouter(maxsize=2)
        router.deliver(b"\x01")
        router.deliver(b"\x02")
        assert router.deliver(b"\x03") is False
        assert router.pending == 2
        assert router.dropped == 1

    def test_oversized_buffer_dropped(self):
        """Buffers over the size limit never reach the mailbox."""
        router = NotificationRouter(max_notification_size=16)
        assert router.deliver(bytes(17)) is False
        assert router.pending == 0

    def test_buffer_at_size_limit_accepted(self):
        """Buffers exactly at the limit are kept."""
        router = NotificationRouter(max_notification_size=16)
        assert router.deliver(bytes(16)) is True

    def test_bytearray_is_copied(self):
        """The caller may reuse its buffer after delivery."""
        router = NotificationRouter()
        buf = bytearray(b"\x01\x02")
        router.deliver(buf)
        buf[0] = 0xFF
        assert router._queue.get_nowait() == b"\x01\x02"


class TestDrain:
    """Test discarding stale notifications."""

    def test_drain_empties_mailbox(self):
        """drain() discards everything and reports the count."""
        router = NotificationRouter()
        for i in range(3):
            router.deliver(bytes([i]))
        assert router.drain() == 3
        assert router.pending == 0

    def test_drain_empty_mailbox(self):
        """Draining an empty mailbox is a no-op."""
        assert NotificationRouter().drain() == 0


class TestReceive:
    """Test awaiting notifications."""

    @pytest.mark.asyncio
    async def test_receive_returns_oldest_first(self):
        """Buffers come out in arrival order."""
        router = NotificationRouter()
        router.deliver(b"\x01")
        router.deliver(b"\x02")
        assert await router.receive(0.1) == b"\x01"
        assert await router.receive(0.1) == b"\x02"

    @pytest.mark.asyncio
    async def test_receive_times_out_with_none(self):
        """No notification within the window yields None."""
        router = NotificationRouter()
        assert await router.receive(0.01) is None

    @pytest.mark.asyncio
    async def test_receive_after_drain_waits_for_new_buffer(self):
        """Stale buffers are not returned after a drain."""
        router = NotificationRouter()
        router.deliver(b"stale")
        router.drain()
        assert await router.receive(0.01) is None
