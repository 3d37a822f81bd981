"""
Raster streaming over the data channel.

The data characteristic is written without response, so there is no
backpressure: chunks are small and paced with a fixed delay.
"""

import asyncio
import logging
from typing import Iterator, Optional

from .config import SessionConfig
from .errors import ChunkWriteFailedError, ConnectionError

logger = logging.getLogger(__name__)


class ImageTransfer:
    """Pads, chunks and sends a 1bpp raster to the printer."""

    PROGRESS_EVERY = 10  # chunks between progress log lines

    def __init__(self, connection, config: Optional[SessionConfig] = None):
        self.connection = connection
        self.config = config or SessionConfig()

    def pad(self, raster: bytes) -> bytes:
        """Right-pad with zero bytes up to the minimum feed length."""
        shortfall = self.config.min_transfer_bytes - len(raster)
        if shortfall > 0:
            logger.debug("Padded image data to %d bytes", self.config.min_transfer_bytes)
            return bytes(raster) + bytes(shortfall)
        return bytes(raster)

    def chunks(self, data: bytes) -> Iterator[bytes]:
        size = self.config.chunk_size
        for i in range(0, len(data), size):
            yield data[i:i + size]

    def chunk_count(self, length: int) -> int:
        return (length + self.config.chunk_size - 1) // self.config.chunk_size

    async def transfer(self, raster: bytes) -> int:
        """
        Send a raster over the data channel.

        Args:
            raster: Packed 1bpp rows

        Returns:
            Number of chunks sent

        Raises:
            ChunkWriteFailedError: A chunk write failed and
                ``abort_on_chunk_error`` is set
        """
        data = self.pad(raster)
        total = self.chunk_count(len(data))
        delay = self.config.chunk_delay
        failed = 0

        logger.debug("Starting image data transfer: %d bytes, %d chunks", len(data), total)

        for index, chunk in enumerate(self.chunks(data)):
            try:
                await self.connection.write_data(chunk)
            except ConnectionError as e:
                if self.config.abort_on_chunk_error:
                    raise ChunkWriteFailedError(index, total) from e
                failed += 1
                logger.warning("Failed to send data chunk %d/%d: %s", index + 1, total, e)

            if index % self.PROGRESS_EVERY == 0:
                sent = min((index + 1) * self.config.chunk_size, len(data))
                logger.debug(
                    "Sent %d/%d bytes (%.1f%%)", sent, len(data), sent / len(data) * 100
                )

            # Small delay between chunks to avoid overflowing the printer buffer
            if delay > 0 and index + 1 < total:
                await asyncio.sleep(delay)

        if failed:
            logger.warning("Transfer finished with %d failed chunk(s)", failed)
        else:
            logger.debug("Image data transfer complete")
        return total
