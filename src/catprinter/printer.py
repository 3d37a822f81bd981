"""
High-Level Cat Printer Interface.

CatPrinter owns one BLE session: connection state, the notification
mailbox and the last known PrinterStatus. Every control exchange follows
the same pattern: clear stale notifications, send the command, await the
reply with a timeout, decode it and validate it.
"""

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import Optional, Type, Union

from PIL import Image

from .config import SessionConfig
from .connection import BLEConnection, PrinterInfo
from .errors import (
    ConnectionError,
    ImageError,
    IntensityOutOfRangeError,
    NotConnectedError,
    PrinterBusyError,
    PrinterFaultError,
    PrintCompletionTimeoutError,
    PrintRejectedError,
    PrintRequestTimeoutError,
    ResponseTimeoutError,
    ShortPrintResponseError,
    StatusTimeoutError,
    UnexpectedCompletionResponseError,
    UnexpectedResponseError,
)
from .image import BYTES_PER_ROW, ImageProcessor
from .notifications import NotificationRouter
from .protocol import CommandId, Packet, build_print_request
from .responses import BatteryLevel, FirmwareVersion, PrinterStatus
from .transfer import ImageTransfer

logger = logging.getLogger(__name__)

MAX_ROWS = 0xFFFF


class SessionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


class CatPrinter:
    """
    High-level interface to an MXW01 cat printer.

    Operations are serialized by an internal lock: the protocol supports a
    single outstanding request at a time.
    """

    def __init__(self, connection=None, config: Optional[SessionConfig] = None):
        """
        Initialize printer interface.

        Args:
            connection: Transport providing connect/disconnect,
                subscribe_notifications, write_control and write_data
                (default: a new BLEConnection)
            config: Session timeouts and transfer options
        """
        self.config = config or SessionConfig()
        self.connection = connection if connection is not None else BLEConnection()
        self.connection.set_disconnected_callback(self._on_link_lost)
        self.notifications = NotificationRouter(maxsize=self.config.mailbox_size)
        self.transfer = ImageTransfer(self.connection, self.config)
        self.address: Optional[str] = None

        self._state = SessionState.DISCONNECTED
        self._status = PrinterStatus.disconnected("Not connected")
        self._lock = asyncio.Lock()

    # --- Lifecycle ---

    @classmethod
    async def scan(cls, timeout: float = 10.0) -> list[PrinterInfo]:
        """Scan for available cat printers."""
        return await BLEConnection.scan(timeout)

    async def connect(
        self,
        address: Optional[str] = None,
        retries: int = 0,
        retry_delay: float = 1.0,
    ):
        """
        Connect to a printer.

        Args:
            address: Bluetooth address; scans for the configured device
                name when omitted
            retries: Number of connection retries (default 0)
            retry_delay: Delay between retries in seconds (default 1.0)

        Raises:
            ConnectionError: If connection fails after all retries
        """
        if self.is_connected:
            return

        async with self._lock:
            # Another caller may have connected while we waited
            if self.is_connected:
                return
            await self._connect(address, retries, retry_delay)

    async def _connect(self, address: Optional[str], retries: int, retry_delay: float):
        if address is None:
            address = await self._find_printer()

        last_error: Optional[Exception] = None
        attempts = retries + 1

        for attempt in range(attempts):
            if attempt > 0:
                logger.info("Connection retry %d/%d...", attempt, retries)
                await asyncio.sleep(retry_delay)

            logger.info("Connecting to printer at %s...", address)
            try:
                await self.connection.connect(address)
                await self.connection.subscribe_notifications(self.notifications.deliver)
            except ConnectionError as e:
                last_error = e
                logger.info("Connection failed (attempt %d/%d): %s", attempt + 1, attempts, e)
                continue

            self.notifications.drain()
            self.address = address
            self._state = SessionState.CONNECTED
            self._status = PrinterStatus(connected=True, status_string="Connected")
            logger.info("Connected to cat printer at %s", address)
            return

        raise ConnectionError(
            f"Failed to connect to {address} after {attempts} attempt(s): {last_error}"
        ) from last_error

    async def _find_printer(self) -> str:
        logger.info("Scanning for %s...", self.config.device_name)
        printers = await BLEConnection.scan(
            self.config.scan_timeout, patterns=[self.config.device_name]
        )
        if not printers:
            raise ConnectionError("Printer not found within timeout")
        return printers[0].address

    async def disconnect(self):
        """Disconnect from the printer."""
        async with self._lock:
            if self._state is SessionState.DISCONNECTED:
                return
            try:
                await self.connection.disconnect()
            finally:
                self._mark_disconnected("Disconnected")
                logger.info("Disconnected")

    def _on_link_lost(self):
        self._mark_disconnected("Connection lost")

    def _mark_disconnected(self, message: str):
        self._state = SessionState.DISCONNECTED
        self._status = PrinterStatus.disconnected(message)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        """Check if currently connected to a printer."""
        return self._state is SessionState.CONNECTED

    @property
    def last_status(self) -> PrinterStatus:
        """Most recent status snapshot (not refreshed)."""
        return self._status

    # --- Exchanges ---

    def _require_connected(self):
        if not self.is_connected:
            raise NotConnectedError()

    async def _send(self, command: CommandId, payload: bytes):
        """Write one command packet to the control channel."""
        self._require_connected()
        packet = Packet(command, payload).encode()
        try:
            await self.connection.write_control(packet)
        except ConnectionError:
            if not self.connection.is_connected:
                self._mark_disconnected("Connection lost")
            raise

    async def _exchange(
        self,
        command: CommandId,
        payload: bytes,
        timeout: float,
        timeout_error: Type[ResponseTimeoutError] = ResponseTimeoutError,
    ) -> Packet:
        """Send a command and return the decoded reply."""
        self._require_connected()

        stale = self.notifications.drain()
        if stale:
            logger.debug("Discarded %d stale notification(s) before 0x%02X", stale, command)

        await self._send(command, payload)

        data = await self.notifications.receive(timeout)
        if data is None:
            raise timeout_error(timeout)

        return Packet.decode(data, verify_checksum=self.config.verify_checksum)

    # --- Status ---

    async def get_status(self) -> PrinterStatus:
        """
        Query and store the printer status.

        Raises:
            NotConnectedError: Session is disconnected
            StatusTimeoutError: No reply within ``status_timeout``
            ShortStatusPayloadError: Reply too short to parse
        """
        async with self._lock:
            return await self._refresh_status()

    async def _refresh_status(self) -> PrinterStatus:
        logger.debug("Updating printer status...")
        packet = await self._exchange(
            CommandId.GET_STATUS, b"\x00",
            self.config.status_timeout, StatusTimeoutError,
        )
        status = PrinterStatus.parse(packet)
        self._status = status
        logger.info("Printer status: %s", status)
        return status

    async def get_battery(self) -> BatteryLevel:
        """Query the battery level."""
        async with self._lock:
            packet = await self._exchange(
                CommandId.GET_BATTERY, b"\x00", self.config.query_timeout
            )
            return BatteryLevel.parse(packet)

    async def get_version(self) -> FirmwareVersion:
        """Query the firmware version."""
        async with self._lock:
            packet = await self._exchange(
                CommandId.GET_VERSION, b"\x00", self.config.query_timeout
            )
            return FirmwareVersion.parse(packet)

    # --- Fire-and-forget commands ---

    async def set_intensity(self, value: int):
        """
        Set print intensity (0-255).

        Unlike every other command, SET_INTENSITY gets no reply from the
        printer, so nothing is awaited after the write.
        """
        if not isinstance(value, int) or not 0 <= value <= 255:
            raise IntensityOutOfRangeError(value)
        async with self._lock:
            await self._set_intensity(value)

    async def _set_intensity(self, value: int):
        logger.debug("Setting print intensity to %d (0x%02X)", value, value)
        await self._send(CommandId.SET_INTENSITY, bytes([value]))

    async def cancel_print(self):
        """Ask the printer to abandon the current job. No reply is awaited."""
        async with self._lock:
            await self._send(CommandId.CANCEL_PRINT, b"\x00")

    # --- Printing ---

    async def print_raster(self, raster: bytes, intensity: Optional[int] = None):
        """
        Print a packed 1bpp raster (48 bytes per 384-pixel row).

        Args:
            raster: Row-major raster, black pixels as 1 bits
            intensity: Optional intensity (0-255) sent before the job

        Raises:
            ImageError: Raster is empty, misaligned or too tall
            PrinterFaultError: Printer status carries an error flag
            PrinterBusyError: Printer is already printing
            PrintRequestTimeoutError: No reply to the print request
            ShortPrintResponseError: Print reply has no payload
            PrintRejectedError: Printer refused the job
            ChunkWriteFailedError: Data write failed (strict transfer)
            PrintCompletionTimeoutError: No completion notification
        """
        rows = self._row_count(raster)
        if intensity is not None and not (isinstance(intensity, int) and 0 <= intensity <= 255):
            raise IntensityOutOfRangeError(intensity)

        async with self._lock:
            self._require_connected()
            status = await self._refresh_status()
            if status.has_error:
                raise PrinterFaultError(status.error_code or status.error_flag)
            if status.is_busy:
                raise PrinterBusyError(status.status)

            if intensity is not None:
                await self._set_intensity(intensity)

            packet = await self._exchange(
                CommandId.PRINT_REQUEST, build_print_request(rows),
                self.config.print_request_timeout, PrintRequestTimeoutError,
            )
            if packet.command != CommandId.PRINT_REQUEST:
                raise UnexpectedResponseError(
                    f"Unexpected response command: 0x{packet.command:02X}"
                )
            if not packet.payload:
                raise ShortPrintResponseError(
                    f"Print response too short: {len(packet.raw)} bytes"
                )
            if packet.payload[0] != 0x00:
                raise PrintRejectedError(packet.payload[0])

            logger.info("Print request accepted (%d rows)", rows)
            await self.transfer.transfer(raster)
            await self._flush_and_await_completion()

    @staticmethod
    def _row_count(raster: bytes) -> int:
        if not raster:
            raise ImageError("Raster is empty")
        if len(raster) % BYTES_PER_ROW:
            raise ImageError(
                f"Raster length {len(raster)} is not a multiple of {BYTES_PER_ROW} bytes"
            )
        rows = len(raster) // BYTES_PER_ROW
        if rows > MAX_ROWS:
            raise ImageError(f"Raster has {rows} rows (max {MAX_ROWS})")
        return rows

    async def flush_and_await_completion(self):
        """Send FLUSH and wait for the PRINT_COMPLETE notification."""
        async with self._lock:
            await self._flush_and_await_completion()

    async def _flush_and_await_completion(self):
        logger.debug("Sending flush command, waiting for print completion...")
        packet = await self._exchange(
            CommandId.FLUSH, b"\x00",
            self.config.completion_timeout, PrintCompletionTimeoutError,
        )
        if packet.command != CommandId.PRINT_COMPLETE:
            raise UnexpectedCompletionResponseError(
                f"Unexpected response after flush: {packet.raw.hex()}"
            )
        logger.info("Print completed successfully")

    def _load_image(self, image: Union[str, Path, bytes, Image.Image]) -> Image.Image:
        """
        Load an image for printing.

        Raises:
            ImageError: If image cannot be loaded or is invalid
        """
        if isinstance(image, (str, Path)) and not Path(image).exists():
            raise ImageError(f"Image file not found: {image}")
        try:
            return ImageProcessor().load(image)
        except ImageError:
            raise
        except (OSError, ValueError) as e:
            raise ImageError(f"Failed to load image: {e}") from e

    async def print_image(
        self,
        image: Union[str, Path, bytes, Image.Image],
        intensity: Optional[int] = None,
        rotate: bool = False,
    ):
        """
        Convert an image to a 384-pixel-wide raster and print it.

        With ``rotate`` the image is turned a quarter turn first, so wide
        images print lengthwise along the paper.
        """
        img = self._load_image(image)
        processor = ImageProcessor()
        raster = processor.to_bytes(processor.prepare(img, rotate=rotate))
        logger.debug("Image converted: %d rows", len(raster) // processor.bytes_per_row)
        await self.print_raster(raster, intensity=intensity)

    async def print_test_pattern(self):
        """Print the test card: 10 rows of alternating black/white blocks."""
        line_count = 10
        raster = bytearray(BYTES_PER_ROW * line_count)
        for line in range(line_count):
            for byte_idx in range(BYTES_PER_ROW):
                if byte_idx % 2 == line % 2:
                    raster[line * BYTES_PER_ROW + byte_idx] = 0xFF
        await self.print_raster(bytes(raster), intensity=self.config.default_intensity)

    async def send_raw(
        self, command: int, payload: bytes, timeout: float = 2.0
    ) -> Optional[Packet]:
        """
        Send an arbitrary command and wait for a reply.

        Useful for protocol testing. Returns None when nothing arrives.
        """
        async with self._lock:
            try:
                return await self._exchange(command, payload, timeout)
            except ResponseTimeoutError:
                return None
