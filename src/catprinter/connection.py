"""
BLE Connection Handler for MXW01 Cat Printers.

Thin wrapper over a bleak client. The printer exposes three characteristics
on one vendor service: control (commands), notify (replies) and data
(raster bytes).
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from bleak import BleakClient, BleakScanner
from bleak.backends.characteristic import BleakGATTCharacteristic
from bleak.exc import BleakError

from .errors import ConnectionError, NotConnectedError

logger = logging.getLogger(__name__)

# Bleak reports connect timeouts as asyncio.TimeoutError; some backends raise OSError
BLE_ERRORS = (BleakError, asyncio.TimeoutError, OSError)


@dataclass
class PrinterInfo:
    """A printer seen during a scan.

    ``address`` is what BleakClient connects to: a MAC address on
    Linux/Windows, a CoreBluetooth UUID on macOS.
    """
    name: str
    address: str
    rssi: int

    def __str__(self) -> str:
        return f"{self.name} [{self.address}] RSSI: {self.rssi} dB"


class BLEConnection:
    """Manages the BLE link to one cat printer."""

    DEVICE_PATTERNS = ["MXW01"]

    MAIN_SERVICE = "0000ae30-0000-1000-8000-00805f9b34fb"
    CHAR_CONTROL = "0000ae01-0000-1000-8000-00805f9b34fb"
    CHAR_NOTIFY = "0000ae02-0000-1000-8000-00805f9b34fb"
    CHAR_DATA = "0000ae03-0000-1000-8000-00805f9b34fb"

    def __init__(self):
        self.client: Optional[BleakClient] = None
        self.control_char: Optional[BleakGATTCharacteristic] = None
        self.notify_char: Optional[BleakGATTCharacteristic] = None
        self.data_char: Optional[BleakGATTCharacteristic] = None
        self._notification_callback: Optional[Callable[[bytes], None]] = None
        self._disconnected_callback: Optional[Callable[[], None]] = None
        self._closing = False

    @classmethod
    async def scan(
        cls, timeout: float = 10.0, patterns: Optional[list[str]] = None
    ) -> list[PrinterInfo]:
        """Scan for cat printers, strongest signal first."""
        patterns = patterns or cls.DEVICE_PATTERNS
        printers = []
        devices = await BleakScanner.discover(timeout=timeout, return_adv=True)

        for device, adv_data in devices.values():
            name = device.name or adv_data.local_name or ""
            logger.debug("Found device: %s (%s)", name, device.address)
            if any(pattern.upper() in name.upper() for pattern in patterns):
                printers.append(PrinterInfo(
                    name=name,
                    address=device.address,
                    rssi=adv_data.rssi if adv_data.rssi is not None else -100,
                ))

        return sorted(printers, key=lambda p: p.rssi, reverse=True)

    def set_disconnected_callback(self, callback: Optional[Callable[[], None]]):
        """Set a callback invoked when the link drops unexpectedly."""
        self._disconnected_callback = callback

    def _handle_disconnect(self, client: BleakClient):
        if self._closing:
            return
        logger.info("Printer link lost")
        if self._disconnected_callback:
            self._disconnected_callback()

    async def connect(self, address: str):
        """
        Connect to a printer by address and bind its characteristics.

        Raises:
            ConnectionError: If the link or the vendor service is unavailable
        """
        self.client = BleakClient(address, disconnected_callback=self._handle_disconnect)

        try:
            await self.client.connect()
            self._bind_characteristics()
        except ConnectionError:
            await self.disconnect()
            raise
        except BLE_ERRORS as e:
            await self.disconnect()
            reason = str(e) or type(e).__name__
            raise ConnectionError(f"Failed to connect to {address}: {reason}") from e

    def _bind_characteristics(self):
        """Find control, notify and data characteristics on the main service."""
        service = self.client.services.get_service(self.MAIN_SERVICE)
        if service is None:
            raise ConnectionError("Main service not found")

        self.control_char = service.get_characteristic(self.CHAR_CONTROL)
        self.notify_char = service.get_characteristic(self.CHAR_NOTIFY)
        self.data_char = service.get_characteristic(self.CHAR_DATA)

        if not (self.control_char and self.notify_char and self.data_char):
            raise ConnectionError("Not all required characteristics found")

        logger.debug(
            "Bound characteristics: control=%s notify=%s data=%s",
            self.control_char.uuid, self.notify_char.uuid, self.data_char.uuid,
        )

    async def subscribe_notifications(self, callback: Callable[[bytes], None]):
        """Route every notify-channel buffer to ``callback``."""
        if not self.client or not self.notify_char:
            raise NotConnectedError()

        self._notification_callback = callback
        try:
            await self.client.start_notify(self.notify_char, self._handle_notification)
        except BLE_ERRORS as e:
            raise ConnectionError(f"Failed to enable notifications: {e}") from e
        logger.debug("Notifications enabled")

    def _handle_notification(self, sender: BleakGATTCharacteristic, data: bytearray):
        if self._notification_callback:
            self._notification_callback(bytes(data))

    async def disconnect(self):
        """Disconnect from the printer."""
        # An explicit disconnect is not a link loss
        self._closing = True
        try:
            await self._teardown()
        finally:
            self._closing = False

    async def _teardown(self):
        if self.client and self.client.is_connected:
            if self.notify_char:
                try:
                    await self.client.stop_notify(self.notify_char)
                except BLE_ERRORS as e:
                    logger.debug("stop_notify failed: %s", e)
            try:
                await self.client.disconnect()
            except BLE_ERRORS as e:
                logger.debug("disconnect failed: %s", e)
        self.client = None
        self.control_char = None
        self.notify_char = None
        self.data_char = None

    async def _write(self, char: Optional[BleakGATTCharacteristic], data: bytes, label: str):
        if not self.client or not char:
            raise NotConnectedError()
        try:
            await self.client.write_gatt_char(char, data, response=False)
        except BLE_ERRORS as e:
            raise ConnectionError(f"{label} write failed: {e}") from e

    async def write_control(self, data: bytes):
        """Write a command packet to the control characteristic."""
        logger.debug("TX: %s", data.hex())
        await self._write(self.control_char, data, "Control")

    async def write_data(self, data: bytes):
        """Write one raster chunk to the data characteristic."""
        await self._write(self.data_char, data, "Data")

    @property
    def is_connected(self) -> bool:
        """Check if currently connected."""
        return self.client is not None and self.client.is_connected
