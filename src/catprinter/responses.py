"""
Response Parsers for MXW01 Printer Replies.

Each parser takes a decoded Packet and raises a ProtocolError subclass
when the reply cannot be interpreted.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional

from .errors import ShortStatusPayloadError, UnexpectedResponseError
from .protocol import CommandId, Packet


class PrinterState(IntEnum):
    """Operational state byte of a GET_STATUS reply."""
    STANDBY = 0
    PRINTING = 1


@dataclass(frozen=True)
class PrinterStatus:
    """
    Parsed GET_STATUS reply.

    Reply layout (frame offsets; payload starts at 6):
        Offset  Field
        6       Operational state (0=standby, 1=printing)
        9       Battery level, percent
        10      Temperature, degrees C
        12      Error flag (0=OK)
        13      Error code (only meaningful when the flag is set)
    """

    connected: bool = False
    battery: int = 0
    temperature: int = 0
    status: int = 0
    error_flag: int = 0
    error_code: int = 0
    status_string: str = "Not connected"
    raw_data: bytes = field(default=b"", repr=False, compare=False)

    MIN_FRAME_SIZE = 13  # through the error flag

    @classmethod
    def parse(cls, packet: Packet) -> "PrinterStatus":
        """
        Build a status snapshot from a GET_STATUS reply.

        Fields are read at fixed offsets of the received frame, whatever
        payload length the header declares.

        Raises:
            UnexpectedResponseError: Reply is not a GET_STATUS reply
            ShortStatusPayloadError: Frame shorter than 13 bytes
        """
        if packet.command != CommandId.GET_STATUS:
            raise UnexpectedResponseError(
                f"Unexpected response command ID: 0x{packet.command:02X}"
            )

        raw = packet.raw or packet.encode()
        if len(raw) < cls.MIN_FRAME_SIZE:
            raise ShortStatusPayloadError(
                f"Status response too short: {len(raw)} bytes "
                f"(minimum {cls.MIN_FRAME_SIZE})"
            )

        status = raw[6]
        battery = raw[9]
        temperature = raw[10]
        error_flag = raw[12]
        error_code = raw[13] if error_flag and len(raw) > 13 else 0

        return cls(
            connected=True,
            battery=battery,
            temperature=temperature,
            status=status,
            error_flag=error_flag,
            error_code=error_code,
            status_string=(
                f"Battery: {battery}%, Temp: {temperature}°C, "
                f"Status: {status}, Error: {error_flag}"
            ),
            raw_data=raw,
        )

    @classmethod
    def disconnected(cls, message: str = "Disconnected") -> "PrinterStatus":
        return cls(connected=False, status_string=message)

    @property
    def state(self) -> Optional[PrinterState]:
        try:
            return PrinterState(self.status)
        except ValueError:
            return None

    @property
    def is_busy(self) -> bool:
        """Any non-standby state blocks a new print job."""
        return self.status != PrinterState.STANDBY

    @property
    def has_error(self) -> bool:
        return self.error_flag != 0

    def __str__(self) -> str:
        return self.status_string


@dataclass(frozen=True)
class BatteryLevel:
    """Parsed GET_BATTERY reply: payload[0] is the charge in percent."""

    level: int
    raw_data: bytes = field(default=b"", repr=False, compare=False)

    @classmethod
    def parse(cls, packet: Packet) -> "BatteryLevel":
        if packet.command != CommandId.GET_BATTERY:
            raise UnexpectedResponseError(
                f"Unexpected response command ID: 0x{packet.command:02X}"
            )
        if not packet.payload:
            raise UnexpectedResponseError("Battery reply has an empty payload")
        return cls(level=packet.payload[0], raw_data=packet.raw)

    def __str__(self) -> str:
        return f"Battery: {self.level}%"


@dataclass(frozen=True)
class FirmwareVersion:
    """Parsed GET_VERSION reply: ASCII version string, NUL padded."""

    version: str
    raw_data: bytes = field(default=b"", repr=False, compare=False)

    @classmethod
    def parse(cls, packet: Packet) -> "FirmwareVersion":
        if packet.command != CommandId.GET_VERSION:
            raise UnexpectedResponseError(
                f"Unexpected response command ID: 0x{packet.command:02X}"
            )
        text = packet.payload.decode("ascii", errors="replace").strip("\x00 ")
        if not text:
            text = packet.payload.hex()
        return cls(version=text, raw_data=packet.raw)

    def __str__(self) -> str:
        return f"Firmware: {self.version}"
