"""
MXW01 Cat Printer Protocol Implementation.

This module implements packet encoding/decoding for the control channel.
Every command and every reply notification share one framing.

Packet Structure (all multi-byte integers little-endian):
    Preamble:  0x22 0x21 (constant)
    Command:   command id (see CommandId)
    Reserved:  0x00
    Length:    payload length, uint16
    Payload:   command-specific bytes
    Checksum:  CRC-8/DALLAS-MAXIM over the payload only
    Footer:    0xFF (constant)
"""

import struct
from dataclasses import dataclass, field
from enum import IntEnum

from .errors import (
    BadPreambleError,
    ChecksumMismatchError,
    FrameTooShortError,
    LengthMismatchError,
)


def _build_crc8_table(poly: int = 0x07) -> list[int]:
    table = []
    for byte in range(256):
        crc = byte
        for _ in range(8):
            if crc & 0x80:
                crc = ((crc << 1) ^ poly) & 0xFF
            else:
                crc = (crc << 1) & 0xFF
        table.append(crc)
    return table


# CRC-8/DALLAS-MAXIM: poly 0x07, init 0x00, no reflection, no final XOR
CRC8_TABLE = _build_crc8_table()


def crc8(data: bytes) -> int:
    """Calculate CRC8 checksum."""
    crc = 0
    for byte in data:
        crc = CRC8_TABLE[(crc ^ byte) & 0xFF]
    return crc


class CommandId(IntEnum):
    """Command identifiers. Replies echo the id of the request."""
    # Status / queries
    GET_STATUS = 0xA1
    GET_BATTERY = 0xAB
    GET_VERSION = 0xB1

    # Configuration
    SET_INTENSITY = 0xA2

    # Print Job Control
    PRINT_REQUEST = 0xA9
    FLUSH = 0xAD
    PRINT_COMPLETE = 0xAA  # notification answering FLUSH
    CANCEL_PRINT = 0xAC


@dataclass(frozen=True)
class Packet:
    """Represents a protocol packet."""
    command: int
    payload: bytes = b""
    raw: bytes = field(default=b"", repr=False, compare=False)

    PREAMBLE = bytes([0x22, 0x21])
    FOOTER = 0xFF
    RESERVED = 0x00

    HEADER_SIZE = 6
    MIN_FRAME_SIZE = 9  # header + one payload byte + checksum + footer
    MAX_PAYLOAD = 0xFFFF

    def encode(self) -> bytes:
        """Encode packet to bytes for transmission."""
        if len(self.payload) > self.MAX_PAYLOAD:
            raise ValueError(
                f"Payload too long: {len(self.payload)} bytes (max {self.MAX_PAYLOAD})"
            )
        header = self.PREAMBLE + struct.pack("<BBH", self.command, self.RESERVED, len(self.payload))
        return header + bytes(self.payload) + bytes([crc8(self.payload), self.FOOTER])

    @classmethod
    def decode(cls, data: bytes, verify_checksum: bool = False) -> "Packet":
        """
        Decode bytes into a Packet object.

        The checksum is not verified unless ``verify_checksum`` is set;
        with it, the checksum byte and footer must both be present and valid.

        Raises:
            FrameTooShortError: Buffer shorter than the minimum frame
            BadPreambleError: Preamble bytes do not match
            LengthMismatchError: Declared length runs past the buffer
            ChecksumMismatchError: Strict mode only
        """
        data = bytes(data)
        if len(data) < cls.MIN_FRAME_SIZE:
            raise FrameTooShortError(
                f"Frame too short: {len(data)} bytes (minimum {cls.MIN_FRAME_SIZE})"
            )

        if data[:2] != cls.PREAMBLE:
            raise BadPreambleError(
                f"Invalid preamble: got {data[:2].hex()}, expected {cls.PREAMBLE.hex()}"
            )

        command, _reserved, length = struct.unpack_from("<BBH", data, 2)
        end = cls.HEADER_SIZE + length
        if end > len(data):
            raise LengthMismatchError(
                f"Declared payload length {length} exceeds frame: "
                f"got {len(data)} bytes, need {end}"
            )

        payload = data[cls.HEADER_SIZE:end]

        if verify_checksum:
            if len(data) < end + 2:
                raise ChecksumMismatchError("Frame truncated before checksum/footer")
            expected = crc8(payload)
            if data[end] != expected:
                raise ChecksumMismatchError(
                    f"Checksum mismatch: got 0x{data[end]:02X}, expected 0x{expected:02X}"
                )
            if data[end + 1] != cls.FOOTER:
                raise ChecksumMismatchError(f"Invalid footer: 0x{data[end + 1]:02X}")

        return cls(command=command, payload=payload, raw=data)

    def __repr__(self) -> str:
        return f"Packet(cmd=0x{self.command:02X}, payload={self.payload.hex()})"


def build_print_request(rows: int, mode: int = 0x00) -> bytes:
    """Payload for PRINT_REQUEST: row count (LE16), fixed 0x30, bit-depth mode."""
    if not 0 < rows <= 0xFFFF:
        raise ValueError(f"Row count out of range: {rows}")
    return struct.pack("<HBB", rows, 0x30, mode)
