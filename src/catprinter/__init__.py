"""MXW01 Cat Printer Driver for Linux/macOS."""

__version__ = "0.1.0"

from .errors import (
    PrinterError,
    ConnectionError,
    NotConnectedError,
    ProtocolError,
    DecodeError,
    UnexpectedResponseError,
    ResponseTimeoutError,
    PrintError,
    PrinterBusyError,
    PrinterFaultError,
    PrintRejectedError,
    ChunkWriteFailedError,
    IntensityOutOfRangeError,
    ImageError,
)
from .config import SessionConfig
from .protocol import CommandId, Packet, crc8
from .responses import PrinterState, PrinterStatus, BatteryLevel, FirmwareVersion
from .connection import BLEConnection, PrinterInfo
from .image import ImageProcessor, ImageSizeError, MAX_IMAGE_DIMENSION, MAX_IMAGE_PIXELS
from .printer import CatPrinter, SessionState

__all__ = [
    "CatPrinter",
    "SessionState",
    "SessionConfig",
    "PrinterError",
    "ConnectionError",
    "NotConnectedError",
    "ProtocolError",
    "DecodeError",
    "UnexpectedResponseError",
    "ResponseTimeoutError",
    "PrintError",
    "PrinterBusyError",
    "PrinterFaultError",
    "PrintRejectedError",
    "ChunkWriteFailedError",
    "IntensityOutOfRangeError",
    "ImageError",
    "ImageSizeError",
    "MAX_IMAGE_DIMENSION",
    "MAX_IMAGE_PIXELS",
    "CommandId",
    "Packet",
    "crc8",
    "PrinterState",
    "PrinterStatus",
    "BatteryLevel",
    "FirmwareVersion",
    "BLEConnection",
    "PrinterInfo",
    "ImageProcessor",
]
