"""
Exception hierarchy for the cat printer driver.

Every error raised by the protocol engine derives from PrinterError so
callers (CLI, HTTP front-end) can catch one type and map the subclasses
to their own error reporting.
"""

from typing import Optional


# --- Exception Classes ---


class PrinterError(Exception):
    """Base exception for all printer errors."""

    pass


class ConnectionError(PrinterError):
    """Error connecting to or communicating with printer."""

    pass


class NotConnectedError(ConnectionError):
    """Operation attempted while the session is disconnected."""

    def __init__(self, message: str = "Not connected to printer"):
        super().__init__(message)


# --- Framing ---


class ProtocolError(PrinterError):
    """Reply from the printer violates the wire protocol."""

    pass


class DecodeError(ProtocolError):
    """Inbound buffer could not be decoded as a packet."""

    pass


class FrameTooShortError(DecodeError):
    pass


class BadPreambleError(DecodeError):
    pass


class LengthMismatchError(DecodeError):
    pass


class ChecksumMismatchError(DecodeError):
    pass


class UnexpectedResponseError(ProtocolError):
    """Reply was framed correctly but is not the one the exchange expected."""

    pass


class ShortStatusPayloadError(UnexpectedResponseError):
    pass


class ShortPrintResponseError(UnexpectedResponseError):
    pass


class UnexpectedCompletionResponseError(UnexpectedResponseError):
    pass


# --- Timeouts ---


class ResponseTimeoutError(PrinterError):
    """No reply arrived within the exchange's timeout window."""

    description = "response"

    def __init__(self, timeout: float, message: Optional[str] = None):
        self.timeout = timeout
        super().__init__(message or f"Timed out after {timeout:g}s waiting for {self.description}")


class StatusTimeoutError(ResponseTimeoutError):
    description = "status response"


class PrintRequestTimeoutError(ResponseTimeoutError):
    description = "print request response"


class PrintCompletionTimeoutError(ResponseTimeoutError):
    description = "print completion"


# --- Domain ---


class PrintError(PrinterError):
    """Error during print operation."""

    pass


class PrinterBusyError(PrintError):
    """Printer reports it is already printing."""

    def __init__(self, status: int):
        self.status = status
        super().__init__(f"Printer is busy (status {status}), cannot start new print")


class PrinterFaultError(PrintError):
    """Printer status carries a nonzero error flag."""

    def __init__(self, code: int):
        self.code = code
        super().__init__(f"Printer reported error code {code}")


class PrintRejectedError(PrintError):
    """Printer answered the print request with a nonzero code."""

    def __init__(self, code: int):
        self.code = code
        super().__init__(f"Print request rejected, response code: 0x{code:02X}")


class ChunkWriteFailedError(PrintError):
    """A data channel write failed mid-transfer."""

    def __init__(self, index: int, total: int):
        self.index = index
        self.total = total
        super().__init__(f"Write failed at chunk {index + 1}/{total}")


class IntensityOutOfRangeError(PrinterError, ValueError):
    def __init__(self, value: int):
        self.value = value
        super().__init__(f"Intensity must be between 0 and 255, got {value}")


class ImageError(PrinterError):
    """Error processing image for printing."""

    pass
