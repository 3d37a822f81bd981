"""Session tuning knobs for the cat printer driver."""

from dataclasses import dataclass


@dataclass(frozen=True)
class SessionConfig:
    """
    Timeouts, transfer pacing and strictness options for a CatPrinter.

    Attributes:
        device_name: Advertised BLE name to look for when scanning
        scan_timeout: Seconds to scan when no address is given
        status_timeout: Seconds to wait for a GET_STATUS reply
        print_request_timeout: Seconds to wait for a PRINT_REQUEST reply
        completion_timeout: Seconds to wait for PRINT_COMPLETE after FLUSH
            (covers the physical print time)
        query_timeout: Seconds to wait for battery/version replies
        chunk_size: Bytes per data channel write
        chunk_delay: Seconds to sleep between data writes (the data
            channel has no write acknowledgment)
        min_transfer_bytes: Rasters are zero-padded up to this length
        mailbox_size: Notification mailbox capacity
        verify_checksum: Reject replies with a bad checksum or footer
        abort_on_chunk_error: Abort transfer on a failed data write
            instead of logging it and carrying on
        default_intensity: Intensity used for the built-in test print
    """

    device_name: str = "MXW01"
    scan_timeout: float = 10.0

    status_timeout: float = 5.0
    print_request_timeout: float = 5.0
    completion_timeout: float = 30.0
    query_timeout: float = 5.0

    chunk_size: int = 20
    chunk_delay: float = 0.010
    min_transfer_bytes: int = 4320

    mailbox_size: int = 10
    verify_checksum: bool = False
    abort_on_chunk_error: bool = True

    default_intensity: int = 93
