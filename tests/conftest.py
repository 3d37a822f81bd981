"""
Pytest configuration for cat printer tests.

Provides a scripted in-memory transport, fixtures, and command-line
options for hardware tests.
"""

import asyncio

import pytest
import pytest_asyncio

from catprinter import CatPrinter, SessionConfig
from catprinter.errors import ConnectionError, NotConnectedError
from catprinter.protocol import CommandId, Packet


def frame(command: int, payload: bytes = b"\x00") -> bytes:
    """Encode a reply frame the way the printer sends it."""
    return Packet(command, payload).encode()


def status_frame(
    state: int = 0,
    battery: int = 80,
    temperature: int = 25,
    error_flag: int = 0,
    error_code: int = 0,
) -> bytes:
    """A GET_STATUS reply carrying every status field."""
    payload = bytes([state, 0, 0, battery, temperature, 0, error_flag, error_code])
    return frame(CommandId.GET_STATUS, payload)


class FakeConnection:
    """
    In-memory stand-in for BLEConnection.

    Replies registered with ``reply()`` are pushed through the notification
    callback as soon as the matching command is written, like the printer
    answering on the notify characteristic.
    """

    def __init__(self):
        self.connected = False
        self.address = None
        self.control_writes: list[bytes] = []
        self.data_writes: list[bytes] = []
        self.data_attempts = 0
        self.fail_data_at: set[int] = set()
        self.connect_failures = 0
        self.connect_attempts = 0
        self.connect_delay = 0.0
        self.replies: dict[int, list[bytes]] = {}
        self._notification_callback = None
        self._disconnected_callback = None

    def reply(self, command: int, *frames: bytes):
        self.replies[command] = list(frames)

    def notify(self, data: bytes):
        self._notification_callback(data)

    def drop_link(self):
        self.connected = False
        if self._disconnected_callback:
            self._disconnected_callback()

    @property
    def commands(self) -> list[int]:
        return [packet[2] for packet in self.control_writes]

    def set_disconnected_callback(self, callback):
        self._disconnected_callback = callback

    async def connect(self, address: str):
        self.connect_attempts += 1
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.connect_failures:
            self.connect_failures -= 1
            raise ConnectionError(f"Failed to connect to {address}: device not found")
        self.connected = True
        self.address = address

    async def disconnect(self):
        self.connected = False

    async def subscribe_notifications(self, callback):
        self._notification_callback = callback

    async def write_control(self, data: bytes):
        if not self.connected:
            raise NotConnectedError()
        self.control_writes.append(bytes(data))
        for reply in self.replies.get(data[2], []):
            self._notification_callback(reply)

    async def write_data(self, data: bytes):
        index = self.data_attempts
        self.data_attempts += 1
        if index in self.fail_data_at:
            raise ConnectionError("Data write failed: link busy")
        self.data_writes.append(bytes(data))

    @property
    def is_connected(self) -> bool:
        return self.connected


@pytest.fixture
def fake_connection():
    """A transport that answers like an idle, healthy printer."""
    conn = FakeConnection()
    conn.reply(CommandId.GET_STATUS, status_frame())
    conn.reply(CommandId.PRINT_REQUEST, frame(CommandId.PRINT_REQUEST, b"\x00"))
    conn.reply(CommandId.FLUSH, frame(CommandId.PRINT_COMPLETE, b"\x00"))
    return conn


@pytest.fixture
def fast_config():
    """Short timeouts and no pacing so tests run quickly."""
    return SessionConfig(
        status_timeout=0.05,
        print_request_timeout=0.05,
        completion_timeout=0.05,
        query_timeout=0.05,
        chunk_delay=0,
    )


@pytest_asyncio.fixture
async def session(fake_connection, fast_config):
    """A CatPrinter connected over the fake transport."""
    printer = CatPrinter(connection=fake_connection, config=fast_config)
    await printer.connect("AA:BB:CC:DD:EE:FF")
    yield printer
    await printer.disconnect()


def pytest_addoption(parser):
    """Add command-line options for hardware tests."""
    parser.addoption(
        "--address",
        action="store",
        default=None,
        help="Bluetooth address of the printer for hardware tests",
    )


@pytest.fixture
def printer_address(request):
    """Get the printer address from command line."""
    address = request.config.getoption("--address")
    if address is None:
        pytest.skip("No printer address provided (use --address=XX:XX:XX:XX:XX:XX)")
    return address


@pytest_asyncio.fixture
async def connected_printer(printer_address):
    """Provide a connected printer instance."""
    printer = CatPrinter()
    try:
        await printer.connect(printer_address, retries=2, retry_delay=1.0)
    except ConnectionError:
        pytest.skip(f"Could not connect to printer at {printer_address}")

    yield printer

    await printer.disconnect()
