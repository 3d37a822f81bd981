"""Tests for BLE connection handling."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from bleak.exc import BleakError

from catprinter.connection import BLEConnection, PrinterInfo
from catprinter.errors import ConnectionError, NotConnectedError
from catprinter.printer import CatPrinter


def make_client(service_present=True, missing_char=None):
    """A BleakClient double exposing the printer service."""
    client = MagicMock()
    client.is_connected = True
    client.connect = AsyncMock()
    client.disconnect = AsyncMock()
    client.start_notify = AsyncMock()
    client.stop_notify = AsyncMock()
    client.write_gatt_char = AsyncMock()

    chars = {
        uuid: MagicMock(uuid=uuid)
        for uuid in (BLEConnection.CHAR_CONTROL, BLEConnection.CHAR_NOTIFY, BLEConnection.CHAR_DATA)
    }
    if missing_char:
        chars[missing_char] = None

    service = MagicMock()
    service.get_characteristic.side_effect = chars.get
    client.services.get_service.return_value = service if service_present else None
    return client, chars


@pytest.fixture
def bleak_client(mocker):
    client, chars = make_client()
    mocker.patch("catprinter.connection.BleakClient", return_value=client)
    return client, chars


class TestPrinterInfo:
    """Test discovered printer info."""

    def test_str(self):
        """Printable form shows name, address and signal."""
        info = PrinterInfo(name="MXW01", address="AA:BB:CC:DD:EE:FF", rssi=-48)
        assert str(info) == "MXW01 [AA:BB:CC:DD:EE:FF] RSSI: -48 dB"


class TestScan:
    """Test device discovery."""

    @pytest.mark.asyncio
    async def test_scan_filters_and_sorts(self, mocker):
        """Only MXW01 devices are returned, strongest first."""
        weak = MagicMock(address="11:11:11:11:11:11")
        weak.name = "MXW01"
        strong = MagicMock(address="22:22:22:22:22:22")
        strong.name = "mxw01-b"
        other = MagicMock(address="33:33:33:33:33:33")
        other.name = "Headphones"
        discovered = {
            "a": (weak, MagicMock(local_name=None, rssi=-80)),
            "b": (strong, MagicMock(local_name=None, rssi=-40)),
            "c": (other, MagicMock(local_name=None, rssi=-30)),
        }
        mocker.patch(
            "catprinter.connection.BleakScanner.discover",
            new=AsyncMock(return_value=discovered),
        )

        printers = await BLEConnection.scan(timeout=1)
        assert [p.address for p in printers] == ["22:22:22:22:22:22", "11:11:11:11:11:11"]


class TestConnect:
    """Test connecting and characteristic binding."""

    @pytest.mark.asyncio
    async def test_connect_binds_characteristics(self, bleak_client):
        """All three characteristics are found on the main service."""
        client, chars = bleak_client
        conn = BLEConnection()
        await conn.connect("AA:BB:CC:DD:EE:FF")
        client.services.get_service.assert_called_once_with(BLEConnection.MAIN_SERVICE)
        assert conn.control_char is chars[BLEConnection.CHAR_CONTROL]
        assert conn.notify_char is chars[BLEConnection.CHAR_NOTIFY]
        assert conn.data_char is chars[BLEConnection.CHAR_DATA]
        assert conn.is_connected

    @pytest.mark.asyncio
    async def test_missing_service(self, mocker):
        """A device without the printer service is refused."""
        client, _ = make_client(service_present=False)
        mocker.patch("catprinter.connection.BleakClient", return_value=client)
        conn = BLEConnection()
        with pytest.raises(ConnectionError, match="Main service not found"):
            await conn.connect("AA:BB:CC:DD:EE:FF")
        client.disconnect.assert_awaited()
        assert conn.client is None

    @pytest.mark.asyncio
    async def test_missing_characteristic(self, mocker):
        """All three characteristics are required."""
        client, _ = make_client(missing_char=BLEConnection.CHAR_DATA)
        mocker.patch("catprinter.connection.BleakClient", return_value=client)
        with pytest.raises(ConnectionError, match="characteristics"):
            await BLEConnection().connect("AA:BB:CC:DD:EE:FF")

    @pytest.mark.asyncio
    async def test_bleak_error_wrapped(self, bleak_client):
        """Bleak failures surface as ConnectionError."""
        client, _ = bleak_client
        client.connect.side_effect = BleakError("Device not found")
        with pytest.raises(ConnectionError, match="Device not found"):
            await BLEConnection().connect("AA:BB:CC:DD:EE:FF")

    @pytest.mark.asyncio
    async def test_connect_timeout_wrapped(self, bleak_client):
        """A connect timeout surfaces as ConnectionError and leaves no client."""
        client, _ = bleak_client
        client.connect.side_effect = asyncio.TimeoutError()
        conn = BLEConnection()
        with pytest.raises(ConnectionError, match="TimeoutError"):
            await conn.connect("AA:BB:CC:DD:EE:FF")
        assert conn.client is None

    @pytest.mark.asyncio
    async def test_os_error_wrapped(self, bleak_client):
        """Backend OS errors surface as ConnectionError."""
        client, _ = bleak_client
        client.connect.side_effect = OSError("adapter off")
        with pytest.raises(ConnectionError, match="adapter off"):
            await BLEConnection().connect("AA:BB:CC:DD:EE:FF")

    @pytest.mark.asyncio
    async def test_session_retries_after_timeout(self, bleak_client):
        """Timeouts go through the session retry loop."""
        client, _ = bleak_client
        client.connect.side_effect = asyncio.TimeoutError()
        printer = CatPrinter(connection=BLEConnection())
        with pytest.raises(ConnectionError, match="after 3 attempt"):
            await printer.connect("AA:BB:CC:DD:EE:FF", retries=2, retry_delay=0)
        assert client.connect.await_count == 3


class TestNotifications:
    """Test the notify channel."""

    @pytest.mark.asyncio
    async def test_notifications_forwarded_as_bytes(self, bleak_client):
        """Every notify buffer reaches the callback as bytes."""
        client, chars = bleak_client
        received = []
        conn = BLEConnection()
        await conn.connect("AA:BB:CC:DD:EE:FF")
        await conn.subscribe_notifications(received.append)

        client.start_notify.assert_awaited_once_with(
            chars[BLEConnection.CHAR_NOTIFY], conn._handle_notification
        )
        conn._handle_notification(MagicMock(), bytearray(b"\x22\x21"))
        assert received == [b"\x22\x21"]
        assert isinstance(received[0], bytes)

    @pytest.mark.asyncio
    async def test_subscribe_requires_connection(self):
        """Subscribing before connecting fails."""
        with pytest.raises(NotConnectedError):
            await BLEConnection().subscribe_notifications(lambda data: None)


class TestWrites:
    """Test control and data writes."""

    @pytest.mark.asyncio
    async def test_control_and_data_targets(self, bleak_client):
        """Writes go to their own characteristics without response."""
        client, chars = bleak_client
        conn = BLEConnection()
        await conn.connect("AA:BB:CC:DD:EE:FF")
        await conn.write_control(b"\x01")
        await conn.write_data(b"\x02")
        client.write_gatt_char.assert_any_await(
            chars[BLEConnection.CHAR_CONTROL], b"\x01", response=False
        )
        client.write_gatt_char.assert_any_await(
            chars[BLEConnection.CHAR_DATA], b"\x02", response=False
        )

    @pytest.mark.asyncio
    async def test_write_before_connect(self):
        """Writing without a link fails fast."""
        with pytest.raises(NotConnectedError):
            await BLEConnection().write_control(b"\x01")

    @pytest.mark.asyncio
    async def test_write_error_wrapped(self, bleak_client):
        """Bleak write failures become ConnectionError."""
        client, _ = bleak_client
        conn = BLEConnection()
        await conn.connect("AA:BB:CC:DD:EE:FF")
        client.write_gatt_char.side_effect = BleakError("gatt busy")
        with pytest.raises(ConnectionError, match="Data write failed"):
            await conn.write_data(b"\x00")

    @pytest.mark.asyncio
    async def test_write_os_error_wrapped(self, bleak_client):
        """OS-level write failures become ConnectionError."""
        client, _ = bleak_client
        conn = BLEConnection()
        await conn.connect("AA:BB:CC:DD:EE:FF")
        client.write_gatt_char.side_effect = OSError("broken pipe")
        with pytest.raises(ConnectionError, match="Control write failed"):
            await conn.write_control(b"\x01")


class TestDisconnect:
    """Test link teardown and loss."""

    @pytest.mark.asyncio
    async def test_disconnect_clears_state(self, bleak_client):
        """Explicit disconnect stops notifications and forgets the client."""
        client, _ = bleak_client
        conn = BLEConnection()
        await conn.connect("AA:BB:CC:DD:EE:FF")
        await conn.disconnect()
        client.stop_notify.assert_awaited()
        client.disconnect.assert_awaited()
        assert conn.client is None
        assert not conn.is_connected

    @pytest.mark.asyncio
    async def test_explicit_disconnect_is_not_link_loss(self, bleak_client):
        """The disconnected callback is not fired during disconnect()."""
        client, _ = bleak_client
        lost = MagicMock()
        conn = BLEConnection()
        conn.set_disconnected_callback(lost)
        await conn.connect("AA:BB:CC:DD:EE:FF")
        client.disconnect.side_effect = lambda: conn._handle_disconnect(client)
        await conn.disconnect()
        lost.assert_not_called()

    def test_link_loss_fires_callback(self):
        """An unexpected drop notifies the owner."""
        lost = MagicMock()
        conn = BLEConnection()
        conn.set_disconnected_callback(lost)
        conn._handle_disconnect(MagicMock())
        lost.assert_called_once()
