"""
Command-Line Interface for MXW01 Cat Printers.

Usage:
    catprinter scan                 - Scan for printers
    catprinter status               - Show printer status
    catprinter intensity VALUE      - Set print intensity (0-255)
    catprinter print IMAGE          - Print an image
    catprinter text TEXT            - Print text
    catprinter qr DATA              - Print a QR code
    catprinter test                 - Print the test card
    catprinter raw CMD HEX          - Send a raw command packet
    catprinter serve                - Run the HTTP server
    catprinter forget               - Forget the cached printer
"""

import asyncio
import logging
import re
import sys
from typing import Awaitable, Callable, Optional

import click

from .cache import clear_cache, load_cached_printer, save_printer
from .config import SessionConfig
from .errors import (
    ConnectionError,
    ImageError,
    PrinterError,
    PrintError,
    ResponseTimeoutError,
)
from .image import ImageProcessor
from .printer import CatPrinter
from .render import QR_SIZES, render_text, generate_qr


# Linux/Windows report MAC addresses; CoreBluetooth on macOS hides them
# behind a per-host UUID
BLUETOOTH_MAC_PATTERN = re.compile(r"^[0-9A-Fa-f]{2}(:[0-9A-Fa-f]{2}){5}$")
MACOS_UUID_PATTERN = re.compile(
    r"^[0-9A-Fa-f]{8}(-[0-9A-Fa-f]{4}){3}-[0-9A-Fa-f]{12}$"
)

# Most specific first; the first match labels the message
ERROR_LABELS = (
    (ConnectionError, "Connection error"),
    (ResponseTimeoutError, "Timeout"),
    (ImageError, "Image error"),
    (PrintError, "Print error"),
    (PrinterError, "Printer error"),
)


def validate_bluetooth_address(ctx, param, value):
    """Click callback: accept a MAC address or a macOS device UUID, uppercased."""
    if value is None:
        return None
    if not (BLUETOOTH_MAC_PATTERN.match(value) or MACOS_UUID_PATTERN.match(value)):
        raise click.BadParameter(
            f"Invalid Bluetooth address format: '{value}'. Use XX:XX:XX:XX:XX:XX "
            "or, on macOS, the device UUID reported by 'catprinter scan'"
        )
    return value.upper()


def parse_command_id(ctx, param, value):
    """Accept a command id as hex (0xA1 / A1) or decimal."""
    try:
        number = int(value, 16) if not value.isdigit() else int(value)
    except ValueError:
        raise click.BadParameter(f"Invalid command id: '{value}'") from None
    if not 0 <= number <= 0xFF:
        raise click.BadParameter(f"Command id out of range: {value}")
    return number


def configure_logging(debug: bool):
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def error_label(error: PrinterError) -> str:
    for error_type, label in ERROR_LABELS:
        if isinstance(error, error_type):
            return label
    return "Error"


async def scan_and_select(timeout: float = 10.0) -> Optional[str]:
    """
    Find a printer to use.

    A single hit is picked without asking; several hits are listed and the
    user chooses one. Returns None when nothing was found or chosen.
    """
    click.echo(f"Scanning for printers ({timeout}s)...")
    printers = await CatPrinter.scan(timeout=timeout)

    if not printers:
        click.echo("No printers found.", err=True)
        return None

    if len(printers) == 1:
        only = printers[0]
        click.echo(f"Found 1 printer: {only.name} - using automatically")
        return only.address

    click.echo(f"\nFound {len(printers)} printer(s):\n")
    for number, info in enumerate(printers, 1):
        click.echo(f"  [{number}] {info}")
    click.echo()

    try:
        choice = click.prompt(
            "Select printer",
            type=click.IntRange(1, len(printers)),
        )
    except click.Abort:
        return None
    return printers[choice - 1].address


async def resolve_address(address: Optional[str]) -> Optional[str]:
    """Explicit address, then the cached printer, then an interactive scan."""
    if address is not None:
        return address
    cached = load_cached_printer()
    if cached is not None:
        click.echo(f"Using cached printer: {cached.name} [{cached.address}]")
        return cached.address
    return await scan_and_select()


def run_with_printer(
    ctx: click.Context,
    address: Optional[str],
    action: Callable[[CatPrinter], Awaitable[None]],
    retry: int = 0,
):
    """Connect, run ``action`` and disconnect; printer errors exit with 1."""

    async def _run():
        resolved = await resolve_address(address)
        if resolved is None:
            sys.exit(1)

        printer = CatPrinter(config=ctx.obj["config"])
        click.echo(f"Connecting to {resolved}...")

        try:
            await printer.connect(resolved, retries=retry)
            save_printer(resolved)
            await action(printer)
        except PrinterError as e:
            click.echo(f"{error_label(e)}: {e}", err=True)
            sys.exit(1)
        finally:
            await printer.disconnect()

    asyncio.run(_run())


address_option = click.option(
    "--address",
    "-a",
    callback=validate_bluetooth_address,
    help="Printer Bluetooth address (if omitted, uses the cached printer or scans)",
)
intensity_option = click.option(
    "--intensity",
    type=click.IntRange(0, 255),
    default=None,
    help="Print intensity (0-255); printer default if omitted",
)
retry_option = click.option(
    "--retry", default=0, help="Number of connection retries"
)


@click.group()
@click.option("--debug/--no-debug", default=False, help="Enable debug output")
@click.option(
    "--strict-checksum",
    is_flag=True,
    help="Reject replies whose checksum or footer is invalid",
)
@click.option(
    "--lenient-transfer",
    is_flag=True,
    help="Log failed data chunks and keep sending instead of aborting",
)
@click.pass_context
def main(ctx, debug, strict_checksum, lenient_transfer):
    """MXW01 Cat Printer CLI."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["config"] = SessionConfig(
        verify_checksum=strict_checksum,
        abort_on_chunk_error=not lenient_transfer,
    )
    configure_logging(debug)


@main.command()
@click.option("--timeout", default=10.0, help="Scan timeout in seconds")
def scan(timeout):
    """Scan for cat printers."""

    async def _scan():
        click.echo(f"Scanning for printers ({timeout}s)...")
        printers = await CatPrinter.scan(timeout=timeout)

        if not printers:
            click.echo("No printers found.")
            return

        click.echo(f"\nFound {len(printers)} printer(s):\n")
        for p in printers:
            click.echo(f"  {p}")

    asyncio.run(_scan())


@main.command()
@address_option
@retry_option
@click.pass_context
def status(ctx, address, retry):
    """Show printer status, battery and firmware version."""

    async def _status(printer: CatPrinter):
        current = await printer.get_status()
        click.echo(f"Battery:     {current.battery}%")
        click.echo(f"Temperature: {current.temperature}°C")
        state = current.state.name.lower() if current.state is not None else current.status
        click.echo(f"State:       {state}")
        if current.has_error:
            click.echo(f"Error code:  {current.error_code}")
        try:
            version = await printer.get_version()
            click.echo(f"Firmware:    {version.version}")
        except ResponseTimeoutError:
            click.echo("Firmware:    (no reply)")

    run_with_printer(ctx, address, _status, retry)


@main.command()
@click.argument("value", type=click.IntRange(0, 255))
@address_option
@retry_option
@click.pass_context
def intensity(ctx, value, address, retry):
    """Set print intensity (0-255)."""

    async def _intensity(printer: CatPrinter):
        await printer.set_intensity(value)
        click.echo(f"Intensity set to {value}")

    run_with_printer(ctx, address, _intensity, retry)


@main.command("print")
@click.argument("image", type=click.Path(exists=True))
@address_option
@intensity_option
@click.option("--rotate", is_flag=True, help="Turn the image a quarter turn (banner mode)")
@retry_option
@click.pass_context
def print_image(ctx, image, address, intensity, rotate, retry):
    """Print an image file."""

    async def _print(printer: CatPrinter):
        click.echo(f"Printing {image}...")
        await printer.print_image(image, intensity=intensity, rotate=rotate)
        click.echo("Print complete!")

    run_with_printer(ctx, address, _print, retry)


@main.command()
@click.argument("data")
@click.option("--font-size", type=click.IntRange(min=1), default=24, help="Font size in pixels")
@address_option
@intensity_option
@retry_option
@click.pass_context
def text(ctx, data, font_size, address, intensity, retry):
    """Print text, wrapped to the paper width."""
    try:
        img = render_text(data, font_size=font_size)
    except ValueError as e:
        click.echo(f"Invalid text: {e}", err=True)
        sys.exit(1)
    raster = ImageProcessor().to_bytes(img)

    async def _text(printer: CatPrinter):
        click.echo("Printing text...")
        await printer.print_raster(raster, intensity=intensity)
        click.echo("Text printed!")

    run_with_printer(ctx, address, _text, retry)


@main.command()
@click.argument("data")
@click.option(
    "--size",
    type=click.Choice(list(QR_SIZES)),
    default="medium",
    help="Module size preset",
)
@click.option(
    "--error-correction",
    type=click.Choice(["L", "M", "Q", "H"]),
    default="M",
    help="Error correction: L, M, Q or H (7%% to 30%% recovery)",
)
@address_option
@intensity_option
@retry_option
@click.pass_context
def qr(ctx, data, size, error_correction, address, intensity, retry):
    """Print DATA as a QR code centred on the paper.

    Example: catprinter qr "https://example.com" --size large
    """
    try:
        img = generate_qr(data, size=size, error_correction=error_correction)
    except ValueError as e:
        click.echo(f"Invalid QR data: {e}", err=True)
        sys.exit(1)
    raster = ImageProcessor().to_bytes(img)

    async def _qr(printer: CatPrinter):
        click.echo(f"Printing QR code ({size})...")
        await printer.print_raster(raster, intensity=intensity)
        click.echo("QR code printed!")

    run_with_printer(ctx, address, _qr, retry)


@main.command()
@address_option
@retry_option
@click.pass_context
def test(ctx, address, retry):
    """Print the built-in test card."""

    async def _test(printer: CatPrinter):
        click.echo("Printing test pattern...")
        await printer.print_test_pattern()
        click.echo("Test print complete!")

    run_with_printer(ctx, address, _test, retry)


@main.command()
@click.argument("command", callback=parse_command_id)
@click.argument("payload_hex", default="00")
@address_option
@click.option("--timeout", default=2.0, help="Seconds to wait for a reply")
@click.option(
    "--force",
    is_flag=True,
    help="Acknowledge risks and skip warning prompt",
)
@click.pass_context
def raw(ctx, command, payload_hex, address, timeout, force):
    """Send a raw command packet (for debugging/testing).

    COMMAND is the command id (e.g. A1), PAYLOAD_HEX the payload bytes.
    The packet is framed and checksummed; the reply is printed.
    """
    try:
        payload = bytes.fromhex(payload_hex)
    except ValueError:
        click.echo("Invalid hex data!", err=True)
        sys.exit(1)

    if not force:
        click.echo(
            "WARNING: raw packets skip the status and busy checks; an unknown "
            "command can leave the printer in an odd state.",
            err=True,
        )
        if not click.confirm("Do you want to continue?"):
            click.echo("Aborted.")
            return

    async def _raw(printer: CatPrinter):
        click.echo(f"Sending: cmd=0x{command:02X} payload={payload.hex()}")
        response = await printer.send_raw(command, payload, timeout=timeout)
        if response:
            click.echo(f"Response: {response.raw.hex()}")
        else:
            click.echo("No response")

    run_with_printer(ctx, address, _raw)


@main.command()
@address_option
@click.option("--host", default="0.0.0.0", help="Interface to bind")
@click.option("--port", default=8080, type=int, help="Port to listen on")
@click.pass_context
def serve(ctx, address, host, port):
    """Run the HTTP print server.

    Without --address the server scans for the printer on first use.
    """
    from .server import PrinterWorker, serve as run_server

    if not ctx.obj["debug"]:
        logging.getLogger("catprinter").setLevel(logging.INFO)

    worker = PrinterWorker(CatPrinter(config=ctx.obj["config"]), address=address)
    click.echo(f"Cat Printer Server starting on port {port}...")
    click.echo("API Endpoints:")
    click.echo("  GET  /status       - Get printer status")
    click.echo("  GET  /test-print   - Print test card")
    click.echo("  POST /print        - Print text / QR code")
    run_server(worker, host=host, port=port)


@main.command()
def forget():
    """Forget the cached printer address."""
    if clear_cache():
        click.echo("Cached printer cleared.")
    else:
        click.echo("No cached printer.")


if __name__ == "__main__":
    main()
