"""
HTTP Front-End for the Cat Printer.

A thin Flask layer over CatPrinter. All BLE I/O runs on one asyncio event
loop owned by PrinterWorker in a background thread; request threads submit
coroutines to it and block on the result.

Endpoints:
    GET  /status      - Get printer status
    GET  /test-print  - Print the built-in test card
    POST /print       - Print text and/or a QR code
"""

import asyncio
import logging
import threading
from typing import Optional

from flask import Flask, jsonify, request

from .errors import (
    ConnectionError,
    ImageError,
    IntensityOutOfRangeError,
    PrinterBusyError,
    PrinterError,
    PrinterFaultError,
    PrintRejectedError,
    ProtocolError,
    ResponseTimeoutError,
)
from .image import ImageProcessor
from .printer import CatPrinter
from .render import DEFAULT_FONT_SIZE, render_label

logger = logging.getLogger(__name__)


class PrinterWorker:
    """Runs a CatPrinter on a dedicated event loop thread."""

    def __init__(self, printer: Optional[CatPrinter] = None, address: Optional[str] = None):
        self.printer = printer or CatPrinter()
        self.address = address
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._run_loop, name="catprinter-ble", daemon=True
        )

    def _run_loop(self):
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    def start(self):
        self._thread.start()

    def stop(self, timeout: float = 5.0):
        if self._thread.is_alive():
            try:
                self.call(self.printer.disconnect(), timeout=timeout)
            except PrinterError as e:
                logger.warning("Disconnect on shutdown failed: %s", e)
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(timeout)

    def call(self, coro, timeout: Optional[float] = None):
        """Run a coroutine on the worker loop and return its result."""
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result(timeout)

    async def _ensure_connected(self):
        # No automatic reconnection inside the session; the front-end
        # reconnects on the next request instead.
        if not self.printer.is_connected:
            await self.printer.connect(self.address)

    async def _status(self):
        await self._ensure_connected()
        return await self.printer.get_status()

    async def _print_raster(self, raster: bytes):
        await self._ensure_connected()
        await self.printer.print_raster(raster)

    async def _test_print(self):
        await self._ensure_connected()
        await self.printer.print_test_pattern()

    def connect(self):
        return self.call(self._ensure_connected())

    def get_status(self):
        return self.call(self._status())

    def print_raster(self, raster: bytes):
        return self.call(self._print_raster(raster))

    def test_print(self):
        return self.call(self._test_print())

    @property
    def last_status(self):
        return self.printer.last_status


def status_code_for(error: PrinterError) -> int:
    """Map a printer error onto an HTTP status code."""
    if isinstance(error, ConnectionError):
        return 503
    if isinstance(error, ResponseTimeoutError):
        return 504
    if isinstance(error, PrinterBusyError):
        return 409
    if isinstance(error, (PrinterFaultError, PrintRejectedError, ProtocolError)):
        return 502
    if isinstance(error, (ImageError, IntensityOutOfRangeError)):
        return 400
    return 500


def create_app(worker) -> Flask:
    """
    Build the Flask app.

    Args:
        worker: Object exposing get_status(), print_raster(), test_print()
            and last_status (normally a started PrinterWorker)
    """
    app = Flask(__name__)

    @app.before_request
    def _preflight():
        if request.method == "OPTIONS":
            return "", 204

    @app.after_request
    def _cors(response):
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        return response

    @app.errorhandler(PrinterError)
    def _printer_error(error: PrinterError):
        logger.warning("Request failed: %s", error)
        return jsonify(success=False, message=str(error)), status_code_for(error)

    @app.route("/status", methods=["GET", "OPTIONS"])
    def status():
        try:
            current = worker.get_status()
        except PrinterError as e:
            last = worker.last_status
            return jsonify(
                connected=last.connected,
                battery=last.battery,
                temperature=last.temperature,
                status=last.status_string,
                error=str(e),
            ), status_code_for(e)

        body = {
            "connected": current.connected,
            "battery": current.battery,
            "temperature": current.temperature,
            "status": current.status_string,
        }
        if current.has_error:
            body["error"] = f"Printer error code {current.error_code}"
        return jsonify(body)

    @app.route("/test-print", methods=["GET", "OPTIONS"])
    def test_print():
        worker.test_print()
        return jsonify(success=True, message="Test print successful")

    @app.route("/print", methods=["POST", "OPTIONS"])
    def print_label():
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            return jsonify(success=False, message="Expected a JSON object"), 400

        text = payload.get("text") or None
        qr_code = payload.get("qr_code") or None
        font_size = payload.get("font_size") or DEFAULT_FONT_SIZE
        if not all(value is None or isinstance(value, str) for value in (text, qr_code)):
            return jsonify(success=False, message="text and qr_code must be strings"), 400
        if not isinstance(font_size, int) or font_size <= 0:
            return jsonify(success=False, message="font_size must be a positive integer"), 400

        try:
            label = render_label(text=text, qr_code=qr_code, font_size=font_size)
        except ValueError as e:
            return jsonify(success=False, message=str(e)), 400

        worker.print_raster(ImageProcessor().to_bytes(label))
        return jsonify(success=True, message="Print successful")

    return app


def serve(worker: PrinterWorker, host: str = "0.0.0.0", port: int = 8080):
    """Start the worker, try an initial connection and run the HTTP server."""
    worker.start()
    try:
        worker.connect()
    except PrinterError as e:
        # The server still comes up; requests reconnect on demand
        logger.warning("Initial printer connection failed: %s", e)

    app = create_app(worker)
    logger.info("Cat Printer Server starting on %s:%d", host, port)
    try:
        app.run(host=host, port=port, threaded=True)
    finally:
        worker.stop()
