"""
Text and QR Code Rendering for the Cat Printer.

Produces 1-bit PIL images exactly one print head wide, ready for
ImageProcessor.to_bytes().
"""

from typing import Literal, Optional

import qrcode
from PIL import Image, ImageDraw, ImageFont
from qrcode.constants import (
    ERROR_CORRECT_H,
    ERROR_CORRECT_L,
    ERROR_CORRECT_M,
    ERROR_CORRECT_Q,
)

from .image import PRINTER_WIDTH_PIXELS

QRErrorCorrection = Literal["L", "M", "Q", "H"]

ERROR_CORRECTION_LEVELS = {
    "L": ERROR_CORRECT_L,  # ~7% recovery
    "M": ERROR_CORRECT_M,
    "Q": ERROR_CORRECT_Q,
    "H": ERROR_CORRECT_H,  # ~30% recovery
}

# Module size in pixels and quiet-zone width in modules
QR_SIZES = {
    "small": (4, 2),
    "medium": (6, 4),
    "large": (8, 4),
}

DEFAULT_FONT_SIZE = 24
LINE_SPACING = 4
MARGIN = 4


def _wrap(text: str, font: ImageFont.ImageFont, draw: ImageDraw.ImageDraw, width: int) -> list[str]:
    """Greedy word wrap; explicit newlines are kept."""
    lines = []
    for paragraph in text.splitlines() or [""]:
        words = paragraph.split(" ")
        current = ""
        for word in words:
            candidate = f"{current} {word}" if current else word
            if draw.textlength(candidate, font=font) <= width or not current:
                current = candidate
            else:
                lines.append(current)
                current = word
        lines.append(current)
    return lines


def render_text(
    text: str,
    font_size: int = DEFAULT_FONT_SIZE,
    width: int = PRINTER_WIDTH_PIXELS,
) -> Image.Image:
    """
    Render wrapped text onto a print-head-wide image.

    Args:
        text: Text to render (newlines start new lines)
        font_size: Font size in pixels
        width: Image width in pixels

    Returns:
        PIL Image in 1-bit mode (black text on white)

    Raises:
        ValueError: If text is empty or font_size is not positive
    """
    if not text:
        raise ValueError("Text is empty")
    if font_size <= 0:
        raise ValueError(f"Font size must be positive, got {font_size}")

    font = ImageFont.load_default(size=font_size)
    scratch = ImageDraw.Draw(Image.new("L", (width, 1), color=255))
    lines = _wrap(text, font, scratch, width - 2 * MARGIN)

    line_height = font_size + LINE_SPACING
    height = max(1, line_height * len(lines) + 2 * MARGIN)
    img = Image.new("L", (width, height), color=255)
    draw = ImageDraw.Draw(img)
    for i, line in enumerate(lines):
        draw.text((MARGIN, MARGIN + i * line_height), line, font=font, fill=0)

    return img.point(lambda x: 0 if x < 128 else 255, mode="1")


def generate_qr(
    data: str,
    size: str = "medium",
    error_correction: QRErrorCorrection = "M",
    width: int = PRINTER_WIDTH_PIXELS,
) -> Image.Image:
    """
    Encode ``data`` as a QR code, centred on a paper-wide 1-bit canvas.

    ``size`` picks a (box_size, border) preset from QR_SIZES. Codes wider
    than the paper are scaled down with nearest-neighbour sampling so the
    modules stay square.

    Raises:
        ValueError: Empty data, unknown preset or unknown correction level
    """
    if not data:
        raise ValueError("QR data is empty")
    try:
        box_size, border = QR_SIZES[size]
    except KeyError:
        raise ValueError(f"Invalid size: {size!r}, expected one of {sorted(QR_SIZES)}") from None
    level = ERROR_CORRECTION_LEVELS.get(error_correction)
    if level is None:
        raise ValueError(f"Invalid error correction level: {error_correction!r}")

    code = qrcode.QRCode(error_correction=level, box_size=box_size, border=border)
    code.add_data(data)
    code.make(fit=True)

    img = code.make_image(fill_color="black", back_color="white")
    # PilImage wraps the PIL image it drew on
    img = getattr(img, "get_image", lambda: img)().convert("1")

    if img.width > width:
        img = img.resize((width, width), Image.Resampling.NEAREST)

    canvas = Image.new("1", (width, img.height), color=1)
    canvas.paste(img, ((width - img.width) // 2, 0))
    return canvas


def render_label(
    text: Optional[str] = None,
    qr_code: Optional[str] = None,
    font_size: int = DEFAULT_FONT_SIZE,
    width: int = PRINTER_WIDTH_PIXELS,
) -> Image.Image:
    """Stack an optional text block above an optional QR code."""
    parts = []
    if text:
        parts.append(render_text(text, font_size=font_size, width=width))
    if qr_code:
        parts.append(generate_qr(qr_code, width=width))
    if not parts:
        raise ValueError("Nothing to print: provide text and/or a QR code")

    height = sum(part.height for part in parts)
    label = Image.new("1", (width, height), color=1)
    y = 0
    for part in parts:
        label.paste(part, (0, y))
        y += part.height
    return label
