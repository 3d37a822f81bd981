"""
Raster preparation for the MXW01 print head.

The printer consumes 1bpp rows of 384 dots, packed 8 dots per byte with
the most significant bit leftmost and a set bit meaning black.
"""

from io import BytesIO
from pathlib import Path
from typing import Union

from PIL import Image, ImageOps

from .errors import ImageError

PRINTER_WIDTH_PIXELS = 384
BYTES_PER_ROW = PRINTER_WIDTH_PIXELS // 8

# Refuse decompression bombs before any resampling happens
MAX_IMAGE_DIMENSION = 10000
MAX_IMAGE_PIXELS = 10_000_000

ImageSource = Union[str, Path, bytes, Image.Image]


class ImageSizeError(ImageError):
    """Source image is larger than the loader accepts."""


def check_image_size(img: Image.Image):
    """Raise ImageSizeError for oversized images."""
    width, height = img.size
    if max(width, height) > MAX_IMAGE_DIMENSION:
        raise ImageSizeError(
            f"Image dimensions ({width}x{height}) exceed maximum "
            f"({MAX_IMAGE_DIMENSION}x{MAX_IMAGE_DIMENSION})"
        )
    if width * height > MAX_IMAGE_PIXELS:
        raise ImageSizeError(
            f"Image pixel count ({width * height:,}) exceeds maximum ({MAX_IMAGE_PIXELS:,})"
        )


class ImageProcessor:
    """Turns arbitrary images into print head rasters."""

    def __init__(self, width: int = PRINTER_WIDTH_PIXELS, threshold: int = 128):
        """
        Args:
            width: Raster width in dots; must pack into whole bytes
            threshold: Gray levels below this print black (0-255)
        """
        if width % 8:
            raise ValueError(f"Width must be a multiple of 8, got {width}")
        self.width = width
        self.threshold = threshold

    @property
    def bytes_per_row(self) -> int:
        return self.width // 8

    def load(self, source: ImageSource) -> Image.Image:
        """
        Open ``source`` (path, encoded bytes or PIL image) and check its size.

        Raises:
            ImageSizeError: Image exceeds MAX_IMAGE_DIMENSION or MAX_IMAGE_PIXELS
            ImageError: Unsupported source type
        """
        if isinstance(source, Image.Image):
            img = source
        elif isinstance(source, bytes):
            img = Image.open(BytesIO(source))
        elif isinstance(source, (str, Path)):
            img = Image.open(source)
        else:
            raise ImageError(f"Unsupported image type: {type(source)}")

        check_image_size(img)
        return img

    def prepare(self, image: Image.Image, rotate: bool = False) -> Image.Image:
        """
        Flatten, scale to the raster width and threshold to 1 bit.

        ``rotate`` turns the image a quarter turn first, for banners.
        """
        if image.mode in ("RGBA", "LA") or "transparency" in image.info:
            white = Image.new("RGBA", image.size, (255, 255, 255, 255))
            image = Image.alpha_composite(white, image.convert("RGBA"))

        gray = image.convert("L")
        if rotate:
            gray = gray.rotate(90, expand=True)

        if gray.width != self.width:
            height = max(1, int(gray.height * self.width / gray.width))
            gray = gray.resize((self.width, height), Image.Resampling.LANCZOS)

        return gray.point(lambda level: 0 if level < self.threshold else 255, mode="1")

    def _fit_width(self, image: Image.Image) -> Image.Image:
        bilevel = image if image.mode == "1" else image.convert("1")
        if bilevel.width == self.width:
            return bilevel
        # Crop on the right, or pad on the right with white
        canvas = Image.new("1", (self.width, bilevel.height), color=1)
        canvas.paste(bilevel.crop((0, 0, min(bilevel.width, self.width), bilevel.height)), (0, 0))
        return canvas

    def to_bytes(self, image: Image.Image) -> bytes:
        """Pack a 1-bit image into print head rows (black = 1, MSB leftmost)."""
        image = self._fit_width(image)
        # PIL packs mode "1" MSB first as well, but with 1 = white
        inverted = ImageOps.invert(image.convert("L"))
        return inverted.convert("1", dither=Image.Dither.NONE).tobytes()
