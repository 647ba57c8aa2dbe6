"""
Normalizer — canonicalizes arbitrary image bytes to PNG.

Any format Pillow can read goes in; PNG comes out. Pixel data (size,
mode where PNG can hold it, per-pixel values) survives; the original
file bytes, compression, ICC profile and EXIF do not. Only the first
frame of an animated source is kept.

The inverse, ``load_canonical``, is what the reader uses to turn stored
PNG bytes back into an in-memory image.
"""

from __future__ import annotations

import io
import logging
import os

from PIL import Image

from sfa import CANONICAL_FORMAT, DEFAULT_PNG_COMPRESS_LEVEL, ENV_PNG_COMPRESS_LEVEL
from sfa.errors import ImageDecodeError

log = logging.getLogger(__name__)

# Modes the PNG encoder writes without conversion
_PNG_MODES = frozenset({"1", "L", "LA", "I", "I;16", "I;16B", "P", "RGB", "RGBA"})

# Nearest PNG-storable mode for everything else
_PNG_MODE_FALLBACK: dict[str, str] = {
    "CMYK": "RGB",
    "YCbCr": "RGB",
    "LAB": "RGB",
    "HSV": "RGB",
    "RGBX": "RGB",
    "RGBa": "RGBA",
    "PA": "RGBA",
    "La": "LA",
    "I;16L": "I;16",
}

# 32-bit integer pixels PNG can hold: it stores at most 16 bits per sample
_PNG_INT_RANGE = (0, 65535)

# The fixed 12-byte IEND chunk every complete PNG ends with
_PNG_IEND = b"\x00\x00\x00\x00IEND\xaeB`\x82"

# Everything Pillow can raise while identifying or decoding a file
_DECODE_ERRORS = (OSError, SyntaxError, ValueError, Image.DecompressionBombError)


def _compress_level(level: int | None) -> int:
    """Resolve the PNG zlib level: argument > env var > default."""
    if level is None:
        raw = os.environ.get(ENV_PNG_COMPRESS_LEVEL, "")
        if not raw:
            return DEFAULT_PNG_COMPRESS_LEVEL
        try:
            level = int(raw)
        except ValueError:
            raise ValueError(
                f"{ENV_PNG_COMPRESS_LEVEL} must be an integer 0-9, got {raw!r}"
            ) from None
    if not 0 <= level <= 9:
        raise ValueError(f"PNG compress level must be 0-9, got {level}")
    return level


def _resolve_format(format_hint: str) -> str:
    """Map a hint like "jpg", ".jpg" or "JPEG" to a Pillow format ID."""
    hint = format_hint.lstrip(".")
    by_extension = Image.registered_extensions()
    return by_extension.get(f".{hint.lower()}", hint.upper())


def _png_mode(image: Image.Image, name: str | None) -> str:
    """Pick the PNG mode for an image, refusing ones PNG cannot hold exactly."""
    mode = image.mode
    if mode == "F":
        raise ImageDecodeError("Floating-point pixels (mode F) cannot be stored as PNG", name=name)
    if mode == "I":
        low, high = image.getextrema()
        if low < _PNG_INT_RANGE[0] or high > _PNG_INT_RANGE[1]:
            raise ImageDecodeError(
                f"Mode I pixel values {low}..{high} do not fit in 16-bit PNG", name=name
            )
    if mode in _PNG_MODES:
        return mode
    return _PNG_MODE_FALLBACK.get(mode, "RGBA")


def open_image(data: bytes, format_hint: str | None = None, name: str | None = None) -> Image.Image:
    """Decode image bytes of any readable format into a fully loaded image.

    The format is sniffed from the bytes unless ``format_hint`` restricts
    it. Raises ImageDecodeError if the bytes are not a decodable image.
    """
    formats = [_resolve_format(format_hint)] if format_hint else None
    try:
        image = Image.open(io.BytesIO(data), formats=formats)
        image.load()
    except _DECODE_ERRORS as e:
        raise ImageDecodeError(f"Not a decodable image: {e}", name=name) from e
    return image


def normalize(
    data: bytes,
    format_hint: str | None = None,
    compress_level: int | None = None,
    name: str | None = None,
) -> bytes:
    """Re-encode image bytes as canonical PNG. Pure — no side effects."""
    level = _compress_level(compress_level)
    image = open_image(data, format_hint=format_hint, name=name)
    source_format = image.format
    target_mode = _png_mode(image, name)
    if target_mode != image.mode:
        log.debug("Converting %s from mode %s to %s", name or "image", image.mode, target_mode)
        image = image.convert(target_mode)

    buf = io.BytesIO()
    try:
        # icc_profile=None keeps the source's ICC chunk out of the output
        image.save(buf, format=CANONICAL_FORMAT, compress_level=level, icc_profile=None)
    except (OSError, ValueError) as e:
        raise ImageDecodeError(f"Cannot re-encode as {CANONICAL_FORMAT}: {e}", name=name) from e

    out = buf.getvalue()
    log.debug(
        "Normalized %s: %s %dx%d %s, %d -> %d bytes",
        name or "image", source_format, image.width, image.height, image.mode, len(data), len(out),
    )
    return out


def load_canonical(data: bytes, name: str | None = None) -> Image.Image:
    """Materialize stored canonical bytes. Only a complete PNG is accepted.

    The bytes must end with the IEND chunk, and ``verify()`` checks the
    CRC of every chunk from the image data up to it. A plain load does
    neither: Pillow decodes a PNG missing its tail.
    """
    if not data.endswith(_PNG_IEND):
        raise ImageDecodeError(f"Not a complete {CANONICAL_FORMAT}: missing IEND chunk", name=name)
    try:
        with Image.open(io.BytesIO(data), formats=[CANONICAL_FORMAT]) as image:
            image.verify()
    except _DECODE_ERRORS as e:
        raise ImageDecodeError(f"Not a complete {CANONICAL_FORMAT}: {e}", name=name) from e
    return open_image(data, format_hint=CANONICAL_FORMAT, name=name)
