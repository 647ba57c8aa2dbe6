"""
SFA (Single File Assets) — bundle named raster images into one binary file.

Architecture:
    Normalizer:  any Pillow-readable image bytes -> canonical PNG bytes
    Writer:      [(name, image bytes), ...] -> "SFA" container stream
    Reader:      container stream -> {name: PIL.Image.Image}
    CLI:         sfa pack / sfa unpack / sfa list

Recovered images are pixel-identical to the normalized source, never
byte-identical to the original file.
"""

__version__ = "0.1.0"

# Canonical image encoding
CANONICAL_FORMAT = "PNG"
DEFAULT_PNG_COMPRESS_LEVEL = 6  # zlib level, 0 (none) .. 9 (smallest)

# Environment overrides, read at call time
ENV_PNG_COMPRESS_LEVEL = "SFA_PNG_COMPRESS_LEVEL"
ENV_LOG_LEVEL = "SFA_LOG_LEVEL"

from sfa.errors import (  # noqa: E402
    CorruptionError,
    DuplicateNameError,
    FormatError,
    ImageDecodeError,
    InvalidNameError,
    LimitError,
    SFAError,
    SFAIOError,
)
from sfa.normalizer import load_canonical, normalize  # noqa: E402
from sfa._format.writer import encode, encode_bytes, encode_files, write_atomic  # noqa: E402
from sfa._format.reader import (  # noqa: E402
    decode, decode_bytes, decode_from_reader, is_sfa, is_sfa_bytes, iter_entries,
)
