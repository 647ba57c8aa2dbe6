"""
Reader — streaming parser for container files.

Reads strictly front to back from any object with ``read(n)``:
  - Header (magic + version + entry count) is checked before anything else
  - Each field is consumed by its length prefix, never past it
  - Image bytes are materialized with Pillow only after framing checks

Security features:
  - Declared lengths are checked against limits before allocating
  - Reads are chunked, so a lying length prefix cannot force one huge read
  - Duplicate names, empty names and invalid UTF-8 are rejected
  - Trailing bytes after the last entry are rejected

Decoding is all-or-nothing: the first error aborts and no partial
mapping is returned.
"""

from __future__ import annotations

import io
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

from PIL import Image

from sfa._format.spec import (
    HEADER_SIZE, HEADER_STRUCT, LENGTH_SIZE, LENGTH_STRUCT, MAGIC,
    MAX_ENTRIES, MAX_ENTRY_SIZE, MAX_NAME_BYTES, READ_CHUNK_SIZE,
    SUPPORTED_FORMAT_VERSIONS,
)
from sfa.errors import CorruptionError, FormatError, SFAIOError
from sfa.normalizer import load_canonical

log = logging.getLogger(__name__)


class SFAReader:
    """
    Sequential container reader.

    Usage:
        reader = SFAReader(source)
        count = reader.read_header()
        for name, png_bytes in reader:
            ...
    """

    def __init__(
        self,
        source: BinaryIO,
        max_entry_size: int = MAX_ENTRY_SIZE,
        max_entries: int = MAX_ENTRIES,
    ) -> None:
        self._source = source
        self.max_entry_size = max_entry_size
        self.max_entries = max_entries
        self.format_version: int = 0
        self.count: int = 0
        self._parsed_header = False

    def _read_upto(self, n: int) -> bytes:
        """Read up to n bytes, stopping early only at end of stream."""
        buf = bytearray()
        while len(buf) < n:
            try:
                chunk = self._source.read(min(n - len(buf), READ_CHUNK_SIZE))
            except OSError as e:
                raise SFAIOError(f"Read failed: {e}") from e
            if not chunk:
                break
            buf += chunk
        return bytes(buf)

    def _read_exact(self, n: int, what: str) -> bytes:
        data = self._read_upto(n)
        if len(data) < n:
            raise CorruptionError(
                f"Stream ended inside {what}: expected {n} bytes, got {len(data)}"
            )
        return data

    def _read_length(self, what: str) -> int:
        (length,) = LENGTH_STRUCT.unpack(self._read_exact(LENGTH_SIZE, f"{what} length"))
        return length

    def read_header(self) -> int:
        """Validate magic and version. Returns the declared entry count."""
        head = self._read_upto(HEADER_SIZE)
        if head[:len(MAGIC)] != MAGIC[:len(head)]:
            raise FormatError(f"Bad magic: expected {MAGIC!r}, got {head[:len(MAGIC)]!r}")
        if len(head) < HEADER_SIZE:
            raise CorruptionError(f"Header too short: {len(head)} bytes")

        _, version, count = HEADER_STRUCT.unpack(head)
        if version not in SUPPORTED_FORMAT_VERSIONS:
            raise FormatError(
                f"Unsupported format version: {version}. "
                f"Supported: {', '.join(str(v) for v in sorted(SUPPORTED_FORMAT_VERSIONS))}"
            )
        if count > self.max_entries:
            raise CorruptionError(f"Entry count {count} exceeds max {self.max_entries}")

        self.format_version = version
        self.count = count
        self._parsed_header = True
        return count

    def _read_name(self, index: int) -> str:
        length = self._read_length("name")
        if length == 0 or length > MAX_NAME_BYTES:
            raise CorruptionError(
                f"Entry {index}: name length {length} outside 1..{MAX_NAME_BYTES}"
            )
        raw = self._read_exact(length, "name")
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CorruptionError(f"Entry {index}: name is not valid UTF-8: {e}") from e

    def _read_data(self, name: str) -> bytes:
        length = self._read_length(f"{name!r} data")
        if length == 0 or length > self.max_entry_size:
            raise CorruptionError(
                f"{name!r}: data length {length} outside 1..{self.max_entry_size}"
            )
        return self._read_exact(length, f"{name!r} data")

    def __iter__(self) -> Iterator[tuple[str, bytes]]:
        """Yield (name, canonical image bytes) in stream order."""
        if not self._parsed_header:
            self.read_header()

        seen: set[str] = set()
        for index in range(self.count):
            name = self._read_name(index)
            if name in seen:
                raise CorruptionError(f"Duplicate entry name in stream: {name!r}")
            seen.add(name)
            data = self._read_data(name)
            log.debug("Read entry %r (%d bytes)", name, len(data))
            yield name, data

        if self._read_upto(1):
            raise CorruptionError(f"Trailing data after {self.count} entries")

    def read_all(self) -> dict[str, Image.Image]:
        """Decode every entry into a name -> image mapping."""
        images: dict[str, Image.Image] = {}
        for name, data in self:
            images[name] = load_canonical(data, name=name)
        log.debug("Decoded %d images", len(images))
        return images


def decode_from_reader(
    source: BinaryIO,
    max_entry_size: int = MAX_ENTRY_SIZE,
    max_entries: int = MAX_ENTRIES,
) -> dict[str, Image.Image]:
    """Decode a container from any sequential byte source.

    Raises FormatError, CorruptionError, ImageDecodeError or SFAIOError.
    """
    return SFAReader(source, max_entry_size, max_entries).read_all()


def decode(
    path: str | Path,
    max_entry_size: int = MAX_ENTRY_SIZE,
    max_entries: int = MAX_ENTRIES,
) -> dict[str, Image.Image]:
    """Open a container file and decode it."""
    try:
        f = open(path, "rb")
    except OSError as e:
        raise SFAIOError(f"Cannot open {str(path)!r}: {e}") from e
    with f:
        return decode_from_reader(f, max_entry_size, max_entries)


def decode_bytes(
    data: bytes,
    max_entry_size: int = MAX_ENTRY_SIZE,
    max_entries: int = MAX_ENTRIES,
) -> dict[str, Image.Image]:
    """Decode a container held in memory."""
    return decode_from_reader(io.BytesIO(data), max_entry_size, max_entries)


def iter_entries(
    source: BinaryIO,
    max_entry_size: int = MAX_ENTRY_SIZE,
    max_entries: int = MAX_ENTRIES,
) -> Iterator[tuple[str, bytes]]:
    """Yield (name, PNG bytes) pairs without materializing images."""
    return iter(SFAReader(source, max_entry_size, max_entries))


def is_sfa(path: str | Path) -> bool:
    """Fast check if a file is a container. Reads only the header bytes."""
    with open(path, "rb") as f:
        head = f.read(HEADER_SIZE)
    return is_sfa_bytes(head)


def is_sfa_bytes(data: bytes) -> bool:
    """Fast check if bytes start a container of a supported version."""
    return (
        len(data) >= len(MAGIC) + 1
        and data.startswith(MAGIC)
        and data[len(MAGIC)] in SUPPORTED_FORMAT_VERSIONS
    )
