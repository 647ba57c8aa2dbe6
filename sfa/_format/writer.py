"""
Writer — serializes named images to container format.

Single-pass strategy:
  1. Materialize the entries and validate every name (before any write)
  2. Write the header with the entry count
  3. Per entry, in input order: normalize to PNG, write name + data fields

Only one normalized image is held in memory at a time. If a write or a
normalization fails midway the sink holds a partial, invalid stream;
``write_atomic`` is the file-level wrapper that never leaves one behind.
"""

from __future__ import annotations

import io
import logging
import os
import tempfile
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import BinaryIO, Union

from sfa._format.spec import (
    FORMAT_VERSION, HEADER_STRUCT, LENGTH_STRUCT, MAGIC,
    MAX_ENTRIES, MAX_ENTRY_SIZE, MAX_NAME_BYTES,
)
from sfa.errors import DuplicateNameError, InvalidNameError, LimitError, SFAIOError
from sfa.normalizer import normalize

log = logging.getLogger(__name__)

Entries = Union[Mapping[str, bytes], Iterable[tuple[str, bytes]]]


def _materialize(entries: Entries) -> list[tuple[str, bytes]]:
    if isinstance(entries, Mapping):
        return list(entries.items())
    return list(entries)


def _encode_name(name: str) -> bytes:
    """Validate a name and return its UTF-8 form."""
    if not isinstance(name, str):
        raise InvalidNameError(repr(name), "name must be a string")
    if not name:
        raise InvalidNameError(name, "name must not be empty")
    try:
        raw = name.encode("utf-8")
    except UnicodeEncodeError as e:
        raise InvalidNameError(name, f"not encodable as UTF-8 ({e.reason})") from e
    if len(raw) > MAX_NAME_BYTES:
        raise InvalidNameError(name, f"{len(raw)} bytes exceeds maximum {MAX_NAME_BYTES}")
    return raw


def _validate_names(entries: list[tuple[str, bytes]]) -> list[bytes]:
    """Check names in order; the first bad or repeated name raises."""
    seen: set[str] = set()
    encoded = []
    for name, _ in entries:
        raw = _encode_name(name)
        if name in seen:
            raise DuplicateNameError(name)
        seen.add(name)
        encoded.append(raw)
    return encoded


def _write(sink: BinaryIO, data: bytes) -> int:
    """Write all of ``data``, looping over short writes from raw streams.

    A raw stream returning None would block and wrote nothing; any other
    sink returning None (buffered or duck-typed) has taken everything.
    """
    view = memoryview(data)
    raw = isinstance(sink, io.RawIOBase)
    try:
        while view:
            n = sink.write(view)
            if n is None:
                if raw:
                    raise SFAIOError(f"Write would block with {len(view)} bytes pending")
                break
            if n == 0:
                raise SFAIOError(f"Sink accepted no data with {len(view)} bytes pending")
            view = view[n:]
    except OSError as e:
        raise SFAIOError(f"Write failed: {e}") from e
    return len(data)


def encode(sink: BinaryIO, entries: Entries) -> int:
    """Write a complete container to ``sink``. Returns bytes written.

    ``entries`` is an ordered iterable of (name, raw image bytes) pairs,
    or a mapping. Raw bytes may be in any readable image format.

    Raises:
        InvalidNameError / DuplicateNameError: before anything is written.
        ImageDecodeError: an entry's bytes are not a decodable image.
        LimitError: too many entries, or an image too large once normalized.
        SFAIOError: the sink failed.
    """
    items = _materialize(entries)
    if len(items) > MAX_ENTRIES:
        raise LimitError(f"{len(items)} entries exceeds maximum {MAX_ENTRIES}")
    raw_names = _validate_names(items)

    written = _write(sink, HEADER_STRUCT.pack(MAGIC, FORMAT_VERSION, len(items)))

    for (name, data), raw_name in zip(items, raw_names):
        png = normalize(data, name=name)
        if len(png) > MAX_ENTRY_SIZE:
            raise LimitError(
                f"{name!r}: canonical image is {len(png)} bytes, maximum {MAX_ENTRY_SIZE}"
            )
        written += _write(sink, LENGTH_STRUCT.pack(len(raw_name)) + raw_name)
        written += _write(sink, LENGTH_STRUCT.pack(len(png)))
        written += _write(sink, png)
        log.debug("Wrote entry %r (%d bytes)", name, len(png))

    flush = getattr(sink, "flush", None)
    if flush is not None:
        try:
            flush()
        except OSError as e:
            raise SFAIOError(f"Flush failed: {e}") from e

    log.debug("Encoded %d entries, %d bytes", len(items), written)
    return written


def encode_bytes(entries: Entries) -> bytes:
    """Encode a container into memory."""
    buf = io.BytesIO()
    encode(buf, entries)
    return buf.getvalue()


def read_image_files(paths: Iterable[str | Path]) -> list[tuple[str, bytes]]:
    """Read image files into (base filename, bytes) pairs, in order."""
    entries = []
    for p in paths:
        path = Path(p)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise SFAIOError(f"Cannot read {str(path)!r}: {e}") from e
        entries.append((path.name, data))
    return entries


def encode_files(sink: BinaryIO, paths: Iterable[str | Path]) -> int:
    """Encode image files, each named by its base filename."""
    return encode(sink, read_image_files(paths))


def write_atomic(path: str | Path, entries: Entries) -> int:
    """Write a container file atomically. Returns bytes written.

    Encodes into a temp file in the destination directory and renames it
    over ``path`` only on success.
    """
    dir_name = os.path.dirname(os.path.abspath(path)) or "."
    try:
        fd, tmp_path = tempfile.mkstemp(dir=dir_name, suffix=".sfa.tmp")
    except OSError as e:
        raise SFAIOError(f"Cannot create temp file in {dir_name!r}: {e}") from e
    try:
        with os.fdopen(fd, "wb") as f:
            written = encode(f, entries)
            try:
                os.fsync(f.fileno())
            except OSError as e:
                raise SFAIOError(f"fsync failed: {e}") from e
        try:
            os.replace(tmp_path, path)
        except OSError as e:
            raise SFAIOError(f"Cannot move container into place at {str(path)!r}: {e}") from e
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    log.debug("Wrote %s (%d bytes)", path, written)
    return written
