"""
Container Format Specification v1.

Layout (all integers big-endian, unsigned):
    "SFA"            <- 3-byte magic (file identification)
    <version>        <- 1-byte format version
    <count>          <- uint32 number of entries
    repeated <count> times:
        <name_len>   <- uint32, 1 .. MAX_NAME_BYTES
        <name>       <- name_len bytes, UTF-8
        <data_len>   <- uint32, 1 .. max_entry_size
        <data>       <- data_len bytes, a complete PNG image
    (end of stream, no trailing bytes)

Framing:
    - The entry count is written up front, so a reader knows when the
      stream is done without a terminator.
    - Each field is bounded by its own length prefix; a reader consumes
      exactly that many bytes and never scans for delimiters.
    - Every entry's data decodes on its own, independent of the rest.

Names are unique within a container. Entry order follows the order the
writer was given and is significant to the bytes, not to decoding.
"""

from __future__ import annotations

import struct

# Magic bytes - first bytes of every container file
MAGIC = b"SFA"

# Format version
FORMAT_VERSION = 1

# Supported format versions (reject unknown versions outright)
SUPPORTED_FORMAT_VERSIONS = frozenset({1})

# Header: 3-byte magic + 1-byte version + 4-byte entry count
HEADER_STRUCT = struct.Struct(">3sBI")
HEADER_SIZE = HEADER_STRUCT.size  # 8

# Length prefix for the name and data fields
LENGTH_STRUCT = struct.Struct(">I")
LENGTH_SIZE = LENGTH_STRUCT.size  # 4

# Safety limits
MAX_NAME_BYTES = 4096                  # Max UTF-8 length of an entry name
MAX_ENTRY_SIZE = 256 * 1024 * 1024     # 256MB max canonical image size
MAX_ENTRIES = 65_536                   # Max entries per container

# File extension
EXTENSION = ".sfa"

# Read granularity for large fields (bounds a single read() call)
READ_CHUNK_SIZE = 1024 * 1024
