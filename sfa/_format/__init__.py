"""
Internal container format engine.

The container format (count-framed, length-prefixed, PNG payloads) is
the on-disk form of an SFA file. Use the re-exports on ``sfa`` rather
than importing from here.

Format: "SFA" + version byte 1
"""

from sfa._format.spec import MAGIC, FORMAT_VERSION, EXTENSION
from sfa._format.writer import encode, encode_bytes, encode_files, write_atomic
from sfa._format.reader import SFAReader, decode, decode_bytes, decode_from_reader
