"""
Error taxonomy shared by the normalizer, writer and reader.

Every error is raised at the point of detection and never retried.
``exit_code`` is the process status the ``sfa`` command exits with when
the error reaches it.
"""

from __future__ import annotations


class SFAError(Exception):
    """Base class for all container errors."""

    exit_code = 1


class SFAIOError(SFAError):
    """Reading from a source or writing to a sink failed."""

    exit_code = 3


class FormatError(SFAError):
    """Header magic or format version is not one this reader understands."""

    exit_code = 4


class CorruptionError(SFAError):
    """Stream ended mid-field, or a declared length or name is invalid."""

    exit_code = 5


class ImageDecodeError(SFAError):
    """Image bytes for an entry could not be decoded."""

    exit_code = 6

    def __init__(self, message: str, name: str | None = None) -> None:
        self.name = name
        if name is not None:
            message = f"{name!r}: {message}"
        super().__init__(message)


class DuplicateNameError(SFAError):
    """The same entry name was given twice in one encode call."""

    exit_code = 7

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Duplicate entry name: {name!r}")


class InvalidNameError(SFAError, ValueError):
    """Entry name is empty, too long, or unsafe to use as a filename."""

    exit_code = 8

    def __init__(self, name: str, reason: str) -> None:
        self.name = name
        super().__init__(f"Invalid entry name {name!r}: {reason}")


class LimitError(SFAError, ValueError):
    """Too many entries, or a canonical image too large to store."""

    exit_code = 9
