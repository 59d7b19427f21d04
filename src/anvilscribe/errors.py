"""Exceptions raised while reading world data."""

from __future__ import annotations


class ExtractionError(Exception):
    """Base class for every error raised by the extraction core."""


class CorruptRegionFile(ExtractionError):
    """The region header is unreadable or points outside the file."""


class UnsupportedCompressionScheme(ExtractionError):
    """A chunk declares a compression scheme we cannot inflate."""


class TruncatedChunk(ExtractionError):
    """A chunk blob is shorter than its declared length or fails to inflate."""


class MalformedNbt(ExtractionError):
    """The NBT stream has a bad tag id, bad length or is unterminated."""


class RecursionDepthExceeded(ExtractionError):
    """Nested containers go deeper than the configured cap.

    This is a soft failure: the offending subtree is dropped and recorded as a
    warning, the rest of the scan continues.
    """
