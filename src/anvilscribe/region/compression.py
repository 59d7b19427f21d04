"""Chunk blob decompression."""

from __future__ import annotations

import gzip
import logging
import zlib
from enum import IntEnum
from pathlib import Path
from typing import Tuple

from anvilscribe.errors import TruncatedChunk, UnsupportedCompressionScheme

LOGGER = logging.getLogger(__name__)

# Set on the scheme byte when the payload lives in an external c.<x>.<z>.mcc file.
EXTERNAL_FLAG = 0x80
GZIP_MAGIC = b"\x1f\x8b"


class CompressionScheme(IntEnum):
    GZIP = 1
    ZLIB = 2
    NONE = 3
    LZ4 = 4


def split_blob(blob: bytes) -> Tuple[int, bytes]:
    """Split a chunk blob into its scheme byte and exactly-sized payload."""
    if len(blob) < 5:
        raise TruncatedChunk(f"Chunk blob has only {len(blob)} bytes")
    length = int.from_bytes(blob[:4], "big")
    if length == 0:
        raise TruncatedChunk("Chunk declares zero length")
    available = len(blob) - 4
    if length > available:
        raise TruncatedChunk(f"Chunk declares {length} bytes but only {available} follow")
    scheme = blob[4]
    return scheme, bytes(blob[5 : 4 + length])


def inflate(scheme: int, payload: bytes) -> bytes:
    """Inflate ``payload`` according to ``scheme``."""
    try:
        if scheme == CompressionScheme.GZIP:
            return gzip.decompress(payload)
        if scheme == CompressionScheme.ZLIB:
            return zlib.decompress(payload)
        if scheme == CompressionScheme.NONE:
            return payload
    except (zlib.error, EOFError, OSError) as exc:
        raise TruncatedChunk(f"Cannot inflate scheme {scheme} payload: {exc}") from exc
    raise UnsupportedCompressionScheme(f"Unsupported compression scheme {scheme}")


def decompress_chunk(blob: bytes) -> bytes:
    """Return the raw NBT stream held in a chunk blob."""
    scheme, payload = split_blob(blob)
    if scheme & EXTERNAL_FLAG:
        raise TruncatedChunk("Chunk payload is stored externally")
    return inflate(scheme, payload)


def decompress_file(path: Path) -> bytes:
    """Read a standalone NBT document such as ``playerdata/<uuid>.dat``.

    Player files are gzip-compressed, but some tools write them plain or
    zlib-compressed, so the header bytes decide.
    """
    data = Path(path).read_bytes()
    if data[:2] == GZIP_MAGIC:
        try:
            return gzip.decompress(data)
        except (zlib.error, EOFError, OSError) as exc:
            raise TruncatedChunk(f"Cannot inflate {path}: {exc}") from exc
    if data[:1] == b"\x78":
        try:
            return zlib.decompress(data)
        except zlib.error:
            LOGGER.debug("%s looks like zlib but is not, reading as plain NBT", path)
    return data
