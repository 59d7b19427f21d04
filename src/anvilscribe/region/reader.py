"""Region file (.mca / .mcr) container decoding."""

from __future__ import annotations

import logging
import re
import struct
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from anvilscribe.errors import CorruptRegionFile, TruncatedChunk
from anvilscribe.models import RegionFile, RegionFormat, SectorEntry
from anvilscribe.region.compression import EXTERNAL_FLAG, decompress_chunk

LOGGER = logging.getLogger(__name__)

SECTOR_BYTES = 4096
ENTRY_COUNT = 1024
HEADER_BYTES = 2 * SECTOR_BYTES
REGION_NAME = re.compile(r"^r\.(-?\d+)\.(-?\d+)\.(mca|mcr)$", re.IGNORECASE)

_TABLE = struct.Struct(f">{ENTRY_COUNT}I")


def detect_format(path: Path) -> RegionFormat:
    suffix = Path(path).suffix.lower()
    if suffix == ".mca":
        return RegionFormat.ANVIL
    if suffix == ".mcr":
        return RegionFormat.MCR
    raise CorruptRegionFile(f"Not a region file: {path}")


def parse_region_coords(path: Path) -> Optional[Tuple[int, int]]:
    """Region coordinates from an ``r.<x>.<z>.mca`` name, or None."""
    match = REGION_NAME.match(Path(path).name)
    if match is None:
        return None
    return int(match.group(1)), int(match.group(2))


def read_sector_table(data: bytes, path: Path) -> List[SectorEntry]:
    """Parse and validate the 8 KiB header.

    Every present entry must point past the header and end within the file.
    """
    size = len(data)
    if size < HEADER_BYTES:
        raise CorruptRegionFile(f"{path}: {size} bytes is shorter than the region header")

    locations = _TABLE.unpack_from(data, 0)
    timestamps = _TABLE.unpack_from(data, SECTOR_BYTES)
    entries: List[SectorEntry] = []
    for index, (location, timestamp) in enumerate(zip(locations, timestamps)):
        offset, count = location >> 8, location & 0xFF
        entry = SectorEntry(index=index, offset=offset, count=count, timestamp=timestamp)
        if entry.present:
            if count <= 0:
                raise CorruptRegionFile(f"{path}: entry {index} has sector count {count}")
            if offset < HEADER_BYTES // SECTOR_BYTES:
                raise CorruptRegionFile(f"{path}: entry {index} points into the header")
            end = (offset + count) * SECTOR_BYTES
            if end > size:
                raise CorruptRegionFile(
                    f"{path}: entry {index} ends at byte {end}, file has {size}"
                )
        entries.append(entry)
    return entries


class RegionFileReader:
    """Reads chunk blobs out of one region file.

    The whole file is loaded once; region files are at most a few megabytes.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        fmt = detect_format(self.path)
        data = self.path.read_bytes()
        coords = parse_region_coords(self.path) or (0, 0)
        if data:
            entries = read_sector_table(data, self.path)
        else:
            # The game leaves zero-length region files behind; they hold no chunks.
            LOGGER.debug("Empty region file %s", self.path)
            entries = [SectorEntry(index, 0, 0, 0) for index in range(ENTRY_COUNT)]
        self._data = data
        self.region = RegionFile(
            path=self.path,
            format=fmt,
            size=len(data),
            entries=entries,
            region_x=coords[0],
            region_z=coords[1],
            sector_size=SECTOR_BYTES,
        )

    def chunk_origin(self, local_x: int, local_z: int) -> Tuple[int, int]:
        """Absolute chunk coordinates of a local (0-31) slot."""
        return self.region.region_x * 32 + local_x, self.region.region_z * 32 + local_z

    def _blob(self, entry: SectorEntry) -> bytes:
        start = entry.offset * SECTOR_BYTES
        return self._data[start : start + entry.count * SECTOR_BYTES]

    def iter_chunks(self) -> Iterator[Tuple[int, int, bytes]]:
        """Yield ``(local_x, local_z, blob)`` for present chunks in header order."""
        for entry in self.region.entries:
            if entry.present:
                yield entry.local_x, entry.local_z, self._blob(entry)

    def read_chunk(self, local_x: int, local_z: int) -> Optional[bytes]:
        entry = self.region.entries[local_x + local_z * 32]
        if not entry.present:
            return None
        return self._blob(entry)

    def resolve_blob(self, local_x: int, local_z: int, blob: bytes) -> bytes:
        """Swap in the external ``.mcc`` payload when the blob is only a stub."""
        if len(blob) < 5 or not blob[4] & EXTERNAL_FLAG:
            return blob
        chunk_x, chunk_z = self.chunk_origin(local_x, local_z)
        external = self.path.parent / f"c.{chunk_x}.{chunk_z}.mcc"
        if not external.is_file():
            raise TruncatedChunk(f"External chunk file {external.name} is missing")
        payload = external.read_bytes()
        scheme = blob[4] & ~EXTERNAL_FLAG
        return (len(payload) + 1).to_bytes(4, "big") + bytes([scheme]) + payload

    def decompressed(self, local_x: int, local_z: int, blob: bytes) -> bytes:
        return decompress_chunk(self.resolve_blob(local_x, local_z, blob))
