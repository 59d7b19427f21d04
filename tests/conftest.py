"""Shared fixtures: synthetic NBT documents, region files and worlds."""

from __future__ import annotations

import gzip
import struct
import zlib
from pathlib import Path
from typing import Callable, Dict, Tuple

import pytest

from anvilscribe.nbt.encoder import encode
from anvilscribe.nbt.tags import (
    ByteArrayTag,
    ByteTag,
    CompoundTag,
    DoubleTag,
    IntTag,
    ListTag,
    LongArrayTag,
    StringTag,
    TagId,
)


def to_tag(value):
    """Build a tag from plain Python values (bool/int -> Int, float -> Double)."""
    if hasattr(value, "tag_id"):
        return value
    if isinstance(value, bool):
        return ByteTag(int(value))
    if isinstance(value, int):
        return IntTag(value)
    if isinstance(value, float):
        return DoubleTag(value)
    if isinstance(value, str):
        return StringTag(value)
    if isinstance(value, bytes):
        return ByteArrayTag(value)
    if isinstance(value, dict):
        return CompoundTag({key: to_tag(child) for key, child in value.items()})
    if isinstance(value, list):
        items = [to_tag(child) for child in value]
        return ListTag(items[0].tag_id if items else TagId.END, items)
    raise TypeError(f"Cannot convert {value!r}")


def chunk_blob(root: CompoundTag, scheme: int = 2) -> bytes:
    raw = encode(root)
    if scheme == 1:
        payload = gzip.compress(raw)
    elif scheme == 2:
        payload = zlib.compress(raw)
    else:
        payload = raw
    return (len(payload) + 1).to_bytes(4, "big") + bytes([scheme]) + payload


def build_region(chunks: Dict[Tuple[int, int], bytes]) -> bytes:
    """Lay out chunk blobs behind a valid 8 KiB header."""
    header = bytearray(8192)
    body = bytearray()
    sector = 2
    for (local_x, local_z), blob in sorted(chunks.items(), key=lambda kv: (kv[0][1], kv[0][0])):
        padded = blob + b"\x00" * (-len(blob) % 4096)
        count = len(padded) // 4096
        index = local_x + local_z * 32
        struct.pack_into(">I", header, index * 4, (sector << 8) | count)
        struct.pack_into(">I", header, 4096 + index * 4, 1_700_000_000)
        body += padded
        sector += count
    return bytes(header + body)


def item(item_id: str, count: int = 1, **extra) -> Dict[str, object]:
    data: Dict[str, object] = {"id": item_id, "Count": ByteTag(count)}
    data.update(extra)
    return data


def written_book(title: str, author: str, pages, **extra) -> Dict[str, object]:
    tag = {
        "title": title,
        "author": author,
        "pages": [f'{{"text":"{page}"}}' for page in pages],
    }
    tag.update(extra)
    return item("minecraft:written_book", tag=tag)


def modern_chunk(x: int, z: int, *, block_entities=(), entities=(), sections=()) -> CompoundTag:
    return to_tag(
        {
            "DataVersion": 3700,
            "xPos": x,
            "zPos": z,
            "block_entities": list(block_entities),
            "entities": list(entities),
            "sections": list(sections),
        }
    )


def sign_entity(x: int, y: int, z: int, lines, back=("", "", "", "")) -> Dict[str, object]:
    return {
        "id": "minecraft:oak_sign",
        "x": x,
        "y": y,
        "z": z,
        "front_text": {"messages": [f'"{line}"' for line in lines]},
        "back_text": {"messages": [f'"{line}"' for line in back]},
    }


def portal_section(section_y: int, positions, axis: str = "x") -> Dict[str, object]:
    """A 1.18+ section with air everywhere except the given local positions."""
    indices = [0] * 4096
    for local_x, local_y, local_z in positions:
        indices[local_y * 256 + local_z * 16 + local_x] = 1
    longs = []
    for start in range(0, 4096, 16):
        word = 0
        for offset, value in enumerate(indices[start : start + 16]):
            word |= value << (offset * 4)
        if word >= 1 << 63:
            word -= 1 << 64
        longs.append(word)
    return {
        "Y": ByteTag(section_y),
        "block_states": {
            "palette": [
                {"Name": "minecraft:air"},
                {"Name": "minecraft:nether_portal", "Properties": {"axis": axis}},
            ],
            "data": LongArrayTag(longs),
        },
    }


@pytest.fixture
def fixtures():
    """Namespace of builders for items, books, chunks and sections."""

    class Builders:
        tag = staticmethod(to_tag)
        blob = staticmethod(chunk_blob)
        region = staticmethod(build_region)
        item = staticmethod(item)
        written_book = staticmethod(written_book)
        chunk = staticmethod(modern_chunk)
        sign = staticmethod(sign_entity)
        portal_section = staticmethod(portal_section)

    return Builders


@pytest.fixture
def world(tmp_path: Path) -> Path:
    """Empty world folder with the standard dimension layout."""
    root = tmp_path / "world"
    for folder in ("region", "entities", "DIM-1/region", "DIM1/region", "playerdata"):
        (root / folder).mkdir(parents=True)
    return root


@pytest.fixture
def write_player() -> Callable:
    def _write(path: Path, root: CompoundTag) -> Path:
        path.write_bytes(gzip.compress(encode(root)))
        return path

    return _write
