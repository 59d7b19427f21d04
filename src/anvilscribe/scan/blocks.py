"""Locate specific blocks inside chunk sections.

Three storage layouts are handled:

* 1.18+: ``sections[].block_states`` with ``palette`` and packed ``data``.
* 1.13 - 1.17: ``Level.Sections[].Palette`` and ``BlockStates``. Before
  DataVersion 2529 (1.16) indices may straddle two longs.
* pre-1.13: numeric ``Blocks`` byte arrays with optional ``Add`` and ``Data``
  nibbles. Only the portal ids can be mapped to names.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import AbstractSet, Dict, Iterator, List, Tuple

import numpy as np

from anvilscribe.models import END_PORTAL, NETHER_PORTAL
from anvilscribe.nbt.tags import CompoundTag, StringTag

LOGGER = logging.getLogger(__name__)

SECTION_VOLUME = 4096
PACKING_CHANGE_VERSION = 2529
LEGACY_BLOCK_NAMES = {90: NETHER_PORTAL, 119: END_PORTAL}
_LEGACY_PORTAL_AXIS = {1: "x", 2: "z"}


@dataclass(slots=True)
class FoundBlock:
    name: str
    x: int
    y: int
    z: int
    properties: Dict[str, str]


def bits_per_entry(palette_size: int) -> int:
    return max(4, (palette_size - 1).bit_length())


def unpack_indices(data: List[int], bits: int, spanning: bool) -> np.ndarray:
    """Unpack 4096 palette indices from a packed long array."""
    words = np.array(data, dtype=np.int64).view(np.uint64)
    mask = np.uint64((1 << bits) - 1)
    if not spanning:
        per_long = 64 // bits
        shifts = (np.arange(per_long, dtype=np.uint64) * np.uint64(bits))
        values = (words[:, None] >> shifts[None, :]) & mask
        return values.reshape(-1)[:SECTION_VOLUME].astype(np.int64)

    positions = np.arange(SECTION_VOLUME, dtype=np.int64) * bits
    word_index = positions // 64
    offset = (positions % 64).astype(np.uint64)
    low = words[np.minimum(word_index, len(words) - 1)] >> offset
    spans = (offset + np.uint64(bits)) > np.uint64(64)
    next_index = np.minimum(word_index + 1, len(words) - 1)
    high_shift = np.where(spans, np.uint64(64) - offset, np.uint64(0))
    high = np.where(spans, words[next_index] << high_shift, np.uint64(0))
    return ((low | high) & mask).astype(np.int64)


def _infer_bits(data_length: int, palette_size: int, spanning: bool) -> int:
    bits = bits_per_entry(palette_size)
    if spanning:
        if data_length * 64 != SECTION_VOLUME * bits and data_length:
            bits = data_length * 64 // SECTION_VOLUME
        return bits
    expected = -(-SECTION_VOLUME // (64 // bits))
    if data_length and data_length != expected:
        per_long = -(-SECTION_VOLUME // data_length)
        bits = 64 // per_long
    return bits


def _palette_entry(entry: CompoundTag) -> Tuple[str, Dict[str, str]]:
    properties = {}
    for key, value in entry.get_compound("Properties").items():
        match value:
            case StringTag(text):
                properties[key] = text
    return entry.get_string("Name"), properties


def _iter_palette_section(
    palette: List[Tuple[str, Dict[str, str]]],
    data: List[int],
    targets: AbstractSet[str],
    spanning: bool,
) -> Iterator[Tuple[int, str, Dict[str, str]]]:
    wanted = [index for index, (name, _) in enumerate(palette) if name in targets]
    if not wanted:
        return
    if len(palette) == 1:
        name, properties = palette[0]
        for index in range(SECTION_VOLUME):
            yield index, name, properties
        return
    if not data:
        LOGGER.debug("Skipping section with %d palette entries and no block data", len(palette))
        return
    bits = _infer_bits(len(data), len(palette), spanning)
    if bits <= 0 or bits > 32:
        LOGGER.debug("Skipping section with implausible %s bits per block", bits)
        return
    indices = unpack_indices(data, bits, spanning)
    for block_index in np.flatnonzero(np.isin(indices, wanted)):
        name, properties = palette[int(indices[block_index])]
        yield int(block_index), name, properties


def _iter_legacy_section(section: CompoundTag, targets: AbstractSet[str]):
    blocks = section.get_byte_array("Blocks")
    if len(blocks) < SECTION_VOLUME:
        return
    wanted = [block_id for block_id, name in LEGACY_BLOCK_NAMES.items() if name in targets]
    if not wanted:
        return
    ids = np.frombuffer(blocks, dtype=np.uint8)[:SECTION_VOLUME].astype(np.int64)
    add = section.get_byte_array("Add")
    if len(add) >= SECTION_VOLUME // 2:
        nibbles = np.frombuffer(add, dtype=np.uint8)[: SECTION_VOLUME // 2]
        extra = np.empty(SECTION_VOLUME, dtype=np.int64)
        extra[0::2] = nibbles & 0x0F
        extra[1::2] = nibbles >> 4
        ids |= extra << 8
    meta = section.get_byte_array("Data")
    for block_index in np.flatnonzero(np.isin(ids, wanted)):
        block_index = int(block_index)
        name = LEGACY_BLOCK_NAMES[int(ids[block_index])]
        properties: Dict[str, str] = {}
        if name == NETHER_PORTAL and len(meta) > block_index // 2:
            nibble = meta[block_index // 2]
            value = nibble >> 4 if block_index % 2 else nibble & 0x0F
            if value in _LEGACY_PORTAL_AXIS:
                properties["axis"] = _LEGACY_PORTAL_AXIS[value]
        yield block_index, name, properties


def find_blocks(
    root: CompoundTag,
    chunk_x: int,
    chunk_z: int,
    targets: AbstractSet[str],
) -> Iterator[FoundBlock]:
    """Yield every block in the chunk whose id is in ``targets``."""
    if not targets:
        return
    level = root.get_compound("Level") if root.has("Level") else root
    sections = root.get_list("sections") if root.has("sections") else level.get_list("Sections")
    spanning = root.get_int("DataVersion", 0) < PACKING_CHANGE_VERSION
    base_x, base_z = chunk_x * 16, chunk_z * 16

    for section in sections.compounds():
        section_y = section.get_int("Y")
        if section.has("block_states"):
            states = section.get_compound("block_states")
            palette = [_palette_entry(entry) for entry in states.get_list("palette").compounds()]
            found = _iter_palette_section(palette, states.get_long_array("data"), targets, False)
        elif section.has("Palette"):
            palette = [_palette_entry(entry) for entry in section.get_list("Palette").compounds()]
            found = _iter_palette_section(
                palette, section.get_long_array("BlockStates"), targets, spanning
            )
        elif section.has("Blocks"):
            found = _iter_legacy_section(section, targets)
        else:
            continue

        for index, name, properties in found:
            yield FoundBlock(
                name=name,
                x=base_x + (index & 15),
                y=section_y * 16 + (index >> 8),
                z=base_z + ((index >> 4) & 15),
                properties=dict(properties),
            )
