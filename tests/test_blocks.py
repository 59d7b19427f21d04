"""Tests for locating blocks inside chunk sections."""

from __future__ import annotations

import numpy as np

from anvilscribe.models import END_PORTAL, NETHER_PORTAL, PORTAL_BLOCKS
from anvilscribe.nbt.tags import ByteArrayTag, ByteTag, IntTag, LongArrayTag
from anvilscribe.scan.blocks import bits_per_entry, find_blocks, unpack_indices


def _pack_spanning(values, bits: int):
    """Pack indices back to back across long boundaries, pre-1.16 style."""
    total = 0
    for position, value in enumerate(values):
        total |= value << (position * bits)
    longs = []
    for index in range(len(values) * bits // 64):
        word = (total >> (index * 64)) & ((1 << 64) - 1)
        longs.append(word - (1 << 64) if word >= 1 << 63 else word)
    return longs


class TestUnpack:
    """Packed long arrays unpack to palette indices."""

    def test_bits_per_entry(self) -> None:
        assert bits_per_entry(1) == 4
        assert bits_per_entry(16) == 4
        assert bits_per_entry(17) == 5
        assert bits_per_entry(300) == 9

    def test_non_spanning(self) -> None:
        """Since 1.16 indices never straddle two longs."""
        values = [index % 5 for index in range(4096)]
        longs = []
        per_long = 64 // 5
        for start in range(0, 4096, per_long):
            word = 0
            for offset, value in enumerate(values[start : start + per_long]):
                word |= value << (offset * 5)
            longs.append(word)
        unpacked = unpack_indices(longs, 5, spanning=False)
        assert np.array_equal(unpacked, np.array(values))

    def test_spanning(self) -> None:
        """Before 1.16 a 5-bit index can cross a long boundary."""
        values = [(index * 7) % 31 for index in range(4096)]
        unpacked = unpack_indices(_pack_spanning(values, 5), 5, spanning=True)
        assert np.array_equal(unpacked, np.array(values))


class TestFindBlocks:
    """Block search over the three section layouts."""

    def test_modern_palette(self, fixtures) -> None:
        """1.18+ block_states yield absolute positions and properties."""
        section = fixtures.portal_section(4, [(1, 0, 2), (2, 1, 2)], axis="z")
        root = fixtures.chunk(2, -1, sections=[section])

        found = list(find_blocks(root, 2, -1, PORTAL_BLOCKS))

        assert [(b.x, b.y, b.z) for b in found] == [(33, 64, -14), (34, 65, -14)]
        assert all(b.name == NETHER_PORTAL for b in found)
        assert found[0].properties == {"axis": "z"}

    def test_section_without_target_skipped(self, fixtures) -> None:
        root = fixtures.chunk(0, 0, sections=[fixtures.portal_section(0, [(0, 0, 0)])])
        assert list(find_blocks(root, 0, 0, frozenset({"minecraft:chest"}))) == []

    def test_single_entry_palette(self, fixtures) -> None:
        """A section whose palette is just the target is entirely that block."""
        section = fixtures.tag(
            {"Y": ByteTag(0), "block_states": {"palette": [{"Name": END_PORTAL}]}}
        )
        root = fixtures.chunk(0, 0, sections=[section])
        assert len(list(find_blocks(root, 0, 0, PORTAL_BLOCKS))) == 4096

    def test_pre_1_16_spanning_palette(self, fixtures) -> None:
        """Level.Sections with a 5-bit spanning BlockStates array."""
        palette = [{"Name": f"minecraft:filler_{i}"} for i in range(16)]
        palette.append({"Name": NETHER_PORTAL, "Properties": {"axis": "x"}})
        values = [0] * 4096
        values[5] = 16
        root = fixtures.tag(
            {
                "DataVersion": 1976,
                "Level": {
                    "xPos": 1,
                    "zPos": 1,
                    "Sections": [
                        {
                            "Y": ByteTag(2),
                            "Palette": palette,
                            "BlockStates": LongArrayTag(_pack_spanning(values, 5)),
                        }
                    ],
                },
            }
        )

        found = list(find_blocks(root, 1, 1, PORTAL_BLOCKS))

        assert [(b.x, b.y, b.z) for b in found] == [(21, 32, 16)]

    def test_legacy_numeric_blocks(self, fixtures) -> None:
        """Pre-1.13 ids 90 and 119 map to the portal blocks."""
        blocks = bytearray(4096)
        data = bytearray(2048)
        blocks[0] = 90
        data[0] = 0x02
        blocks[1 + 16] = 119
        root = fixtures.tag(
            {
                "Level": {
                    "xPos": IntTag(0),
                    "zPos": IntTag(0),
                    "Sections": [
                        {
                            "Y": ByteTag(1),
                            "Blocks": ByteArrayTag(bytes(blocks)),
                            "Data": ByteArrayTag(bytes(data)),
                        }
                    ],
                }
            }
        )

        found = {(b.name, b.x, b.y, b.z): b.properties for b in find_blocks(root, 0, 0, PORTAL_BLOCKS)}

        assert found == {
            (NETHER_PORTAL, 0, 16, 0): {"axis": "z"},
            (END_PORTAL, 1, 16, 1): {},
        }

    def test_no_targets(self, fixtures) -> None:
        root = fixtures.chunk(0, 0, sections=[fixtures.portal_section(0, [(0, 0, 0)])])
        assert list(find_blocks(root, 0, 0, frozenset())) == []

    def test_multi_entry_palette_without_data_skipped(self, fixtures) -> None:
        """Missing packed data with a mixed palette yields nothing, not 4096 air blocks."""
        section = fixtures.tag(
            {
                "Y": ByteTag(0),
                "block_states": {
                    "palette": [{"Name": "minecraft:air"}, {"Name": NETHER_PORTAL}],
                },
            }
        )
        root = fixtures.chunk(0, 0, sections=[section])

        assert list(find_blocks(root, 0, 0, PORTAL_BLOCKS)) == []
