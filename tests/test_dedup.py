"""Tests for record deduplication in the indexer."""

from __future__ import annotations

from anvilscribe.index.dedup import Indexer, book_key
from anvilscribe.models import (
    NETHER_PORTAL,
    OVERWORLD,
    BlockRecord,
    Book,
    CustomName,
    ExtractionBatch,
    ItemStack,
    Location,
    Sign,
)


def _location(x: int = 0, y: int = 64, z: int = 0, description: str = "") -> Location:
    return Location(OVERWORLD, x, y, z, description=description or f"({x} {y} {z})")


def _book(title: str = "Diary", pages=("Hello",), *, x: int = 0, generation: int = 0) -> Book:
    return Book(
        title=title,
        author="Alex",
        pages=list(pages),
        raw_pages=list(pages),
        kind="written",
        location=_location(x),
        generation=generation,
    )


def _sign(lines, x: int = 10) -> Sign:
    return Sign(lines=list(lines), raw_lines=list(lines), location=_location(x, 65, 20), block_id="minecraft:oak_sign")


def _item(item_id: str, x: int = 0) -> ItemStack:
    return ItemStack(item_id=item_id, count=1, location=_location(x), container_type="chest")


class TestBooks:
    """Identical books collapse to one canonical record."""

    def test_same_book_two_locations(self) -> None:
        index = Indexer()
        first = _book(x=1)
        second = _book(x=2)

        assert index.add_book(first) is True
        assert index.add_book(second) is False

        (canonical,) = index.books
        assert canonical is first
        assert canonical.duplicates == 2
        assert canonical.location.x == 1
        assert index.duplicate_books == [second]
        assert index.stats.duplicate_books == 1

    def test_key_ignores_formatting_and_whitespace(self) -> None:
        plain = _book(pages=["Hello  world"])
        styled = _book(pages=["§lHello world "])
        assert book_key(plain) == book_key(styled)

    def test_key_is_case_sensitive(self) -> None:
        assert book_key(_book(pages=["hello"])) != book_key(_book(pages=["Hello"]))

    def test_page_boundaries_matter(self) -> None:
        assert book_key(_book(pages=["ab", "c"])) != book_key(_book(pages=["a", "bc"]))

    def test_original_generation_preferred(self) -> None:
        """A copy closer to the original moves the canonical location."""
        index = Indexer()
        index.add_book(_book(x=1, generation=2))
        index.add_book(_book(x=5, generation=0))

        (canonical,) = index.books
        assert canonical.generation == 0
        assert canonical.location.x == 5
        assert canonical.duplicates == 2
        (displaced,) = index.duplicate_books
        assert (displaced.location.x, displaced.generation) == (1, 2)

    def test_hash_recorded(self) -> None:
        index = Indexer()
        book = _book()
        index.add_book(book)
        assert book.content_hash == book_key(book)
        assert len(book.content_hash) == 64


class TestSignsAndNames:
    """Signs key on location; names on (name, type, id)."""

    def test_last_sign_wins(self) -> None:
        index = Indexer()
        index.add_sign(_sign(["old", "", "", ""]))
        index.add_sign(_sign(["new", "", "", ""]))

        (sign,) = index.signs
        assert sign.lines[0] == "new"
        assert index.stats.signs_replaced == 1

    def test_distinct_locations_kept(self) -> None:
        index = Indexer()
        index.add_sign(_sign(["a"], x=1))
        index.add_sign(_sign(["a"], x=2))
        assert len(index.signs) == 2

    def test_custom_name_first_kept(self) -> None:
        index = Indexer()
        index.add_custom_name(CustomName("item", "minecraft:diamond_sword", "Excalibur", _location(1)))
        index.add_custom_name(CustomName("item", "minecraft:diamond_sword", "Excalibur", _location(9)))
        index.add_custom_name(CustomName("entity", "minecraft:wolf", "Excalibur", _location(3)))

        names = index.custom_names
        assert len(names) == 2
        assert names[0].location.x == 1
        assert index.stats.duplicate_names == 1


class TestItemsAndBlocks:
    """Items honor the skip list and per-type limit; blocks are unique."""

    def test_item_limit(self) -> None:
        index = Indexer(item_limit=2)
        results = [index.add_item(_item("minecraft:dirt", x)) for x in range(4)]
        index.add_item(_item("minecraft:diamond"))

        assert results == [True, True, False, False]
        assert [item.item_id for item in index.items] == [
            "minecraft:dirt",
            "minecraft:dirt",
            "minecraft:diamond",
        ]
        assert index.stats.items_skipped == 2

    def test_skipped_items(self) -> None:
        index = Indexer(skipped_items={"minecraft:cobblestone"})
        assert index.add_item(_item("minecraft:cobblestone")) is False
        assert index.items == []

    def test_blocks_unique_by_position(self) -> None:
        index = Indexer()
        block = BlockRecord(NETHER_PORTAL, OVERWORLD, 0, 64, 0, {"axis": "x"}, "r.0.0.mca")
        again = BlockRecord(NETHER_PORTAL, OVERWORLD, 0, 64, 0, {"axis": "x"}, "r.0.0.mcr")
        other = BlockRecord("minecraft:chest", OVERWORLD, 0, 64, 0)
        for record in (block, again, other):
            index.add_block(record)

        assert len(index.blocks) == 2
        assert index.portal_blocks == [block]


class TestMerge:
    """Batches fold into the index in order."""

    def test_merge_counts_and_records(self) -> None:
        batch = ExtractionBatch(source="r.0.0.mca", chunks_read=3, chunks_skipped=1, empty_signs=2)
        batch.books.append(_book())
        batch.signs.append(_sign(["hi"]))
        batch.warnings.append("deep shulker")
        failed = ExtractionBatch(source="r.1.0.mca", failed=True)

        index = Indexer()
        index.merge(batch)
        index.merge(failed)

        stats = index.stats
        assert (stats.files_processed, stats.files_failed) == (1, 1)
        assert (stats.chunks_read, stats.chunks_skipped, stats.empty_signs) == (3, 1, 2)
        assert stats.warnings == ["deep shulker"]
        assert len(index.books) == 1
        assert len(index.signs) == 1
