"""Deduplication and indexing of extracted records."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field, replace
from typing import AbstractSet, Dict, List, Tuple

from anvilscribe.extract.text import normalize_whitespace, strip_formatting
from anvilscribe.models import (
    PORTAL_BLOCKS,
    BlockRecord,
    Book,
    CustomName,
    ExtractionBatch,
    ItemStack,
    Sign,
)
from anvilscribe.utils.files import compute_sha256

LOGGER = logging.getLogger(__name__)


def book_key(book: Book) -> str:
    """Content hash of a book: normalized title, author and joined pages.

    Whitespace runs collapse and formatting codes are dropped; case is kept.
    """

    def normalize(text: str) -> str:
        return normalize_whitespace(strip_formatting(text))

    pages = "\n".join(normalize(page) for page in book.pages)
    return compute_sha256((normalize(book.title), normalize(book.author), pages))


@dataclass(slots=True)
class IndexStats:
    files_processed: int = 0
    files_failed: int = 0
    chunks_read: int = 0
    chunks_skipped: int = 0
    subtrees_skipped: int = 0
    empty_signs: int = 0
    duplicate_books: int = 0
    signs_replaced: int = 0
    duplicate_names: int = 0
    items_skipped: int = 0
    warnings: List[str] = field(default_factory=list)

    def increment(self, batch: ExtractionBatch) -> None:
        if batch.failed:
            self.files_failed += 1
        else:
            self.files_processed += 1
        self.chunks_read += batch.chunks_read
        self.chunks_skipped += batch.chunks_skipped
        self.subtrees_skipped += batch.subtrees_skipped
        self.empty_signs += batch.empty_signs
        self.warnings.extend(batch.warnings)


class Indexer:
    """Owns every record between extraction and output.

    Books collapse by content hash, signs by location (last write wins),
    custom names by (name, type, id) and blocks by (type, dimension, x, y, z).
    Items are all kept, subject to the optional per-type limit and skip list.
    """

    def __init__(self, *, item_limit: int = 0, skipped_items: AbstractSet[str] = frozenset()) -> None:
        self.item_limit = item_limit
        self.skipped_items = frozenset(skipped_items)
        self.stats = IndexStats()
        self.duplicate_books: List[Book] = []
        self.items: List[ItemStack] = []
        self._books: Dict[str, Book] = {}
        self._signs: Dict[Tuple[str, int, int, int], Sign] = {}
        self._names: Dict[Tuple[str, str, str], CustomName] = {}
        self._blocks: Dict[Tuple[str, str, int, int, int], BlockRecord] = {}
        self._item_counts: Counter = Counter()

    @property
    def books(self) -> List[Book]:
        return list(self._books.values())

    @property
    def signs(self) -> List[Sign]:
        return list(self._signs.values())

    @property
    def custom_names(self) -> List[CustomName]:
        return list(self._names.values())

    @property
    def blocks(self) -> List[BlockRecord]:
        return list(self._blocks.values())

    @property
    def portal_blocks(self) -> List[BlockRecord]:
        return [block for block in self._blocks.values() if block.block_type in PORTAL_BLOCKS]

    def merge(self, batch: ExtractionBatch) -> None:
        """Fold one file's batch into the index. Call in file order."""
        self.stats.increment(batch)
        for book in batch.books:
            self.add_book(book)
        for sign in batch.signs:
            self.add_sign(sign)
        for name in batch.custom_names:
            self.add_custom_name(name)
        for item in batch.items:
            self.add_item(item)
        for block in batch.blocks:
            self.add_block(block)

    def add_book(self, book: Book) -> bool:
        """Index a book; returns True when it becomes a new canonical record."""
        key = book_key(book)
        book.content_hash = key
        canonical = self._books.get(key)
        if canonical is None:
            book.duplicates = 1
            self._books[key] = book
            return True

        self.stats.duplicate_books += 1
        canonical.duplicates += 1
        if book.generation >= canonical.generation:
            self.duplicate_books.append(book)
        else:
            # Keep the copy closest to the original as the canonical location;
            # the copy it displaces becomes the duplicate.
            self.duplicate_books.append(replace(canonical, duplicates=1))
            canonical.location = book.location
            canonical.container_path = book.container_path
            canonical.generation = book.generation
        LOGGER.debug("Duplicate book %r at %s", book.title, book.location.description)
        return False

    def add_sign(self, sign: Sign) -> None:
        if sign.key in self._signs:
            self.stats.signs_replaced += 1
        self._signs[sign.key] = sign

    def add_custom_name(self, name: CustomName) -> None:
        if name.key in self._names:
            self.stats.duplicate_names += 1
            return
        self._names[name.key] = name

    def add_item(self, item: ItemStack) -> bool:
        if item.item_id in self.skipped_items:
            self.stats.items_skipped += 1
            return False
        if self.item_limit and self._item_counts[item.item_id] >= self.item_limit:
            self.stats.items_skipped += 1
            return False
        self._item_counts[item.item_id] += 1
        self.items.append(item)
        return True

    def add_block(self, block: BlockRecord) -> None:
        self._blocks.setdefault(block.key, block)
