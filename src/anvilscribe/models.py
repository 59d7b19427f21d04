"""Core AnvilScribe data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from anvilscribe.nbt.tags import CompoundTag

OVERWORLD = "overworld"
NETHER = "nether"
END = "end"

NETHER_PORTAL = "minecraft:nether_portal"
END_PORTAL = "minecraft:end_portal"
PORTAL_BLOCKS = frozenset({NETHER_PORTAL, END_PORTAL})


class RegionFormat(str, Enum):
    ANVIL = "anvil"
    MCR = "mcr"


@dataclass(slots=True, frozen=True)
class SectorEntry:
    """One slot of a region header: where a chunk lives and when it was saved."""

    index: int
    offset: int
    count: int
    timestamp: int

    @property
    def present(self) -> bool:
        return self.offset != 0

    @property
    def local_x(self) -> int:
        return self.index % 32

    @property
    def local_z(self) -> int:
        return self.index // 32


@dataclass(slots=True)
class RegionFile:
    path: Path
    format: RegionFormat
    size: int
    entries: List[SectorEntry]
    region_x: int = 0
    region_z: int = 0
    sector_size: int = 4096

    def present_entries(self) -> List[SectorEntry]:
        return [entry for entry in self.entries if entry.present]


@dataclass(slots=True, frozen=True)
class Chunk:
    """A decoded chunk with absolute chunk coordinates."""

    x: int
    z: int
    dimension: str
    root: CompoundTag
    source: str = ""


@dataclass(slots=True)
class Location:
    """Where a record was found."""

    dimension: str
    x: int
    y: int
    z: int
    description: str = ""
    source: str = ""


@dataclass(slots=True)
class Book:
    title: str
    author: str
    pages: List[str]
    raw_pages: List[str]
    kind: str
    location: Location
    container_path: Tuple[str, ...] = ()
    generation: int = 0
    content_hash: str = ""
    duplicates: int = 1

    @property
    def display_title(self) -> str:
        return self.title or "writable_book"


@dataclass(slots=True)
class Sign:
    lines: List[str]
    raw_lines: List[str]
    location: Location
    block_id: str
    back_lines: List[str] = field(default_factory=list)

    @property
    def key(self) -> Tuple[str, int, int, int]:
        loc = self.location
        return (loc.dimension, loc.x, loc.y, loc.z)

    @property
    def text(self) -> str:
        return "│".join(self.lines).strip()

    @property
    def raw_text(self) -> str:
        return "│".join(self.raw_lines).strip()


@dataclass(slots=True)
class ItemStack:
    item_id: str
    count: int
    location: Location
    container_type: str
    container_path: Tuple[str, ...] = ()
    slot: Optional[int] = None
    damage: int = 0
    custom_name: str = ""
    lore: List[str] = field(default_factory=list)
    enchantments: Dict[str, int] = field(default_factory=dict)
    stored_enchantments: Dict[str, int] = field(default_factory=dict)
    unbreakable: bool = False
    player_uuid: Optional[str] = None


@dataclass(slots=True)
class CustomName:
    kind: str
    object_id: str
    name: str
    location: Location

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.name, self.kind, self.object_id)


@dataclass(slots=True)
class BlockRecord:
    block_type: str
    dimension: str
    x: int
    y: int
    z: int
    properties: Dict[str, str] = field(default_factory=dict)
    region_file: str = ""

    @property
    def key(self) -> Tuple[str, str, int, int, int]:
        return (self.block_type, self.dimension, self.x, self.y, self.z)


@dataclass(slots=True, frozen=True)
class BoundingBox:
    min_x: int
    min_y: int
    min_z: int
    max_x: int
    max_y: int
    max_z: int

    @property
    def center(self) -> Tuple[float, float, float]:
        return (
            (self.min_x + self.max_x) / 2,
            (self.min_y + self.max_y) / 2,
            (self.min_z + self.max_z) / 2,
        )

    @property
    def size(self) -> Tuple[int, int, int]:
        return (
            self.max_x - self.min_x + 1,
            self.max_y - self.min_y + 1,
            self.max_z - self.min_z + 1,
        )


@dataclass(slots=True, frozen=True)
class Portal:
    portal_id: int
    dimension: str
    kind: str
    box: BoundingBox
    width: int
    height: int
    axis: str
    block_count: int

    @property
    def center(self) -> Tuple[float, float, float]:
        return self.box.center


class Confidence(str, Enum):
    EXACT = "EXACT"
    CLOSE = "CLOSE"
    LIKELY = "LIKELY"
    UNCERTAIN = "UNCERTAIN"
    ORPHAN = "ORPHAN"

    @property
    def percent(self) -> int:
        return _CONFIDENCE_PERCENT[self]


_CONFIDENCE_PERCENT = {
    Confidence.EXACT: 100,
    Confidence.CLOSE: 95,
    Confidence.LIKELY: 80,
    Confidence.UNCERTAIN: 50,
    Confidence.ORPHAN: 0,
}


@dataclass(slots=True, frozen=True)
class PairingResult:
    source: Portal
    target: Optional[Portal]
    distance: float
    confidence: Confidence
    description: str

    @property
    def paired(self) -> bool:
        return self.target is not None


@dataclass(slots=True)
class ExtractionBatch:
    """Records produced from one file, before deduplication.

    Workers fill a batch locally and hand it back whole; nothing in a batch is
    shared until the indexer merges it.
    """

    source: str = ""
    books: List[Book] = field(default_factory=list)
    signs: List[Sign] = field(default_factory=list)
    items: List[ItemStack] = field(default_factory=list)
    custom_names: List[CustomName] = field(default_factory=list)
    blocks: List[BlockRecord] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    chunks_read: int = 0
    chunks_skipped: int = 0
    subtrees_skipped: int = 0
    empty_signs: int = 0
    failed: bool = False

    def extend(self, other: "ExtractionBatch") -> None:
        self.books.extend(other.books)
        self.signs.extend(other.signs)
        self.items.extend(other.items)
        self.custom_names.extend(other.custom_names)
        self.blocks.extend(other.blocks)
        self.warnings.extend(other.warnings)
        self.chunks_read += other.chunks_read
        self.chunks_skipped += other.chunks_skipped
        self.subtrees_skipped += other.subtrees_skipped
        self.empty_signs += other.empty_signs
