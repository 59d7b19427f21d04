"""Application configuration defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Tuple

from anvilscribe.models import PORTAL_BLOCKS

DEFAULT_OUTPUT_FOLDER = "AnvilScribe"
DEFAULT_SEARCH_RADIUS = 128.0
DEFAULT_MAX_DEPTH = 8

# Items that flood the items table on any large world.
COMMON_ITEMS = frozenset(
    {
        "minecraft:cobblestone",
        "minecraft:dirt",
        "minecraft:stone",
        "minecraft:netherrack",
        "minecraft:cobbled_deepslate",
        "minecraft:deepslate",
        "minecraft:gravel",
        "minecraft:sand",
        "minecraft:andesite",
        "minecraft:diorite",
        "minecraft:granite",
        "minecraft:rotten_flesh",
    }
)


def _default_workers() -> int:
    return max(1, os.cpu_count() or 1)


@dataclass(slots=True)
class AppConfig:
    output_dir: Path | None = None
    workers: int = field(default_factory=_default_workers)
    max_container_depth: int = DEFAULT_MAX_DEPTH
    search_radius: float = DEFAULT_SEARCH_RADIUS
    extra_blocks: Tuple[str, ...] = ()
    item_limit: int = 0
    skip_common_items: bool = False
    write_databases: bool = True

    def __post_init__(self) -> None:
        if self.workers < 1:
            raise ValueError("workers must be at least 1")
        if self.max_container_depth < 1:
            raise ValueError("max_container_depth must be at least 1")
        if self.search_radius <= 0:
            raise ValueError("search_radius must be positive")
        if self.item_limit < 0:
            raise ValueError("item_limit cannot be negative")

    @property
    def block_targets(self) -> FrozenSet[str]:
        extra = {block if ":" in block else f"minecraft:{block}" for block in self.extra_blocks}
        return PORTAL_BLOCKS | frozenset(extra)

    @property
    def skipped_items(self) -> FrozenSet[str]:
        return COMMON_ITEMS if self.skip_common_items else frozenset()

    def resolve_output_dir(self, world: Path) -> Path:
        if self.output_dir is None:
            return Path(world) / DEFAULT_OUTPUT_FOLDER
        if Path(self.output_dir).is_absolute():
            return Path(self.output_dir)
        return Path(world) / self.output_dir
