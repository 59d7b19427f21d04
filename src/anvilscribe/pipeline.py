"""End-to-end extraction run."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List

from anvilscribe.config import AppConfig
from anvilscribe.index.dedup import Indexer
from anvilscribe.models import PairingResult, Portal
from anvilscribe.output.writer import OutputWriter
from anvilscribe.portals.detector import detect_portals
from anvilscribe.portals.pairer import PortalPairer, pairing_statistics
from anvilscribe.scan.world import WorldScanner

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class RunSummary:
    world: Path
    output_dir: Path | None = None
    files_processed: int = 0
    files_failed: int = 0
    chunks_read: int = 0
    chunks_skipped: int = 0
    subtrees_skipped: int = 0
    books: int = 0
    duplicate_books: int = 0
    signs: int = 0
    empty_signs: int = 0
    items: int = 0
    custom_names: int = 0
    blocks: int = 0
    portals: int = 0
    pairing: Dict[str, object] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    elapsed: float = 0.0

    def rows(self) -> List[tuple]:
        """(label, value) pairs in display order."""
        return [
            ("Files processed", self.files_processed),
            ("Files skipped", self.files_failed),
            ("Chunks read", self.chunks_read),
            ("Chunks skipped", self.chunks_skipped),
            ("Subtrees skipped", self.subtrees_skipped),
            ("Books", self.books),
            ("Duplicate books", self.duplicate_books),
            ("Signs", self.signs),
            ("Empty signs removed", self.empty_signs),
            ("Items", self.items),
            ("Custom names", self.custom_names),
            ("Indexed blocks", self.blocks),
            ("Portals", self.portals),
            ("Portal pairs", self.pairing.get("paired", 0)),
            ("Orphan portals", self.pairing.get("orphans", 0)),
        ]

    def lines(self) -> List[str]:
        lines = [f"World: {self.world}"]
        lines.extend(f"{label}: {value}" for label, value in self.rows())
        lines.append(f"Elapsed: {self.elapsed:.2f}s")
        if self.warnings:
            lines.append("Warnings:")
            lines.extend(f"  {warning}" for warning in self.warnings)
        return lines


@dataclass(slots=True)
class ExtractionResult:
    index: Indexer
    portals: List[Portal]
    pairings: List[PairingResult]
    summary: RunSummary


class Extraction:
    """Scan a world, deduplicate, cluster and pair portals, then write artifacts."""

    def __init__(self, world: Path, config: AppConfig | None = None) -> None:
        self.world = Path(world)
        self.config = config if config is not None else AppConfig()

    def scan(self) -> Indexer:
        config = self.config
        scanner = WorldScanner(
            self.world,
            workers=config.workers,
            max_depth=config.max_container_depth,
            block_targets=config.block_targets,
        )
        index = Indexer(item_limit=config.item_limit, skipped_items=config.skipped_items)
        for batch in scanner.scan():
            index.merge(batch)
        return index

    def run(self, *, write: bool = True) -> ExtractionResult:
        started = time.perf_counter()
        if not self.world.is_dir():
            raise FileNotFoundError(f"World folder not found: {self.world}")

        index = self.scan()
        portals = detect_portals(index.portal_blocks)
        pairings = PortalPairer(self.config.search_radius).pair(portals)

        stats = index.stats
        summary = RunSummary(
            world=self.world,
            files_processed=stats.files_processed,
            files_failed=stats.files_failed,
            chunks_read=stats.chunks_read,
            chunks_skipped=stats.chunks_skipped,
            subtrees_skipped=stats.subtrees_skipped,
            books=len(index.books),
            duplicate_books=stats.duplicate_books,
            signs=len(index.signs),
            empty_signs=stats.empty_signs,
            items=len(index.items),
            custom_names=len(index.custom_names),
            blocks=len(index.blocks),
            portals=len(portals),
            pairing=pairing_statistics(pairings),
            warnings=list(stats.warnings),
        )

        writer = None
        if write:
            summary.output_dir = self.config.resolve_output_dir(self.world)
            writer = OutputWriter(summary.output_dir)
            self.write(writer, index, portals, pairings)

        summary.elapsed = time.perf_counter() - started
        if writer is not None:
            writer.write_summary(summary.lines())
        return ExtractionResult(index=index, portals=portals, pairings=pairings, summary=summary)

    def write(
        self,
        writer: OutputWriter,
        index: Indexer,
        portals: List[Portal],
        pairings: List[PairingResult],
    ) -> None:
        writer.write_books(index.books, index.duplicate_books)
        writer.write_signs(index.signs)
        writer.write_custom_names(index.custom_names)
        writer.write_player_report(index.items)
        writer.write_portals(portals, pairings)
        writer.write_datapack(index.books, index.signs)
        if self.config.write_databases:
            metadata = {
                "world": str(self.world),
                "created_at": datetime.now(timezone.utc).isoformat(),
                "files_processed": index.stats.files_processed,
            }
            writer.write_items_db(index.items, metadata)
            writer.write_blocks_db(index.blocks, metadata)
