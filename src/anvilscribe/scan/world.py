"""World folder discovery and per-file extraction."""

from __future__ import annotations

import logging
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import FrozenSet, Iterator, List

from anvilscribe.errors import (
    CorruptRegionFile,
    MalformedNbt,
    TruncatedChunk,
    UnsupportedCompressionScheme,
)
from anvilscribe.extract.content import DEFAULT_MAX_DEPTH, ContentExtractor
from anvilscribe.models import END, NETHER, OVERWORLD, PORTAL_BLOCKS, Chunk, ExtractionBatch
from anvilscribe.nbt.decoder import decode
from anvilscribe.region.compression import decompress_file
from anvilscribe.region.reader import RegionFileReader
from anvilscribe.utils.files import iter_player_paths, iter_region_paths

LOGGER = logging.getLogger(__name__)

REGION = "region"
ENTITIES = "entities"
PLAYER = "player"

# Dimension roots relative to the world folder: legacy layout, then the
# per-dimension layout newer versions use.
DIMENSION_FOLDERS = (
    (OVERWORLD, Path(".")),
    (NETHER, Path("DIM-1")),
    (END, Path("DIM1")),
    (NETHER, Path("dimensions/minecraft/the_nether")),
    (END, Path("dimensions/minecraft/the_end")),
)

_CHUNK_ERRORS = (TruncatedChunk, UnsupportedCompressionScheme, MalformedNbt)


@dataclass(slots=True)
class WorldFile:
    path: Path
    dimension: str
    kind: str


@dataclass(slots=True)
class ScanTask:
    """Everything a worker process needs to handle one file."""

    file: WorldFile
    max_depth: int = DEFAULT_MAX_DEPTH
    block_targets: FrozenSet[str] = PORTAL_BLOCKS


def discover_world(world: Path) -> List[WorldFile]:
    """List the region, entity and player files of a world in a fixed order."""
    world = Path(world)
    files: List[WorldFile] = []
    for dimension, folder in DIMENSION_FOLDERS:
        root = world / folder
        for kind in (REGION, ENTITIES):
            files.extend(WorldFile(path, dimension, kind) for path in iter_region_paths(root / kind))
    files.extend(
        WorldFile(path, OVERWORLD, PLAYER) for path in iter_player_paths(world / "playerdata")
    )
    return files


def scan_region_file(task: ScanTask) -> ExtractionBatch:
    """Extract one region or entity file.

    A container-level failure marks the batch failed and returns it empty;
    a chunk-level failure skips that chunk only. A chunk's records are kept
    only when its whole extraction succeeds.
    """
    file = task.file
    batch = ExtractionBatch(source=str(file.path))
    extractor = ContentExtractor(max_depth=task.max_depth, block_targets=task.block_targets)
    try:
        reader = RegionFileReader(file.path)
    except (CorruptRegionFile, OSError) as exc:
        LOGGER.warning("Skipping region file %s: %s", file.path, exc)
        batch.failed = True
        return batch

    for local_x, local_z, blob in reader.iter_chunks():
        chunk_x, chunk_z = reader.chunk_origin(local_x, local_z)
        try:
            root = decode(reader.decompressed(local_x, local_z, blob))
        except _CHUNK_ERRORS as exc:
            LOGGER.warning("Skipping chunk [%s, %s] in %s: %s", chunk_x, chunk_z, file.path.name, exc)
            batch.chunks_skipped += 1
            continue

        chunk = Chunk(x=chunk_x, z=chunk_z, dimension=file.dimension, root=root, source=file.path.name)
        chunk_batch = ExtractionBatch(source=batch.source)
        try:
            extractor.extract_chunk(chunk, chunk_batch)
        except Exception as e:
            LOGGER.error(f"Failed to extract chunk [{chunk_x}, {chunk_z}] in {file.path.name}: {e}")
            batch.chunks_skipped += 1
            continue
        chunk_batch.chunks_read = 1
        batch.extend(chunk_batch)

    LOGGER.debug(
        "%s: %d chunks, %d skipped", file.path.name, batch.chunks_read, batch.chunks_skipped
    )
    return batch


def scan_player_file(task: ScanTask) -> ExtractionBatch:
    """Extract inventory and ender chest from one ``playerdata`` file."""
    file = task.file
    batch = ExtractionBatch(source=str(file.path))
    extractor = ContentExtractor(max_depth=task.max_depth, block_targets=task.block_targets)
    try:
        root = decode(decompress_file(file.path))
        extractor.extract_player(root, file.path.stem, batch)
    except (TruncatedChunk, MalformedNbt, OSError) as exc:
        LOGGER.warning("Skipping player file %s: %s", file.path, exc)
        return ExtractionBatch(source=str(file.path), failed=True)
    return batch


def scan_file(task: ScanTask) -> ExtractionBatch:
    """Worker entry point; an unexpected error fails only this file."""
    try:
        if task.file.kind == PLAYER:
            return scan_player_file(task)
        return scan_region_file(task)
    except Exception as e:
        LOGGER.error(f"Failed to process {task.file.path}: {e}")
        return ExtractionBatch(source=str(task.file.path), failed=True)


class WorldScanner:
    """Drives extraction over every file of a world.

    Files are handed to a bounded process pool, one file per task. Each worker
    fills its own batch; batches come back in discovery order so merging is
    deterministic regardless of which worker finishes first.
    """

    def __init__(
        self,
        world: Path,
        *,
        workers: int = 1,
        max_depth: int = DEFAULT_MAX_DEPTH,
        block_targets: FrozenSet[str] = PORTAL_BLOCKS,
    ) -> None:
        self.world = Path(world)
        self.workers = max(1, workers)
        self.max_depth = max_depth
        self.block_targets = frozenset(block_targets)

    def discover(self) -> List[WorldFile]:
        return discover_world(self.world)

    def scan(self, files: List[WorldFile] | None = None) -> Iterator[ExtractionBatch]:
        """Yield one batch per file, in file order."""
        if files is None:
            files = self.discover()
        tasks = [ScanTask(file, self.max_depth, self.block_targets) for file in files]
        if not tasks:
            LOGGER.warning("No region or player files found under %s", self.world)
            return

        if self.workers == 1 or len(tasks) == 1:
            for task in tasks:
                LOGGER.info("Processing: %s", task.file.path)
                yield scan_file(task)
            return

        with ProcessPoolExecutor(max_workers=min(self.workers, len(tasks))) as pool:
            for task, batch in zip(tasks, pool.map(scan_file, tasks)):
                LOGGER.info("Processed: %s", task.file.path)
                yield batch
