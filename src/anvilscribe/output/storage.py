"""SQLite item and block databases."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, Iterator, Mapping

from anvilscribe.models import BlockRecord, ItemStack


class SQLiteStore:
    """Single writer connection with the settings both databases share."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._conn = sqlite3.connect(self.db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._ensure_schema()

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            yield self._conn
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS metadata (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
                """
            )

    def set_metadata(self, values: Mapping[str, object]) -> None:
        """Upsert metadata rows; call inside a transaction."""
        self._conn.executemany(
            "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
            [(key, str(value)) for key, value in values.items()],
        )

    def metadata(self) -> Dict[str, str]:
        rows = self._conn.execute("SELECT key, value FROM metadata").fetchall()
        return {row["key"]: row["value"] for row in rows}


class ItemDatabase(SQLiteStore):
    """``items.db``: one row per extracted item stack plus a per-type summary."""

    def _ensure_schema(self) -> None:
        super()._ensure_schema()
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS items (
                    id INTEGER PRIMARY KEY,
                    item_id TEXT NOT NULL,
                    dimension TEXT NOT NULL,
                    x INTEGER NOT NULL,
                    y INTEGER NOT NULL,
                    z INTEGER NOT NULL,
                    count INTEGER NOT NULL,
                    slot INTEGER,
                    damage INTEGER DEFAULT 0,
                    custom_name TEXT,
                    lore TEXT,
                    enchantments TEXT,
                    stored_enchantments TEXT,
                    unbreakable INTEGER DEFAULT 0,
                    container_type TEXT,
                    container_path TEXT,
                    player_uuid TEXT,
                    region_file TEXT,
                    location TEXT
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_items_item_id ON items(item_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_items_coords ON items(dimension, x, z)")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS item_summary (
                    item_id TEXT PRIMARY KEY,
                    total_count INTEGER NOT NULL,
                    stacks INTEGER NOT NULL,
                    unique_locations INTEGER NOT NULL
                )
                """
            )

    def clear(self) -> None:
        self._conn.execute("DELETE FROM items")
        self._conn.execute("DELETE FROM item_summary")
        self._conn.execute("DELETE FROM metadata")

    def insert_items(self, items: Iterable[ItemStack], *, batch_size: int = 1000) -> int:
        """Insert item rows in batches; call inside a transaction."""
        sql = """
            INSERT INTO items (
                item_id, dimension, x, y, z, count, slot, damage, custom_name, lore,
                enchantments, stored_enchantments, unbreakable, container_type,
                container_path, player_uuid, region_file, location
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        total = 0
        batch = []
        for item in items:
            loc = item.location
            batch.append(
                (
                    item.item_id,
                    loc.dimension,
                    loc.x,
                    loc.y,
                    loc.z,
                    item.count,
                    item.slot,
                    item.damage,
                    item.custom_name or None,
                    json.dumps(item.lore, ensure_ascii=False) if item.lore else None,
                    json.dumps(item.enchantments, sort_keys=True) if item.enchantments else None,
                    json.dumps(item.stored_enchantments, sort_keys=True)
                    if item.stored_enchantments
                    else None,
                    int(item.unbreakable),
                    item.container_type,
                    " > ".join(item.container_path),
                    item.player_uuid,
                    loc.source,
                    loc.description,
                )
            )
            if len(batch) >= batch_size:
                self._conn.executemany(sql, batch)
                total += len(batch)
                batch = []
        if batch:
            self._conn.executemany(sql, batch)
            total += len(batch)
        return total

    def refresh_summary(self) -> None:
        self._conn.execute("DELETE FROM item_summary")
        self._conn.execute(
            """
            INSERT INTO item_summary (item_id, total_count, stacks, unique_locations)
            SELECT item_id, SUM(count), COUNT(*),
                   COUNT(DISTINCT dimension || ':' || x || ':' || y || ':' || z)
            FROM items
            GROUP BY item_id
            """
        )


class BlockDatabase(SQLiteStore):
    """``blocks.db``: indexed block positions, unique per type and position."""

    def _ensure_schema(self) -> None:
        super()._ensure_schema()
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS blocks (
                    id INTEGER PRIMARY KEY,
                    block_type TEXT NOT NULL,
                    dimension TEXT NOT NULL,
                    x INTEGER NOT NULL,
                    y INTEGER NOT NULL,
                    z INTEGER NOT NULL,
                    properties TEXT,
                    region_file TEXT,
                    UNIQUE(block_type, dimension, x, y, z)
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_blocks_type ON blocks(block_type)")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS block_summary (
                    block_type TEXT NOT NULL,
                    dimension TEXT NOT NULL,
                    count INTEGER NOT NULL,
                    PRIMARY KEY (block_type, dimension)
                )
                """
            )

    def clear(self) -> None:
        self._conn.execute("DELETE FROM blocks")
        self._conn.execute("DELETE FROM block_summary")
        self._conn.execute("DELETE FROM metadata")

    def insert_blocks(self, blocks: Iterable[BlockRecord]) -> int:
        """Insert block rows, ignoring repeats of a position; call inside a transaction."""
        cursor = self._conn.executemany(
            """
            INSERT OR IGNORE INTO blocks (block_type, dimension, x, y, z, properties, region_file)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                (
                    block.block_type,
                    block.dimension,
                    block.x,
                    block.y,
                    block.z,
                    json.dumps(block.properties, sort_keys=True) if block.properties else None,
                    block.region_file,
                )
                for block in blocks
            ),
        )
        return cursor.rowcount

    def refresh_summary(self) -> None:
        self._conn.execute("DELETE FROM block_summary")
        self._conn.execute(
            """
            INSERT INTO block_summary (block_type, dimension, count)
            SELECT block_type, dimension, COUNT(*) FROM blocks GROUP BY block_type, dimension
            """
        )
