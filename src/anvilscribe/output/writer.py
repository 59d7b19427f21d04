"""Serialize indexed records to the output folder."""

from __future__ import annotations

import csv
import io
import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Sequence

from anvilscribe.models import (
    BlockRecord,
    Book,
    CustomName,
    ItemStack,
    PairingResult,
    Portal,
    Sign,
)
from anvilscribe.output import datapack
from anvilscribe.output.storage import BlockDatabase, ItemDatabase
from anvilscribe.portals.pairer import pairing_statistics, pairing_summary
from anvilscribe.utils.files import sanitize_filename, unique_path

LOGGER = logging.getLogger(__name__)

BOOKS_JSON = "all_books_stendhal.json"
BOOKS_TEXT = "bookOutput.txt"
BOOKS_CSV = "all_books.csv"
BOOKS_RAW_CSV = "all_books_raw.csv"
BOOKS_FOLDER = "books"
DUPLICATES_FOLDER = ".duplicates"
SIGNS_CSV = "all_signs.csv"
SIGNS_RAW_CSV = "all_signs_raw.csv"
SIGNS_TEXT = "signOutput.txt"
CUSTOM_NAMES_JSON = "custom_names.json"
CUSTOM_NAMES_CSV = "all_custom_names.csv"
CUSTOM_NAMES_TEXT = "all_custom_names.txt"
PLAYER_TEXT = "playerdataOutput.txt"
PORTALS_JSON = "portals.json"
PORTALS_CSV = "portals.csv"
PORTALS_TEXT = "portals.txt"
ITEMS_DB = "items.db"
BLOCKS_DB = "blocks.db"
SUMMARY_TEXT = "summary.txt"

SIGN_HEADER = ["X", "Y", "Z", "FoundWhere", "SignText", "Line1", "Line2", "Line3", "Line4"]
BOOK_HEADER = ["X", "Y", "Z", "FoundWhere", "Bookname", "Author", "PageCount", "Generation", "Pages"]
CUSTOM_NAME_HEADER = ["CustomName", "Type", "ItemOrEntityID", "X", "Y", "Z", "Location"]
PORTAL_HEADER = [
    "dimension",
    "x",
    "y",
    "z",
    "width",
    "height",
    "axis",
    "block_count",
    "center_x",
    "center_y",
    "center_z",
]
GENERATION_NAMES = ("Original", "Copy of Original", "Copy of Copy", "Tattered")


def _atomic_write(path: Path, text: str) -> None:
    """Write a text artifact so readers never see it half written."""
    handle, temp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(handle, "w", encoding="utf-8", newline="") as stream:
            stream.write(text)
        os.replace(temp_name, path)
    except Exception:
        Path(temp_name).unlink(missing_ok=True)
        raise


def _csv_text(header: Sequence[str], rows: Iterable[Sequence[object]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(header)
    writer.writerows(rows)
    return buffer.getvalue()


def generation_name(generation: int) -> str:
    return GENERATION_NAMES[max(0, min(generation, len(GENERATION_NAMES) - 1))]


def found_where(book: Book) -> str:
    return book.container_path[0] if book.container_path else "unknown"


def book_rows(books: Iterable[Book], *, raw: bool) -> List[List[object]]:
    rows = []
    for book in books:
        loc = book.location
        pages = book.raw_pages if raw else book.pages
        rows.append(
            [
                loc.x,
                loc.y,
                loc.z,
                found_where(book),
                book.title or "untitled",
                book.author or "unknown",
                len(pages),
                generation_name(book.generation),
                " ".join(page.replace("\n", " ") for page in pages),
            ]
        )
    return rows


def book_file_stem(book: Book) -> str:
    """``Title_(pages)_by_Author~container~x_y_z``."""
    loc = book.location
    title = sanitize_filename(book.title or "untitled")
    author = sanitize_filename(book.author or "unknown")
    where = sanitize_filename(found_where(book))
    return f"{title}_({len(book.pages)})_by_{author}~{where}~{loc.x}_{loc.y}_{loc.z}"


def stendhal_text(book: Book) -> str:
    """Stendhal book format, formatting codes kept."""
    lines = [f"title: {book.title or 'Untitled'}", f"author: {book.author}", "pages:"]
    lines.extend(f"#- {page}" for page in book.raw_pages)
    return "\n".join(lines) + "\n"


def book_to_dict(book: Book) -> Dict[str, object]:
    loc = book.location
    return {
        "title": book.title,
        "author": book.author,
        "pages": list(book.pages),
        "x": loc.x,
        "y": loc.y,
        "z": loc.z,
        "dimension": loc.dimension,
        "location": loc.description,
        "kind": book.kind,
        "generation": book.generation,
        "duplicates": book.duplicates,
        "container_path": list(book.container_path),
        "hash": book.content_hash,
    }


def custom_name_to_dict(name: CustomName) -> Dict[str, object]:
    loc = name.location
    return {
        "type": name.kind,
        "itemOrEntityId": name.object_id,
        "customName": name.name,
        "x": loc.x,
        "y": loc.y,
        "z": loc.z,
        "location": loc.description,
    }


def portal_to_dict(portal: Portal) -> Dict[str, object]:
    box = portal.box
    x, y, z = portal.center
    return {
        "id": portal.portal_id,
        "dimension": portal.dimension,
        "kind": portal.kind,
        "center": {"x": x, "y": y, "z": z},
        "bounds": {
            "min": {"x": box.min_x, "y": box.min_y, "z": box.min_z},
            "max": {"x": box.max_x, "y": box.max_y, "z": box.max_z},
        },
        "width": portal.width,
        "height": portal.height,
        "axis": portal.axis,
        "block_count": portal.block_count,
    }


def pairing_to_dict(result: PairingResult) -> Dict[str, object]:
    return {
        "source": result.source.portal_id,
        "target": result.target.portal_id if result.target is not None else None,
        "distance": round(result.distance, 3),
        "confidence": result.confidence.value,
        "confidence_percent": result.confidence.percent,
        "description": result.description,
    }


def sign_rows(signs: Iterable[Sign], *, raw: bool) -> List[List[object]]:
    rows = []
    for sign in signs:
        lines = sign.raw_lines if raw else sign.lines
        loc = sign.location
        rows.append(
            [
                loc.x,
                loc.y,
                loc.z,
                sign.block_id,
                sign.raw_text if raw else sign.text,
                *(list(lines) + [""] * 4)[:4],
            ]
        )
    return rows


def portal_report(portals: Sequence[Portal], pairings: Sequence[PairingResult]) -> str:
    """Portals grouped by dimension, followed by the pairing lines."""
    lines = ["Portal Detection Report", "=" * 80, f"Total portals found: {len(portals)}", ""]
    by_dimension: Dict[str, List[Portal]] = {}
    for portal in portals:
        by_dimension.setdefault(portal.dimension, []).append(portal)
    for dimension, group in by_dimension.items():
        lines.append(f"{dimension.upper()} ({len(group)} portals):")
        lines.append("-" * 40)
        for portal in group:
            box = portal.box
            x, y, z = portal.center
            lines.append(f"  Portal #{portal.portal_id}:")
            lines.append(f"    Anchor: ({box.min_x}, {box.min_y}, {box.min_z})")
            lines.append(f"    Size: {portal.width}x{portal.height} ({portal.block_count} blocks)")
            lines.append(f"    Axis: {portal.axis}")
            lines.append(f"    Center: ({x:g}, {y:g}, {z:g})")
            lines.append("")
    if pairings:
        lines.append("Pairings:")
        lines.extend(f"  {pairing_summary(result)}" for result in pairings)
    return "\n".join(lines) + "\n"


class OutputWriter:
    """Writes every artifact into one output folder.

    Text artifacts are replaced atomically; each database is filled inside a
    single transaction and rolled back if anything fails.
    """

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def path(self, name: str) -> Path:
        return self.output_dir / name

    def _write_json(self, name: str, payload: object) -> Path:
        target = self.path(name)
        _atomic_write(target, json.dumps(payload, indent=2, ensure_ascii=False) + "\n")
        return target

    # Books ----------------------------------------------------------------

    def write_books(self, books: Sequence[Book], duplicates: Sequence[Book] = ()) -> Path:
        """Canonical books to JSON and text; every copy to the CSVs and book files."""
        target = self._write_json(BOOKS_JSON, [book_to_dict(book) for book in books])
        lines = []
        for book in books:
            lines.append(f"#{'-' * 60}")
            lines.append(f"{book.display_title} by {book.author or 'unknown'}")
            lines.append(f"Location: {book.location.description}")
            if book.duplicates > 1:
                lines.append(f"Copies found: {book.duplicates}")
            for number, page in enumerate(book.pages, start=1):
                lines.append(f"Page {number}:")
                lines.append(page)
            lines.append("")
        _atomic_write(self.path(BOOKS_TEXT), "\n".join(lines))
        everything = list(books) + list(duplicates)
        _atomic_write(self.path(BOOKS_CSV), _csv_text(BOOK_HEADER, book_rows(everything, raw=False)))
        _atomic_write(self.path(BOOKS_RAW_CSV), _csv_text(BOOK_HEADER, book_rows(everything, raw=True)))
        self.write_book_files(books, duplicates)
        LOGGER.info("Wrote %d books to %s", len(books), target)
        return target

    def write_book_files(self, books: Sequence[Book], duplicates: Sequence[Book]) -> Path:
        """One ``.stendhal`` file per book; copies go to ``books/.duplicates``."""
        folder = self.path(BOOKS_FOLDER)
        if folder.exists():
            shutil.rmtree(folder)
        duplicates_folder = folder / DUPLICATES_FOLDER
        duplicates_folder.mkdir(parents=True)
        for target_folder, group in ((folder, books), (duplicates_folder, duplicates)):
            for book in group:
                _atomic_write(unique_path(target_folder, book_file_stem(book), ".stendhal"), stendhal_text(book))
        LOGGER.debug("Wrote %d book files and %d duplicates to %s", len(books), len(duplicates), folder)
        return folder

    # Signs ----------------------------------------------------------------

    def write_signs(self, signs: Sequence[Sign]) -> Path:
        for name, raw in ((SIGNS_CSV, False), (SIGNS_RAW_CSV, True)):
            _atomic_write(self.path(name), _csv_text(SIGN_HEADER, sign_rows(signs, raw=raw)))

        lines = [f"{sign.location.description}\t{sign.text}" for sign in signs]
        _atomic_write(self.path(SIGNS_TEXT), "\n".join(lines) + ("\n" if lines else ""))
        LOGGER.info("Wrote %d signs to %s", len(signs), self.path(SIGNS_CSV))
        return self.path(SIGNS_CSV)

    # Custom names and players ---------------------------------------------

    def write_custom_names(self, names: Sequence[CustomName]) -> Path:
        target = self._write_json(CUSTOM_NAMES_JSON, [custom_name_to_dict(n) for n in names])
        rows = [
            [n.name, n.kind, n.object_id, n.location.x, n.location.y, n.location.z, n.location.description]
            for n in names
        ]
        _atomic_write(self.path(CUSTOM_NAMES_CSV), _csv_text(CUSTOM_NAME_HEADER, rows))

        lines = ["Custom Names Extraction Report", "=" * 80, ""]
        by_kind: Dict[str, List[CustomName]] = {}
        for name in names:
            by_kind.setdefault(name.kind, []).append(name)
        for kind, group in by_kind.items():
            lines.append(f"{kind.upper()}S ({len(group)}):")
            lines.append("-" * 40)
            for name in group:
                loc = name.location
                lines.append(f"  Name: {name.name}")
                lines.append(f"  ID: {name.object_id}")
                lines.append(f"  Coordinates: ({loc.x}, {loc.y}, {loc.z})")
                lines.append(f"  Location: {loc.description}")
                lines.append("")
        _atomic_write(self.path(CUSTOM_NAMES_TEXT), "\n".join(lines) + "\n")
        LOGGER.info("Wrote %d custom names to %s", len(names), target)
        return target

    def write_player_report(self, items: Sequence[ItemStack]) -> Path:
        by_player: Dict[str, List[ItemStack]] = {}
        for item in items:
            if item.player_uuid:
                by_player.setdefault(item.player_uuid, []).append(item)
        lines = []
        for uuid in sorted(by_player):
            lines.append(f"Player {uuid}")
            for item in by_player[uuid]:
                name = f" \"{item.custom_name}\"" if item.custom_name else ""
                nested = " > ".join(item.container_path)
                lines.append(f"  [{nested}] {item.count}x {item.item_id}{name}")
            lines.append("")
        target = self.path(PLAYER_TEXT)
        _atomic_write(target, "\n".join(lines))
        return target

    # Portals --------------------------------------------------------------

    def write_portals(self, portals: Sequence[Portal], pairings: Sequence[PairingResult]) -> Path:
        payload = {
            "portals": [portal_to_dict(portal) for portal in portals],
            "pairings": [pairing_to_dict(result) for result in pairings],
            "statistics": pairing_statistics(pairings),
        }
        target = self._write_json(PORTALS_JSON, payload)
        rows = []
        for portal in portals:
            box = portal.box
            x, y, z = portal.center
            rows.append(
                [
                    portal.dimension,
                    box.min_x,
                    box.min_y,
                    box.min_z,
                    portal.width,
                    portal.height,
                    portal.axis,
                    portal.block_count,
                    x,
                    y,
                    z,
                ]
            )
        _atomic_write(self.path(PORTALS_CSV), _csv_text(PORTAL_HEADER, rows))
        _atomic_write(self.path(PORTALS_TEXT), portal_report(portals, pairings))
        LOGGER.info("Wrote %d portals to %s", len(portals), target)
        return target

    # Datapack -------------------------------------------------------------

    def write_datapack(self, books: Sequence[Book], signs: Sequence[Sign]) -> Path:
        """Datapack with ``books.mcfunction`` and ``signs.mcfunction``."""
        root = self.path(datapack.DATAPACK_FOLDER)
        functions = root / "data" / datapack.NAMESPACE / datapack.FUNCTION_FOLDER
        functions.mkdir(parents=True, exist_ok=True)
        _atomic_write(root / "pack.mcmeta", datapack.pack_metadata())
        _atomic_write(functions / "books.mcfunction", datapack.books_function(books))
        _atomic_write(functions / "signs.mcfunction", datapack.signs_function(signs))
        LOGGER.info("Wrote datapack with %d books and %d signs to %s", len(books), len(signs), root)
        return root

    # Databases ------------------------------------------------------------

    def write_items_db(self, items: Sequence[ItemStack], metadata: Mapping[str, object]) -> Path:
        target = self.path(ITEMS_DB)
        with ItemDatabase(target) as store:
            with store.transaction():
                store.clear()
                store.insert_items(items)
                store.refresh_summary()
                store.set_metadata(metadata)
        LOGGER.info("Wrote %d items to %s", len(items), target)
        return target

    def write_blocks_db(self, blocks: Sequence[BlockRecord], metadata: Mapping[str, object]) -> Path:
        target = self.path(BLOCKS_DB)
        with BlockDatabase(target) as store:
            with store.transaction():
                store.clear()
                store.insert_blocks(blocks)
                store.refresh_summary()
                store.set_metadata(metadata)
        LOGGER.info("Wrote %d blocks to %s", len(blocks), target)
        return target

    def write_summary(self, lines: Sequence[str]) -> Path:
        target = self.path(SUMMARY_TEXT)
        _atomic_write(target, "\n".join(lines) + "\n")
        return target
