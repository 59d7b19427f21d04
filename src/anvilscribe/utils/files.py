"""Utility helpers for working with world files."""

from __future__ import annotations

import hashlib
import re
from pathlib import Path
from typing import Dict, Iterable, Iterator

from anvilscribe.region.reader import parse_region_coords


def iter_region_paths(folder: Path) -> Iterator[Path]:
    """Yield region files in a folder, sorted by region coordinates.

    When both ``r.x.z.mca`` and ``r.x.z.mcr`` exist the Anvil file wins; the
    legacy file is the stale copy left behind by the format upgrade.
    """
    if not folder.is_dir():
        return
    chosen: Dict[tuple, Path] = {}
    for child in folder.iterdir():
        coords = parse_region_coords(child)
        if coords is None or not child.is_file():
            continue
        current = chosen.get(coords)
        if current is None or child.suffix.lower() == ".mca":
            chosen[coords] = child
    for coords in sorted(chosen):
        yield chosen[coords]


def iter_player_paths(folder: Path) -> Iterator[Path]:
    """Yield ``playerdata/*.dat`` files in name order, skipping backups."""
    if not folder.is_dir():
        return
    yield from sorted(
        child for child in folder.iterdir() if child.is_file() and child.suffix.lower() == ".dat"
    )


def compute_sha256(parts: Iterable[str]) -> str:
    """Hash text parts, separated so that ("ab", "c") and ("a", "bc") differ."""
    sha = hashlib.sha256()
    for part in parts:
        encoded = part.encode("utf-8")
        sha.update(len(encoded).to_bytes(8, "big"))
        sha.update(encoded)
    return sha.hexdigest()


_UNSAFE_FILENAME = re.compile(r'[\\/:*?<>|"]')


def sanitize_filename(name: str, limit: int = 200) -> str:
    """Replace characters that are not allowed in file names on common systems."""
    if not name:
        return "unnamed"
    return _UNSAFE_FILENAME.sub("_", name)[:limit]


def unique_path(folder: Path, stem: str, suffix: str) -> Path:
    """``folder/stem.suffix``, or ``stem_2``, ``stem_3``... when it is taken."""
    candidate = folder / f"{stem}{suffix}"
    counter = 2
    while candidate.exists():
        candidate = folder / f"{stem}_{counter}{suffix}"
        counter += 1
    return candidate
