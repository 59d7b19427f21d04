"""Cluster portal blocks into portal structures."""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from typing import Dict, Iterable, List, Set, Tuple

from anvilscribe.models import (
    END,
    END_PORTAL,
    NETHER,
    OVERWORLD,
    PORTAL_BLOCKS,
    BlockRecord,
    BoundingBox,
    Portal,
)

LOGGER = logging.getLogger(__name__)

Coord = Tuple[int, int, int]

NEIGHBOURS = (
    (1, 0, 0),
    (-1, 0, 0),
    (0, 1, 0),
    (0, -1, 0),
    (0, 0, 1),
    (0, 0, -1),
)
_DIMENSION_ORDER = {OVERWORLD: 0, NETHER: 1, END: 2}


def connected_components(coords: Iterable[Coord]) -> List[List[Coord]]:
    """Split block positions into 6-connected groups, each sorted."""
    remaining: Set[Coord] = set(coords)
    components: List[List[Coord]] = []
    for start in sorted(remaining):
        if start not in remaining:
            continue
        remaining.discard(start)
        queue = deque([start])
        component = [start]
        while queue:
            x, y, z = queue.popleft()
            for dx, dy, dz in NEIGHBOURS:
                neighbour = (x + dx, y + dy, z + dz)
                if neighbour in remaining:
                    remaining.discard(neighbour)
                    queue.append(neighbour)
                    component.append(neighbour)
        components.append(sorted(component))
    return components


def infer_axis(kind: str, size: Tuple[int, int, int], axis_property: str = "") -> str:
    """Axis a portal runs along.

    A portal one block thick in x runs along z and vice versa. End portals
    and anything thick in both directions lie flat, reported as ``y``.
    """
    size_x, _, size_z = size
    if kind == END_PORTAL:
        return "y"
    if size_x == 1 and size_z == 1:
        return axis_property or "x"
    if size_x == 1:
        return "z"
    if size_z == 1:
        return "x"
    return "y"


def build_portal(
    portal_id: int, dimension: str, kind: str, blocks: List[Coord], axis_property: str = ""
) -> Portal:
    xs = [x for x, _, _ in blocks]
    ys = [y for _, y, _ in blocks]
    zs = [z for _, _, z in blocks]
    box = BoundingBox(min(xs), min(ys), min(zs), max(xs), max(ys), max(zs))
    size_x, size_y, size_z = box.size
    return Portal(
        portal_id=portal_id,
        dimension=dimension,
        kind=kind,
        box=box,
        width=max(size_x, size_z),
        height=size_y,
        axis=infer_axis(kind, box.size, axis_property),
        block_count=len(blocks),
    )


def detect_portals(blocks: Iterable[BlockRecord]) -> List[Portal]:
    """Group portal blocks into portals, numbered from 1 in a stable order.

    Blocks are grouped by dimension, block type and ``axis`` block state
    first, so two perpendicular portals touching at an edge stay apart.
    """
    groups: Dict[Tuple[str, str, str], Set[Coord]] = defaultdict(set)
    for block in blocks:
        if block.block_type not in PORTAL_BLOCKS:
            continue
        axis = block.properties.get("axis", "")
        groups[(block.dimension, block.block_type, axis)].add((block.x, block.y, block.z))

    clusters = []
    for (dimension, kind, axis), coords in groups.items():
        for component in connected_components(coords):
            clusters.append((dimension, kind, axis, component))

    clusters.sort(key=lambda c: (_DIMENSION_ORDER.get(c[0], 3), c[0], c[1], c[3][0]))
    portals = [
        build_portal(index, dimension, kind, component, axis)
        for index, (dimension, kind, axis, component) in enumerate(clusters, start=1)
    ]
    LOGGER.info("Detected %d portals from %d groups", len(portals), len(groups))
    return portals
