"""Overworld to Nether portal pairing.

The game links portals by scaling horizontal coordinates 8:1. For a source
portal we compute where its partner should be, keep the source Y unscaled,
and pick the nearest portal of the other dimension within the search radius.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from anvilscribe.models import (
    END,
    END_PORTAL,
    NETHER,
    NETHER_PORTAL,
    OVERWORLD,
    Confidence,
    PairingResult,
    Portal,
)

LOGGER = logging.getLogger(__name__)

COORDINATE_SCALE = 8
DEFAULT_SEARCH_RADIUS = 128.0
EXACT_DISTANCE = 1.0
CLOSE_DISTANCE = 16.0
LIKELY_DISTANCE = 128.0

_DIMENSION_LABEL = {OVERWORLD: "Overworld", NETHER: "Nether", END: "End"}


def to_nether_coords(x: int, z: int) -> Tuple[int, int]:
    """Overworld block X/Z to Nether X/Z (floor division, also for negatives)."""
    return x // COORDINATE_SCALE, z // COORDINATE_SCALE


def to_overworld_coords(x: int, z: int) -> Tuple[int, int]:
    return x * COORDINATE_SCALE, z * COORDINATE_SCALE


def classify(distance: float) -> Confidence:
    if distance <= EXACT_DISTANCE:
        return Confidence.EXACT
    if distance <= CLOSE_DISTANCE:
        return Confidence.CLOSE
    if distance <= LIKELY_DISTANCE:
        return Confidence.LIKELY
    return Confidence.UNCERTAIN


def expected_position(portal: Portal) -> Tuple[float, float, float]:
    """Where the partner portal should be, in the other dimension."""
    center_x, center_y, center_z = portal.center
    block_x, block_z = math.floor(center_x), math.floor(center_z)
    if portal.dimension == OVERWORLD:
        target_x, target_z = to_nether_coords(block_x, block_z)
    else:
        target_x, target_z = to_overworld_coords(block_x, block_z)
    return float(target_x), center_y, float(target_z)


def _label(portal: Portal) -> str:
    x, y, z = portal.center
    name = _DIMENSION_LABEL.get(portal.dimension, portal.dimension)
    return f"{name} portal #{portal.portal_id} at ({x:g}, {y:g}, {z:g})"


class PortalPairer:
    """Matches Overworld and Nether portals.

    Overworld portals are paired first and the Nether portals they claim are
    remembered; only unclaimed Nether portals get a pass of their own. End
    portals never link by coordinates and are reported as orphans. Every
    portal therefore appears in exactly one result.
    """

    def __init__(self, search_radius: float = DEFAULT_SEARCH_RADIUS) -> None:
        if search_radius <= 0:
            raise ValueError("search_radius must be positive")
        self.search_radius = search_radius

    def nearest(
        self, source: Portal, candidates: Sequence[Portal]
    ) -> Optional[Tuple[int, float]]:
        """Index and distance of the closest candidate within the radius."""
        if not candidates:
            return None
        expected = np.array(expected_position(source), dtype=np.float64)
        centers = np.array([candidate.center for candidate in candidates], dtype=np.float64)
        distances = np.sqrt(((centers - expected) ** 2).sum(axis=1))
        index = int(np.argmin(distances))
        distance = float(distances[index])
        if distance > self.search_radius:
            return None
        return index, distance

    def pair_one(self, source: Portal, candidates: Sequence[Portal]) -> PairingResult:
        target_name = _DIMENSION_LABEL[NETHER if source.dimension == OVERWORLD else OVERWORLD]
        found = self.nearest(source, candidates)
        if found is None:
            return PairingResult(
                source=source,
                target=None,
                distance=-1.0,
                confidence=Confidence.ORPHAN,
                description=(
                    f"{_label(source)} has no {target_name} portal within "
                    f"{self.search_radius:g} blocks"
                ),
            )
        index, distance = found
        target = candidates[index]
        confidence = classify(distance)
        return PairingResult(
            source=source,
            target=target,
            distance=distance,
            confidence=confidence,
            description=(
                f"{_label(source)} -> {_label(target)}, distance {distance:.1f} "
                f"({confidence.value}, {confidence.percent}%)"
            ),
        )

    def pair(self, portals: Sequence[Portal]) -> List[PairingResult]:
        overworld = [p for p in portals if p.dimension == OVERWORLD and p.kind == NETHER_PORTAL]
        nether = [p for p in portals if p.dimension == NETHER and p.kind == NETHER_PORTAL]
        linked = {p.portal_id for p in overworld} | {p.portal_id for p in nether}
        unlinked = [p for p in portals if p.portal_id not in linked]

        results: List[PairingResult] = []
        claimed = set()
        for portal in overworld:
            result = self.pair_one(portal, nether)
            if result.target is not None:
                claimed.add(result.target.portal_id)
            results.append(result)

        for portal in nether:
            if portal.portal_id not in claimed:
                results.append(self.pair_one(portal, overworld))

        for portal in unlinked:
            reason = "End portals" if portal.kind == END_PORTAL else "Portals in this dimension"
            results.append(
                PairingResult(
                    source=portal,
                    target=None,
                    distance=-1.0,
                    confidence=Confidence.ORPHAN,
                    description=f"{_label(portal)}: {reason} do not link by coordinates",
                )
            )

        for result in results:
            LOGGER.debug("%s", pairing_summary(result))
        LOGGER.info(
            "Paired %d portals, %d orphans",
            sum(1 for r in results if r.paired),
            sum(1 for r in results if not r.paired),
        )
        return results


def pairing_statistics(results: Sequence[PairingResult]) -> Dict[str, object]:
    """Counts per confidence tier and average distance over paired results."""
    counts = {tier.value: 0 for tier in Confidence}
    for result in results:
        counts[result.confidence.value] += 1
    distances = [result.distance for result in results if result.paired]
    return {
        "total": len(results),
        "paired": len(distances),
        "orphans": counts[Confidence.ORPHAN.value],
        "by_confidence": counts,
        "average_distance": sum(distances) / len(distances) if distances else 0.0,
    }


def pairing_summary(result: PairingResult) -> str:
    return f"[{result.confidence.value} {result.confidence.percent}%] {result.description}"
