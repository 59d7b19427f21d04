"""Tests for portal detection and Overworld/Nether pairing."""

from __future__ import annotations

import pytest

from anvilscribe.models import (
    END,
    END_PORTAL,
    NETHER,
    NETHER_PORTAL,
    OVERWORLD,
    BlockRecord,
    Confidence,
)
from anvilscribe.portals.detector import connected_components, detect_portals, infer_axis
from anvilscribe.portals.pairer import (
    PortalPairer,
    classify,
    expected_position,
    pairing_statistics,
    pairing_summary,
    to_nether_coords,
    to_overworld_coords,
)


def _frame(dimension: str, x: int, y: int, z: int, *, width: int = 2, height: int = 3, axis: str = "x"):
    """Portal blocks of a standard frame interior with its corner at (x, y, z)."""
    blocks = []
    for dy in range(height):
        for offset in range(width):
            bx, bz = (x + offset, z) if axis == "x" else (x, z + offset)
            blocks.append(BlockRecord(NETHER_PORTAL, dimension, bx, y + dy, bz, {"axis": axis}))
    return blocks


class TestCoordinates:
    """Horizontal scaling between dimensions."""

    def test_to_nether(self) -> None:
        assert to_nether_coords(800, 800) == (100, 100)
        assert to_nether_coords(7, 15) == (0, 1)

    def test_to_nether_floors_negatives(self) -> None:
        assert to_nether_coords(-1, -1) == (-1, -1)
        assert to_nether_coords(-8, -9) == (-1, -2)

    def test_to_overworld(self) -> None:
        assert to_overworld_coords(100, 100) == (800, 800)
        assert to_overworld_coords(-3, 2) == (-24, 16)

    @pytest.mark.parametrize(
        "distance, tier",
        [
            (0.0, Confidence.EXACT),
            (1.0, Confidence.EXACT),
            (1.5, Confidence.CLOSE),
            (16.0, Confidence.CLOSE),
            (100.0, Confidence.LIKELY),
            (128.5, Confidence.UNCERTAIN),
        ],
    )
    def test_classify(self, distance: float, tier: Confidence) -> None:
        assert classify(distance) == tier

    def test_confidence_percent(self) -> None:
        assert [tier.percent for tier in Confidence] == [100, 95, 80, 50, 0]


class TestDetector:
    """Portal blocks cluster into portal structures."""

    def test_connected_components(self) -> None:
        coords = [(0, 0, 0), (1, 0, 0), (5, 0, 0), (5, 1, 0), (1, 1, 1)]
        assert connected_components(coords) == [
            [(0, 0, 0), (1, 0, 0)],
            [(1, 1, 1)],
            [(5, 0, 0), (5, 1, 0)],
        ]

    def test_diagonals_do_not_connect(self) -> None:
        assert len(connected_components([(0, 0, 0), (1, 1, 0)])) == 2

    def test_frame_dimensions(self) -> None:
        (portal,) = detect_portals(_frame(OVERWORLD, 10, 64, -5, width=3, height=4, axis="x"))
        assert portal.portal_id == 1
        assert (portal.width, portal.height, portal.block_count) == (3, 4, 12)
        assert portal.axis == "x"
        assert portal.center == (11.0, 65.5, -5.0)

    def test_axis_from_shape(self) -> None:
        assert infer_axis(NETHER_PORTAL, (1, 3, 2)) == "z"
        assert infer_axis(NETHER_PORTAL, (2, 3, 1)) == "x"
        assert infer_axis(NETHER_PORTAL, (1, 1, 1), "z") == "z"
        assert infer_axis(NETHER_PORTAL, (1, 1, 1)) == "x"
        assert infer_axis(END_PORTAL, (3, 1, 3)) == "y"

    def test_perpendicular_portals_stay_apart(self) -> None:
        """Touching portals with different axis states are separate."""
        blocks = _frame(OVERWORLD, 0, 64, 0, axis="x") + _frame(OVERWORLD, 2, 64, 0, axis="z")
        portals = detect_portals(blocks)
        assert len(portals) == 2
        assert sorted(p.axis for p in portals) == ["x", "z"]

    def test_ids_follow_dimension_order(self) -> None:
        blocks = (
            [BlockRecord(END_PORTAL, END, 0, 60, 0)]
            + _frame(NETHER, 0, 64, 0)
            + _frame(OVERWORLD, 100, 64, 100)
        )
        portals = detect_portals(blocks)
        assert [(p.portal_id, p.dimension) for p in portals] == [
            (1, OVERWORLD),
            (2, NETHER),
            (3, END),
        ]

    def test_non_portal_blocks_ignored(self) -> None:
        assert detect_portals([BlockRecord("minecraft:chest", OVERWORLD, 0, 0, 0)]) == []


class TestPairer:
    """Matching Overworld portals with their Nether partners."""

    def test_exact_pair_at_origin(self) -> None:
        blocks = [
            BlockRecord(NETHER_PORTAL, OVERWORLD, 0, 64, 0, {"axis": "x"}),
            BlockRecord(NETHER_PORTAL, NETHER, 0, 64, 0, {"axis": "x"}),
        ]
        results = PortalPairer().pair(detect_portals(blocks))

        (result,) = results
        assert result.source.dimension == OVERWORLD
        assert result.target.dimension == NETHER
        assert result.distance == 0.0
        assert result.confidence == Confidence.EXACT

    def test_scaled_pair(self) -> None:
        """An Overworld portal at x=800 pairs with a Nether portal near x=100."""
        portals = detect_portals(_frame(OVERWORLD, 800, 70, 800) + _frame(NETHER, 100, 70, 104))
        (result,) = PortalPairer().pair(portals)
        assert result.confidence == Confidence.CLOSE
        assert result.distance == pytest.approx(16.25**0.5)

    def test_nether_orphan(self) -> None:
        """A Nether portal with nothing within 128 blocks is an orphan."""
        portals = detect_portals(_frame(OVERWORLD, 0, 64, 0) + _frame(NETHER, 500, 64, 500))
        results = PortalPairer().pair(portals)

        assert len(results) == 2
        nether_result = next(r for r in results if r.source.dimension == NETHER)
        assert nether_result.target is None
        assert nether_result.confidence == Confidence.ORPHAN
        assert nether_result.confidence.percent == 0
        assert "within 128 blocks" in nether_result.description

    def test_claimed_nether_portal_not_repeated(self) -> None:
        """Each portal appears in exactly one result."""
        portals = detect_portals(
            _frame(OVERWORLD, 0, 64, 0) + _frame(OVERWORLD, 40, 64, 0) + _frame(NETHER, 0, 64, 0)
        )
        results = PortalPairer().pair(portals)

        sources = [r.source.portal_id for r in results]
        assert sorted(sources) == [1, 2]
        assert all(r.target is not None and r.target.portal_id == 3 for r in results)

    def test_end_portals_are_orphans(self) -> None:
        blocks = [BlockRecord(END_PORTAL, END, x, 50, z) for x in range(3) for z in range(3)]
        (result,) = PortalPairer().pair(detect_portals(blocks))
        assert result.confidence == Confidence.ORPHAN
        assert "End portals" in result.description

    def test_radius_is_configurable(self) -> None:
        portals = detect_portals(_frame(OVERWORLD, 0, 64, 0) + _frame(NETHER, 40, 64, 0))
        assert PortalPairer(search_radius=32).pair(portals)[0].confidence == Confidence.ORPHAN
        assert PortalPairer(search_radius=64).pair(portals)[0].confidence == Confidence.LIKELY

    def test_invalid_radius(self) -> None:
        with pytest.raises(ValueError):
            PortalPairer(search_radius=0)

    def test_expected_position_keeps_y(self) -> None:
        (portal,) = detect_portals(_frame(OVERWORLD, 16, 100, -16))
        assert expected_position(portal) == (2.0, 101.0, -2.0)

    def test_statistics(self) -> None:
        portals = detect_portals(
            _frame(OVERWORLD, 0, 64, 0) + _frame(NETHER, 0, 64, 0) + _frame(NETHER, 900, 64, 900)
        )
        stats = pairing_statistics(PortalPairer().pair(portals))

        assert stats["total"] == 2
        assert stats["paired"] == 1
        assert stats["orphans"] == 1
        assert stats["by_confidence"]["EXACT"] == 1
        assert stats["average_distance"] == pytest.approx(0.5)

    def test_summary_line(self) -> None:
        portals = detect_portals(_frame(OVERWORLD, 0, 64, 0) + _frame(NETHER, 0, 64, 0))
        (result,) = PortalPairer().pair(portals)

        line = pairing_summary(result)

        assert line.startswith("[EXACT 100%] Overworld portal #1")
        assert "-> Nether portal #2" in line
