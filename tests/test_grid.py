from __future__ import annotations

import math
from pathlib import Path

import numpy as np
import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
import sys

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from sectorcal.core.config import create_grid_config
from sectorcal.core.grid import (
    candidate_angles,
    cluster_1d,
    grid_line_segments,
    resolve_grid_exhaustive,
    resolve_grid_from_ids,
)
from sectorcal.core.types import EllipseEstimate
from synthetic import grid_ellipses


def _ids(line) -> list:
    return [e.id for e in line.members]


def test_axis_aligned_grid() -> None:
    spots = grid_ellipses(radius=10.5)
    grid = resolve_grid_exhaustive(spots)
    assert grid is not None
    assert grid.orientation == 0.0
    assert [len(r) for r in grid.rows] == [3, 3, 3]
    assert [len(c) for c in grid.cols] == [3, 3, 3]
    assert sorted(_ids(grid.rows[0])) == [1, 2, 3]
    assert sorted(_ids(grid.cols[0])) == [1, 4, 7]
    assert np.allclose([r.avg for r in grid.rows], [100, 150, 200])


def test_rotated_grid_orientation() -> None:
    spots = grid_ellipses(radius=10.5, angle=0.3)
    grid = resolve_grid_exhaustive(spots)
    d = (grid.orientation - 0.3) % (math.pi / 2)
    assert min(d, math.pi / 2 - d) < 1e-6
    assert [len(r) for r in grid.rows] == [3, 3, 3]
    assert [len(c) for c in grid.cols] == [3, 3, 3]


def test_forced_orientation_only_evaluates_that_angle() -> None:
    spots = grid_ellipses(radius=10.5, angle=0.3)
    grid = resolve_grid_exhaustive(spots, forced_orientation=0.0)
    assert grid.orientation == 0.0
    assert grid.is_empty


def test_too_few_spots() -> None:
    assert resolve_grid_exhaustive([]) is None
    assert resolve_grid_exhaustive(grid_ellipses(rows=1, cols=1)) is None


def test_cluster_gap_boundary() -> None:
    es = [EllipseEstimate(i, 0, 0, 1, 1) for i in range(4)]
    lines = cluster_1d(zip([30.0, 0.0, 10.0, 5.0], es), gap=10.0)
    assert [len(l) for l in lines] == [3, 1]
    assert np.isclose(lines[0].avg, 5.0)
    # a gap equal to the threshold separates
    assert len(cluster_1d(zip([0.0, 10.0], es), gap=10.0)) == 2


def test_candidate_cap() -> None:
    spots = grid_ellipses(rows=4, cols=4, radius=10.5, angle=0.2)
    assert len(candidate_angles(spots, 10.5)) > 4
    capped = candidate_angles(spots, 10.5, create_grid_config(max_candidates=4))
    assert len(capped) == 4
    assert capped[:2] == [0.0, math.pi / 2]


def test_basis_grid() -> None:
    spots = grid_ellipses(radius=10.5)
    spots.append(EllipseEstimate(99, 125, 125, 10, 10))   # between lattice nodes
    grid = resolve_grid_from_ids(spots, 1, 2, 4)
    assert grid.orientation == 0.0
    assert [_ids(r) for r in grid.rows] == [[1, 2, 3], [4, 5, 6], [7, 8, 9]]
    assert [_ids(c) for c in grid.cols] == [[1, 4, 7], [2, 5, 8], [3, 6, 9]]


def test_basis_rows_sorted_by_lattice_index() -> None:
    spots = grid_ellipses(radius=10.5)
    # origin in the middle: rows j = -1, 0, 1
    grid = resolve_grid_from_ids(spots, 5, 6, 8)
    assert [_ids(r) for r in grid.rows] == [[1, 2, 3], [4, 5, 6], [7, 8, 9]]


def test_collinear_basis_gives_no_grid() -> None:
    spots = grid_ellipses(radius=10.5)
    assert resolve_grid_from_ids(spots, 1, 2, 3) is None


def test_unknown_basis_id() -> None:
    with pytest.raises(KeyError):
        resolve_grid_from_ids(grid_ellipses(), 1, 2, 42)


def test_line_segments() -> None:
    spots = grid_ellipses(radius=10.5)
    grid = resolve_grid_exhaustive(spots)
    rows, cols, best = grid_line_segments(grid, 10.5, extension=2.0)
    assert len(rows) == 3 and len(cols) == 3
    r0 = rows[0]
    assert np.allclose([r0.x1, r0.y1, r0.x2, r0.y2], [79, 100, 221, 100])
    c0 = cols[0]
    assert np.allclose([c0.x1, c0.y1, c0.x2, c0.y2], [100, 79, 100, 221])
    assert best == rows[0]
    assert np.isclose(best.length, 142)
