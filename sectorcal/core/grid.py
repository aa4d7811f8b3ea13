# -*- coding: utf-8 -*-
"""
Grid resolution: find the dominant orientation of a spot lattice and split the
spots into rows and columns.

Two modes:
  - exhaustive : score candidate angles by how well 1-D clustering of the
                 projected centres forms rows and columns
  - basis      : explicit origin / x-ref / y-ref lattice, rounding each spot to
                 its nearest lattice node
"""
from __future__ import annotations

import logging
import math
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .config import GridConfig
from .types import EllipseEstimate, GridAssignment, GridLine, LineSegment

HALF_PI = 0.5 * math.pi


def wrap_half_pi(angle: float) -> float:
    """Fold a line heading into [-pi/2, pi/2)."""
    if angle < -HALF_PI:
        angle += math.pi
    if angle >= HALF_PI:
        angle -= math.pi
    return angle


def mean_radius(ellipses: Sequence[EllipseEstimate]) -> float:
    if not ellipses:
        return 0.0
    return float(np.mean([e.mean_radius for e in ellipses]))


def project(e: EllipseEstimate, cos_t: float, sin_t: float) -> Tuple[float, float]:
    """(u, v) of the centre in the frame rotated by the orientation."""
    return e.cx * cos_t + e.cy * sin_t, -e.cx * sin_t + e.cy * cos_t


# --------------------- Exhaustive search ---------------------
def candidate_angles(ellipses: Sequence[EllipseEstimate], radius_mean: float,
                     cfg: Optional[GridConfig] = None) -> List[float]:
    cfg = cfg or GridConfig()
    seen = {0.0, HALF_PI}
    angles = [0.0, HALF_PI]
    min_dist = radius_mean * cfg.pair_min_dist_scale
    limit = max(2, int(cfg.max_candidates))
    n = len(ellipses)
    for i in range(n):
        for j in range(i + 1, n):
            dx = ellipses[j].cx - ellipses[i].cx
            dy = ellipses[j].cy - ellipses[i].cy
            if math.hypot(dx, dy) <= min_dist:
                continue
            heading = wrap_half_pi(math.atan2(dy, dx))
            perp = heading + HALF_PI
            if perp >= HALF_PI:
                perp -= math.pi
            for a in (heading, perp):
                if a not in seen:
                    seen.add(a)
                    angles.append(a)
                    if len(angles) >= limit:
                        logging.debug("grid: candidate angles capped at %d", limit)
                        return angles
    return angles


def cluster_1d(values: Iterable[Tuple[float, EllipseEstimate]], gap: float) -> List[GridLine]:
    """Sort, then start a new cluster wherever consecutive values differ by >= gap."""
    vals = sorted(values, key=lambda t: t[0])
    if not vals:
        return []
    clusters: List[GridLine] = []
    cur = [vals[0]]
    for prev, item in zip(vals, vals[1:]):
        if item[0] - prev[0] < gap:
            cur.append(item)
        else:
            clusters.append(_make_line(cur))
            cur = [item]
    clusters.append(_make_line(cur))
    return clusters


def _make_line(items: List[Tuple[float, EllipseEstimate]]) -> GridLine:
    return GridLine(members=tuple(e for _, e in items), avg=float(np.mean([v for v, _ in items])))


def _score(lines: Iterable[GridLine]) -> int:
    return sum(len(l) ** 2 for l in lines if len(l) > 1)


def resolve_grid_exhaustive(ellipses: Sequence[EllipseEstimate],
                            radius_mean: Optional[float] = None,
                            forced_orientation: Optional[float] = None,
                            cfg: Optional[GridConfig] = None) -> Optional[GridAssignment]:
    """Pick the orientation maximising sum(row size^2) + sum(col size^2)."""
    cfg = cfg or GridConfig()
    if len(ellipses) < 2:
        return None
    if radius_mean is None:
        radius_mean = mean_radius(ellipses)

    if forced_orientation is not None:
        candidates = [float(forced_orientation)]
    else:
        candidates = candidate_angles(ellipses, radius_mean, cfg)
    gap = max(radius_mean * cfg.gap_scale, cfg.gap_floor)

    best_score = -1
    best: Optional[GridAssignment] = None
    for theta in candidates:
        c, s = math.cos(theta), math.sin(theta)
        uv = [project(e, c, s) for e in ellipses]
        rows = cluster_1d(((v, e) for (u, v), e in zip(uv, ellipses)), gap)
        cols = cluster_1d(((u, e) for (u, v), e in zip(uv, ellipses)), gap)
        score = _score(rows) + _score(cols)
        if score > best_score:
            best_score = score
            best = GridAssignment(
                orientation=float(theta),
                rows=tuple(r for r in rows if len(r) > 1),
                cols=tuple(k for k in cols if len(k) > 1),
            )
    logging.debug("grid: %d candidates, best score %d", len(candidates), best_score)
    return best


# --------------------- Explicit basis ---------------------
def resolve_grid_from_basis(ellipses: Sequence[EllipseEstimate], origin: EllipseEstimate,
                            x_ref: EllipseEstimate, y_ref: EllipseEstimate,
                            cfg: Optional[GridConfig] = None) -> Optional[GridAssignment]:
    """Assign lattice indices through the basis u = x_ref - origin, v = y_ref - origin.

    Returns None for a (near) collinear basis. Rows are keyed by j and columns
    by i, each ordered by its lattice index.
    """
    cfg = cfg or GridConfig()
    ux, uy = x_ref.cx - origin.cx, x_ref.cy - origin.cy
    vx, vy = y_ref.cx - origin.cx, y_ref.cy - origin.cy
    det = ux * vy - uy * vx
    if abs(det) < cfg.basis_min_det:
        logging.warning("grid basis is collinear (det=%.3g); no grid", det)
        return None

    orientation = math.atan2(uy, ux)
    c, s = math.cos(orientation), math.sin(orientation)
    spacing = 0.5 * (math.hypot(ux, uy) + math.hypot(vx, vy))
    tol = spacing * cfg.basis_tolerance

    rows_map: Dict[int, List[EllipseEstimate]] = {}
    cols_map: Dict[int, List[EllipseEstimate]] = {}
    for e in ellipses:
        dx, dy = e.cx - origin.cx, e.cy - origin.cy
        i_val = (vy * dx - vx * dy) / det
        j_val = (-uy * dx + ux * dy) / det
        I, J = int(round(i_val)), int(round(j_val))
        err = math.hypot(dx - (I * ux + J * vx), dy - (I * uy + J * vy))
        if err < tol:
            rows_map.setdefault(J, []).append(e)
            cols_map.setdefault(I, []).append(e)

    rows = tuple(GridLine(members=tuple(pts), avg=float(np.mean([project(p, c, s)[1] for p in pts])))
                 for _, pts in sorted(rows_map.items()) if len(pts) > 1)
    cols = tuple(GridLine(members=tuple(pts), avg=float(np.mean([project(p, c, s)[0] for p in pts])))
                 for _, pts in sorted(cols_map.items()) if len(pts) > 1)
    return GridAssignment(orientation=float(orientation), rows=rows, cols=cols)


def find_by_id(ellipses: Sequence[EllipseEstimate], ellipse_id: int) -> EllipseEstimate:
    for e in ellipses:
        if e.id == ellipse_id:
            return e
    raise KeyError(f"Unknown ellipse id: {ellipse_id}")


def resolve_grid_from_ids(ellipses: Sequence[EllipseEstimate], origin_id: int, x_id: int,
                          y_id: int, cfg: Optional[GridConfig] = None) -> Optional[GridAssignment]:
    origin = find_by_id(ellipses, origin_id)
    x_ref = find_by_id(ellipses, x_id)
    y_ref = find_by_id(ellipses, y_id)
    return resolve_grid_from_basis(ellipses, origin, x_ref, y_ref, cfg)


# --------------------- Line segments ---------------------
def grid_line_segments(grid: GridAssignment, radius_mean: float, extension: float = 2.0
                       ) -> Tuple[List[LineSegment], List[LineSegment], Optional[LineSegment]]:
    """Row and column segments in image space plus the most populated row's segment."""
    c, s = math.cos(grid.orientation), math.sin(grid.orientation)
    pad = radius_mean * extension

    def to_xy(u: float, v: float) -> Tuple[float, float]:
        return u * c - v * s, u * s + v * c

    row_lines: List[LineSegment] = []
    for r in grid.rows:
        us = [project(p, c, s)[0] for p in r.members]
        (x1, y1), (x2, y2) = to_xy(min(us) - pad, r.avg), to_xy(max(us) + pad, r.avg)
        row_lines.append(LineSegment(x1, y1, x2, y2))

    col_lines: List[LineSegment] = []
    for k in grid.cols:
        vs = [project(p, c, s)[1] for p in k.members]
        (x1, y1), (x2, y2) = to_xy(k.avg, min(vs) - pad), to_xy(k.avg, max(vs) + pad)
        col_lines.append(LineSegment(x1, y1, x2, y2))

    best = None
    if row_lines:
        best_idx = max(range(len(grid.rows)), key=lambda i: (len(grid.rows[i]), -i))
        best = row_lines[best_idx]
    return row_lines, col_lines, best
