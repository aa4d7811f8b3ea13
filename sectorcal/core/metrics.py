# -*- coding: utf-8 -*-
"""
Correction quality metrics: roundness, size/spacing consistency and grid
linearity, folded into exponential-decay sub-scores and a weighted score.
"""
from __future__ import annotations

import logging
import math
from typing import Optional, Sequence, Tuple

import numpy as np

from .config import DetectionConfig, GridConfig, MetricsConfig
from .grid import grid_line_segments, project, resolve_grid_exhaustive, resolve_grid_from_ids
from .segment import detect_ellipses
from .types import CorrectionAnalysis, CorrectionMetrics, EllipseEstimate, GridAssignment


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def _mean_std(values: Sequence[float]) -> Tuple[float, float]:
    if not values:
        return 0.0, 0.0
    arr = np.asarray(values, np.float64)
    return float(arr.mean()), float(arr.std())


def linearity_rms(grid: Optional[GridAssignment]) -> float:
    """Pooled RMS of each row member's perpendicular offset from its row average."""
    if grid is None or not grid.rows:
        return 0.0
    c, s = math.cos(grid.orientation), math.sin(grid.orientation)
    sum_sq, total = 0.0, 0
    for row in grid.rows:
        for p in row.members:
            sum_sq += (project(p, c, s)[1] - row.avg) ** 2
        total += len(row)
    return math.sqrt(sum_sq / total) if total else 0.0


def sort_along_axis(ellipses: Sequence[EllipseEstimate], orientation: float) -> list:
    c, s = math.cos(orientation), math.sin(orientation)
    return sorted(ellipses, key=lambda e: e.cx * c + e.cy * s)


def spacing_gaps(ordered: Sequence[EllipseEstimate], radius_mean: float,
                 row_break_scale: float = 5.0) -> list:
    """Distances between consecutive spots; gaps beyond the row-break limit are dropped."""
    limit = radius_mean * row_break_scale
    gaps = []
    for a, b in zip(ordered, ordered[1:]):
        d = math.hypot(b.cx - a.cx, b.cy - a.cy)
        if d <= limit:
            gaps.append(d)
    return gaps


def compute_metrics(ellipses: Sequence[EllipseEstimate], grid: Optional[GridAssignment] = None,
                    cfg: Optional[MetricsConfig] = None) -> CorrectionMetrics:
    cfg = cfg or MetricsConfig()
    n = len(ellipses)
    if n < 2:
        return CorrectionMetrics.empty(n)

    roundness = float(np.mean([e.roundness for e in ellipses]))
    r_mean, r_std = _mean_std([e.mean_radius for e in ellipses])
    r_cv = r_std / r_mean if r_mean > 0 else 1.0

    has_grid = grid is not None and not grid.is_empty
    orientation = grid.orientation if has_grid else 0.0
    lin = linearity_rms(grid) if has_grid else 0.0

    gaps = spacing_gaps(sort_along_axis(ellipses, orientation), r_mean, cfg.row_break_scale)
    s_mean, s_std = _mean_std(gaps)
    s_cv = s_std / s_mean if s_mean > 0 else 1.0

    lin_rel = lin / r_mean if r_mean > 0 else 1.0
    s_round = round_half_up(100.0 * math.exp(-cfg.roundness_decay * (1.0 - roundness)))
    s_lin = round_half_up(100.0 * math.exp(-cfg.linearity_decay * lin_rel))
    s_cons = round_half_up(100.0 * math.exp(-cfg.consistency_decay * (r_cv + s_cv) / 2.0))
    final = round_half_up(cfg.weight_roundness * s_round
                          + cfg.weight_linearity * s_lin
                          + cfg.weight_consistency * s_cons)

    return CorrectionMetrics(
        mean_roundness=roundness,
        radius_mean=r_mean,
        radius_std=r_std,
        radius_cv=r_cv,
        spacing_mean=s_mean,
        spacing_std=s_std,
        spacing_cv=s_cv,
        linearity_rms=lin,
        linearity_relative=lin_rel,
        score_roundness=s_round,
        score_linearity=s_lin,
        score_consistency=s_cons,
        final_score=final,
        sample_count=n,
    )


def analyze_correction(pixels: Optional[np.ndarray], mode: str,
                       ellipses: Optional[Sequence[EllipseEstimate]] = None,
                       threshold: Optional[float] = None,
                       min_radius: Optional[float] = None,
                       max_radius: Optional[float] = None,
                       grid_basis_ids: Optional[Tuple[int, int, int]] = None,
                       forced_orientation: Optional[float] = None,
                       cfg: Optional[MetricsConfig] = None,
                       grid_cfg: Optional[GridConfig] = None,
                       detection_cfg: Optional[DetectionConfig] = None) -> CorrectionAnalysis:
    """Score a (corrected) image.

    Supplied ellipses are reused as they are; otherwise spots are re-detected
    in ``pixels`` with the given threshold (default 128) and radius window.
    ``grid_basis_ids`` (origin, x-ref, y-ref) forces the explicit-basis grid.
    """
    cfg = cfg or MetricsConfig()
    if ellipses:
        spots = list(ellipses)
    else:
        if pixels is None:
            raise ValueError("analyze_correction needs pixels when no ellipses are supplied")
        det = detect_ellipses(
            pixels, mode,
            threshold=threshold if threshold else cfg.default_threshold,
            min_radius=cfg.min_radius if min_radius is None else min_radius,
            max_radius=cfg.max_radius if max_radius is None else max_radius,
            cfg=detection_cfg,
        )
        spots = det.ellipses
        logging.debug("analysis: re-detected %d spots", len(spots))

    if len(spots) < 2:
        return CorrectionAnalysis(metrics=CorrectionMetrics.empty(len(spots)), ellipses=spots)

    r_mean = float(np.mean([e.mean_radius for e in spots]))
    if grid_basis_ids is not None:
        grid = resolve_grid_from_ids(spots, *grid_basis_ids, cfg=grid_cfg)
    else:
        grid = resolve_grid_exhaustive(spots, r_mean, forced_orientation, grid_cfg)

    metrics = compute_metrics(spots, grid, cfg)
    row_lines, col_lines, best = [], [], None
    orientation = 0.0
    if grid is not None and not grid.is_empty:
        row_lines, col_lines, best = grid_line_segments(grid, r_mean, cfg.line_extension)
        orientation = grid.orientation
    return CorrectionAnalysis(
        metrics=metrics,
        ellipses=sort_along_axis(spots, orientation),
        grid=grid,
        row_lines=row_lines,
        col_lines=col_lines,
        best_fit_line=best,
    )
