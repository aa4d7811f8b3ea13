# -*- coding: utf-8 -*-
"""
Sector-scan calibration from spot aspect ratios.

In a sector scan the radial width of a spot stays roughly constant while its
azimuthal height shrinks with the radius, so the bounding-box aspect ratio is
linear in the horizontal position:

    aspect = slope * cx + intercept,    rotation_center_x = -intercept / slope

Three interchangeable robust strategies produce (slope, intercept, inliers):
linear (one OLS fit, sigma trim), ransac (two-point consensus) and iterative
(repeated OLS with worst-percentage removal).
"""
from __future__ import annotations

import logging
import math
from itertools import combinations
from typing import Iterable, Literal, Optional, Sequence, Tuple

import numpy as np

from .config import CalibrationConfig
from .types import CalibrationFit, CalibrationModel, EllipseEstimate, SpotStatus

CalibrationMethod = Literal["linear", "ransac", "iterative"]
METHODS = ("linear", "ransac", "iterative")


def calibration_points(ellipses: Sequence[EllipseEstimate]) -> Tuple[np.ndarray, np.ndarray]:
    """x = centre column, y = bounding-box aspect ratio."""
    x = np.array([e.cx for e in ellipses], np.float64)
    y = np.array([e.bounding_aspect_ratio for e in ellipses], np.float64)
    return x, y


def fit_line_least_squares(x: np.ndarray, y: np.ndarray,
                           eps: float = 1e-10) -> Optional[Tuple[float, float]]:
    """Closed-form OLS of y = slope * x + intercept; None when the system is singular."""
    n = len(x)
    if n < 2:
        return None
    sx, sy = float(x.sum()), float(y.sum())
    sxx, sxy = float((x * x).sum()), float((x * y).sum())
    den = n * sxx - sx * sx
    if abs(den) < eps:
        return None
    slope = (n * sxy - sx * sy) / den
    intercept = (sy - slope * sx) / n
    return slope, intercept


# --------------------- Strategies ---------------------
def _linear(x, y, cfg: CalibrationConfig):
    fit = fit_line_least_squares(x, y, cfg.singular_eps)
    if fit is None:
        return None
    slope, intercept = fit
    res = y - (slope * x + intercept)
    thr = max(cfg.linear_sigma_factor * float(np.std(res)), cfg.linear_min_threshold)
    return slope, intercept, np.abs(res) <= thr


def _ransac_pairs(n: int, cfg: CalibrationConfig, rng: np.random.Generator) -> Iterable[Tuple[int, int]]:
    if n < cfg.ransac_exhaustive_below:
        yield from combinations(range(n), 2)
        return
    for _ in range(cfg.ransac_max_trials):
        i, j = rng.choice(n, size=2, replace=False)
        yield int(i), int(j)


def _ransac(x, y, cfg: CalibrationConfig, rng: np.random.Generator):
    best_count, best_err, best_mask = -1, math.inf, None
    for i, j in _ransac_pairs(len(x), cfg, rng):
        dx = x[j] - x[i]
        if abs(dx) < cfg.ransac_min_dx:
            continue
        m = (y[j] - y[i]) / dx
        b = y[i] - m * x[i]
        res = np.abs(y - (m * x + b))
        mask = res <= cfg.ransac_threshold
        count = int(mask.sum())
        err = float(res[mask].sum())
        if count > best_count or (count == best_count and err < best_err):
            best_count, best_err, best_mask = count, err, mask
    if best_mask is None:
        logging.debug("ransac: no usable point pair")
        return None
    fit = fit_line_least_squares(x[best_mask], y[best_mask], cfg.singular_eps)
    if fit is None:
        return None
    return fit[0], fit[1], best_mask


def _iterative(x, y, cfg: CalibrationConfig, iterations: int, percentage: float):
    keep = np.arange(len(x))
    for it in range(max(1, int(iterations))):
        fit = fit_line_least_squares(x[keep], y[keep], cfg.singular_eps)
        if fit is None:
            return None
        slope, intercept = fit
        res = np.abs(y[keep] - (slope * x[keep] + intercept))
        drop = max(1, int(len(keep) * float(percentage) / 100.0))
        drop = min(drop, len(keep) - cfg.min_points)
        if drop <= 0:
            break
        order = np.argsort(res, kind="stable")
        keep = np.sort(keep[order[:len(keep) - drop]])
        logging.debug("iterative trim round %d: dropped %d, %d left", it + 1, drop, len(keep))
    fit = fit_line_least_squares(x[keep], y[keep], cfg.singular_eps)
    if fit is None:
        return None
    mask = np.zeros(len(x), bool)
    mask[keep] = True
    return fit[0], fit[1], mask


# --------------------- Model assembly ---------------------
def build_model(x: np.ndarray, y: np.ndarray, slope: float, intercept: float,
                inliers: np.ndarray, method: str,
                cfg: Optional[CalibrationConfig] = None) -> CalibrationModel:
    """R^2 and RMSE over the inliers; rotation centre where the aspect ratio reaches 0."""
    cfg = cfg or CalibrationConfig()
    xi, yi = x[inliers], y[inliers]
    n = int(inliers.sum())
    if n:
        res = yi - (slope * xi + intercept)
        ss_res = float((res * res).sum())
        ss_tot = float(((yi - yi.mean()) ** 2).sum())
        rmse = math.sqrt(ss_res / n)
    else:
        ss_res = ss_tot = rmse = 0.0
    r2 = 0.0 if ss_tot == 0 else 1.0 - ss_res / ss_tot
    r2 = min(1.0, abs(r2))
    rc = -intercept / slope if abs(slope) > cfg.slope_eps else 0.0
    return CalibrationModel(
        slope=float(slope),
        intercept=float(intercept),
        rotation_center_x=float(rc),
        angular_resolution=math.degrees(slope),
        r_squared=float(r2),
        reprojection_error=float(rmse),
        is_valid=n >= cfg.min_points and r2 > cfg.min_r_squared,
        method=method,
        inlier_count=n,
    )


def fit_calibration(ellipses: Sequence[EllipseEstimate], method: CalibrationMethod = "linear",
                    cfg: Optional[CalibrationConfig] = None,
                    iterations: Optional[int] = None,
                    percentage: Optional[float] = None,
                    rng: Optional[np.random.Generator] = None) -> CalibrationFit:
    """Fit the aspect-ratio model and tag every ellipse active (inlier) or outlier.

    Parameters
    ----------
    ellipses:
        Current ellipse set; at least ``cfg.min_points`` are needed.
    method:
        ``"linear"``, ``"ransac"`` or ``"iterative"``.
    iterations, percentage:
        Iterative-trim rounds and drop percentage (defaults from ``cfg``).
    rng:
        Random source for RANSAC sampling; defaults to a generator seeded with
        ``cfg.ransac_seed`` so results are reproducible.

    Too few points or a singular system give an invalid placeholder model and
    the ellipses back untouched (all active).
    """
    cfg = cfg or CalibrationConfig()
    if method not in METHODS:
        raise ValueError(f"Unknown calibration method: {method!r} (expected one of {METHODS})")
    ellipses = list(ellipses)
    untouched = [e.with_status(SpotStatus.ACTIVE) for e in ellipses]
    if len(ellipses) < cfg.min_points:
        logging.debug("calibration: %d points, need %d", len(ellipses), cfg.min_points)
        return CalibrationFit(model=CalibrationModel.invalid(method), ellipses=untouched)

    x, y = calibration_points(ellipses)
    if method == "linear":
        out = _linear(x, y, cfg)
    elif method == "ransac":
        out = _ransac(x, y, cfg, rng if rng is not None else np.random.default_rng(cfg.ransac_seed))
    else:
        out = _iterative(x, y, cfg,
                         cfg.iterative_iterations if iterations is None else iterations,
                         cfg.iterative_percentage if percentage is None else percentage)
    if out is None:
        logging.warning("calibration (%s): degenerate least-squares system", method)
        return CalibrationFit(model=CalibrationModel.invalid(method), ellipses=untouched)

    slope, intercept, mask = out
    model = build_model(x, y, slope, intercept, mask, method, cfg)
    tagged = [e.with_status(SpotStatus.ACTIVE if mask[i] else SpotStatus.OUTLIER)
              for i, e in enumerate(ellipses)]
    logging.info("calibration (%s): slope=%.6g rc=%.2f R2=%.4f inliers=%d/%d valid=%s",
                 method, model.slope, model.rotation_center_x, model.r_squared,
                 model.inlier_count, len(ellipses), model.is_valid)
    return CalibrationFit(model=model, ellipses=tagged)


def physical_dimensions(e: EllipseEstimate, model: CalibrationModel) -> Tuple[float, float]:
    """(radius from the rotation centre, relative arc length) of a spot."""
    if not model.is_valid:
        return 0.0, 0.0
    radius = e.cx - model.rotation_center_x
    return float(radius), float(e.cy * radius)
