# -*- coding: utf-8 -*-
"""
Blob segmentation: threshold, 4-connected flood fill, per-component raw moments.
"""
from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from .config import DetectionConfig
from .moments import check_pixels, check_polarity, ellipse_from_moments, luminance
from .types import DetectionResult, EllipseEstimate, Region

# (m00, m10, m01, m11, m20, m02)
Moments = Tuple[float, float, float, float, float, float]


def target_mask(pixels: np.ndarray, mode: str, threshold: float) -> np.ndarray:
    lum = luminance(pixels)
    if check_polarity(mode) == "dark":
        return lum < threshold
    return lum > threshold


# --------------------- Component labelling ---------------------
def flood_fill_components(mask: np.ndarray) -> List[Moments]:
    """Raw moments of each 4-connected component of ``mask``.

    Iterative fill with an explicit stack over a flat visited array
    (index = y * W + x); neighbours never wrap across the left/right edge.
    Components come out in raster order of their first pixel.
    """
    H, W = mask.shape
    flat = mask.ravel().tolist()
    visited = bytearray(W * H)
    comps: List[Moments] = []
    for seed in np.flatnonzero(mask.ravel()).tolist():
        if visited[seed]:
            continue
        stack = [seed]
        visited[seed] = 1
        m00 = m10 = m01 = m11 = m20 = m02 = 0
        while stack:
            cur = stack.pop()
            y, x = divmod(cur, W)
            m00 += 1; m10 += x; m01 += y
            m11 += x * y; m20 += x * x; m02 += y * y
            if x > 0:
                n = cur - 1
                if not visited[n] and flat[n]:
                    visited[n] = 1; stack.append(n)
            if x < W - 1:
                n = cur + 1
                if not visited[n] and flat[n]:
                    visited[n] = 1; stack.append(n)
            if y > 0:
                n = cur - W
                if not visited[n] and flat[n]:
                    visited[n] = 1; stack.append(n)
            if y < H - 1:
                n = cur + W
                if not visited[n] and flat[n]:
                    visited[n] = 1; stack.append(n)
        comps.append((float(m00), float(m10), float(m01), float(m11), float(m20), float(m02)))
    return comps


def opencv_components(mask: np.ndarray) -> List[Moments]:
    """Same contract as flood_fill_components, labelled by OpenCV."""
    num, lab, stats, _ = cv2.connectedComponentsWithStats(mask.astype(np.uint8), connectivity=4)
    if num <= 1:
        return []
    H, W = mask.shape
    ys, xs = np.mgrid[0:H, 0:W]
    lab = lab.ravel()
    xs = xs.ravel().astype(np.float64)
    ys = ys.ravel().astype(np.float64)

    def acc(w):
        return np.bincount(lab, weights=w, minlength=num)

    m10, m01 = acc(xs), acc(ys)
    m11, m20, m02 = acc(xs * ys), acc(xs * xs), acc(ys * ys)
    m00 = stats[:, cv2.CC_STAT_AREA].astype(np.float64)

    # raster order of each component's first pixel, matching the flood fill
    first = np.full(num, lab.size, np.int64)
    np.minimum.at(first, lab, np.arange(lab.size))
    order = [i for i in np.argsort(first).tolist() if i != 0]
    return [(float(m00[i]), float(m10[i]), float(m01[i]), float(m11[i]),
             float(m20[i]), float(m02[i])) for i in order]


# --------------------- Filtering & ordering ---------------------
def in_radius_window(e: EllipseEstimate, min_radius: float, max_radius: float) -> bool:
    return min_radius <= e.rx <= max_radius and min_radius <= e.ry <= max_radius


def accept_ellipse(e: EllipseEstimate, min_radius: float, max_radius: float,
                   max_axis_ratio: float) -> bool:
    if not in_radius_window(e, min_radius, max_radius):
        return False
    return max(e.rx, e.ry) / min(e.rx, e.ry) <= max_axis_ratio


def sort_reading_order(ellipses: Sequence[EllipseEstimate],
                       tolerance_scale: float = 1.5) -> List[EllipseEstimate]:
    """Group into rows of similar y (tolerance from the row head's ry), each row left to right."""
    if not ellipses:
        return []
    by_y = sorted(ellipses, key=lambda e: e.cy)
    rows: List[List[EllipseEstimate]] = []
    cur = [by_y[0]]
    for e in by_y[1:]:
        head = cur[0]
        if abs(e.cy - head.cy) <= head.ry * tolerance_scale:
            cur.append(e)
        else:
            rows.append(cur)
            cur = [e]
    rows.append(cur)
    return [e for row in rows for e in sorted(row, key=lambda e: e.cx)]


def detect_ellipses(pixels: np.ndarray, mode: str,
                    threshold: Optional[float] = None,
                    min_radius: Optional[float] = None,
                    max_radius: Optional[float] = None,
                    cfg: Optional[DetectionConfig] = None,
                    id_start: int = 1) -> DetectionResult:
    """Segment spots automatically and describe each by its moment ellipse.

    Returns ellipses in reading order (fresh ids from ``id_start``) and a
    generated region per ellipse, scaled by ``cfg.region_scale``.
    """
    cfg = cfg or DetectionConfig()
    img = check_pixels(pixels)
    if threshold is None:
        threshold = cfg.threshold
    if min_radius is None:
        min_radius = cfg.min_radius
    if max_radius is None:
        max_radius = cfg.max_radius

    mask = target_mask(img, mode, float(threshold))
    H, W = mask.shape
    comps = opencv_components(mask) if cfg.use_opencv_labels else flood_fill_components(mask)
    max_pixels = cfg.max_area_fraction * W * H

    detected: List[EllipseEstimate] = []
    for m in comps:
        count = m[0]
        if count <= cfg.min_pixels or count > max_pixels:
            continue
        e = ellipse_from_moments(0, *m)
        if accept_ellipse(e, min_radius, max_radius, cfg.max_axis_ratio):
            detected.append(e)
    logging.debug("segmentation: %d components, %d ellipses kept", len(comps), len(detected))

    ordered = sort_reading_order(detected, cfg.row_tolerance_scale)
    ellipses = [e.with_id(id_start + i) for i, e in enumerate(ordered)]
    regions = [Region(id=e.id, cx=e.cx, cy=e.cy, rx=e.rx * cfg.region_scale,
                      ry=e.ry * cfg.region_scale, rotation=e.angle) for e in ellipses]
    return DetectionResult(ellipses=ellipses, regions=regions)
