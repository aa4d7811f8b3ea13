# -*- coding: utf-8 -*-
"""
Luminance sampling and moment-based ellipse estimation.

An ellipse is recovered from (optionally intensity-weighted) image moments:
centroid from first-order moments, shape from the eigen-decomposition of the
2x2 central second-moment matrix. Semi-axes are 2-sigma radii.
"""
from __future__ import annotations

import logging
import math
from typing import Dict, Iterable, List, Optional

import cv2
import numpy as np

from .config import DetectionConfig
from .types import EllipseEstimate, Region

LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], np.float64)
POLARITIES = ("dark", "light")


# --------------------- Luminance ---------------------
def check_pixels(pixels: np.ndarray) -> np.ndarray:
    img = np.asarray(pixels)
    if img.ndim == 2:
        return img
    if img.ndim != 3 or img.shape[2] not in (3, 4):
        raise ValueError(f"expect (H,W), (H,W,3) or (H,W,4) pixel buffer, got shape {img.shape}")
    return img


def check_polarity(mode: str) -> str:
    if mode not in POLARITIES:
        raise ValueError(f"Unknown polarity mode: {mode!r} (expected 'dark' or 'light')")
    return mode


def luminance(pixels: np.ndarray) -> np.ndarray:
    """Scalar brightness per pixel (ITU-R BT.601 weights), float64 (H, W)."""
    img = check_pixels(pixels)
    if img.ndim == 2:
        return img.astype(np.float64)
    return img[..., :3].astype(np.float64) @ LUMA_WEIGHTS


def polarity_values(pixels: np.ndarray, mode: str) -> np.ndarray:
    """Brightness oriented so that the target spots carry high values."""
    check_polarity(mode)
    lum = luminance(pixels)
    return 255.0 - lum if mode == "dark" else lum


# --------------------- Moments -> ellipse ---------------------
def ellipse_from_moments(id: int, m00: float, m10: float, m01: float, m11: float,
                         m20: float, m02: float, offset_x: float = 0.0,
                         offset_y: float = 0.0) -> EllipseEstimate:
    if m00 == 0:
        return EllipseEstimate(id=id, cx=float(offset_x), cy=float(offset_y), rx=1.0, ry=1.0, angle=0.0)
    xc = m10 / m00
    yc = m01 / m00
    mu20 = m20 / m00 - xc * xc
    mu02 = m02 / m00 - yc * yc
    mu11 = m11 / m00 - xc * yc
    common = math.sqrt(4.0 * mu11 * mu11 + (mu20 - mu02) ** 2)
    lam1 = max(0.0, (mu20 + mu02 + common) / 2.0)
    lam2 = max(0.0, (mu20 + mu02 - common) / 2.0)
    angle = 0.5 * math.atan2(2.0 * mu11, mu20 - mu02)
    return EllipseEstimate(
        id=id,
        cx=float(offset_x + xc),
        cy=float(offset_y + yc),
        rx=max(1.0, 2.0 * math.sqrt(lam1)),
        ry=max(1.0, 2.0 * math.sqrt(lam2)),
        angle=float(angle),
    )


def weighted_moments(weights: np.ndarray) -> Dict[str, float]:
    """Raw moments of a weight image (x = column, y = row)."""
    m = cv2.moments(np.ascontiguousarray(weights, dtype=np.float64), binaryImage=False)
    return {k: float(m[k]) for k in ("m00", "m10", "m01", "m11", "m20", "m02")}


def ellipse_from_weights(id: int, weights: np.ndarray, offset_x: float = 0.0,
                         offset_y: float = 0.0) -> EllipseEstimate:
    m = weighted_moments(weights)
    return ellipse_from_moments(id, m["m00"], m["m10"], m["m01"], m["m11"], m["m20"], m["m02"],
                                offset_x, offset_y)


def unchanged_ellipse(region: Region) -> EllipseEstimate:
    return EllipseEstimate(id=region.id, cx=float(region.cx), cy=float(region.cy),
                           rx=max(1.0, float(region.rx)), ry=max(1.0, float(region.ry)),
                           angle=float(region.rotation))


def region_mask(region: Region, x0: int, y0: int, width: int, height: int,
                margin: float) -> np.ndarray:
    """Boolean mask of the window pixels lying inside the (rotated) region."""
    cols = np.arange(x0, x0 + width, dtype=np.float64)[None, :]
    rows = np.arange(y0, y0 + height, dtype=np.float64)[:, None]
    tx = cols - region.cx
    ty = rows - region.cy
    c, s = math.cos(-region.rotation), math.sin(-region.rotation)
    u = tx * c - ty * s
    v = tx * s + ty * c
    return (u * u) / (region.rx * region.rx) + (v * v) / (region.ry * region.ry) <= margin


def auto_threshold(values: np.ndarray, min_range: float) -> float:
    lo, hi = float(values.min()), float(values.max())
    rng = hi - lo
    return lo + 0.5 * rng if rng > min_range else lo


# --------------------- Region refinement ---------------------
def extract_ellipse_from_region(pixels: np.ndarray, region: Region, mode: str,
                                threshold: Optional[float] = None,
                                cfg: Optional[DetectionConfig] = None) -> EllipseEstimate:
    """Refine one region into an ellipse from intensity-weighted moments.

    Parameters
    ----------
    pixels:
        Source buffer (gray, RGB or RGBA uint8). Only read.
    region:
        Candidate area; pixels with normalised radius <= ``cfg.roi_margin`` count.
    mode:
        ``"dark"`` (dark spots on light ground) or ``"light"``.
    threshold:
        Explicit intensity threshold in polarity space; ``None`` or ``<= 0``
        selects the per-region midpoint of min/max.

    Degenerate inputs (empty window, too few pixels, zero weight) return the
    region itself as the ellipse.
    """
    cfg = cfg or DetectionConfig()
    img = check_pixels(pixels)
    check_polarity(mode)
    H, W = img.shape[:2]
    if region.rx <= 0 or region.ry <= 0:
        return unchanged_ellipse(region)

    max_r = region.max_radius
    x0 = int(math.floor(max(0.0, region.cx - max_r)))
    y0 = int(math.floor(max(0.0, region.cy - max_r)))
    x1 = int(math.ceil(min(float(W), region.cx + max_r)))
    y1 = int(math.ceil(min(float(H), region.cy + max_r)))
    w, h = x1 - x0, y1 - y0
    if w <= 0 or h <= 0:
        logging.debug("region %s lies outside the image", region.id)
        return unchanged_ellipse(region)

    values = polarity_values(img[y0:y1, x0:x1], mode)
    inside = region_mask(region, x0, y0, w, h, cfg.roi_margin)
    if int(inside.sum()) < cfg.min_region_pixels:
        return unchanged_ellipse(region)

    inside_vals = values[inside]
    if threshold is not None and threshold > 0:
        thr = float(threshold)
    else:
        thr = auto_threshold(inside_vals, cfg.auto_threshold_min_range)

    passing = inside & (values >= thr)
    if int(passing.sum()) >= cfg.min_region_pixels:
        weights = np.where(passing, values - thr + 1.0, 0.0)
    else:
        weights = np.where(inside, values, 0.0)

    if float(weights.sum()) <= 0.0:
        return unchanged_ellipse(region)
    return ellipse_from_weights(region.id, weights, x0, y0)


def extract_ellipses(pixels: np.ndarray, regions: Iterable[Region], mode: str,
                     threshold: Optional[float] = None,
                     cfg: Optional[DetectionConfig] = None) -> List[EllipseEstimate]:
    return [extract_ellipse_from_region(pixels, r, mode, threshold, cfg) for r in regions]
