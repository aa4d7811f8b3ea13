# -*- coding: utf-8 -*-
"""
Sector (fan) remapping of a raw rectangular sector-scan image.

Source column x is the radius r = x - rotation_center_x, source row y the angle
theta = |slope| * (y - H / 2). The corrected image is filled by inverse mapping
every output pixel back to the source, so it has no holes.
"""
from __future__ import annotations

import logging
import math
from typing import Optional

import cv2
import numpy as np

from .config import SectorConfig
from .moments import check_pixels
from .types import CalibrationModel, SectorGeometry


def sector_geometry(width: int, height: int, model: CalibrationModel,
                    cfg: Optional[SectorConfig] = None) -> SectorGeometry:
    """Output canvas layout: bounding box of the annular sector plus padding."""
    cfg = cfg or SectorConfig()
    if not model.is_valid:
        raise ValueError("sector remapping needs a valid calibration model")
    slope = abs(model.slope)
    if slope == 0:
        raise ValueError("sector remapping needs a non-zero slope")

    total = slope * height
    half = 0.5 * total
    rc = model.rotation_center_x
    r_min, r_max = -rc, width - rc

    corners = [(r * math.cos(t), r * math.sin(t)) for r in (r_min, r_max) for t in (-half, half)]
    if -half < 0 < half:
        corners.append((r_max, 0.0))        # arc apex
    us = [p[0] for p in corners]
    vs = [p[1] for p in corners]
    pad = cfg.padding
    min_u, max_u, min_v, max_v = min(us), max(us), min(vs), max(vs)

    return SectorGeometry(
        rotation_center_x=float(rc),
        slope=float(slope),
        total_angle=float(total),
        r_min=float(r_min),
        r_max=float(r_max),
        offset_u=float(-min_u + pad),
        offset_v=float(-min_v + pad),
        width=int(math.ceil(max_u - min_u + 2 * pad)),
        height=int(math.ceil(max_v - min_v + 2 * pad)),
        source_width=int(width),
        source_height=int(height),
    )


def sector_maps(geo: SectorGeometry):
    """Floor-sampled source coordinates per output pixel (-1 where unset) and the validity mask."""
    py, px = np.mgrid[0:geo.height, 0:geo.width].astype(np.float64)
    src_x, src_y, r, theta = geo.target_to_source(px, py)
    half = 0.5 * geo.total_angle
    valid = ((r >= geo.r_min) & (r <= geo.r_max)
             & (theta >= -half) & (theta <= half)
             & (src_x >= 0) & (src_x < geo.source_width)
             & (src_y >= 0) & (src_y < geo.source_height))
    map_x = np.where(valid, np.floor(src_x), -1.0).astype(np.float32)
    map_y = np.where(valid, np.floor(src_y), -1.0).astype(np.float32)
    return map_x, map_y, valid


def remap_to_sector(pixels: np.ndarray, model: CalibrationModel,
                    cfg: Optional[SectorConfig] = None) -> np.ndarray:
    """Geometrically corrected RGBA image; alpha is 0 outside the sector."""
    img = check_pixels(pixels)
    H, W = img.shape[:2]
    geo = sector_geometry(W, H, model, cfg)
    map_x, map_y, valid = sector_maps(geo)

    if img.ndim == 2:
        rgb = cv2.cvtColor(np.ascontiguousarray(img), cv2.COLOR_GRAY2RGB)
    else:
        rgb = np.ascontiguousarray(img[..., :3])
    out = cv2.remap(rgb, map_x, map_y, cv2.INTER_NEAREST,
                    borderMode=cv2.BORDER_CONSTANT, borderValue=(0, 0, 0))
    alpha = np.where(valid, 255, 0).astype(np.uint8)
    rgba = np.dstack([out, alpha])
    rgba[~valid] = 0
    logging.debug("sector remap: %dx%d -> %dx%d (%.1f%% filled)", W, H, geo.width, geo.height,
                  100.0 * float(valid.mean()) if valid.size else 0.0)
    return rgba
