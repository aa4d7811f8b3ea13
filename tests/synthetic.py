"""Synthetic sector-scan style images and ellipse sets shared by the tests."""

from __future__ import annotations

from typing import Iterable, List, Sequence, Tuple

import cv2
import numpy as np

from sectorcal.core.types import EllipseEstimate


def blank(width: int, height: int, value: int = 255, channels: int = 3) -> np.ndarray:
    return np.full((height, width, channels), value, np.uint8)


def draw_spots(img: np.ndarray, spots: Iterable[Tuple[float, float, float, float, float]],
               color=(0, 0, 0)) -> np.ndarray:
    """Filled ellipses (cx, cy, rx, ry, angle_deg), drawn with sub-pixel precision."""
    shift = 4
    scale = 1 << shift
    for cx, cy, rx, ry, ang in spots:
        cv2.ellipse(img, (int(round(cx * scale)), int(round(cy * scale))),
                    (int(round(rx * scale)), int(round(ry * scale))),
                    ang, 0, 360, color, -1, cv2.LINE_8, shift)
    return img


def grid_ellipses(rows: int = 3, cols: int = 3, spacing: float = 50.0, radius: float = 10.0,
                  origin: Tuple[float, float] = (100.0, 100.0), angle: float = 0.0) -> List[EllipseEstimate]:
    c, s = np.cos(angle), np.sin(angle)
    out = []
    for j in range(rows):
        for i in range(cols):
            u, v = i * spacing, j * spacing
            out.append(EllipseEstimate(id=j * cols + i + 1,
                                       cx=float(origin[0] + u * c - v * s),
                                       cy=float(origin[1] + u * s + v * c),
                                       rx=radius, ry=radius))
    return out


def line_ellipses(xs: Sequence[float], aspects: Sequence[float], ry: float = 10.0,
                  cy: float = 50.0) -> List[EllipseEstimate]:
    """Axis-aligned ellipses whose bounding-box aspect ratio is exactly ``aspects``."""
    return [EllipseEstimate(id=i + 1, cx=float(x), cy=cy, rx=float(a) * ry, ry=ry)
            for i, (x, a) in enumerate(zip(xs, aspects))]


def sector_scan_image(rc: float = -100.0, rx: float = 10.0, k: float = 2400.0,
                      width: int = 320, height: int = 200,
                      columns: Sequence[float] = (40, 100, 160, 220, 280),
                      rows: Sequence[float] = (40, 100, 160)) -> np.ndarray:
    """Dark spots whose azimuthal half-height shrinks as k / (x - rc).

    Their aspect ratio rx / ry = rx * (x - rc) / k is linear in x with
    slope rx / k and zero crossing at x = rc.
    """
    img = blank(width, height)
    spots = [(x, y, rx, k / (x - rc), 0.0) for y in rows for x in columns]
    return draw_spots(img, spots)
