from __future__ import annotations

from pathlib import Path

import cv2
import numpy as np

PROJECT_ROOT = Path(__file__).resolve().parents[1]
import sys

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from sectorcal.core.config import create_detection_config
from sectorcal.core.segment import (
    detect_ellipses,
    flood_fill_components,
    opencv_components,
    sort_reading_order,
)
from sectorcal.core.types import EllipseEstimate
from synthetic import blank, draw_spots


def _spot_grid(value: int = 255, color=(0, 0, 0)) -> np.ndarray:
    spots = [(50 + 50 * i, 40 + 45 * j, 8, 8, 0) for j in range(3) for i in range(3)]
    return draw_spots(blank(200, 180, value=value), spots, color=color)


def test_uniform_image_has_no_spots() -> None:
    res = detect_ellipses(blank(64, 48), "dark")
    assert len(res) == 0
    assert res.regions == []


def test_grid_detected_in_reading_order() -> None:
    res = detect_ellipses(_spot_grid(), "dark")
    assert len(res) == 9
    assert [e.id for e in res.ellipses] == list(range(1, 10))
    centres = np.array([(e.cx, e.cy) for e in res.ellipses])
    expected = np.array([(50 + 50 * i, 40 + 45 * j) for j in range(3) for i in range(3)], float)
    assert np.allclose(centres, expected, atol=0.5)
    for e in res.ellipses:
        assert abs(e.mean_radius - 8) < 1.0


def test_generated_regions_scaled() -> None:
    res = detect_ellipses(_spot_grid(), "dark", id_start=20)
    assert res.ellipses[0].id == 20
    for e, r in zip(res.ellipses, res.regions):
        assert r.id == e.id
        assert (r.cx, r.cy) == (e.cx, e.cy)
        assert np.isclose(r.rx, 1.5 * e.rx)
        assert np.isclose(r.ry, 1.5 * e.ry)
        assert r.rotation == e.angle


def test_light_mode() -> None:
    img = _spot_grid(value=10, color=(240, 240, 240))
    assert len(detect_ellipses(img, "light")) == 9
    assert len(detect_ellipses(img, "dark")) == 0


def test_opencv_labels_match_flood_fill() -> None:
    img = _spot_grid()
    img = draw_spots(img, [(20, 170, 4, 3, 20)])
    a = detect_ellipses(img, "dark")
    b = detect_ellipses(img, "dark", cfg=create_detection_config(use_opencv_labels=True))
    assert len(a) == len(b) == 10
    for ea, eb in zip(a.ellipses, b.ellipses):
        assert np.isclose(ea.cx, eb.cx) and np.isclose(ea.cy, eb.cy)
        assert np.isclose(ea.rx, eb.rx) and np.isclose(ea.ry, eb.ry)


def test_components_do_not_wrap_rows() -> None:
    mask = np.zeros((4, 10), bool)
    mask[0, 9] = True
    mask[1, 0] = True
    comps = flood_fill_components(mask)
    assert len(comps) == 2
    assert comps[0][:3] == (1.0, 9.0, 0.0)
    assert comps[1][:3] == (1.0, 0.0, 1.0)
    assert opencv_components(mask) == comps


def test_diagonal_pixels_are_separate() -> None:
    mask = np.zeros((3, 3), bool)
    mask[0, 0] = mask[1, 1] = True
    assert len(flood_fill_components(mask)) == 2


def test_streaks_specks_and_background_rejected() -> None:
    img = blank(120, 120)
    cv2.rectangle(img, (50, 20), (51, 79), (0, 0, 0), -1)   # thin streak
    cv2.rectangle(img, (10, 10), (11, 11), (0, 0, 0), -1)   # 4-pixel speck
    assert len(detect_ellipses(img, "dark")) == 0

    dark = blank(60, 60, value=0)
    assert len(detect_ellipses(dark, "dark")) == 0


def test_radius_window() -> None:
    img = draw_spots(blank(160, 80), [(40, 40, 5, 5, 0), (110, 40, 20, 20, 0)])
    assert len(detect_ellipses(img, "dark")) == 2
    res = detect_ellipses(img, "dark", min_radius=8)
    assert len(res) == 1 and res.ellipses[0].cx > 100
    res = detect_ellipses(img, "dark", max_radius=10)
    assert len(res) == 1 and res.ellipses[0].cx < 60


def test_reading_order_groups_rows() -> None:
    es = [
        EllipseEstimate(1, 90, 52, 5, 5),
        EllipseEstimate(2, 10, 48, 5, 5),
        EllipseEstimate(3, 50, 10, 5, 5),
        EllipseEstimate(4, 40, 50, 5, 5),
    ]
    assert [e.id for e in sort_reading_order(es)] == [3, 2, 4, 1]
