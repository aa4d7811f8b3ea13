from __future__ import annotations

import math
from pathlib import Path

import numpy as np
import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
import sys

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from sectorcal.core.calibration import fit_calibration, fit_line_least_squares, physical_dimensions
from sectorcal.core.config import create_calibration_config
from sectorcal.core.types import CalibrationModel, EllipseEstimate, SpotStatus
from synthetic import line_ellipses

XS = np.arange(100.0, 1001.0, 100.0)


def _exact(slope: float = 0.01, intercept: float = -0.5) -> list:
    return line_ellipses(XS, slope * XS + intercept)


def _with_outliers() -> list:
    aspects = 0.01 * XS - 0.5
    aspects[1] += 3.0      # id 2
    aspects[8] -= 3.0      # id 9
    return line_ellipses(XS, aspects)


def test_exact_line_linear() -> None:
    fit = fit_calibration(_exact(), "linear")
    m = fit.model
    assert np.isclose(m.slope, 0.01)
    assert np.isclose(m.intercept, -0.5)
    assert np.isclose(m.rotation_center_x, 50.0)
    assert np.isclose(m.angular_resolution, math.degrees(0.01))
    assert np.isclose(m.r_squared, 1.0)
    assert m.reprojection_error < 1e-9
    assert m.is_valid and m.method == "linear" and m.inlier_count == 10
    assert len(fit.outliers) == 0


@pytest.mark.parametrize("method", ["linear", "ransac", "iterative"])
def test_exact_line_every_method(method: str) -> None:
    m = fit_calibration(_exact(0.004, 0.2), method).model
    assert np.isclose(m.slope, 0.004)
    assert np.isclose(m.rotation_center_x, -50.0)
    assert m.is_valid


def test_ransac_rejects_outliers() -> None:
    fit = fit_calibration(_with_outliers(), "ransac")
    assert sorted(e.id for e in fit.outliers) == [2, 9]
    assert abs(fit.model.slope - 0.01) / 0.01 < 0.05
    assert fit.model.inlier_count == 8
    assert abs(fit.model.intercept + 0.5) / 0.5 < 0.05
    assert fit.model.is_valid


def test_iterative_trim_rejects_outliers() -> None:
    fit = fit_calibration(_with_outliers(), "iterative", iterations=2, percentage=10)
    assert sorted(e.id for e in fit.outliers) == [2, 9]
    assert abs(fit.model.slope - 0.01) / 0.01 < 0.05
    assert np.isclose(fit.model.rotation_center_x, 50.0)
    assert abs(fit.model.intercept + 0.5) / 0.5 < 0.05


def test_ransac_tie_prefers_lower_error() -> None:
    # two three-point consensus sets; the first one sampled fits with residual 0.1,
    # the later one exactly
    xs = [400.0, 500.0, 600.0, 100.0, 200.0, 300.0]
    aspects = [6.0, 6.6, 7.0, 1.0, 2.0, 3.0]
    fit = fit_calibration(line_ellipses(xs, aspects), "ransac")
    assert sorted(e.id for e in fit.inliers) == [4, 5, 6]
    assert np.isclose(fit.model.slope, 0.01)
    assert np.isclose(fit.model.intercept, 0.0, atol=1e-9)
    assert fit.model.inlier_count == 3


def test_linear_keeps_outliers_within_two_sigma() -> None:
    # the outliers inflate sigma enough to stay inside the 2-sigma band
    fit = fit_calibration(_with_outliers(), "linear")
    assert len(fit.outliers) == 0
    assert abs(fit.model.slope - 0.01) / 0.01 > 0.2
    robust = fit_calibration(_with_outliers(), "ransac").model
    assert abs(robust.slope - 0.01) < abs(fit.model.slope - 0.01)


def test_iterative_keeps_min_points() -> None:
    es = _exact()[:4]
    fit = fit_calibration(es, "iterative", iterations=10, percentage=90)
    assert len(fit.inliers) == 3


@pytest.mark.parametrize("method", ["linear", "ransac", "iterative"])
def test_r_squared_bounded(method: str) -> None:
    rng = np.random.default_rng(11)
    xs = rng.uniform(0, 500, size=30)
    es = line_ellipses(xs, rng.uniform(0.5, 2.0, size=30))
    m = fit_calibration(es, method).model
    assert 0.0 <= m.r_squared <= 1.0
    assert m.inlier_count >= 1


def test_too_few_points_invalid() -> None:
    es = _exact()[:2]
    fit = fit_calibration(es, "ransac")
    assert not fit.model.is_valid
    assert fit.model.method == "ransac"
    assert all(e.status is SpotStatus.ACTIVE for e in fit.ellipses)


def test_singular_system_invalid() -> None:
    es = line_ellipses([200.0] * 5, [1.0, 1.2, 1.4, 1.6, 1.8])
    fit = fit_calibration(es, "linear")
    assert not fit.model.is_valid
    assert len(fit.outliers) == 0
    assert fit_line_least_squares(np.full(3, 5.0), np.arange(3.0)) is None


def test_unknown_method() -> None:
    with pytest.raises(ValueError):
        fit_calibration(_exact(), "huber")


def test_ransac_sampling_reproducible() -> None:
    rng = np.random.default_rng(0)
    xs = np.linspace(0, 600, 80)
    aspects = 0.003 * xs + 0.4 + rng.normal(scale=0.03, size=xs.size)
    aspects[::9] += 1.0
    es = line_ellipses(xs, aspects)
    a = fit_calibration(es, "ransac", rng=np.random.default_rng(5))
    b = fit_calibration(es, "ransac", rng=np.random.default_rng(5))
    assert a.model == b.model
    assert [e.status for e in a.ellipses] == [e.status for e in b.ellipses]
    assert abs(a.model.slope - 0.003) / 0.003 < 0.1
    cfg = create_calibration_config(ransac_max_trials=50)
    assert fit_calibration(es, "ransac", cfg=cfg, rng=np.random.default_rng(5)).model.is_valid


def test_aspect_ratio_ignores_axis_swap() -> None:
    a = EllipseEstimate(1, 10, 10, rx=12, ry=6, angle=0.0)
    b = EllipseEstimate(2, 10, 10, rx=6, ry=12, angle=math.pi / 2)
    assert np.isclose(a.bounding_aspect_ratio, 2.0)
    assert np.isclose(b.bounding_aspect_ratio, 2.0)


def test_physical_dimensions() -> None:
    model = fit_calibration(_exact(), "linear").model
    e = EllipseEstimate(1, 250, 40, 10, 10)
    radius, arc = physical_dimensions(e, model)
    assert np.isclose(radius, 200.0)
    assert np.isclose(arc, 40 * 200.0)
    assert physical_dimensions(e, CalibrationModel.invalid()) == (0.0, 0.0)
