# -*- coding: utf-8 -*-
"""
SectorCalibrator: pixel buffer (+ optional regions) in, ellipses, calibration
model, sector image and quality metrics out.
Pure computation; no drawing and no disk I/O. Every call recomputes from scratch.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .calibration import CalibrationMethod, fit_calibration
from .config import DEFAULT_CONFIG, PipelineConfig
from .metrics import analyze_correction
from .moments import check_pixels, check_polarity, extract_ellipses
from .sector import remap_to_sector
from .segment import detect_ellipses, in_radius_window
from .types import (CalibrationFit, CorrectionAnalysis, DetectionResult, EllipseEstimate,
                    Region)


@dataclass
class PipelineResult:
    ellipses: List[EllipseEstimate]
    regions: List[Region]
    calibration: CalibrationFit
    sector_image: Optional[np.ndarray] = None
    analysis: Optional[CorrectionAnalysis] = None

    @property
    def model(self):
        return self.calibration.model


class SectorCalibrator:
    def __init__(self, config: PipelineConfig = DEFAULT_CONFIG,
                 rng: Optional[np.random.Generator] = None):
        self.config = config
        self.rng = rng

    # ---- single stages ----
    def extract(self, pixels: np.ndarray, regions: Sequence[Region], mode: str,
                threshold: Optional[float] = None) -> List[EllipseEstimate]:
        return extract_ellipses(pixels, regions, mode, threshold, self.config.detection)

    def auto_detect(self, pixels: np.ndarray, mode: str, threshold: Optional[float] = None,
                    min_radius: Optional[float] = None,
                    max_radius: Optional[float] = None) -> DetectionResult:
        return detect_ellipses(pixels, mode, threshold, min_radius, max_radius, self.config.detection)

    def calibrate(self, ellipses: Sequence[EllipseEstimate], method: CalibrationMethod = "linear",
                  iterations: Optional[int] = None,
                  percentage: Optional[float] = None) -> CalibrationFit:
        rng = self.rng
        if rng is None:
            rng = np.random.default_rng(self.config.calibration.ransac_seed)
        return fit_calibration(ellipses, method, self.config.calibration,
                               iterations=iterations, percentage=percentage, rng=rng)

    def remap(self, pixels: np.ndarray, model) -> np.ndarray:
        return remap_to_sector(pixels, model, self.config.sector)

    def evaluate(self, pixels: Optional[np.ndarray], mode: str,
                 ellipses: Optional[Sequence[EllipseEstimate]] = None,
                 threshold: Optional[float] = None,
                 min_radius: Optional[float] = None,
                 max_radius: Optional[float] = None,
                 grid_basis_ids: Optional[Tuple[int, int, int]] = None,
                 forced_orientation: Optional[float] = None) -> CorrectionAnalysis:
        cfg = self.config
        return analyze_correction(pixels, mode, ellipses, threshold, min_radius, max_radius,
                                  grid_basis_ids, forced_orientation,
                                  cfg=cfg.metrics, grid_cfg=cfg.grid, detection_cfg=cfg.detection)

    # ---- full pipeline ----
    def process(self, pixels: np.ndarray, mode: str = "dark",
                regions: Optional[Sequence[Region]] = None,
                method: CalibrationMethod = "linear",
                threshold: Optional[float] = None,
                min_radius: Optional[float] = None,
                max_radius: Optional[float] = None,
                iterations: Optional[int] = None,
                percentage: Optional[float] = None,
                evaluate: bool = True,
                eval_threshold: Optional[float] = None,
                debug: Optional[Dict[str, Any]] = None) -> PipelineResult:
        """Detect (or refine ``regions``), calibrate, remap and score one image.

        Passing ``regions`` (even an empty list) selects manual extraction;
        ``None`` runs automatic segmentation. On the manual path ``threshold``
        overrides the per-region threshold and refined ellipses outside
        ``[min_radius, max_radius]`` are dropped when either bound is given.
        The sector image and its analysis are produced only for a valid model.
        ``debug`` (optional dict) receives the stage reached and a fail reason.
        """
        img = check_pixels(pixels)
        check_polarity(mode)

        if debug is not None:
            debug.clear()
            debug["stage"] = "init"
            debug["fail_reason"] = None

        if regions is not None:
            regions = list(regions)
            ellipses = self.extract(img, regions, mode, threshold)
            if min_radius is not None or max_radius is not None:
                det_cfg = self.config.detection
                lo = det_cfg.min_radius if min_radius is None else min_radius
                hi = det_cfg.max_radius if max_radius is None else max_radius
                ellipses = [e for e in ellipses if in_radius_window(e, lo, hi)]
            if debug is not None:
                debug["stage"] = "extract"
        else:
            det = self.auto_detect(img, mode, threshold, min_radius, max_radius)
            ellipses, regions = det.ellipses, det.regions
            if debug is not None:
                debug["stage"] = "auto_detect"
        if debug is not None:
            debug["ellipse_count"] = len(ellipses)

        fit = self.calibrate(ellipses, method, iterations, percentage)
        result = PipelineResult(ellipses=fit.ellipses, regions=list(regions), calibration=fit)
        if debug is not None:
            debug["stage"] = "calibrate"
            debug["calibration"] = fit.model.to_dict()
            debug["outlier_ids"] = [e.id for e in fit.outliers]
        if not fit.model.is_valid:
            if debug is not None:
                debug["stage"] = "calibrate_failed"
                debug["fail_reason"] = ("too_few_ellipses" if len(ellipses) < self.config.calibration.min_points
                                        else "invalid_model")
            return result

        result.sector_image = self.remap(img, fit.model)
        if debug is not None:
            debug["stage"] = "remap"
            debug["sector_shape"] = tuple(result.sector_image.shape)

        if evaluate:
            result.analysis = self.evaluate(result.sector_image, mode, threshold=eval_threshold)
            if debug is not None:
                debug["stage"] = "evaluate"
                debug["final_score"] = result.analysis.metrics.final_score

        if debug is not None:
            debug["stage"] = "done"
        return result
