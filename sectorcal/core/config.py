# -*- coding: utf-8 -*-
"""
Tunable parameters for every stage of the sector calibration pipeline.
All heuristics live here as documented defaults so callers can override them.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields, asdict, replace
from typing import Any, Dict, Optional


@dataclass
class DetectionConfig:
    # Blob segmentation
    threshold: float = 128.0
    min_radius: float = 2.0
    max_radius: float = 100.0
    min_pixels: int = 5                 # components need strictly more pixels
    max_area_fraction: float = 0.40     # larger components are background
    max_axis_ratio: float = 5.0         # rejects thin streaks
    row_tolerance_scale: float = 1.5    # reading-order row grouping, x ry of row head
    region_scale: float = 1.5           # generated region headroom over fitted axes
    use_opencv_labels: bool = False

    # Region (ROI) refinement
    roi_margin: float = 1.1             # normalised radius of pixels taken into a region
    min_region_pixels: int = 3
    auto_threshold_min_range: float = 10.0


@dataclass
class GridConfig:
    gap_scale: float = 1.2              # 1-D cluster gap, x mean radius
    gap_floor: float = 10.0
    pair_min_dist_scale: float = 1.5    # pairs closer than this x mean radius give no heading
    basis_tolerance: float = 0.40       # lattice residual, fraction of mean basis length
    basis_min_det: float = 1e-6
    max_candidates: int = 2000


@dataclass
class CalibrationConfig:
    min_points: int = 3
    min_r_squared: float = 0.5
    singular_eps: float = 1e-10
    slope_eps: float = 1e-10

    # linear
    linear_sigma_factor: float = 2.0
    linear_min_threshold: float = 0.05

    # ransac
    ransac_threshold: float = 0.15
    ransac_max_trials: int = 500
    ransac_exhaustive_below: int = 50
    ransac_min_dx: float = 1e-6
    ransac_seed: Optional[int] = 0

    # iterative trim
    iterative_iterations: int = 3
    iterative_percentage: float = 10.0


@dataclass
class SectorConfig:
    padding: int = 20


@dataclass
class MetricsConfig:
    default_threshold: float = 128.0
    min_radius: float = 2.0
    max_radius: float = 100.0
    row_break_scale: float = 5.0        # spacing gaps beyond this x mean radius are row breaks
    roundness_decay: float = 3.0
    linearity_decay: float = 5.0
    consistency_decay: float = 3.0
    weight_roundness: float = 0.40
    weight_linearity: float = 0.35
    weight_consistency: float = 0.25
    line_extension: float = 2.0         # grid line segments overshoot by this x mean radius


@dataclass
class PipelineConfig:
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    grid: GridConfig = field(default_factory=GridConfig)
    calibration: CalibrationConfig = field(default_factory=CalibrationConfig)
    sector: SectorConfig = field(default_factory=SectorConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return asdict(self)


def _apply_overrides(cfg, overrides: Dict[str, Any], label: str):
    for key, value in overrides.items():
        if not hasattr(cfg, key):
            raise AttributeError(f"Unknown {label} config field: {key}")
        setattr(cfg, key, value)
    return cfg


def create_detection_config(**overrides) -> DetectionConfig:
    """Create a DetectionConfig with selective overrides for convenient tuning."""
    return _apply_overrides(DetectionConfig(), overrides, "detection")


def create_grid_config(**overrides) -> GridConfig:
    return _apply_overrides(GridConfig(), overrides, "grid")


def create_calibration_config(**overrides) -> CalibrationConfig:
    return _apply_overrides(CalibrationConfig(), overrides, "calibration")


def create_pipeline_config(base: Optional[PipelineConfig] = None,
                           **sections: Dict[str, Any]) -> PipelineConfig:
    """Build a PipelineConfig from per-section override mappings.

    ``create_pipeline_config(detection={"threshold": 90}, calibration={"ransac_seed": 7})``
    """
    base = base or PipelineConfig()
    parts = {}
    for f in fields(PipelineConfig):
        section = replace(getattr(base, f.name))
        overrides = sections.pop(f.name, None) or {}
        if not isinstance(overrides, dict):
            raise TypeError(f"config section '{f.name}' must be a mapping")
        parts[f.name] = _apply_overrides(section, overrides, f.name)
    if sections:
        raise AttributeError(f"Unknown config section: {sorted(sections)[0]}")
    return PipelineConfig(**parts)


DEFAULT_CONFIG = PipelineConfig()

HIGH_RECALL_CONFIG = create_pipeline_config(
    detection=dict(
        min_radius=1.0,
        max_radius=200.0,
        min_pixels=3,
        max_axis_ratio=8.0,
        region_scale=1.3,
    ),
    grid=dict(gap_scale=1.5),
    metrics=dict(min_radius=1.0, max_radius=200.0),
)
