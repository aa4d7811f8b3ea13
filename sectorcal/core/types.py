# sectorcal/core/types.py
# -*- coding: utf-8 -*-

from __future__ import annotations
import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Tuple, Optional, Dict, Any

import numpy as np


class SpotStatus(str, Enum):
    ACTIVE = "active"
    OUTLIER = "outlier"


@dataclass(frozen=True)
class Region:
    """Candidate area around one spot (circle when rx == ry and rotation == 0)."""

    id: int
    cx: float
    cy: float
    rx: float
    ry: float
    rotation: float = 0.0

    @classmethod
    def circle(cls, id: int, cx: float, cy: float, radius: float) -> "Region":
        return cls(id=id, cx=float(cx), cy=float(cy), rx=float(radius), ry=float(radius), rotation=0.0)

    @property
    def max_radius(self) -> float:
        return max(self.rx, self.ry)


@dataclass(frozen=True)
class EllipseEstimate:
    id: int
    cx: float
    cy: float
    rx: float
    ry: float
    angle: float = 0.0
    status: SpotStatus = SpotStatus.ACTIVE

    @property
    def mean_radius(self) -> float:
        return 0.5 * (self.rx + self.ry)

    @property
    def roundness(self) -> float:
        hi = max(self.rx, self.ry)
        return min(self.rx, self.ry) / hi if hi > 0 else 0.0

    @property
    def bounding_aspect_ratio(self) -> float:
        """Width/height of the axis-aligned bounding box of the rotated ellipse.

        Robust to rx/ry being swapped together with a 90 degree rotation.
        """
        c, s = math.cos(self.angle), math.sin(self.angle)
        w = 2.0 * math.hypot(self.rx * c, self.ry * s)
        h = 2.0 * math.hypot(self.rx * s, self.ry * c)
        return w / h if h > 0 else 0.0

    @property
    def is_active(self) -> bool:
        return self.status is SpotStatus.ACTIVE

    def with_status(self, status: SpotStatus) -> "EllipseEstimate":
        return replace(self, status=status)

    def with_id(self, new_id: int) -> "EllipseEstimate":
        return replace(self, id=int(new_id))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "cx": self.cx,
            "cy": self.cy,
            "rx": self.rx,
            "ry": self.ry,
            "angle": self.angle,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class GridLine:
    """One grid row or column: its members and their mean projected coordinate."""

    members: Tuple[EllipseEstimate, ...]
    avg: float

    def __len__(self) -> int:
        return len(self.members)


@dataclass(frozen=True)
class GridAssignment:
    orientation: float
    rows: Tuple[GridLine, ...]
    cols: Tuple[GridLine, ...]

    @property
    def is_empty(self) -> bool:
        return not self.rows and not self.cols


@dataclass(frozen=True)
class LineSegment:
    x1: float
    y1: float
    x2: float
    y2: float

    @property
    def length(self) -> float:
        return math.hypot(self.x2 - self.x1, self.y2 - self.y1)


@dataclass(frozen=True)
class CalibrationModel:
    slope: float
    intercept: float
    rotation_center_x: float
    angular_resolution: float          # slope expressed in degrees
    r_squared: float
    reprojection_error: float          # RMSE over inliers
    is_valid: bool
    method: str = "linear"
    inlier_count: int = 0

    @classmethod
    def invalid(cls, method: str = "linear") -> "CalibrationModel":
        return cls(slope=0.0, intercept=0.0, rotation_center_x=0.0, angular_resolution=0.0,
                   r_squared=0.0, reprojection_error=0.0, is_valid=False, method=method, inlier_count=0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slope": self.slope,
            "intercept": self.intercept,
            "rotationCenterX": self.rotation_center_x,
            "angularResolution": self.angular_resolution,
            "rSquared": self.r_squared,
            "reprojectionError": self.reprojection_error,
            "isValid": self.is_valid,
            "method": self.method,
            "inlierCount": self.inlier_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CalibrationModel":
        if not isinstance(data, dict):
            raise TypeError("calibration model must be a mapping")
        for key in ("slope", "rotationCenterX"):
            value = data.get(key)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"calibration model field '{key}' must be numeric")
        slope = float(data["slope"])
        return cls(
            slope=slope,
            intercept=float(data.get("intercept", -slope * float(data["rotationCenterX"]))),
            rotation_center_x=float(data["rotationCenterX"]),
            angular_resolution=float(data.get("angularResolution", math.degrees(slope))),
            r_squared=float(data.get("rSquared", 0.0)),
            reprojection_error=float(data.get("reprojectionError", 0.0)),
            is_valid=bool(data.get("isValid", True)),
            method=str(data.get("method", "linear")),
            inlier_count=int(data.get("inlierCount", 0)),
        )


@dataclass(frozen=True)
class CorrectionMetrics:
    mean_roundness: float
    radius_mean: float
    radius_std: float
    radius_cv: float
    spacing_mean: float
    spacing_std: float
    spacing_cv: float
    linearity_rms: float
    linearity_relative: float
    score_roundness: int
    score_linearity: int
    score_consistency: int
    final_score: int
    sample_count: int

    @classmethod
    def empty(cls, sample_count: int = 0) -> "CorrectionMetrics":
        return cls(mean_roundness=0.0, radius_mean=0.0, radius_std=0.0, radius_cv=1.0,
                   spacing_mean=0.0, spacing_std=0.0, spacing_cv=1.0,
                   linearity_rms=0.0, linearity_relative=1.0,
                   score_roundness=0, score_linearity=0, score_consistency=0,
                   final_score=0, sample_count=int(sample_count))


@dataclass
class CorrectionAnalysis:
    metrics: CorrectionMetrics
    ellipses: List[EllipseEstimate]
    grid: Optional[GridAssignment] = None
    row_lines: List[LineSegment] = field(default_factory=list)
    col_lines: List[LineSegment] = field(default_factory=list)
    best_fit_line: Optional[LineSegment] = None


@dataclass(frozen=True)
class SectorGeometry:
    """Annular-sector layout of the corrected image for one calibration model."""

    rotation_center_x: float
    slope: float                        # |slope|, radians per source row
    total_angle: float
    r_min: float
    r_max: float
    offset_u: float
    offset_v: float
    width: int
    height: int
    source_width: int
    source_height: int

    def target_to_source(self, px, py):
        """Inverse map (vectorised): output pixel -> (src_x, src_y, r, theta)."""
        u = px - self.offset_u
        v = py - self.offset_v
        r = (u * u + v * v) ** 0.5
        theta = np.arctan2(v, u)
        src_x = r + self.rotation_center_x
        src_y = theta / self.slope + self.source_height / 2.0
        return src_x, src_y, r, theta

    def source_to_target(self, x, y):
        """Forward map: source pixel -> (px, py, r, theta)."""
        r = x - self.rotation_center_x
        theta = self.slope * (y - self.source_height / 2.0)
        px = r * np.cos(theta) + self.offset_u
        py = r * np.sin(theta) + self.offset_v
        return px, py, r, theta


@dataclass
class DetectionResult:
    """Automatic segmentation output: ellipses in reading order plus regions for re-fitting."""

    ellipses: List[EllipseEstimate]
    regions: List[Region]

    def __len__(self) -> int:
        return len(self.ellipses)


@dataclass
class CalibrationFit:
    """A fitted model plus the input ellipses re-tagged active/outlier."""

    model: CalibrationModel
    ellipses: List[EllipseEstimate]

    @property
    def inliers(self) -> List[EllipseEstimate]:
        return [e for e in self.ellipses if e.is_active]

    @property
    def outliers(self) -> List[EllipseEstimate]:
        return [e for e in self.ellipses if not e.is_active]
