from .config import (
	PipelineConfig,
	DetectionConfig,
	GridConfig,
	CalibrationConfig,
	SectorConfig,
	MetricsConfig,
	DEFAULT_CONFIG,
	HIGH_RECALL_CONFIG,
	create_detection_config,
	create_grid_config,
	create_calibration_config,
	create_pipeline_config,
)
from .types import (
	Region,
	EllipseEstimate,
	SpotStatus,
	GridLine,
	GridAssignment,
	LineSegment,
	CalibrationModel,
	CalibrationFit,
	CorrectionMetrics,
	CorrectionAnalysis,
	DetectionResult,
	SectorGeometry,
)
from .moments import luminance, extract_ellipse_from_region, extract_ellipses
from .segment import detect_ellipses
from .grid import resolve_grid_exhaustive, resolve_grid_from_basis, resolve_grid_from_ids
from .calibration import fit_calibration, physical_dimensions
from .sector import sector_geometry, remap_to_sector
from .metrics import compute_metrics, analyze_correction
from .pipeline import SectorCalibrator, PipelineResult

__all__ = [
	"PipelineConfig",
	"DetectionConfig",
	"GridConfig",
	"CalibrationConfig",
	"SectorConfig",
	"MetricsConfig",
	"DEFAULT_CONFIG",
	"HIGH_RECALL_CONFIG",
	"create_detection_config",
	"create_grid_config",
	"create_calibration_config",
	"create_pipeline_config",
	"Region",
	"EllipseEstimate",
	"SpotStatus",
	"GridLine",
	"GridAssignment",
	"LineSegment",
	"CalibrationModel",
	"CalibrationFit",
	"CorrectionMetrics",
	"CorrectionAnalysis",
	"DetectionResult",
	"SectorGeometry",
	"luminance",
	"extract_ellipse_from_region",
	"extract_ellipses",
	"detect_ellipses",
	"resolve_grid_exhaustive",
	"resolve_grid_from_basis",
	"resolve_grid_from_ids",
	"fit_calibration",
	"physical_dimensions",
	"sector_geometry",
	"remap_to_sector",
	"compute_metrics",
	"analyze_correction",
	"SectorCalibrator",
	"PipelineResult",
]
