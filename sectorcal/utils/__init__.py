# -*- coding: utf-8 -*-
"""Utility helpers shared by the sectorcal tools."""

from .images import read_image_robust, write_image_rgba
from .config_io import (
    load_pipeline_config,
    load_calibration_model,
    save_calibration_model,
)

__all__ = [
    "read_image_robust",
    "write_image_rgba",
    "load_pipeline_config",
    "load_calibration_model",
    "save_calibration_model",
]
