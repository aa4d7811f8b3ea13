# -*- coding: utf-8 -*-
"""Load pipeline settings and calibration models from YAML/JSON files."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from ..core.config import PipelineConfig, create_pipeline_config
from ..core.types import CalibrationModel

PathLike = Union[str, Path]


def read_mapping(path: PathLike) -> Dict[str, Any]:
    """Load a YAML/JSON mapping from *path*. Missing files return an empty mapping."""

    fp = Path(path)
    if not fp.exists():
        return {}
    text = fp.read_text(encoding="utf-8")
    if fp.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise TypeError(f"{fp} must contain a mapping at top level")
    return data


def load_pipeline_config(path: Optional[PathLike], base: Optional[PipelineConfig] = None) -> PipelineConfig:
    """Build a PipelineConfig from a file with optional per-stage sections.

    ``path=None`` keeps ``base``; a named file that does not exist raises
    ``FileNotFoundError``.

    Example YAML::

        detection:
          threshold: 100
        calibration:
          ransac_threshold: 0.2
    """
    if path and not Path(path).exists():
        raise FileNotFoundError(f"config file not found: {path}")
    data = read_mapping(path) if path else {}
    return create_pipeline_config(base, **data)


def save_calibration_model(path: PathLike, model: CalibrationModel) -> None:
    fp = Path(path)
    data = model.to_dict()
    with open(fp, "w", encoding="utf-8") as f:
        if fp.suffix.lower() == ".json":
            json.dump(data, f, indent=2, ensure_ascii=False)
        else:
            yaml.safe_dump(data, f, sort_keys=False)


def load_calibration_model(path: PathLike) -> CalibrationModel:
    fp = Path(path)
    if not fp.exists():
        raise FileNotFoundError(fp)
    return CalibrationModel.from_dict(read_mapping(fp))
