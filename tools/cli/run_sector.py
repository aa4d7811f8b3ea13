# -*- coding: utf-8 -*-
"""Batch sector calibration: detect spots, fit the model, write the fan view and scores."""
from __future__ import annotations

import argparse
import ast
import glob
import json
import logging
import os
import sys
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

from tqdm import tqdm


def find_project_root(start_dir: Path, marker_rel: Path = Path("sectorcal") / "__init__.py") -> Path | None:
    cur = start_dir
    last = None
    while cur != last:
        if (cur / marker_rel).is_file():
            return cur
        last = cur
        cur = cur.parent
    return None


_THIS_DIR = Path(__file__).resolve().parent
_PROJECT_ROOT = find_project_root(_THIS_DIR)
if _PROJECT_ROOT is None:
    _PROJECT_ROOT = _THIS_DIR.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))


from sectorcal.core import (  # noqa: E402
    DEFAULT_CONFIG,
    HIGH_RECALL_CONFIG,
    PipelineConfig,
    SectorCalibrator,
    physical_dimensions,
)
from sectorcal.core.config import create_pipeline_config  # noqa: E402
from sectorcal.utils import (  # noqa: E402
    load_pipeline_config,
    read_image_robust,
    save_calibration_model,
    write_image_rgba,
)

IMAGE_EXTS = ("*.png", "*.jpg", "*.jpeg", "*.bmp", "*.tif", "*.tiff")


def ensure_dir(p): os.makedirs(p, exist_ok=True)


def _parse_override(expr: str) -> Tuple[str, str, object]:
    """``section.key=value`` -> (section, key, value)."""
    if "=" not in expr:
        raise ValueError(f"Override '{expr}' is missing '='")
    key, raw = expr.split("=", 1)
    if "." not in key:
        raise ValueError(f"Override '{expr}' must be <section>.<field>=<value>")
    section, field_name = (s.strip() for s in key.split(".", 1))
    raw = raw.strip()
    try:
        value: object = ast.literal_eval(raw)
    except (ValueError, SyntaxError):
        lower = raw.lower()
        value = (lower == "true") if lower in {"true", "false"} else raw
    return section, field_name, value


def build_config(preset: str, config_path: str | None, overrides: Sequence[str]) -> PipelineConfig:
    base = HIGH_RECALL_CONFIG if preset == "high_recall" else DEFAULT_CONFIG
    cfg = load_pipeline_config(config_path, base)
    sections: Dict[str, Dict[str, object]] = {}
    for expr in overrides:
        section, key, value = _parse_override(expr)
        sections.setdefault(section, {})[key] = value
    return create_pipeline_config(cfg, **sections) if sections else cfg


def ellipse_records(result) -> List[dict]:
    records = []
    for e in result.ellipses:
        rec = e.to_dict()
        if result.model.is_valid:
            radius, arc = physical_dimensions(e, result.model)
            rec.update(physicalRadius=radius, physicalArc=arc,
                       rotationCenterX=result.model.rotation_center_x)
        records.append(rec)
    return records


def main():
    ap = argparse.ArgumentParser(description="Sector-scan calibration and fan-view correction")
    ap.add_argument("--indir", default="data/raw")
    ap.add_argument("--out", default="outputs/sector")
    ap.add_argument("--mode", choices=["dark", "light"], default="dark", help="spot polarity")
    ap.add_argument("--threshold", type=float, default=None, help="segmentation brightness threshold (0-255)")
    ap.add_argument("--min-radius", type=float, default=None)
    ap.add_argument("--max-radius", type=float, default=None)
    ap.add_argument("--method", choices=["linear", "ransac", "iterative"], default="linear")
    ap.add_argument("--iterations", type=int, default=None, help="iterative trim rounds")
    ap.add_argument("--percentage", type=float, default=None, help="iterative trim drop percentage")
    ap.add_argument("--config", default=None, help="YAML/JSON file with per-stage sections")
    ap.add_argument("--preset", choices=["default", "high_recall"], default="default")
    ap.add_argument("--override", action="append", default=[], metavar="SECTION.KEY=VALUE",
                    help="override one config field, e.g. detection.min_pixels=8")
    ap.add_argument("--no-eval", action="store_true", help="skip scoring the corrected image")
    ap.add_argument("--log", default="info")
    args = ap.parse_args()

    logging.basicConfig(level=getattr(logging, args.log.upper(), logging.INFO),
                        format="%(asctime)s [%(levelname)s] %(message)s")

    ensure_dir(args.out)
    img_paths = sorted(sum([glob.glob(os.path.join(args.indir, ext)) for ext in IMAGE_EXTS], []))
    if not img_paths:
        logging.error("No input images found in %s", args.indir)
        return

    try:
        cfg = build_config(args.preset, args.config, args.override)
    except FileNotFoundError as exc:
        logging.error("%s", exc)
        return
    calibrator = SectorCalibrator(config=cfg)

    summary = []
    for p in tqdm(img_paths, desc="[Sector]"):
        base = os.path.splitext(os.path.basename(p))[0]
        pixels = read_image_robust(p)
        if pixels is None:
            logging.warning("Failed to read image: %s", p)
            continue

        debug: Dict[str, object] = {}
        result = calibrator.process(
            pixels, args.mode, method=args.method, threshold=args.threshold,
            min_radius=args.min_radius, max_radius=args.max_radius,
            iterations=args.iterations, percentage=args.percentage,
            evaluate=not args.no_eval, debug=debug,
        )

        with open(os.path.join(args.out, f"{base}_ellipses.json"), "w", encoding="utf-8") as f:
            json.dump(ellipse_records(result), f, indent=2, ensure_ascii=False)
        save_calibration_model(os.path.join(args.out, f"{base}_calibration.yaml"), result.model)

        entry = dict(name=base, n_ellipses=len(result.ellipses),
                     n_outliers=len(result.calibration.outliers),
                     calibration=result.model.to_dict(), stage=debug.get("stage"),
                     fail_reason=debug.get("fail_reason"))
        if result.sector_image is not None:
            write_image_rgba(os.path.join(args.out, f"{base}_sector.png"), result.sector_image)
        if result.analysis is not None:
            m = result.analysis.metrics
            entry["metrics"] = {k: getattr(m, k) for k in m.__dataclass_fields__}
        if not result.model.is_valid:
            logging.warning("%s: no valid calibration (%s)", base, debug.get("fail_reason"))
        summary.append(entry)

    with open(os.path.join(args.out, "summary.json"), "w", encoding="utf-8") as f:
        json.dump(dict(config=cfg.to_dict(), images=summary), f, indent=2, ensure_ascii=False)
    n_ok = sum(1 for s in summary if s["calibration"]["isValid"])
    logging.info("Done: %d/%d images calibrated, results in %s", n_ok, len(summary), args.out)


if __name__ == "__main__":
    main()
