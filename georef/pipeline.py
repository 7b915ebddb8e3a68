from __future__ import annotations

"""
Georeference one image from a control point file and emit the layer geometry.

Examples:
  # Size read from the image header
  python -m georef.pipeline data/points.json --image data/site_plan.png

  # CSV points (id,x,y,lat,lng), explicit size, result to file
  python -m georef.pipeline data/points.csv --size 2400x1800 --out runtime/layer.json
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd
from PIL import Image

from common.config import load_params
from common.logging_setup import get_logger, setup_logging
from common.types import ControlPoint, ImagePoint, MapPoint
from georef.affine import georeference
from georef.errors import GeoreferenceError


log = get_logger("georef.pipeline")

CSV_COLUMNS = ("id", "x", "y", "lat", "lng")


def parse_size(s: Optional[str]) -> Optional[Tuple[int, int]]:
    if not s:
        return None
    if "x" in s.lower():
        w, h = s.lower().split("x")
    else:
        parts = s.split(",")
        if len(parts) != 2:
            raise ValueError("Size must be WxH or W,H")
        w, h = parts
    return int(w), int(h)


def image_size(path: str) -> Tuple[int, int]:
    """(width, height) from the image header; pixel data is not decoded."""
    with Image.open(path) as im:
        return im.size


def _points_from_csv(path: Path) -> List[ControlPoint]:
    df = pd.read_csv(path)
    missing = [c for c in CSV_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"{path}: missing columns {missing}")
    out: List[ControlPoint] = []
    for i, row in enumerate(df.itertuples(index=False)):
        pid = str(row.id) if not pd.isna(row.id) else f"cp-{i + 1}"
        # Blank cells mean the point was only placed on one side
        image = None if pd.isna(row.x) or pd.isna(row.y) else ImagePoint(row.x, row.y)
        mp = None if pd.isna(row.lat) or pd.isna(row.lng) else MapPoint(row.lat, row.lng)
        out.append(ControlPoint(id=pid, image=image, map=mp))
    return out


def _points_from_json(path: Path, zero_is_unset: bool) -> List[ControlPoint]:
    data = json.loads(path.read_text())
    if isinstance(data, dict):
        data = data.get("controlPoints", [])
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of control points")
    return [ControlPoint.from_dict(d, zero_is_unset=zero_is_unset) for d in data]


def load_points(path: str, *, zero_is_unset: bool = False) -> List[ControlPoint]:
    """Read control points from .csv (id,x,y,lat,lng) or .json (wire shape)."""
    p = Path(path)
    if p.suffix.lower() == ".csv":
        return _points_from_csv(p)
    return _points_from_json(p, zero_is_unset)


def _write_json(path: Path, payload: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2) + "\n")


def main(argv: Optional[Sequence[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Affine georeferencing of a single image")
    ap.add_argument("points", help="Control points (.json or .csv)")
    ap.add_argument("--image", default=None, help="Image file; its header gives width/height")
    ap.add_argument("--size", default=None, help="Image WxH in pixels (overrides --image)")
    ap.add_argument("--config", default=None, help="params.yaml (default: $GEOREF_CONFIG or config/params.yaml)")
    ap.add_argument("--tolerance", type=float, default=None, help="Override georef.det_tolerance")
    ap.add_argument("--zero-sentinel", action="store_true", help="Treat all-zero coordinates as unplaced")
    ap.add_argument("--out", default=None, help="Write result JSON here instead of stdout")
    args = ap.parse_args(argv)

    P = load_params(args.config)
    # stdout carries the result JSON when --out is not given
    setup_logging(P.get("logging", {}).get("level", "INFO"), force=True, stream=sys.stderr)

    gcfg = P.get("georef", {})
    tol = float(args.tolerance if args.tolerance is not None else gcfg.get("det_tolerance", 1e-10))
    max_points = int(gcfg.get("max_control_points", 6))

    if not args.size and not args.image:
        ap.error("one of --size or --image is required")
    try:
        width, height = parse_size(args.size) or image_size(args.image)
        points = load_points(args.points, zero_is_unset=args.zero_sentinel)
    except (ValueError, KeyError, OSError) as e:
        log.error("Invalid input", extra={"extra": {"path": args.points, "error": type(e).__name__, "detail": str(e)}})
        return 2
    log.info("Loaded control points", extra={"extra": {"path": args.points, "n": len(points), "size": [width, height]}})

    try:
        result = georeference(points, width, height, tolerance=tol, max_points=max_points)
    except GeoreferenceError as e:
        log.error("Georeferencing failed", extra={"extra": {"error": e.code, "detail": str(e)}})
        return 2
    except ValueError as e:
        log.error("Georeferencing failed", extra={"extra": {"error": "invalid_input", "detail": str(e)}})
        return 2

    payload = {"imageWidth": width, "imageHeight": height, **result.to_dict()}
    if args.out:
        _write_json(Path(args.out), payload)
        log.info("Wrote layer geometry", extra={"extra": {"out": args.out, "rmse_m": result.rmse_m}})
    else:
        print(json.dumps(payload, indent=2))

    if result.residuals:
        worst = max(result.residuals, key=lambda r: r.error_m)
        log.info("Largest residual", extra={"extra": {"id": worst.id, "error_m": worst.error_m}})
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
