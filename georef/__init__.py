"""
Affine georeferencing of raster images (site plans, scanned maps, aerial photos).

This package provides:
- A least-squares affine fit from 3..6 image <-> map control points
- Projection of image pixels and corners to WGS84 lat/lng
- The axis-aligned overlay bounds [[south, west], [north, east]]
- RMSE (meters) and per-point residuals for fit quality feedback
- An explicit two-click placement workflow (image point, then map point)

Entry point:
    python -m georef.pipeline points.json --image plan.png
"""
from .affine import (
    DET_TOLERANCE,
    MAX_CONTROL_POINTS,
    MIN_CONTROL_POINTS,
    compute_bounds,
    fit,
    georeference,
    image_corners,
    point_residuals,
    project,
    residual_rmse,
)
from .errors import (
    DegenerateGeometryError,
    GeoreferenceError,
    InsufficientPointsError,
    PlacementError,
    TooManyPointsError,
)
from .placement import PlacementState, PointCollector, display_to_image

__all__ = [
    "DET_TOLERANCE",
    "MAX_CONTROL_POINTS",
    "MIN_CONTROL_POINTS",
    "compute_bounds",
    "fit",
    "georeference",
    "image_corners",
    "point_residuals",
    "project",
    "residual_rmse",
    "DegenerateGeometryError",
    "GeoreferenceError",
    "InsufficientPointsError",
    "PlacementError",
    "TooManyPointsError",
    "PlacementState",
    "PointCollector",
    "display_to_image",
]
