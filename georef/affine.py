from __future__ import annotations

"""
Affine georeferencing from image <-> map control points.

Model (two linear maps sharing one design matrix [1, x, y]):
    lat = a0 + a1*x + a2*y
    lng = b0 + b1*x + b2*y

Fitted by ordinary least squares through the 3x3 normal equations, solved in
closed form with Cramer's rule. The system stays 3x3 for any point count, so no
general decomposition is needed for the 3..6 points a user places by hand.
"""

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from common.geo import deg_error_to_m
from common.types import (
    AffineTransform,
    ControlPoint,
    GeoBounds,
    GeoreferenceResult,
    PointResidual,
    usable_points,
)
from georef.errors import DegenerateGeometryError, InsufficientPointsError, TooManyPointsError


log = logging.getLogger(__name__)

MIN_CONTROL_POINTS = 3
MAX_CONTROL_POINTS = 6
# Absolute threshold on det(M). Depends on pixel magnitudes, so it is a practical
# cut-off rather than a physical bound.
DET_TOLERANCE = 1e-10


def _as_arrays(points: Sequence[ControlPoint]) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    for p in points:
        if not p.is_complete:
            raise ValueError(f"control point {p.id!r} is not placed on both image and map ({p.status})")
    xs = np.array([p.image.x for p in points], dtype=float)  # type: ignore[union-attr]
    ys = np.array([p.image.y for p in points], dtype=float)  # type: ignore[union-attr]
    lats = np.array([p.map.lat for p in points], dtype=float)  # type: ignore[union-attr]
    lngs = np.array([p.map.lng for p in points], dtype=float)  # type: ignore[union-attr]
    return xs, ys, lats, lngs


def fit(points: Sequence[ControlPoint], *, tolerance: float = DET_TOLERANCE) -> AffineTransform:
    """
    Least-squares affine transform pixel -> (lat, lng).

    Args:
        points: complete control points (both coordinates set), at least 3.
        tolerance: |det| of the normal matrix below which the geometry is degenerate.

    Raises:
        InsufficientPointsError: fewer than 3 points.
        DegenerateGeometryError: points collinear or coincident.
    """
    n = len(points)
    if n < MIN_CONTROL_POINTS:
        log.info("fit rejected", extra={"extra": {"reason": "insufficient_points", "n": n}})
        raise InsufficientPointsError(n, MIN_CONTROL_POINTS)

    xs, ys, lats, lngs = _as_arrays(points)

    # Work about the centroid. det(M) is unchanged by the shift (unit-triangular
    # congruence), but the sums stay small so the products below keep their precision.
    mx, my = float(xs.mean()), float(ys.mean())
    mlat, mlng = float(lats.mean()), float(lngs.mean())
    x = xs - mx
    y = ys - my
    dlat = lats - mlat
    dlng = lngs - mlng

    sx = float(x.sum())
    sy = float(y.sum())
    sxx = float((x * x).sum())
    syy = float((y * y).sum())
    sxy = float((x * y).sum())

    # Cofactors of the first row of
    #   [ n   sx   sy  ]
    #   [ sx  sxx  sxy ]
    #   [ sy  sxy  syy ]
    c0 = sxx * syy - sxy * sxy
    c1 = sx * syy - sy * sxy
    c2 = sx * sxy - sy * sxx
    det = n * c0 - sx * c1 + sy * c2

    if abs(det) < tolerance:
        log.info("fit rejected", extra={"extra": {"reason": "degenerate_geometry", "n": n, "det": det}})
        raise DegenerateGeometryError(det, tolerance)

    def solve(r0: float, r1: float, r2: float) -> Tuple[float, float, float]:
        d0 = r0 * c0 - r1 * c1 + r2 * c2
        d1 = n * (r1 * syy - sxy * r2) - r0 * (sx * syy - sxy * sy) + sy * (sx * r2 - r1 * sy)
        d2 = n * (sxx * r2 - r1 * sxy) - sx * (sx * r2 - r1 * sy) + r0 * (sx * sxy - sxx * sy)
        return d0 / det, d1 / det, d2 / det

    k0, a1, a2 = solve(float(dlat.sum()), float((dlat * x).sum()), float((dlat * y).sum()))
    m0, b1, b2 = solve(float(dlng.sum()), float((dlng * x).sum()), float((dlng * y).sum()))

    # Back to the image origin.
    a0 = mlat + k0 - a1 * mx - a2 * my
    b0 = mlng + m0 - b1 * mx - b2 * my

    t = AffineTransform(a0=a0, a1=a1, a2=a2, b0=b0, b1=b1, b2=b2)
    log.debug("affine fit", extra={"extra": {"n": n, "det": det, "transform": t.to_dict()}})
    return t


def project(transform: AffineTransform, x: float, y: float) -> Tuple[float, float]:
    """Pixel (x, y) -> (lat, lng)."""
    return transform.project(x, y)


def image_corners(transform: AffineTransform, width: float, height: float) -> Tuple[Tuple[float, float], ...]:
    """Projected corners (0,0), (w,0), (w,h), (0,h) as (lat, lng), in that order."""
    return tuple(
        transform.project(cx, cy)
        for cx, cy in ((0.0, 0.0), (width, 0.0), (width, height), (0.0, height))
    )


def compute_bounds(transform: AffineTransform, width: float, height: float) -> GeoBounds:
    """
    Axis-aligned envelope of the projected image corners.

    Rotation/shear in the transform is not represented: an overlay drawn with
    these bounds shows the image stretched to the rectangle.
    """
    corners = image_corners(transform, width, height)
    lats = [c[0] for c in corners]
    lngs = [c[1] for c in corners]
    return GeoBounds(south=min(lats), west=min(lngs), north=max(lats), east=max(lngs))


def point_residuals(transform: AffineTransform, points: Sequence[ControlPoint]) -> Tuple[PointResidual, ...]:
    """Signed per-point misfit (predicted - true) in meters, input order."""
    if not points:
        return ()
    xs, ys, lats, lngs = _as_arrays(points)
    pred_lat = transform.a0 + transform.a1 * xs + transform.a2 * ys
    pred_lng = transform.b0 + transform.b1 * xs + transform.b2 * ys
    n_m, e_m = deg_error_to_m(pred_lat - lats, pred_lng - lngs, lats)
    return tuple(
        PointResidual(id=p.id, lat_error_m=float(n_m[i]), lng_error_m=float(e_m[i]))
        for i, p in enumerate(points)
    )


def residual_rmse(transform: AffineTransform, points: Sequence[ControlPoint]) -> float:
    """
    Root-mean-square control point misfit in meters.

    Returns 0.0 below the 3-point minimum (nothing meaningful was fitted).
    """
    if len(points) < MIN_CONTROL_POINTS:
        return 0.0
    xs, ys, lats, lngs = _as_arrays(points)
    pred_lat = transform.a0 + transform.a1 * xs + transform.a2 * ys
    pred_lng = transform.b0 + transform.b1 * xs + transform.b2 * ys
    n_m, e_m = deg_error_to_m(pred_lat - lats, pred_lng - lngs, lats)
    return float(np.sqrt(np.mean(n_m ** 2 + e_m ** 2)))


def georeference(
    points: Sequence[ControlPoint],
    width: float,
    height: float,
    *,
    tolerance: float = DET_TOLERANCE,
    max_points: Optional[int] = MAX_CONTROL_POINTS,
) -> GeoreferenceResult:
    """
    Fit, bound and score a layer in one call.

    Partially placed points are dropped first; the rest must satisfy fit().
    """
    if width <= 0 or height <= 0:
        raise ValueError("image width/height must be > 0")
    used: List[ControlPoint] = usable_points(points)
    if max_points is not None and len(used) > max_points:
        raise TooManyPointsError(len(used), max_points)

    t = fit(used, tolerance=tolerance)
    residuals = point_residuals(t, used)
    result = GeoreferenceResult(
        transform=t,
        bounds=compute_bounds(t, width, height),
        corners=image_corners(t, width, height),
        rmse_m=residual_rmse(t, used),
        residuals=residuals,
        used_points=len(used),
    )
    log.debug(
        "georeferenced",
        extra={"extra": {"used": len(used), "dropped": len(points) - len(used), "rmse_m": result.rmse_m}},
    )
    return result
