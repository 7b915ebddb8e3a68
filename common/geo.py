from __future__ import annotations

from typing import Tuple, Union

import numpy as np


ArrayLike = Union[float, np.ndarray]

# Meters per degree of latitude. Single global figure, not an ellipsoid model;
# fine over a site-sized extent, drifts over large latitude spans.
M_PER_DEG_LAT = 111_320.0


def meters_per_degree(at_lat_deg: ArrayLike) -> Tuple[ArrayLike, ArrayLike]:
    """
    Local scale (m/deg) as (north, east) at the given latitude(s).

    East scale shrinks with cos(lat) (meridian convergence) and reaches 0 at the poles.
    Accepts scalars or numpy arrays.
    """
    m_lng = M_PER_DEG_LAT * np.cos(np.radians(at_lat_deg))
    return M_PER_DEG_LAT, m_lng


def deg_error_to_m(dlat_deg: ArrayLike, dlng_deg: ArrayLike, at_lat_deg: ArrayLike) -> Tuple[ArrayLike, ArrayLike]:
    """
    Convert small (dlat, dlng) offsets in degrees to (north, east) meters.

    Planar small-area approximation, not a geodesic distance.
    """
    m_lat, m_lng = meters_per_degree(at_lat_deg)
    return np.multiply(dlat_deg, m_lat), np.multiply(dlng_deg, m_lng)
