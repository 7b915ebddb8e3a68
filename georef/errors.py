from __future__ import annotations


class GeoreferenceError(ValueError):
    """Base class; `code` is the stable identifier surfaced to API clients."""
    code = "georeference_error"


class InsufficientPointsError(GeoreferenceError):
    """Fewer usable control points than the affine model needs. Add more points."""
    code = "insufficient_points"

    def __init__(self, count: int, required: int = 3):
        self.count = count
        self.required = required
        super().__init__(f"At least {required} control points are required, got {count}")


class DegenerateGeometryError(GeoreferenceError):
    """Normal matrix is singular: points collinear or coincident. Spread points out."""
    code = "degenerate_geometry"

    def __init__(self, det: float, tolerance: float):
        self.det = det
        self.tolerance = tolerance
        super().__init__(
            f"Control points are collinear or too close together (|det|={abs(det):.3g} < {tolerance:g})"
        )


class TooManyPointsError(GeoreferenceError):
    code = "too_many_points"

    def __init__(self, count: int, limit: int):
        self.count = count
        self.limit = limit
        super().__init__(f"Maximum {limit} control points allowed, got {count}")


class PlacementError(GeoreferenceError):
    """Action not valid in the current placement state."""
    code = "invalid_placement"
