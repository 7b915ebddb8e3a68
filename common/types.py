from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
import math


PointStatus = str  # "empty" | "image-only" | "map-only" | "complete"


def _finite(name: str, v: Any) -> float:
    f = float(v)
    if not math.isfinite(f):
        raise ValueError(f"{name} must be finite")
    return f


@dataclass(frozen=True, slots=True)
class ImagePoint:
    """Pixel position on the source raster (natural image pixels, origin top-left)."""
    x: float
    y: float

    def __post_init__(self) -> None:
        x = _finite("x", self.x)
        y = _finite("y", self.y)
        if x < 0 or y < 0:
            raise ValueError("image coordinates must be >= 0")
        object.__setattr__(self, "x", x)
        object.__setattr__(self, "y", y)


@dataclass(frozen=True, slots=True)
class MapPoint:
    """WGS84 position in degrees."""
    lat: float
    lng: float

    def __post_init__(self) -> None:
        lat = _finite("lat", self.lat)
        lng = _finite("lng", self.lng)
        if not (-90.0 <= lat <= 90.0) or not (-180.0 <= lng <= 180.0):
            raise ValueError("lat/lng out of range")
        object.__setattr__(self, "lat", lat)
        object.__setattr__(self, "lng", lng)


@dataclass(frozen=True, slots=True)
class ControlPoint:
    """
    One image <-> map correspondence.

    Attributes:
        id: opaque identifier, only used by callers for bookkeeping.
        image: pixel position, None until placed on the image.
        map: geographic position, None until placed on the map.
    """
    id: str
    image: Optional[ImagePoint] = None
    map: Optional[MapPoint] = None

    @property
    def is_complete(self) -> bool:
        return self.image is not None and self.map is not None

    @property
    def status(self) -> PointStatus:
        if self.image is not None and self.map is not None:
            return "complete"
        if self.image is not None:
            return "image-only"
        if self.map is not None:
            return "map-only"
        return "empty"

    @classmethod
    def from_dict(cls, d: Mapping[str, Any], *, zero_is_unset: bool = False) -> "ControlPoint":
        """
        Parse the wire shape:
            {"id": "cp-1", "imageCoordinates": {"x": .., "y": ..},
             "mapCoordinates": {"lat": .., "lng": ..}}

        A missing or null coordinate object means "not placed yet". With
        `zero_is_unset`, an all-zero pair is read the same way (older clients
        initialise new points to zeros instead of null).
        """
        img = d.get("imageCoordinates")
        geo = d.get("mapCoordinates")
        image = None
        if img is not None:
            x, y = float(img["x"]), float(img["y"])
            if not (zero_is_unset and x == 0.0 and y == 0.0):
                image = ImagePoint(x, y)
        mp = None
        if geo is not None:
            lat, lng = float(geo["lat"]), float(geo["lng"])
            if not (zero_is_unset and lat == 0.0 and lng == 0.0):
                mp = MapPoint(lat, lng)
        return cls(id=str(d.get("id", "")), image=image, map=mp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "imageCoordinates": None if self.image is None else {"x": self.image.x, "y": self.image.y},
            "mapCoordinates": None if self.map is None else {"lat": self.map.lat, "lng": self.map.lng},
        }


def usable_points(points: Iterable[ControlPoint]) -> List[ControlPoint]:
    """Keep only points placed on both the image and the map (input order preserved)."""
    return [p for p in points if p.is_complete]


@dataclass(frozen=True, slots=True)
class AffineTransform:
    """
    Six-parameter pixel -> geographic model:
        lat = a0 + a1*x + a2*y
        lng = b0 + b1*x + b2*y
    """
    a0: float
    a1: float
    a2: float
    b0: float
    b1: float
    b2: float

    def project(self, x: float, y: float) -> Tuple[float, float]:
        """Evaluate at pixel (x, y); returns (lat, lng)."""
        lat = self.a0 + self.a1 * x + self.a2 * y
        lng = self.b0 + self.b1 * x + self.b2 * y
        return lat, lng

    def to_dict(self) -> Dict[str, Dict[str, float]]:
        return {
            "lat": {"a0": self.a0, "a1": self.a1, "a2": self.a2},
            "lng": {"b0": self.b0, "b1": self.b1, "b2": self.b2},
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Mapping[str, float]]) -> "AffineTransform":
        lat, lng = d["lat"], d["lng"]
        return cls(
            a0=float(lat["a0"]), a1=float(lat["a1"]), a2=float(lat["a2"]),
            b0=float(lng["b0"]), b1=float(lng["b1"]), b2=float(lng["b2"]),
        )


@dataclass(frozen=True, slots=True)
class GeoBounds:
    """Axis-aligned envelope in degrees. Serialized as [[south, west], [north, east]]."""
    south: float
    west: float
    north: float
    east: float

    def __post_init__(self) -> None:
        if self.south > self.north or self.west > self.east:
            raise ValueError("bounds must satisfy south <= north and west <= east")

    def to_list(self) -> List[List[float]]:
        return [[self.south, self.west], [self.north, self.east]]

    @classmethod
    def from_list(cls, b: Any) -> "GeoBounds":
        (s, w), (n, e) = b
        return cls(south=float(s), west=float(w), north=float(n), east=float(e))


@dataclass(frozen=True, slots=True)
class PointResidual:
    """Misfit of one control point after fitting, in meters."""
    id: str
    lat_error_m: float
    lng_error_m: float

    @property
    def error_m(self) -> float:
        return math.hypot(self.lat_error_m, self.lng_error_m)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "lat_error_m": self.lat_error_m,
            "lng_error_m": self.lng_error_m,
            "error_m": self.error_m,
        }


@dataclass(frozen=True, slots=True)
class GeoreferenceResult:
    """Everything a caller needs to save a georeferenced layer."""
    transform: AffineTransform
    bounds: GeoBounds
    corners: Tuple[Tuple[float, float], ...]
    rmse_m: float
    residuals: Tuple[PointResidual, ...] = field(default=())
    used_points: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transform": self.transform.to_dict(),
            "bounds": self.bounds.to_list(),
            "corners": [[lat, lng] for lat, lng in self.corners],
            "rmse_m": self.rmse_m,
            "residuals": [r.to_dict() for r in self.residuals],
            "used_points": self.used_points,
        }
