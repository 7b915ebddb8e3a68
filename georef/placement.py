from __future__ import annotations

"""
Control point placement workflow.

A point is placed in two clicks: first on the image, then on the map. The
collector owns that state explicitly, one instance per editing session:

    IDLE --begin_point/edit_point--> AWAITING_IMAGE_POINT
         --place_image-->            AWAITING_MAP_POINT
         --place_map-->              IDLE

cancel() returns to IDLE from anywhere.
"""

import dataclasses
import enum
import itertools
import logging
from typing import Callable, List, Optional, Tuple

from common.types import ControlPoint, GeoreferenceResult, ImagePoint, MapPoint, usable_points
from georef.affine import DET_TOLERANCE, MAX_CONTROL_POINTS, MIN_CONTROL_POINTS, georeference
from georef.errors import PlacementError, TooManyPointsError


log = logging.getLogger(__name__)


class PlacementState(enum.Enum):
    IDLE = "idle"
    AWAITING_IMAGE_POINT = "awaiting_image_point"
    AWAITING_MAP_POINT = "awaiting_map_point"


def display_to_image(
    cx: float,
    cy: float,
    display_size: Tuple[float, float],
    natural_size: Tuple[float, float],
) -> Tuple[float, float]:
    """
    Scale a click on the displayed (resized) image back to natural pixel coordinates.

    Args:
        cx, cy: click position relative to the displayed image's top-left corner.
        display_size: (width, height) the image is rendered at.
        natural_size: (width, height) of the source raster.
    """
    dw, dh = display_size
    nw, nh = natural_size
    if dw <= 0 or dh <= 0:
        raise ValueError("display size must be > 0")
    x = min(max(cx, 0.0), dw) * (nw / dw)
    y = min(max(cy, 0.0), dh) * (nh / dh)
    return x, y


def _counter_ids() -> Callable[[], str]:
    c = itertools.count(1)
    return lambda: f"cp-{next(c)}"


class PointCollector:
    """Ordered control points plus the pending placement, for one image."""

    def __init__(self, max_points: int = MAX_CONTROL_POINTS, id_factory: Optional[Callable[[], str]] = None):
        self.max_points = int(max_points)
        self._new_id = id_factory or _counter_ids()
        self._points: List[ControlPoint] = []
        self._state = PlacementState.IDLE
        self._current: Optional[str] = None
        # Point as it was before edit_point(); restored by cancel()
        self._before_edit: Optional[ControlPoint] = None

    # ----------------------------
    # Read-only views
    # ----------------------------
    @property
    def state(self) -> PlacementState:
        return self._state

    @property
    def current_id(self) -> Optional[str]:
        return self._current

    @property
    def points(self) -> Tuple[ControlPoint, ...]:
        return tuple(self._points)

    @property
    def complete_points(self) -> List[ControlPoint]:
        return usable_points(self._points)

    @property
    def can_fit(self) -> bool:
        return len(self.complete_points) >= MIN_CONTROL_POINTS

    def get(self, point_id: str) -> ControlPoint:
        return self._points[self._index(point_id)]

    # ----------------------------
    # Transitions
    # ----------------------------
    def begin_point(self) -> str:
        """Add an empty point and wait for its image click. Returns the new id."""
        self._require(PlacementState.IDLE, "begin a new point")
        if len(self._points) >= self.max_points:
            raise TooManyPointsError(len(self._points) + 1, self.max_points)
        pid = self._new_id()
        self._points.append(ControlPoint(id=pid))
        self._current = pid
        self._state = PlacementState.AWAITING_IMAGE_POINT
        return pid

    def edit_point(self, point_id: str) -> None:
        """Re-place an existing point, starting from its image position."""
        self._require(PlacementState.IDLE, "edit a point")
        self._before_edit = self._points[self._index(point_id)]
        self._current = point_id
        self._state = PlacementState.AWAITING_IMAGE_POINT

    def place_image(self, x: float, y: float) -> ControlPoint:
        self._require(PlacementState.AWAITING_IMAGE_POINT, "place an image point")
        p = self._replace(image=ImagePoint(x, y))
        self._state = PlacementState.AWAITING_MAP_POINT
        return p

    def place_map(self, lat: float, lng: float) -> ControlPoint:
        self._require(PlacementState.AWAITING_MAP_POINT, "place a map point")
        p = self._replace(map=MapPoint(lat, lng))
        self._state = PlacementState.IDLE
        self._current = None
        self._before_edit = None
        return p

    def remove_point(self, point_id: str) -> None:
        del self._points[self._index(point_id)]
        if self._current == point_id:
            self._current = None
            self._before_edit = None
            self._state = PlacementState.IDLE

    def cancel(self) -> None:
        """
        Abort the pending placement.

        An edited point gets its previous coordinates back; a new point that never
        got a coordinate is dropped.
        """
        if self._current is not None:
            i = self._index(self._current)
            if self._before_edit is not None:
                self._points[i] = self._before_edit
            elif self._points[i].status == "empty":
                del self._points[i]
        self._current = None
        self._before_edit = None
        self._state = PlacementState.IDLE

    # ----------------------------
    # Fitting
    # ----------------------------
    def georeference(self, width: float, height: float, *, tolerance: float = DET_TOLERANCE) -> GeoreferenceResult:
        """Fit the complete points; partial ones are ignored."""
        return georeference(self._points, width, height, tolerance=tolerance, max_points=self.max_points)

    # ----------------------------
    # Internals
    # ----------------------------
    def _require(self, state: PlacementState, action: str) -> None:
        if self._state is not state:
            raise PlacementError(f"cannot {action} while {self._state.value}")

    def _index(self, point_id: str) -> int:
        for i, p in enumerate(self._points):
            if p.id == point_id:
                return i
        raise KeyError(point_id)

    def _replace(self, **changes) -> ControlPoint:
        i = self._index(self._current)  # type: ignore[arg-type]
        p = dataclasses.replace(self._points[i], **changes)
        self._points[i] = p
        log.debug("point placed", extra={"extra": {"id": p.id, "status": p.status}})
        return p
