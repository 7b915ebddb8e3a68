from __future__ import annotations

import math
from typing import Dict, List, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from common.config import load_params
from common.logging_setup import get_logger, setup_logging
from common.types import AffineTransform, ControlPoint
from georef.affine import MIN_CONTROL_POINTS, georeference
from georef.errors import GeoreferenceError


log = get_logger("georef_server")


class XY(BaseModel):
    x: float
    y: float


class LatLng(BaseModel):
    lat: float
    lng: float


class ControlPointIn(BaseModel):
    id: str = ""
    imageCoordinates: Optional[XY] = None
    mapCoordinates: Optional[LatLng] = None


class GeoreferenceRequest(BaseModel):
    imageWidth: float = Field(gt=0)
    imageHeight: float = Field(gt=0)
    controlPoints: List[ControlPointIn]
    # Older clients send {x:0,y:0} / {lat:0,lng:0} for points not placed yet
    zeroIsUnset: bool = False


class LatCoefs(BaseModel):
    a0: float
    a1: float
    a2: float


class LngCoefs(BaseModel):
    b0: float
    b1: float
    b2: float


class TransformIn(BaseModel):
    lat: LatCoefs
    lng: LngCoefs


class ProjectRequest(BaseModel):
    transform: TransformIn
    points: List[XY]


P = load_params()
setup_logging(P.get("logging", {}).get("level", "INFO"), force=True)

G = P.get("georef", {})
DET_TOL = float(G.get("det_tolerance", 1e-10))
MAX_POINTS = int(G.get("max_control_points", 6))

app = FastAPI(title="Site Georeferencing API", version="1.0.0")

# (Optional) CORS for the map UI during local dev
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # tighten as needed
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(code: str, detail: str, status_code: int = 422) -> JSONResponse:
    return JSONResponse({"error": code, "detail": detail}, status_code=status_code)


@app.get("/health")
def health():
    return {
        "status": "ok",
        "limits": {"min_control_points": MIN_CONTROL_POINTS, "max_control_points": MAX_POINTS},
        "det_tolerance": DET_TOL,
    }


@app.post("/georeference")
def georeference_endpoint(req: GeoreferenceRequest):
    """
    Fit the control points and return the overlay geometry.

    Response:
      { "transform": {...}, "bounds": [[s, w], [n, e]], "corners": [[lat, lng] x4],
        "rmse_m": float, "residuals": [...], "used_points": int }

    422 bodies carry `error` = insufficient_points | degenerate_geometry |
    too_many_points | invalid_point, so the UI can pick its guidance.
    """
    try:
        points = [ControlPoint.from_dict(cp.model_dump(), zero_is_unset=req.zeroIsUnset) for cp in req.controlPoints]
    except ValueError as e:
        return _error("invalid_point", str(e))

    try:
        result = georeference(points, req.imageWidth, req.imageHeight, tolerance=DET_TOL, max_points=MAX_POINTS)
    except GeoreferenceError as e:
        log.info("Georeference rejected", extra={"extra": {"error": e.code, "n": len(points)}})
        return _error(e.code, str(e))

    log.info(
        "Georeferenced",
        extra={"extra": {"used": result.used_points, "rmse_m": result.rmse_m, "bounds": result.bounds.to_list()}},
    )
    return result.to_dict()


@app.post("/project")
def project_endpoint(req: ProjectRequest):
    """Map pixel positions through an already fitted transform."""
    t = AffineTransform.from_dict(req.transform.model_dump())
    out: List[Dict[str, float]] = []
    for p in req.points:
        lat, lng = t.project(p.x, p.y)
        if not (math.isfinite(lat) and math.isfinite(lng)):
            log.info("Projection rejected", extra={"extra": {"x": p.x, "y": p.y}})
            return _error("invalid_point", f"projection of ({p.x}, {p.y}) is not finite")
        out.append({"lat": lat, "lng": lng})
    return {"points": out}


# -------- local dev entrypoint --------
if __name__ == "__main__":
    srv = P.get("server", {})
    uvicorn.run(app, host=str(srv.get("host", "0.0.0.0")), port=int(srv.get("port", 8000)))
