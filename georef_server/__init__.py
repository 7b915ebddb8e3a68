"""
Georeferencing HTTP API (FastAPI)

- POST /georeference: control points + image size -> transform, overlay bounds, RMSE
- POST /project: pixel positions through a stored transform
- GET /health

Run:
    python -m georef_server.server
"""
