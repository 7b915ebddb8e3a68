"""
Site georeferencing test suite

Structure:
- unit/: solver, placement workflow, value types, config, CLI
- integration/: HTTP API through FastAPI's TestClient
"""
