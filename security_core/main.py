"""
Name: ASGI Entrypoint (security_core.main)

Responsibilities:
  - Re-export the FastAPI app for ASGI servers (uvicorn security_core.main:app)

Notes/Constraints:
  - No configuration or IO should live here; keep it thin and predictable
"""

from .api.main import app

__all__ = ["app"]
