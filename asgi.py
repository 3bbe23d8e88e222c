"""
asgi.py -- ASGI entry point for Gatehouse.

Run with:  uvicorn asgi:app --reload
           uvicorn asgi:app --host 0.0.0.0 --port 8765   (production, behind TLS)
"""

from api.main import app

__all__ = ["app"]
