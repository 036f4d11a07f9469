"""
asgi.py -- ASGI entry point for SpeciesGuard.

Run with:  uvicorn asgi:app --reload

Kept separate from api/main.py so process managers have one stable import
path. Environment and .env loading happen in core/config.py.
"""

from api.main import app

__all__ = ["app"]
