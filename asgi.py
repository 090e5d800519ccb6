"""
asgi.py -- ASGI entry point for PetKeeper.

api/main.py builds the complete application; this module only re-exports it
so process managers have one stable import path.

Run with:  uvicorn asgi:app --reload
           uvicorn asgi:app --host 0.0.0.0 --port 8000 --workers 4
"""

from api.main import app

__all__ = ["app"]
