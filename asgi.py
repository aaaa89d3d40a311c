"""
asgi.py -- ASGI entry point for Gatekeep.

Run with:  uvicorn asgi:app --reload

api/main.py owns the application; this module only gives servers a stable,
short import path for it.
"""

from api.main import app

__all__ = ["app"]
