"""
Top‑level package for the GoGrúa API.

All functionality lives in submodules under ``app``; import the ASGI
application as ``gogrua_api.app.main:app``.
"""

__all__ = []
