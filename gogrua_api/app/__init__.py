"""
Application package initializer.

The API is organised by domain: pricing, service requests, dispatch,
payments, automation and loyalty.  Each domain has a router under
``api/v1/endpoints``, a service class under ``services`` and its
pydantic models under ``schemas``.  Versioning is handled by grouping
routers under the ``api/<version>/`` hierarchy.
"""

from .main import app  # noqa: F401
