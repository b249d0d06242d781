"""
Version 1 of the API.

This subpackage bundles all endpoints served under ``/api/v1``.
Breaking changes should be introduced in a new version subpackage
(e.g. ``v2``).
"""
