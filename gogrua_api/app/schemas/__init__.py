"""
Pydantic schema definitions for API payloads.

Each domain (pricing, services, dispatch, payments, automation) defines
its own models for request and response bodies.  Wire names are
camelCase, as the web client sends them; Python attributes stay
snake_case through ``CamelModel``.
"""
