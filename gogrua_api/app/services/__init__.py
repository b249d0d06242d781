"""
Service layer.

Each service encapsulates the business logic of one domain and talks
to SQLite through ``core.db``.  Endpoints stay thin: they validate the
payload, call a service and turn ``ValueError`` into HTTP 400.
"""
