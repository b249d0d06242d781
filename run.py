"""Entry point for the GoGrúa API.

Starts the FastAPI application with Uvicorn.  It is intended to be
executed from the project root, for example in Docker, where only a
single Python file is specified to run.

Host and port are read from the environment variables ``API_HOST`` and
``API_PORT``; defaults are ``0.0.0.0`` and ``8000``.

Usage:
    python run.py
"""
import asyncio
import logging
import os

from uvicorn import Config, Server

from gogrua_api.app.core.config import settings


async def main() -> None:
    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8000"))
    config = Config(
        app="gogrua_api.app.main:app",
        host=host,
        port=port,
        reload=False,
        log_level=settings.log_level.lower(),
    )
    server = Server(config)
    await server.serve()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        logging.getLogger(__name__).info("Server stopped")
