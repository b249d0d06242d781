"""
Configuration management.

The ``Settings`` dataclass reads configuration directly from
environment variables.  Defaults are provided for every field so that
the API starts in simulation mode against a local SQLite file.  In a
production deployment set ``WEBPAY_ENV=production`` together with the
real commerce code and API key.
"""

import os
from dataclasses import dataclass


# Transbank publishes these credentials for its integration environment.
WEBPAY_INTEGRATION_COMMERCE_CODE = "597055555532"
WEBPAY_INTEGRATION_API_KEY = "579B532A7440BB0C9079DED94D31EA1615BACEB56610332264630D42D0A36B1C"


@dataclass
class Settings:
    """Application settings loaded from environment variables."""

    project_name: str = os.getenv("PROJECT_NAME", "GoGrúa API")
    api_version: str = os.getenv("API_VERSION", "1.0.0")
    debug: bool = os.getenv("DEBUG", "false").lower() in {"1", "true", "yes"}
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    # Optional log file; rotated by size when set.
    log_file: str = os.getenv("LOG_FILE", "")
    secret_key: str = os.getenv("SECRET_KEY", "change_me")
    access_token_expire_minutes: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24)))

    # Comma‑separated list of static tokens for trusted integrations (the
    # n8n automation workers).  Requests presenting one of them are
    # authenticated with ``service_token_role``.
    service_tokens: str = os.getenv("SERVICE_TOKENS", "")
    service_token_role: str = os.getenv("SERVICE_TOKEN_ROLE", "dispatcher")

    # Path to the SQLite database.  Relative paths are resolved against
    # the project root by the ``db`` module.
    database_url: str = os.getenv("DATABASE_URL", "gogrua.db")

    # Webpay Plus.  Anything other than ``production`` keeps the gateway
    # in simulation mode.
    webpay_env: str = os.getenv("WEBPAY_ENV", "integration")
    webpay_commerce_code: str = os.getenv("WEBPAY_COMMERCE_CODE", WEBPAY_INTEGRATION_COMMERCE_CODE)
    webpay_api_key: str = os.getenv("WEBPAY_API_KEY", WEBPAY_INTEGRATION_API_KEY)
    webpay_timeout_seconds: float = float(os.getenv("WEBPAY_TIMEOUT_SECONDS", "30"))

    # Shared secret for inbound n8n calls.  When empty, signatures are not
    # checked.
    n8n_shared_secret: str = os.getenv("N8N_SHARED_SECRET", "")
    n8n_timeout_seconds: float = float(os.getenv("N8N_TIMEOUT_SECONDS", "10"))

    @property
    def webpay_simulation(self) -> bool:
        return self.webpay_env != "production"

    @property
    def webpay_api_url(self) -> str:
        if self.webpay_env == "production":
            return "https://webpay3g.transbank.cl"
        return "https://webpay3gintegration.transbank.cl"


# Instantiate settings once so other modules can import it without
# repeatedly reading environment variables.  Environment variables
# should be set before importing this module.
settings = Settings()
