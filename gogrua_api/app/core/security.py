"""
Security helpers: bearer tokens, role checks and webhook signatures.

Tokens are compact JWTs signed with HMAC‑SHA256 and base64url
encoding.  The payload carries the subject (``sub``), the user's role
(``role``) and an expiration timestamp (``exp``).  Roles follow the
dashboards of the web application: ``customer``, ``driver``,
``provider``, ``dispatcher`` and ``admin``.

Inbound calls from the n8n automation system are signed with a shared
secret; ``verify_n8n_signature`` checks the ``x-n8n-signature`` header
against the raw request body.
"""

import base64
import hashlib
import hmac
import json
import logging
import time
from typing import Callable, Dict, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import settings


logger = logging.getLogger(__name__)

ROLES = ("customer", "driver", "provider", "dispatcher", "admin")


def _b64_url_encode(data: bytes) -> str:
    """Base64‑url encode bytes without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("utf-8")


def _b64_url_decode(data: str) -> bytes:
    """Decode base64‑url encoded string, adding padding if necessary."""
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _sign(message: bytes, secret: str) -> bytes:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()


def create_access_token(data: Dict[str, str], expires_delta: Optional[int] = None) -> str:
    """Create a signed JWT token with the given payload.

    Parameters
    ----------
    data : dict
        Claims to embed in the token, e.g. ``{"sub": "user-1", "role": "admin"}``.
    expires_delta : Optional[int]
        Lifetime of the token in seconds.  Defaults to
        ``settings.access_token_expire_minutes * 60``.
    """
    to_encode = data.copy()
    exp_seconds = expires_delta or settings.access_token_expire_minutes * 60
    to_encode["exp"] = int(time.time()) + exp_seconds
    header = {"alg": "HS256", "typ": "JWT"}
    header_b64 = _b64_url_encode(json.dumps(header, separators=(",", ":")).encode("utf-8"))
    payload_b64 = _b64_url_encode(json.dumps(to_encode, separators=(",", ":")).encode("utf-8"))
    signing_input = f"{header_b64}.{payload_b64}".encode("utf-8")
    signature_b64 = _b64_url_encode(_sign(signing_input, settings.secret_key))
    return f"{header_b64}.{payload_b64}.{signature_b64}"


def decode_access_token(token: str) -> Optional[Dict[str, str]]:
    """Verify and decode a JWT token.

    Returns the payload when the signature matches and the token has not
    expired, otherwise ``None``.
    """
    parts = token.split(".")
    if len(parts) != 3:
        return None
    header_b64, payload_b64, signature_b64 = parts
    signing_input = f"{header_b64}.{payload_b64}".encode("utf-8")
    expected_sig = _sign(signing_input, settings.secret_key)
    try:
        actual_sig = _b64_url_decode(signature_b64)
        if not hmac.compare_digest(expected_sig, actual_sig):
            return None
        data = json.loads(_b64_url_decode(payload_b64).decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return None
    if not isinstance(data, dict):
        return None
    if data.get("exp") is None or int(data["exp"]) < int(time.time()):
        return None
    return data


security = HTTPBearer(auto_error=False)


def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)) -> Dict[str, str]:
    """Dependency that retrieves the current authenticated principal.

    Static service tokens (``SERVICE_TOKENS``) authenticate integrations
    with ``settings.service_token_role``.  Any other bearer token must be
    a valid JWT carrying a known role.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    token = credentials.credentials

    if settings.service_tokens:
        tokens_list = [t.strip() for t in settings.service_tokens.split(",") if t.strip()]
        if token in tokens_list:
            return {"sub": "service", "role": settings.service_token_role}

    payload = decode_access_token(token)
    if not payload or payload.get("role") not in ROLES:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return payload


def require_roles(*roles: str) -> Callable[[Dict[str, str]], Dict[str, str]]:
    """Dependency factory to enforce that the current user has one of ``roles``.

    Use in endpoints as ``Depends(require_roles("admin", "dispatcher"))``.
    """

    def _role_dependency(current_user: Dict[str, str] = Depends(get_current_user)) -> Dict[str, str]:
        if current_user.get("role") not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user

    return _role_dependency


def sign_n8n_body(body: bytes, secret: str) -> str:
    """Hex HMAC‑SHA256 of ``body``; the value n8n sends in ``x-n8n-signature``."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_n8n_signature(body: bytes, signature_header: Optional[str]) -> bool:
    """Check an inbound automation call.

    Without a configured ``N8N_SHARED_SECRET`` every call is accepted.
    """
    secret = settings.n8n_shared_secret
    if not secret:
        return True
    if not signature_header:
        logger.warning("n8n call without signature rejected")
        return False
    return hmac.compare_digest(sign_n8n_body(body, secret), signature_header.strip())
