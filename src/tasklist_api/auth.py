from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from typing import Any, Dict, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .settings import Settings

_security = HTTPBearer(auto_error=False)


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def _b64url_decode(s: str) -> bytes:
    pad = "=" * (-len(s) % 4)
    return base64.urlsafe_b64decode((s + pad).encode("utf-8"))


# PUBLIC_INTERFACE
def sign_token(payload: Dict[str, Any], secret: str) -> str:
    """Serialize `payload` and append an HMAC-SHA256 signature."""
    data = json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    sig = hmac.new(secret.encode("utf-8"), data, hashlib.sha256).digest()
    return f"{_b64url_encode(data)}.{_b64url_encode(sig)}"


# PUBLIC_INTERFACE
def verify_token(token: str, secret: str) -> Optional[Dict[str, Any]]:
    """Return the payload of a valid, unexpired token, else None."""
    try:
        data_b64, sig_b64 = token.split(".", 1)
        data = _b64url_decode(data_b64)
        sig = _b64url_decode(sig_b64)
    except (ValueError, TypeError):
        return None
    expected = hmac.new(secret.encode("utf-8"), data, hashlib.sha256).digest()
    if not hmac.compare_digest(sig, expected):
        return None
    try:
        payload = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    if not isinstance(payload, dict):
        return None
    exp = int(payload.get("exp", 0))
    if exp and time.time() > exp:
        return None
    return payload


# PUBLIC_INTERFACE
def issue_token(user_id: str, settings: Settings) -> Optional[str]:
    """Issue a bearer token for `user_id`, or None when token auth is disabled."""
    if not settings.enable_token_auth or not settings.auth_token_secret:
        return None
    payload = {"sub": user_id, "exp": int(time.time()) + settings.auth_token_ttl_seconds}
    return sign_token(payload, settings.auth_token_secret)


def _unauthorized(detail: str, scheme: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": scheme},
    )


# PUBLIC_INTERFACE
async def get_current_user_id(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(_security),
    x_user_id: Optional[str] = Header(default=None, description="Caller id when token auth is disabled"),
) -> str:
    """
    Resolve the caller's user id.

    Behavior:
    - If settings.enable_token_auth is False (default): the X-User-Id header is
      trusted as the caller id.
    - If True: a valid `Authorization: Bearer <token>` is required and the
      token's `sub` claim is the caller id.

    Raises:
        HTTPException(401) if no identity can be established.
    """
    settings: Settings = request.app.state.settings

    if not settings.enable_token_auth:
        if not x_user_id or not x_user_id.strip():
            raise _unauthorized("Not authenticated", "X-User-Id")
        return x_user_id.strip()

    if creds is None or not creds.credentials:
        raise _unauthorized("Not authenticated", "Bearer")

    if not settings.auth_token_secret:
        # Misconfiguration: auth enabled but no secret provided
        raise _unauthorized("Server authentication not configured", "Bearer")

    payload = verify_token(creds.credentials, settings.auth_token_secret)
    if payload is None or not payload.get("sub"):
        raise _unauthorized("Invalid authentication credentials", "Bearer")
    return str(payload["sub"])
