"""
classification/auth.py
----------------------
Bearer-token check for the API.  Only enough to identify the caller: a
signed JWT whose ``sub`` claim is the user id.  Anything missing or invalid
is a 401.
"""

# =========================
# Imports & Config
# =========================
import logging
from typing import Any, Dict

from fastapi import HTTPException, Request, status
from jose import JWTError, jwt

from config import Settings

log = logging.getLogger("classification.auth")


def _extract_bearer(auth_header: str | None) -> str:
    if not auth_header or not auth_header.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return auth_header.split(" ", 1)[1].strip()


def decode_token(token: str, settings: Settings) -> Dict[str, Any]:
    if not settings.jwt_secret:
        log.error("jwt_secret_not_configured")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        log.info("token_rejected", extra={"kv": {"error": str(e)}})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized") from e
    if not claims.get("sub"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return claims


def issue_token(user_id: str, settings: Settings, **extra: Any) -> str:
    """Sign a token for ``user_id`` (used by tooling and tests)."""
    return jwt.encode({"sub": user_id, **extra}, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def require_user(request: Request) -> str:
    """FastAPI dependency returning the caller's user id."""
    settings: Settings = request.app.state.settings
    token = _extract_bearer(request.headers.get("authorization"))
    claims = decode_token(token, settings)
    return str(claims["sub"])
