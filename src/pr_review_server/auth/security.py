"""
Service JWT Verification & Scope Enforcement

Trigger events (repository connected, review requested) are emitted by the
upstream web application. Each request carries a short-lived HS256 JWT
signed with `events_jwt_secret`, issued by "review-app" for audience
"pr-review-server".

This module verifies that token and enforces scope-based authorization.
"""

from __future__ import annotations

import jwt
from typing import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..config import settings
from .models import ServiceContext

ISSUER = "review-app"
AUDIENCE = "pr-review-server"


# ---------------------------------------------------------------------
# Security Scheme
# ---------------------------------------------------------------------

security = HTTPBearer(auto_error=True)


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class JWTVerificationError(RuntimeError):
    """Raised internally when token verification cannot proceed."""


# ---------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------

def _decode_service_token(token: str) -> dict:
    secret = settings.events_jwt_secret.get_secret_value()
    if not secret:
        raise JWTVerificationError("Missing events_jwt_secret in configuration.")

    return jwt.decode(
        token,
        secret,
        algorithms=[settings.jwt_algo],
        audience=AUDIENCE,
        issuer=ISSUER,
        options={"require": ["iss", "aud", "iat", "exp", "scope"]},
    )


# ---------------------------------------------------------------------
# Public Authentication Dependency
# ---------------------------------------------------------------------

def verify_service_jwt(
    creds: HTTPAuthorizationCredentials = Depends(security),
) -> ServiceContext:
    """
    Verify the service JWT and construct a ServiceContext.

    Raises
    ------
    HTTPException(401) for invalid or expired tokens.
    """
    try:
        payload = _decode_service_token(creds.credentials)
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired.",
        )
    except (jwt.InvalidAudienceError, jwt.InvalidIssuerError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token issuer or audience.",
        )
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or malformed token.",
        )
    except JWTVerificationError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="JWT verification configuration error.",
        )

    scopes = payload.get("scope")
    if not isinstance(scopes, list):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="'scope' claim must be a list.",
        )

    return ServiceContext(client_id=payload["iss"], scopes=scopes)


def require_scopes(*required_scopes: str) -> Callable:
    """
    Create a FastAPI dependency that enforces scope-based access control.

    Example:
        @router.post("/events")
        async def ingest(caller = Depends(require_scopes("events"))):
            ...
    """

    def check_scopes(
        caller: ServiceContext = Depends(verify_service_jwt),
    ) -> ServiceContext:
        missing = [s for s in required_scopes if s not in caller.scopes]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing required scope(s): {', '.join(missing)}",
            )
        return caller

    return check_scopes
