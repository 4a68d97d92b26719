"""FastAPI authentication dependencies."""

from __future__ import annotations

import jwt
from fastapi import HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from nemshi.auth.jwt import verify_token

_bearer = HTTPBearer(auto_error=False)


async def get_current_uid(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> str:
    """
    Extract and verify the bearer token, return the caller's uid.

    Raises 401 when the token is missing or invalid.
    """
    if credentials is None:
        raise HTTPException(status_code=401, detail="You must be logged in.")
    try:
        payload = verify_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e
    return str(payload["sub"])
