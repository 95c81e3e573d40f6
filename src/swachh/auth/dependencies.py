"""FastAPI authentication dependencies."""

from __future__ import annotations

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from swachh.auth.jwt import verify_token
from swachh.database import get_session
from swachh.db.models import User
from swachh.users.store import UserStore

_bearer = HTTPBearer(auto_error=False)


async def _resolve_user(credentials: HTTPAuthorizationCredentials, db: AsyncSession) -> User:
    try:
        payload = verify_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e

    return await UserStore(db).get_or_create(
        str(payload["sub"]),
        name=payload.get("name"),
        email=payload.get("email"),
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> User:
    """Verify the bearer token and return the (possibly just provisioned) user. 401 otherwise."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return await _resolve_user(credentials, db)


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> User | None:
    """Like get_current_user, but anonymous callers get None instead of 401."""
    if credentials is None:
        return None
    return await _resolve_user(credentials, db)
