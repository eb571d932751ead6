"""Bearer-token identity for chat requests.

The identity provider handshake happens elsewhere; by the time a request
reaches this service it carries a signed JWT whose ``sub`` claim is the
verified user id.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import AppSettings

logger = logging.getLogger("uvicorn.error")
bearer_scheme = HTTPBearer(auto_error=False)


def issue_token(settings: AppSettings, user_id: str, expires_min: Optional[int] = None) -> str:
    now = datetime.now(timezone.utc)
    minutes = expires_min if expires_min is not None else settings.jwt_expires_min
    payload = {"sub": user_id, "iat": now, "exp": now + timedelta(minutes=minutes)}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_user_id(settings: AppSettings, token: str) -> Optional[str]:
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.PyJWTError as exc:
        logger.warning("Rejected bearer token: %s", exc)
        return None
    user_id = claims.get("sub")
    return str(user_id) if user_id else None


async def require_user_id(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    if creds is None or not creds.credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    user_id = decode_user_id(request.app.state.settings, creds.credentials)
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return user_id
