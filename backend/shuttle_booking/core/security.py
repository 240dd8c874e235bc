"""
Bearer-token verification.

Tokens are issued by the identity service; this API only verifies the
signature and reads the user id from the ``sub`` claim. The id is handed to
route handlers through ``Depends`` so every engine call receives it
explicitly.
"""

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from shuttle_booking.core.config import get_settings

bearer_scheme = HTTPBearer(auto_error=False)


def decode_access_token(token: str) -> dict:
    settings = get_settings()
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> int:
    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise unauthorized

    try:
        payload = decode_access_token(credentials.credentials)
    except jwt.PyJWTError:
        raise unauthorized

    subject = payload.get("sub")
    try:
        return int(subject)
    except (TypeError, ValueError):
        raise unauthorized
