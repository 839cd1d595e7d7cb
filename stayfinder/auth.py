from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader
from jose import jwt, JWTError

from .config import settings

api_key_header = APIKeyHeader(name="Authorization")


@dataclass(frozen=True)
class Principal:
    """
    The authenticated caller, as vouched for by the identity service.
    Permissions come from owning the listing or booking, not from a role.
    """
    user_id: int


def decode_token(token: str) -> dict:
    scheme, jwt_token = token.split()
    if scheme.lower() != "bearer":
        raise ValueError("Unsupported authorization scheme")
    return jwt.decode(jwt_token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])


async def get_key_by_user_id_or_ip(request: Request) -> str:
    """
    Tries to get the user ID from the JWT token.
    If it fails (no token, invalid token), it falls back to the client's IP.
    """
    try:
        payload = decode_token(request.headers.get("Authorization"))
        user_id = payload.get("sub")
        if user_id:
            return f"user:{user_id}"
    except (JWTError, ValueError, AttributeError, TypeError):
        # If token is invalid, missing, or malformed, limit by IP
        pass
    return f"ip:{request.client.host if request.client else 'unknown'}"


async def get_current_user(
        token: Annotated[str, Depends(api_key_header)]
) -> Principal:
    """
    Decodes the JWT from the 'Authorization: Bearer ...' header.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_token(token)
        user_id = int(payload.get("sub"))
    except (JWTError, ValueError, AttributeError, TypeError):
        raise credentials_exception
    return Principal(user_id=user_id)
