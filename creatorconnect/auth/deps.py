from __future__ import annotations

from typing import Any, Dict, Optional

import jwt
from fastapi import Request

from creatorconnect.core.errors import AuthenticationError
from creatorconnect.core.settings import Settings


def extract_bearer_token(auth_header: Optional[str]) -> str:
    if not auth_header:
        raise AuthenticationError("Missing Authorization header")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Invalid Authorization header")
    return token.strip()


def decode_token(token: str, settings: Settings) -> Dict[str, Any]:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError as exc:
        raise AuthenticationError("Token expired") from exc
    except jwt.PyJWTError as exc:
        raise AuthenticationError("Invalid token") from exc


def user_id_from_claims(payload: Dict[str, Any]) -> str:
    # tokens minted by the auth service carry the user id as "id"
    user_id = payload.get("id") or payload.get("sub")
    if not isinstance(user_id, (str, int)) or not str(user_id).strip():
        raise AuthenticationError("Token missing user id")
    return str(user_id).strip()


async def get_current_user_id(request: Request) -> str:
    """Resolve the caller from `Authorization: Bearer <jwt>` (HS256, JWT_SECRET)."""
    settings: Settings = request.app.state.settings
    token = extract_bearer_token(request.headers.get("authorization"))
    return user_id_from_claims(decode_token(token, settings))
