import logging
from typing import Any, Dict, Optional

import httpx
from fastapi import Header, HTTPException, status

from config import settings

logger = logging.getLogger("order-docs")

AUTH_USER_PATH = "/auth/v1/user"
TOKEN_REQUIRED = "Unauthorized: Token is required"
INVALID_TOKEN = "Unauthorized: Invalid token"


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _bearer_token(authorization: Optional[str]) -> str:
    scheme, _, token = (authorization or "").partition(" ")
    token = token.strip()
    if scheme != "Bearer" or not token:
        raise _unauthorized(TOKEN_REQUIRED)
    return token


async def _lookup_user(token: str) -> Dict[str, Any]:
    headers = {
        "Authorization": f"Bearer {token}",
        "apikey": settings.supabase_service_role_key,
    }
    try:
        async with httpx.AsyncClient(base_url=settings.supabase_url, timeout=10) as client:
            response = await client.get(AUTH_USER_PATH, headers=headers)
    except httpx.HTTPError as exc:
        logger.error("Supabase Auth lookup failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication service unavailable",
        ) from exc
    if response.status_code != 200:
        raise _unauthorized(INVALID_TOKEN)
    return response.json()


async def get_current_user_id(authorization: Optional[str] = Header(default=None)) -> str:
    """Resolve the bearer token to a Supabase user id, or answer 401."""
    user = await _lookup_user(_bearer_token(authorization))
    user_id = user.get("id")
    if not user_id:
        raise _unauthorized(INVALID_TOKEN)
    return user_id
