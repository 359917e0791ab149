# /aurelia/auth.py

from typing import Optional

import httpx
from pydantic import BaseModel

from aurelia.config import settings
from aurelia.errors import Unauthenticated
from aurelia.logger import get_logger

logger = get_logger(__name__)


class AuthenticatedUser(BaseModel):
    id: str
    email: Optional[str] = None


def extract_bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise Unauthenticated("Missing authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme != "Bearer" or not token.strip():
        raise Unauthenticated("Invalid authorization header format")
    return token.strip()


async def authenticate_request(
    authorization: Optional[str],
    client: Optional[httpx.AsyncClient] = None,
) -> AuthenticatedUser:
    """
    Validates a bearer token against the identity provider's user lookup.
    Raises Unauthenticated with a client-safe message on any failure.
    """
    token = extract_bearer_token(authorization)

    if not settings.SUPABASE_URL or not settings.SUPABASE_ANON_KEY:
        logger.error("Identity provider is not configured")
        raise Unauthenticated("Server configuration error")

    url = f"{settings.SUPABASE_URL.rstrip('/')}/auth/v1/user"
    headers = {"apikey": settings.SUPABASE_ANON_KEY, "Authorization": f"Bearer {token}"}

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=settings.AUTH_TIMEOUT_SECONDS) as owned:
                response = await owned.get(url, headers=headers)
        else:
            response = await client.get(url, headers=headers)
    except httpx.HTTPError as e:
        logger.warning(f"User lookup failed: {e}")
        raise Unauthenticated("Invalid or expired token") from e

    if response.status_code != 200:
        raise Unauthenticated("Invalid or expired token")

    try:
        data = response.json()
    except ValueError as e:
        raise Unauthenticated("Invalid or expired token") from e
    if not isinstance(data, dict) or not data.get("id"):
        raise Unauthenticated("Invalid or expired token")
    return AuthenticatedUser(id=data["id"], email=data.get("email"))
