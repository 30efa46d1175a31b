"""Authentication for user endpoints."""

from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from cryptofolio.database import get_session
from cryptofolio.errors import Unauthorized
from cryptofolio.models import User
from cryptofolio.services.auth import validate_token

# Bearer token scheme
bearer_scheme = HTTPBearer(auto_error=False)


async def get_bearer_token(
    credentials: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
) -> str:
    """Extract the bearer token from the Authorization header.

    Raises:
        Unauthorized: If the header is missing or not a bearer token
    """
    if credentials is None or not credentials.credentials:
        raise Unauthorized("Missing bearer token")
    return credentials.credentials


async def get_current_user(
    token: str = Depends(get_bearer_token),
    session: AsyncSession = Depends(get_session),
) -> User:
    """Validate the bearer token and return the associated user.

    Raises:
        Unauthorized: If the token is unknown or expired
    """
    user = await validate_token(session, token)
    if user is None:
        raise Unauthorized("Invalid or expired token")
    return user
