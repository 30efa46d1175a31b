"""Auth API endpoints - register, login, logout."""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from cryptofolio.auth import get_bearer_token, get_current_user
from cryptofolio.database import get_session
from cryptofolio.models import User
from cryptofolio.schemas.auth import (
    AuthResponse,
    LoginRequest,
    RegisterRequest,
    SessionResponse,
    UserResponse,
)
from cryptofolio.schemas.common import DataResponse
from cryptofolio.services import auth as auth_service

router = APIRouter()


def _auth_response(user: User, issued: auth_service.IssuedSession | None) -> DataResponse[AuthResponse]:
    return DataResponse[AuthResponse](
        data=AuthResponse(
            user=UserResponse.model_validate(user),
            session=SessionResponse.model_validate(issued) if issued else None,
        )
    )


@router.post(
    "/auth/register",
    response_model=DataResponse[AuthResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
)
async def register(
    data: RegisterRequest,
    session: AsyncSession = Depends(get_session),
) -> DataResponse[AuthResponse]:
    """Create an account and, unless email confirmation is required, sign in.

    Errors: INVALID_EMAIL, WEAK_PASSWORD (400), EMAIL_EXISTS (409).
    """
    user, issued = await auth_service.register_user(
        session, data.email, data.password, data.display_name
    )
    return _auth_response(user, issued)


@router.post(
    "/auth/login",
    response_model=DataResponse[AuthResponse],
    summary="Sign in",
)
async def login(
    data: LoginRequest,
    session: AsyncSession = Depends(get_session),
) -> DataResponse[AuthResponse]:
    """Exchange email and password for a bearer token.

    Errors: INVALID_CREDENTIALS (401), EMAIL_NOT_CONFIRMED (403).
    """
    user, issued = await auth_service.login(session, data.email, data.password)
    return _auth_response(user, issued)


@router.post(
    "/auth/logout",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Sign out",
)
async def logout(
    user: User = Depends(get_current_user),
    token: str = Depends(get_bearer_token),
    session: AsyncSession = Depends(get_session),
) -> Response:
    """End the current session. The token stops working immediately."""
    await auth_service.logout(session, token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/auth/me",
    response_model=DataResponse[UserResponse],
    summary="Get the signed-in user",
)
async def me(user: User = Depends(get_current_user)) -> DataResponse[UserResponse]:
    return DataResponse[UserResponse](data=UserResponse.model_validate(user))
