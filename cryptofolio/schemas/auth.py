"""Pydantic schemas for auth endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    """Request body for registering a user."""

    email: str = Field(..., description="Email address (case-insensitive)")
    password: str = Field(
        ..., description="At least 8 characters with a letter and a digit"
    )
    display_name: str | None = Field(None, max_length=100)


class LoginRequest(BaseModel):
    """Request body for signing in."""

    email: str
    password: str


class UserResponse(BaseModel):
    """Public view of a user."""

    id: str
    email: str
    display_name: str | None = None
    email_confirmed: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class SessionResponse(BaseModel):
    """A bearer token and when it stops working."""

    access_token: str = Field(..., description="Send as 'Authorization: Bearer <token>'")
    token_type: str = "bearer"
    expires_at: datetime

    model_config = {"from_attributes": True}


class AuthResponse(BaseModel):
    """Register/login result. session is null until the email is confirmed."""

    user: UserResponse
    session: SessionResponse | None = None
