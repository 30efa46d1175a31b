"""Auth service - registration, login and session tokens.

Passwords are stored as argon2id hashes. Session tokens are random strings
handed to the client once; only their SHA-256 hash is stored, so a leaked
database does not leak live tokens.
"""

import hashlib
import logging
import re
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cryptofolio.clock import utcnow
from cryptofolio.config import get_settings
from cryptofolio.errors import BadRequest, Conflict, Forbidden, Unauthorized
from cryptofolio.models import AuthSession, User

logger = logging.getLogger(__name__)

password_hasher = PasswordHasher()
MIN_PASSWORD_LENGTH = 8
TOKEN_PREFIX = "st_"

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass
class IssuedSession:
    """A freshly issued session. The plain token is only available here."""

    access_token: str
    expires_at: datetime
    token_type: str = "bearer"


# ----------------------------------------------------------------------------
# Hashing
# ----------------------------------------------------------------------------


def hash_password(password: str) -> str:
    return password_hasher.hash(password)


def verify_password(password: str, stored: str) -> bool:
    """Check a password against a stored argon2 hash."""
    try:
        return password_hasher.verify(stored, password)
    except (VerifyMismatchError, VerificationError, InvalidHash):
        return False


def generate_session_token() -> str:
    """Generate a new bearer token."""
    return f"{TOKEN_PREFIX}{secrets.token_urlsafe(32)}"


def hash_token(token: str) -> str:
    """Hash a bearer token for storage."""
    return hashlib.sha256(token.encode()).hexdigest()


# ----------------------------------------------------------------------------
# Validation
# ----------------------------------------------------------------------------


def normalize_email(email: str) -> str:
    return email.strip().lower()


def validate_email(email: str) -> str:
    """Return the normalized email or raise INVALID_EMAIL."""
    normalized = normalize_email(email or "")
    if not EMAIL_RE.match(normalized):
        raise BadRequest("Invalid email address", code="INVALID_EMAIL")
    return normalized


def validate_password(password: str) -> None:
    """Raise WEAK_PASSWORD unless the password is at least 8 characters
    with at least one letter and one digit."""
    password = password or ""
    if (
        len(password) < MIN_PASSWORD_LENGTH
        or not any(c.isalpha() for c in password)
        or not any(c.isdigit() for c in password)
    ):
        raise BadRequest(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters "
            "and contain a letter and a digit",
            code="WEAK_PASSWORD",
        )


# ----------------------------------------------------------------------------
# Operations
# ----------------------------------------------------------------------------


async def issue_session(session: AsyncSession, user: User) -> IssuedSession:
    """Create a session for a user. Caller commits."""
    token = generate_session_token()
    expires_at = utcnow() + timedelta(hours=get_settings().session_ttl_hours)
    session.add(AuthSession(token_hash=hash_token(token), user_id=user.id, expires_at=expires_at))
    return IssuedSession(access_token=token, expires_at=expires_at)


async def register_user(
    session: AsyncSession,
    email: str,
    password: str,
    display_name: str | None = None,
) -> tuple[User, IssuedSession | None]:
    """Register a new user.

    When email confirmation is required the user starts unconfirmed and no
    session is issued.

    Raises:
        BadRequest: INVALID_EMAIL or WEAK_PASSWORD
        Conflict: EMAIL_EXISTS
    """
    email = validate_email(email)
    validate_password(password)

    existing = await session.execute(select(User.id).where(User.email == email))
    if existing.scalar_one_or_none() is not None:
        raise Conflict("An account with this email already exists", code="EMAIL_EXISTS")

    require_confirmation = get_settings().require_email_confirmation
    user = User(
        id=str(uuid.uuid4()),
        email=email,
        password_hash=hash_password(password),
        display_name=(display_name or "").strip() or None,
        email_confirmed=not require_confirmation,
    )
    session.add(user)

    issued = None
    if user.email_confirmed:
        issued = await issue_session(session, user)

    try:
        await session.commit()
    except IntegrityError:
        # Lost a race with a concurrent registration for the same email
        await session.rollback()
        raise Conflict("An account with this email already exists", code="EMAIL_EXISTS")

    logger.info(f"Registered user {user.id}")
    return user, issued


async def login(session: AsyncSession, email: str, password: str) -> tuple[User, IssuedSession]:
    """Authenticate with email and password and issue a session.

    Raises:
        Unauthorized: INVALID_CREDENTIALS
        Forbidden: EMAIL_NOT_CONFIRMED
    """
    result = await session.execute(select(User).where(User.email == normalize_email(email or "")))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(password or "", user.password_hash):
        raise Unauthorized("Invalid email or password", code="INVALID_CREDENTIALS")

    if not user.email_confirmed:
        raise Forbidden("Please confirm your email before signing in", code="EMAIL_NOT_CONFIRMED")

    issued = await issue_session(session, user)
    await session.commit()
    return user, issued


async def logout(session: AsyncSession, token: str) -> None:
    """End the session identified by a bearer token."""
    await session.execute(delete(AuthSession).where(AuthSession.token_hash == hash_token(token)))
    await session.commit()


async def validate_token(session: AsyncSession, token: str) -> User | None:
    """Resolve a bearer token to its user, or None if unknown or expired."""
    if not token:
        return None

    result = await session.execute(
        select(AuthSession).where(AuthSession.token_hash == hash_token(token))
    )
    auth_session = result.scalar_one_or_none()
    if auth_session is None:
        return None

    if auth_session.expires_at <= utcnow():
        await session.execute(delete(AuthSession).where(AuthSession.token_hash == auth_session.token_hash))
        await session.commit()
        return None

    return await session.get(User, auth_session.user_id)


async def confirm_email(session: AsyncSession, email: str) -> User | None:
    """Mark a user's email as confirmed. Returns None if no such user."""
    result = await session.execute(select(User).where(User.email == normalize_email(email)))
    user = result.scalar_one_or_none()
    if user is None:
        return None
    user.email_confirmed = True
    await session.commit()
    return user
