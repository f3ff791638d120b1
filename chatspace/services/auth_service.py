"""Authentication Service: JWT access tokens + single-slot refresh token rotation."""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from chatspace.core.config import get_settings
from chatspace.models.user import User, DEFAULT_BIO
from chatspace.schemas.user import UserCreate

logger = logging.getLogger(__name__)
settings = get_settings()
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Precomputed fake hash to mitigate timing attacks
FAKE_HASHED_PASSWORD = pwd_context.hash(
    "this_is_a_fake_user_that_never_exists_2025"
)


class TokenError(ValueError):
    """Token failed verification."""


class TokenExpiredError(TokenError):
    """Token signature is valid but it has expired."""


class TokenInvalidError(TokenError):
    """Token is malformed, tampered with, or lacks a user id."""


class RefreshTokenReuseError(TokenError):
    """A well-signed refresh token no longer matches the stored one."""


class AuthService:
    """Authentication service."""

    # ─── Password ────────────────────────────────
    @staticmethod
    def hash_password(password: str) -> str:
        return pwd_context.hash(password)

    @staticmethod
    def verify_password(plain: str, hashed: str) -> bool:
        return pwd_context.verify(plain, hashed)

    # ─── JWT Creation ───────────────────────────
    @staticmethod
    def _create_jwt(user_id: str, expires_delta: timedelta, secret: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "id": str(user_id),
            "jti": str(uuid.uuid4()),
            "iat": now,
            "exp": now + expires_delta,
        }
        return jwt.encode(payload, secret, algorithm=settings.jwt_algorithm)

    @staticmethod
    def issue_access_token(user_id: str) -> str:
        return AuthService._create_jwt(user_id, settings.access_token_ttl, settings.jwt_secret_key)

    @staticmethod
    def issue_refresh_token(user_id: str) -> str:
        return AuthService._create_jwt(user_id, settings.refresh_token_ttl, settings.jwt_refresh_secret_key)

    # ─── JWT Verification ───────────────────────
    @staticmethod
    def _verify_jwt(token: str, secret: str) -> str:
        """Return the user id carried by `token` or raise a TokenError."""
        try:
            payload = jwt.decode(token, secret, algorithms=[settings.jwt_algorithm])
        except ExpiredSignatureError as e:
            raise TokenExpiredError("Token expired") from e
        except JWTError as e:
            raise TokenInvalidError("Invalid token") from e

        user_id = payload.get("id")
        if not user_id:
            raise TokenInvalidError("Invalid token payload")
        return str(user_id)

    @staticmethod
    def verify_access_token(token: str) -> str:
        return AuthService._verify_jwt(token, settings.jwt_secret_key)

    @staticmethod
    def verify_refresh_token(token: str) -> str:
        return AuthService._verify_jwt(token, settings.jwt_refresh_secret_key)

    # ─── User Lookup ─────────────────────────────
    @staticmethod
    async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_user_by_id(db: AsyncSession, user_id: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    # ─── Registration ───────────────────────────
    @staticmethod
    async def create_user(db: AsyncSession, user_data: UserCreate) -> User:
        if await AuthService.get_user_by_email(db, user_data.email):
            raise ValueError("User already exists")

        user = User(
            email=user_data.email.lower(),
            hashed_password=AuthService.hash_password(user_data.password),
            full_name=user_data.full_name.strip(),
            bio=user_data.bio if user_data.bio is not None else DEFAULT_BIO,
        )
        db.add(user)
        await db.flush()
        await db.refresh(user)
        logger.info(f"New user signed up: {user.id}")
        return user

    # ─── Secure Login (constant-time) ───────────
    @staticmethod
    async def authenticate_user(db: AsyncSession, email: str, password: str) -> Optional[User]:
        user = await AuthService.get_user_by_email(db, email)
        hashed_password = user.hashed_password if user else FAKE_HASHED_PASSWORD
        password_correct = pwd_context.verify(password, hashed_password)

        if not user or not password_correct:
            return None
        return user

    # ─── Session Issuance ───────────────────────
    @staticmethod
    async def start_session(db: AsyncSession, user: User) -> Tuple[str, str]:
        """
        Issue an access/refresh pair and make the refresh token the only valid one.

        Returns:
            Tuple of (access_token, refresh_token)
        """
        access_token = AuthService.issue_access_token(user.id)
        refresh_token = AuthService.issue_refresh_token(user.id)
        user.refresh_token = refresh_token
        await db.flush()
        return access_token, refresh_token

    # ─── Refresh (Rotation + Reuse Detection) ───
    @staticmethod
    async def rotate_refresh_token(db: AsyncSession, refresh_token: str) -> Tuple[User, str, str]:
        """
        Swap a valid refresh token for a new access/refresh pair.

        A well-signed token that is not the stored one is treated as a replay:
        the stored token is nulled and committed right away, so the owner has
        to log in again.

        Raises:
            TokenExpiredError / TokenInvalidError: signature or expiry check failed
            RefreshTokenReuseError: user gone or token does not match the stored one
        """
        user_id = AuthService.verify_refresh_token(refresh_token)
        user = await AuthService.get_user_by_id(db, user_id)

        if not user or user.refresh_token != refresh_token:
            await db.execute(
                update(User).where(User.id == user_id).values(refresh_token=None)
            )
            await db.commit()
            logger.warning(f"Refresh token reuse detected for user {user_id}; session revoked")
            raise RefreshTokenReuseError("Invalid refresh token")

        access_token, new_refresh_token = await AuthService.start_session(db, user)
        return user, access_token, new_refresh_token

    # ─── Logout ─────────────────────────────────
    @staticmethod
    async def logout(db: AsyncSession, user: User) -> None:
        user.refresh_token = None
        await db.flush()
