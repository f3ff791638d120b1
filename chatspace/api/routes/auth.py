"""Authentication and profile endpoints."""

import logging

from fastapi import APIRouter, HTTPException, Request, Response, status

from chatspace.api.payload import read_payload, parse_fields, read_upload, store_image
from chatspace.core.config import get_settings
from chatspace.core.dependencies import DbSession, CurrentUser, AdminUser
from chatspace.core.rate_limiter import check_rate_limit
from chatspace.schemas.common import StatusResponse
from chatspace.schemas.user import (
    UserCreate,
    UserLogin,
    UserUpdate,
    UserResponse,
    AuthResponse,
    ProfileResponse,
    ProfileUpdateResponse,
    UploadAccessUpdate,
    UploadAccessResponse,
)
from chatspace.services.auth_service import AuthService, TokenError, TokenExpiredError
from chatspace.services.flag_service import FlagService
from chatspace.services.image_processor import ImageProcessor

logger = logging.getLogger(__name__)
settings = get_settings()
router = APIRouter()


# ─────────────────────────────────────────────
# Refresh cookie
# ─────────────────────────────────────────────

def set_refresh_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.refresh_cookie_name,
        value=token,
        max_age=int(settings.refresh_token_ttl.total_seconds()),
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
    )


def clear_refresh_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.refresh_cookie_name,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
    )


# ─────────────────────────────────────────────
# Signup
# ─────────────────────────────────────────────

@router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def signup(user_data: UserCreate, request: Request, response: Response, db: DbSession):
    """
    Create an account.
    Returns the access token; the refresh token is set as an HTTP-only cookie.
    """
    check_rate_limit(request, "signup_ip")
    try:
        user = await AuthService.create_user(db, user_data)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )

    access_token, refresh_token = await AuthService.start_session(db, user)
    set_refresh_cookie(response, refresh_token)
    return AuthResponse(
        message="User created successfully",
        user_data=UserResponse.model_validate(user),
        token=access_token,
    )


# ─────────────────────────────────────────────
# Login
# ─────────────────────────────────────────────

@router.post("/login", response_model=AuthResponse)
async def login(credentials: UserLogin, request: Request, response: Response, db: DbSession):
    """
    Authenticate with email and password.
    A new login replaces any refresh token issued before.
    """
    check_rate_limit(request, "login_ip")
    user = await AuthService.authenticate_user(db, credentials.email, credentials.password)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid credentials",
        )

    access_token, refresh_token = await AuthService.start_session(db, user)
    set_refresh_cookie(response, refresh_token)
    return AuthResponse(
        message="User logged in successfully",
        user_data=UserResponse.model_validate(user),
        token=access_token,
    )


# ─────────────────────────────────────────────
# Refresh Token (Rotation)
# ─────────────────────────────────────────────

@router.post("/refresh-token", response_model=AuthResponse)
async def refresh_token(request: Request, response: Response, db: DbSession):
    """
    Rotate the refresh cookie and return a new access token.

    Presenting a stale refresh token revokes the stored one.
    """
    check_rate_limit(request, "refresh_ip")
    presented = request.cookies.get(settings.refresh_cookie_name)
    if not presented:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No refresh token provided",
        )

    try:
        user, access_token, new_refresh_token = await AuthService.rotate_refresh_token(db, presented)
    except TokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token expired" if isinstance(e, TokenExpiredError) else "Invalid refresh token",
        )

    set_refresh_cookie(response, new_refresh_token)
    return AuthResponse(
        message="Token refreshed successfully",
        user_data=UserResponse.model_validate(user),
        token=access_token,
    )


# ─────────────────────────────────────────────
# Logout
# ─────────────────────────────────────────────

@router.post("/logout", response_model=StatusResponse)
async def logout(current_user: CurrentUser, response: Response, db: DbSession):
    """Forget the stored refresh token and clear the cookie."""
    await AuthService.logout(db, current_user)
    clear_refresh_cookie(response)
    return StatusResponse(message="User logged out successfully")


# ─────────────────────────────────────────────
# Profile
# ─────────────────────────────────────────────

@router.get("/get-profile", response_model=ProfileResponse)
async def get_profile(current_user: CurrentUser):
    """Return the authenticated user's profile."""
    return ProfileResponse(
        message="User profile fetched successfully",
        user=UserResponse.model_validate(current_user),
    )


@router.put("/update-profile", response_model=ProfileUpdateResponse)
async def update_profile(request: Request, current_user: CurrentUser, db: DbSession):
    """
    Update name/bio and optionally the avatar.

    Accepts JSON (`fullName`, `bio`, optional `profilePic` data URL) or
    multipart form data with the avatar in the `profilePic` file field.
    """
    fields, upload = await read_payload(request, "profilePic")
    avatar_data_url = fields.get("profilePic")
    has_data_url = isinstance(avatar_data_url, str) and avatar_data_url.startswith("data:")
    user_data = parse_fields(UserUpdate, fields)

    if upload is not None or has_data_url:
        if not current_user.uploads_enabled:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Image uploads are disabled for this account",
            )
        if upload is not None:
            content = await read_upload(upload)
        else:
            try:
                content = ImageProcessor.decode_data_url(avatar_data_url)
            except ValueError as e:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        current_user.avatar_url = await store_image(content, "avatars")

    if user_data.full_name is not None:
        current_user.full_name = user_data.full_name.strip()
    if user_data.bio is not None:
        current_user.bio = user_data.bio

    await db.flush()
    await db.refresh(current_user)
    return ProfileUpdateResponse(
        message="User profile updated successfully",
        updated_user=UserResponse.model_validate(current_user),
    )


# ─────────────────────────────────────────────
# Admin: per-user upload switch
# ─────────────────────────────────────────────

@router.put("/upload-access/{user_id}", response_model=UploadAccessResponse)
async def set_upload_access(user_id: str, body: UploadAccessUpdate, admin: AdminUser, db: DbSession):
    """Allow or block image uploads for a user."""
    user = await FlagService.set_uploads_enabled(db, user_id, body.enabled)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    logger.info(f"Admin {admin.id} set uploads_enabled={body.enabled} for {user_id}")
    return UploadAccessResponse(user_id=user.id, uploads_enabled=user.uploads_enabled)
