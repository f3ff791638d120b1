"""User schemas for API validation."""

from datetime import datetime
from typing import Optional

from pydantic import EmailStr, Field

from chatspace.schemas.common import CamelModel


class UserCreate(CamelModel):
    """Schema for user signup."""
    full_name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(min_length=8, max_length=100)
    bio: Optional[str] = Field(None, max_length=500)


class UserLogin(CamelModel):
    """Schema for user login."""
    email: EmailStr
    password: str = Field(min_length=1)


class UserUpdate(CamelModel):
    """Schema for updating the profile text fields."""
    full_name: Optional[str] = Field(None, min_length=1, max_length=255)
    bio: Optional[str] = Field(None, max_length=500)


class UserResponse(CamelModel):
    """Public view of a user. Never carries the password hash or refresh token."""
    id: str = Field(alias="_id")
    full_name: str
    email: str
    avatar_url: Optional[str] = Field(None, alias="profilePic")
    bio: Optional[str] = None
    uploads_enabled: bool = True
    created_at: datetime
    updated_at: Optional[datetime] = None


class AuthResponse(CamelModel):
    """Returned by signup, login and refresh. The refresh token travels in a cookie."""
    success: bool = True
    message: str
    user_data: UserResponse
    token: str


class ProfileResponse(CamelModel):
    success: bool = True
    message: str
    user: UserResponse


class ProfileUpdateResponse(CamelModel):
    success: bool = True
    message: str
    updated_user: UserResponse


class UploadAccessUpdate(CamelModel):
    """Admin request to allow or block avatar/image uploads for a user."""
    enabled: bool


class UploadAccessResponse(CamelModel):
    success: bool = True
    user_id: str
    uploads_enabled: bool
