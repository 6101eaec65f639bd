"""Request/response schemas for authentication endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator


class StartLoginRequest(BaseModel):
    """Ask for a login code to be emailed."""

    email: EmailStr

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()


class StartLoginResponse(BaseModel):
    status: str
    expires_at: datetime


class VerifyLoginRequest(BaseModel):
    """Exchange a login code for an access token."""

    email: EmailStr
    code: str = Field(..., pattern=r"^\d{4,8}$")

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower().strip()


class UserResponse(BaseModel):
    id: str
    email: str
    name: str | None = None
    phone: str | None = None
    university: str | None = None
    is_admin: bool = False
    created_at: datetime


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse
    new_user: bool = False
