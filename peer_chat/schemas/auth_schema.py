"""Authentication request/response schemas."""

import re
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

Role = Literal["user", "specialist", "admin"]


class RegisterRequest(BaseModel):
    """Account registration for help-seekers and peer specialists."""

    email: EmailStr = Field(description="Account email address")
    password: str = Field(
        min_length=8,
        max_length=128,
        description="Password (8-128 chars with upper, lower, digit and symbol)",
    )
    username: str = Field(
        min_length=2,
        max_length=100,
        description="Display name",
    )
    role: Literal["user", "specialist"] = Field(
        default="user",
        description="Specialists also get a peer specialist profile",
    )

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower().strip()

    @field_validator("password")
    @classmethod
    def validate_password_complexity(cls, v: str) -> str:
        checks = (
            (r"[A-Z]", "an uppercase letter"),
            (r"[a-z]", "a lowercase letter"),
            (r"\d", "a digit"),
            (r"[!@#$%^&*(),.?\":{}|<>]", "a special character"),
        )
        for pattern, label in checks:
            if not re.search(pattern, v):
                raise ValueError(f"Password must contain at least {label}")
        return v


class LoginRequest(BaseModel):
    """Login with email and password."""

    email: EmailStr
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower().strip()


class RefreshRequest(BaseModel):
    """Token refresh request."""

    refresh_token: str


class LogoutRequest(BaseModel):
    """Logout; the refresh token is revoked too when supplied."""

    refresh_token: str | None = None


class TokenResponse(BaseModel):
    """Token pair response."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Access token TTL in seconds")


class UserResponse(BaseModel):
    """Public account representation."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    email: str
    username: str
    role: Role
    is_active: bool
    created_at: datetime
    specialist_id: int | None = None


class RegisterResponse(BaseModel):
    """Registration response with account info and tokens."""

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    tokens: TokenResponse


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    model_config = ConfigDict(frozen=True)

    message: str


class TokenPayload(BaseModel):
    """Decoded JWT payload."""

    model_config = ConfigDict(frozen=True)

    sub: str
    email: str
    role: str
    type: str
    jti: str
    exp: int
