"""Pydantic v2 request/response schemas for Rise Local account endpoints."""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class _EmailRequest(BaseModel):
    email: EmailStr

    # Checkout and admin lookups match members by e-mail, so store one spelling
    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.lower()


class RegisterRequest(_EmailRequest):
    """New member sign-up. The account starts without a pass."""

    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=1, max_length=255)


class LoginRequest(_EmailRequest):
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class TokenResponse(BaseModel):
    """JWT access/refresh pair."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    """Account profile. Pass status lives on /membership/status, not here."""

    id: uuid.UUID
    email: str
    name: str
    is_active: bool
    role: Literal["member", "vendor", "admin"]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuthResponse(BaseModel):
    user: UserResponse
    tokens: TokenResponse
