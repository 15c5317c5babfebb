"""
API request and response models for budgetkeeper REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.
"""

import re
from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import Account

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# At least one letter, one digit and one of @$!%*#?&; 6-20 characters.
# Checked with `re` in a validator: Pydantic's pattern= engine has no lookaheads.
_PASSWORD_RE = re.compile(r"^(?=.*[a-zA-Z])(?=.*\d)(?=.*[@$!%*#?&])[A-Za-z\d@$!%*#?&]{6,20}$")


def _check_email(value: str) -> str:
    normalized = value.strip().lower()
    if not _EMAIL_RE.match(normalized):
        raise ValueError("Invalid email address.")
    return normalized


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=255)
    password: str = Field(min_length=1, max_length=72)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _check_email(value)


class CheckPasswordRequest(BaseModel):
    password: str = Field(min_length=1, max_length=72)


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/users."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=255)
    password: str
    name: str = Field(min_length=1, max_length=100)
    nickname: Optional[str] = Field(default=None, max_length=100)
    birthdate: Optional[date] = None
    age: Optional[int] = Field(default=None, ge=0, le=150)
    gender: Optional[str] = Field(default=None, max_length=20)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _check_email(value)

    @field_validator("password")
    @classmethod
    def password_policy(cls, value: str) -> str:
        if not _PASSWORD_RE.match(value):
            raise ValueError(
                "Password must be 6-20 characters and contain a letter, a digit and one of @$!%*#?&."
            )
        return value


class ProfileUpdateRequest(BaseModel):
    """Request body for PATCH /api/v1/users. Omitted fields are left unchanged."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    nickname: Optional[str] = Field(default=None, max_length=100)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"


class StatusResponse(BaseModel):
    authenticated: bool
    account_id: str


class OAuthProviderInfo(BaseModel):
    name: str
    label: str


class AccountResponse(BaseModel):
    """Public view of an Account -- never includes the secret hash."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: str
    nickname: Optional[str]
    birthdate: Optional[str]
    age: Optional[int]
    gender: Optional[str]
    identity_source: str
    created_at: str

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        return cls(
            id=account.id,
            email=account.email,
            name=account.display_name,
            nickname=account.nickname,
            birthdate=account.birthdate,
            age=account.age,
            gender=account.gender,
            identity_source=account.identity_source,
            created_at=account.created_at or "",
        )


class ErrorDetail(BaseModel):
    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    error: ErrorDetail


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    components: dict[str, str] = {}
