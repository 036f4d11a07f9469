"""
API request and response models for SpeciesGuard REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Wire format is camelCase (fullName, accessToken, emailVerified) to match the
browser client; Python attributes stay snake_case via an alias generator.
Always serialize with model_dump(by_alias=True).

Every response uses one envelope:
  success: {"success": true,  "data": {...}}
  failure: {"success": false, "error": {"code": "...", "message": "..."}}
"""

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from auth.models import Role, TokenPair, User
from auth.passwords import PASSWORD_MAX_LEN, TOO_LONG_REASON, exceeds_bcrypt_limit

DataT = TypeVar("DataT")

_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str


class ErrorResponse(BaseModel):
    """Envelope returned on every 4xx/5xx response."""

    model_config = ConfigDict(frozen=True)

    success: bool = False
    error: ErrorDetail


class SuccessResponse(BaseModel, Generic[DataT]):
    """Envelope returned on every 2xx response."""

    success: bool = True
    data: DataT


# ---------------------------------------------------------------------------
# Request models
#
# email/password are Optional so a missing field reaches the handler and gets
# the specific "Email and password are required" message instead of a generic
# schema error.
#
# Passwords that will be hashed are capped at bcrypt's 72-byte input; the
# character cap alone would let two passwords share a 72-byte prefix.
# ---------------------------------------------------------------------------


def _check_new_password(value: Optional[str]) -> Optional[str]:
    if value is not None and exceeds_bcrypt_limit(value):
        raise ValueError(TOO_LONG_REASON)
    return value


class RegisterRequest(BaseModel):
    """Request body for POST /api/auth/register."""

    model_config = _CAMEL

    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=PASSWORD_MAX_LEN)
    full_name: Optional[str] = Field(default=None, max_length=255)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, v: Optional[str]) -> Optional[str]:
        return _check_new_password(v)


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/login."""

    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=PASSWORD_MAX_LEN)


class RefreshRequest(BaseModel):
    """Optional body for POST /api/auth/refresh. Tried when the refresh_token cookie is absent or does not verify."""

    model_config = _CAMEL

    refresh_token: Optional[str] = None


class VerifyEmailRequest(BaseModel):
    token: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    """Request body for POST /api/auth/change-password."""

    model_config = _CAMEL

    current_password: Optional[str] = Field(default=None, max_length=PASSWORD_MAX_LEN)
    new_password: Optional[str] = Field(default=None, max_length=PASSWORD_MAX_LEN)

    @field_validator("new_password")
    @classmethod
    def new_password_fits_bcrypt(cls, v: Optional[str]) -> Optional[str]:
        return _check_new_password(v)


class ResetPasswordRequest(BaseModel):
    """Request body for POST /api/auth/reset-password."""

    model_config = _CAMEL

    token: Optional[str] = None
    new_password: Optional[str] = Field(default=None, max_length=PASSWORD_MAX_LEN)

    @field_validator("new_password")
    @classmethod
    def new_password_fits_bcrypt(cls, v: Optional[str]) -> Optional[str]:
        return _check_new_password(v)


class UserPatch(BaseModel):
    """Request body for PATCH /api/auth/users/{id}. Admin only."""

    model_config = _CAMEL

    role: Optional[Role] = None
    is_active: Optional[bool] = None


# ---------------------------------------------------------------------------
# Response payloads
# ---------------------------------------------------------------------------


class UserOut(BaseModel):
    """Sanitized account view. Never includes the password hash."""

    model_config = _CAMEL

    id: int
    email: str
    full_name: Optional[str] = None
    role: str
    email_verified: bool
    is_active: bool
    last_login: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserOut":
        return cls(
            id=user.id,
            email=user.email,
            full_name=user.full_name,
            role=user.role,
            email_verified=user.email_verified,
            is_active=user.is_active,
            last_login=user.last_login,
            created_at=user.created_at,
        )


class TokensOut(BaseModel):
    model_config = _CAMEL

    access_token: str
    refresh_token: str
    expires_in: int

    @classmethod
    def from_pair(cls, pair: TokenPair) -> "TokensOut":
        return cls(access_token=pair.access_token, refresh_token=pair.refresh_token, expires_in=pair.expires_in)


class AuthData(BaseModel):
    """Payload for register and login."""

    user: UserOut
    tokens: TokensOut


class UserData(BaseModel):
    user: UserOut


class UsersData(BaseModel):
    users: list[UserOut]


class TokensData(BaseModel):
    tokens: TokensOut


class MessageData(BaseModel):
    message: str


class HealthResponse(BaseModel):
    """Response for GET /api/health. Not wrapped in the envelope (load balancers read it raw)."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
