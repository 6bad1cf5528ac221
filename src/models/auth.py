"""Identity models for the multi-tenant authentication system.

Database models mirror the PostgreSQL schema in ``src/db/migrations``.
Request/response bodies derive from ``ApiModel`` so they speak camelCase on
the wire. Secret-bearing fields on ``User`` are excluded from serialization;
anything returned to a client goes through ``UserProfile``.
"""

from datetime import UTC, datetime
from enum import StrEnum
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from src.models.api import ApiModel


class Role(StrEnum):
    SUPER_ADMIN = "super_admin"
    SITE_ADMIN = "site_admin"
    OPERATOR = "operator"
    CLIENT_ADMIN = "client_admin"
    CLIENT_USER = "client_user"


class TwoFactorMethod(StrEnum):
    OTP = "otp"
    TOTP = "totp"


# Database models (match PostgreSQL schema)


class Organization(BaseModel):
    """Organization model (tenancy boundary)."""

    id: UUID
    name: str
    slug: str
    two_factor_method: TwoFactorMethod = TwoFactorMethod.OTP
    admin_user_id: UUID | None = None
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None


class User(BaseModel):
    """User model."""

    id: UUID
    email: str
    password_hash: str = Field(exclude=True, repr=False)
    first_name: str
    last_name: str
    role: Role
    organization_id: UUID | None = None
    two_factor_method: TwoFactorMethod | None = None
    totp_secret: str | None = Field(default=None, exclude=True, repr=False)
    totp_enabled: bool = False
    otp_hash: str | None = Field(default=None, exclude=True, repr=False)
    otp_expiry: datetime | None = Field(default=None, exclude=True, repr=False)
    is_active: bool = True
    invited_by: UUID | None = None
    last_login_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class RefreshToken(BaseModel):
    """Opaque, rotating session continuation credential."""

    id: UUID
    token: str = Field(repr=False)
    user_id: UUID
    expires_at: datetime
    is_revoked: bool = False
    replaced_by: str | None = Field(default=None, repr=False)
    user_agent: str | None = None
    ip_address: str | None = None
    created_at: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or datetime.now(UTC)) >= self.expires_at

    def is_valid(self, now: datetime | None = None) -> bool:
        return not self.is_revoked and not self.is_expired(now)


class ClientMeta(BaseModel):
    """Audit metadata recorded with every refresh token."""

    user_agent: str | None = None
    ip_address: str | None = None


# API models


class UserProfile(ApiModel):
    """User projection safe to return to clients (no hashes or secrets)."""

    id: UUID
    email: str
    first_name: str
    last_name: str
    role: Role
    organization_id: UUID | None = None
    two_factor_method: TwoFactorMethod | None = None
    totp_enabled: bool = False
    is_active: bool = True
    last_login_at: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def from_user(cls, user: User) -> "UserProfile":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role,
            organization_id=user.organization_id,
            two_factor_method=user.two_factor_method,
            totp_enabled=user.totp_enabled,
            is_active=user.is_active,
            last_login_at=user.last_login_at,
            created_at=user.created_at,
        )


class TotpSetup(ApiModel):
    secret: str
    qr_code: str


class TokenPair(ApiModel):
    access_token: str
    refresh_token: str


class LoginResult(ApiModel):
    """Outcome of a login step: either issued tokens or a second-factor challenge."""

    success: bool = True
    requires_two_factor: bool
    access_token: str | None = None
    refresh_token: str | None = None
    user: UserProfile | None = None
    two_factor_method: TwoFactorMethod | None = None
    user_id: UUID | None = None
    message: str | None = None
    requires_totp_setup: bool | None = Field(default=None, alias="requiresTOTPSetup")
    totp: TotpSetup | None = None


class MfaChangeResult(ApiModel):
    success: bool = True
    message: str
    totp_setup: TotpSetup | None = None
    requires_totp_confirmation: bool = Field(default=False, alias="requiresTOTPConfirmation")


class LoginRequest(ApiModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class VerifyOtpRequest(ApiModel):
    user_id: UUID
    otp: str = Field(..., pattern=r"^\d{6}$")


class TotpCodeRequest(ApiModel):
    """Body of /verify-totp and /totp/confirm."""

    user_id: UUID
    token: str = Field(..., pattern=r"^\d{6}$")


class ChangeMfaRequest(ApiModel):
    method: str


class RefreshRequest(ApiModel):
    refresh_token: str | None = None


class TotpSetupResponse(ApiModel):
    success: bool = True
    secret: str
    qr_code: str
    message: str = "Scan the QR code with your authenticator app"


class TokenPairResponse(TokenPair):
    success: bool = True


class ProfileResponse(ApiModel):
    success: bool = True
    user: UserProfile
