from datetime import UTC, datetime
from enum import StrEnum
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from src.config.constants import PASSWORD_MIN_LENGTH
from src.models.api import ApiModel
from src.models.auth import Role, TotpSetup, TwoFactorMethod, UserProfile


class InviteStatus(StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"
    REVOKED = "revoked"


class Invite(BaseModel):
    id: UUID
    email: str
    role: Role
    invited_by: UUID
    organization_id: UUID | None = None
    organization_name: str | None = None
    token: str = Field(repr=False)
    status: InviteStatus = InviteStatus.PENDING
    expires_at: datetime
    accepted_at: datetime | None = None
    accepted_user_id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or datetime.now(UTC)) > self.expires_at

    def is_valid(self, now: datetime | None = None) -> bool:
        return self.status == InviteStatus.PENDING and not self.is_expired(now)


class InviteListRow(Invite):
    """Invite joined with the accepting user's name and email."""

    accepted_first_name: str | None = None
    accepted_last_name: str | None = None
    accepted_email: str | None = None


# API models


class CreateInviteRequest(ApiModel):
    email: EmailStr
    role: Role
    organization_name: str | None = None

    @field_validator("organization_name")
    @classmethod
    def organization_name_not_blank(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Organization name cannot be empty")
        return v


class AcceptInviteRequest(ApiModel):
    token: str = Field(..., min_length=1)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    password: str = Field(..., min_length=PASSWORD_MIN_LENGTH)
    two_factor_method: TwoFactorMethod | None = None

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name cannot be blank")
        return v

    @field_validator("password")
    @classmethod
    def password_complexity(cls, v: str) -> str:
        if not (any(c.islower() for c in v) and any(c.isupper() for c in v) and any(c.isdigit() for c in v)):
            raise ValueError("Password must contain uppercase, lowercase, and number")
        return v


class InviteSummary(ApiModel):
    id: UUID
    email: str
    role: Role
    expires_at: datetime
    token: str


class InviteCreated(ApiModel):
    success: bool = True
    message: str
    invite: InviteSummary


class PersonInfo(ApiModel):
    name: str
    email: str


class InviteDetails(ApiModel):
    email: str
    role: Role
    organization_id: UUID | None = None
    organization_name: str | None = None
    invited_by: PersonInfo | None = None
    expires_at: datetime


class InviteDetailsResponse(ApiModel):
    success: bool = True
    invite: InviteDetails


class InviteListItem(ApiModel):
    id: UUID
    email: str
    role: Role
    status: InviteStatus
    organization_name: str | None = None
    created_at: datetime | None = None
    expires_at: datetime
    accepted_at: datetime | None = None
    accepted_user: PersonInfo | None = None


class InviteListResponse(ApiModel):
    success: bool = True
    invites: list[InviteListItem]


class AcceptedInvite(BaseModel):
    """Service-level outcome of accepting an invite."""

    user: UserProfile
    totp_setup: TotpSetup | None = None
    requires_totp_setup: bool = False


class AcceptInviteResponse(ApiModel):
    success: bool = True
    message: str
    user: UserProfile
    access_token: str | None = None
    refresh_token: str | None = None
    requires_two_factor: bool | None = None
    two_factor_method: TwoFactorMethod | None = None
    user_id: UUID | None = None
    totp: TotpSetup | None = None
