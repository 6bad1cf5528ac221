from datetime import datetime
from uuid import UUID

from src.models.api import ApiModel
from src.models.auth import Role, TwoFactorMethod
from src.models.invite import PersonInfo


class OrganizationView(ApiModel):
    id: UUID
    name: str
    slug: str
    two_factor_method: TwoFactorMethod
    is_active: bool
    admin: PersonInfo | None = None
    created_at: datetime | None = None


class OrganizationMember(ApiModel):
    id: UUID
    email: str
    first_name: str
    last_name: str
    role: Role
    two_factor_method: TwoFactorMethod | None = None
    is_active: bool
    created_at: datetime | None = None


class UpdateOrganizationRequest(ApiModel):
    name: str | None = None
    two_factor_method: str | None = None


class OrganizationResponse(ApiModel):
    success: bool = True
    message: str | None = None
    organization: OrganizationView


class MembersResponse(ApiModel):
    success: bool = True
    members: list[OrganizationMember]
