"""Organization settings and membership for tenant users."""

from uuid import UUID

import structlog

from src.db.store import IdentityStore
from src.models.auth import Organization, Role, TwoFactorMethod, User
from src.models.invite import PersonInfo
from src.models.organization import OrganizationMember, OrganizationView
from src.utils.errors import AuthorizationError, NotFoundError, ValidationError

log = structlog.get_logger()


class OrganizationService:
    def __init__(self, store: IdentityStore) -> None:
        self.store = store

    async def _member_organization(self, user_id: UUID) -> tuple[User, Organization]:
        user = await self.store.get_user_by_id(user_id)
        if user is None or user.organization_id is None:
            raise NotFoundError("User does not belong to an organization")

        organization = await self.store.get_organization(user.organization_id)
        if organization is None:
            raise NotFoundError("Organization not found")
        return user, organization

    async def _view(self, organization: Organization) -> OrganizationView:
        admin = None
        if organization.admin_user_id is not None:
            admin_user = await self.store.get_user_by_id(organization.admin_user_id)
            if admin_user is not None:
                admin = PersonInfo(name=admin_user.full_name, email=admin_user.email)

        return OrganizationView(
            id=organization.id,
            name=organization.name,
            slug=organization.slug,
            two_factor_method=organization.two_factor_method,
            is_active=organization.is_active,
            admin=admin,
            created_at=organization.created_at,
        )

    async def get_organization(self, user_id: UUID) -> OrganizationView:
        _, organization = await self._member_organization(user_id)
        return await self._view(organization)

    async def update_organization(
        self,
        user_id: UUID,
        *,
        name: str | None = None,
        two_factor_method: str | None = None,
    ) -> OrganizationView:
        """Update name and/or member MFA policy. Any client_admin of the organization may do this."""
        user = await self.store.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        if user.role != Role.CLIENT_ADMIN:
            log.warning("organization_update_denied", user_id=str(user.id), role=user.role.value)
            raise AuthorizationError("Only client admins can update organization settings")

        _, organization = await self._member_organization(user_id)

        method = None
        if two_factor_method:
            try:
                method = TwoFactorMethod(two_factor_method)
            except ValueError:
                raise ValidationError("Invalid two-factor method") from None

        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationError("Organization name cannot be empty")

        organization = await self.store.update_organization(
            organization.id, name=name, two_factor_method=method
        )
        log.info(
            "organization_updated",
            organization_id=str(organization.id),
            user_id=str(user.id),
            two_factor_method=organization.two_factor_method.value,
        )
        return await self._view(organization)

    async def list_members(self, user_id: UUID) -> list[OrganizationMember]:
        _, organization = await self._member_organization(user_id)
        members = await self.store.list_organization_users(organization.id)
        return [
            OrganizationMember(
                id=m.id,
                email=m.email,
                first_name=m.first_name,
                last_name=m.last_name,
                role=m.role,
                two_factor_method=m.two_factor_method,
                is_active=m.is_active,
                created_at=m.created_at,
            )
            for m in members
        ]
