"""Unit tests for organization settings and membership."""

import pytest

from src.models.auth import Role, TwoFactorMethod
from src.services.organizations import OrganizationService
from src.utils.errors import AuthorizationError, NotFoundError, ValidationError
from tests.fakes import seed_organization, seed_user


@pytest.fixture
def admin(store):
    user = seed_user(store, email="admin@acme.com", role=Role.CLIENT_ADMIN, first_name="Ann", last_name="Admin")
    seed_organization(store, user, name="Acme Corp")
    return store.users[user.id]


@pytest.fixture
def member(store, admin):
    return seed_user(store, email="c@acme.com", role=Role.CLIENT_USER, organization_id=admin.organization_id)


async def test_get_organization(organization_service: OrganizationService, admin, member):
    view = await organization_service.get_organization(member.id)

    assert view.name == "Acme Corp"
    assert view.slug == "acme-corp"
    assert view.two_factor_method == TwoFactorMethod.OTP
    assert view.admin.name == "Ann Admin"


async def test_get_organization_without_membership(organization_service: OrganizationService, store):
    operator = seed_user(store, email="op@platform.io", role=Role.OPERATOR)
    with pytest.raises(NotFoundError, match="User does not belong to an organization"):
        await organization_service.get_organization(operator.id)


async def test_admin_updates_policy_and_name(organization_service: OrganizationService, store, admin):
    view = await organization_service.update_organization(admin.id, name="  Acme Holdings ", two_factor_method="totp")

    assert view.name == "Acme Holdings"
    assert view.two_factor_method == TwoFactorMethod.TOTP
    # slug is stable across renames
    assert view.slug == "acme-corp"
    assert store.organizations[admin.organization_id].two_factor_method == TwoFactorMethod.TOTP


async def test_partial_update_keeps_other_fields(organization_service: OrganizationService, admin):
    view = await organization_service.update_organization(admin.id, two_factor_method="totp")
    assert view.name == "Acme Corp"


async def test_member_cannot_update(organization_service: OrganizationService, member):
    with pytest.raises(AuthorizationError, match="Only client admins"):
        await organization_service.update_organization(member.id, two_factor_method="totp")


@pytest.mark.parametrize("kwargs", [{"two_factor_method": "sms"}, {"name": "   "}])
async def test_update_validation(organization_service: OrganizationService, admin, kwargs):
    with pytest.raises(ValidationError):
        await organization_service.update_organization(admin.id, **kwargs)


async def test_list_members_excludes_inactive(organization_service: OrganizationService, store, admin, member):
    seed_user(store, email="gone@acme.com", role=Role.CLIENT_USER, organization_id=admin.organization_id, is_active=False)
    seed_user(store, email="op@platform.io", role=Role.OPERATOR)

    members = await organization_service.list_members(admin.id)

    assert {m.email for m in members} == {"admin@acme.com", "c@acme.com"}
