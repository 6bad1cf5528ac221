"""Unit tests for the role hierarchy."""

import pytest

from src.models.auth import Role
from src.services import roles

# --------------- can_invite ---------------

ALLOWED = [
    ("super_admin", "site_admin"),
    ("super_admin", "operator"),
    ("super_admin", "client_admin"),
    ("site_admin", "operator"),
    ("site_admin", "client_admin"),
    ("operator", "client_admin"),
    ("client_admin", "client_user"),
]


@pytest.mark.parametrize("inviter,target", ALLOWED)
def test_can_invite_allowed_pairs(inviter, target):
    assert roles.can_invite(inviter, target)


def test_can_invite_is_exactly_the_table():
    """Every pair outside the allow-table is refused."""
    for inviter in Role:
        for target in Role:
            expected = (inviter.value, target.value) in ALLOWED
            assert roles.can_invite(inviter, target) is expected, (inviter, target)


def test_nobody_invites_super_admin():
    assert not any(roles.can_invite(r, Role.SUPER_ADMIN) for r in Role)


def test_operator_cannot_invite_peer_even_though_level_is_higher_than_client_admin():
    assert roles.level("operator") > roles.level("client_admin")
    assert not roles.can_invite("operator", "operator")


def test_unknown_roles():
    assert roles.allowed_invitees("janitor") == frozenset()
    assert not roles.can_invite("janitor", "client_user")
    assert not roles.can_invite("super_admin", "janitor")
    assert roles.level("janitor") == 0


# --------------- other predicates ---------------


def test_can_manage_invites():
    assert roles.can_manage_invites(Role.SUPER_ADMIN)
    assert roles.can_manage_invites(Role.CLIENT_ADMIN)
    assert not roles.can_manage_invites(Role.CLIENT_USER)


def test_requires_organization():
    assert roles.requires_organization(Role.CLIENT_ADMIN)
    assert roles.requires_organization(Role.CLIENT_USER)
    assert not roles.requires_organization(Role.OPERATOR)


def test_can_change_own_mfa():
    assert not roles.can_change_own_mfa(Role.CLIENT_USER)
    for role in (Role.SUPER_ADMIN, Role.SITE_ADMIN, Role.OPERATOR, Role.CLIENT_ADMIN):
        assert roles.can_change_own_mfa(role)


def test_levels_descend():
    ordered = [Role.SUPER_ADMIN, Role.SITE_ADMIN, Role.OPERATOR, Role.CLIENT_ADMIN, Role.CLIENT_USER]
    assert [roles.level(r) for r in ordered] == [5, 4, 3, 2, 1]
