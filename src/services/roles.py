"""Role hierarchy: who may invite whom, and which roles are tenant-bound.

Invite authorization is the explicit allow-table in ``ROLE_INVITABLE``, not the
numeric level. The two do not line up everywhere (an operator may invite a
client_admin but not another operator), and the table is the source of truth.
"""

from src.config.constants import ORGANIZATION_ROLES, ROLE_INVITABLE, ROLE_LEVELS
from src.models.auth import Role


def allowed_invitees(inviter_role: str) -> frozenset[str]:
    return ROLE_INVITABLE.get(inviter_role, frozenset())


def can_invite(inviter_role: str, target_role: str) -> bool:
    """Return True iff ``inviter_role`` may create an invite for ``target_role``.

    Example:
        >>> can_invite("operator", "client_admin")
        True
        >>> can_invite("operator", "operator")
        False
    """
    return target_role in allowed_invitees(inviter_role)


def can_manage_invites(role: str) -> bool:
    """Roles with a non-empty allow-list may create, list and revoke invites."""
    return bool(allowed_invitees(role))


def requires_organization(role: str) -> bool:
    return role in ORGANIZATION_ROLES


def can_change_own_mfa(role: str) -> bool:
    # client_user always inherits the organization's method
    return role in ROLE_LEVELS and role != Role.CLIENT_USER


def level(role: str) -> int:
    """Informational rank, 5 (super_admin) down to 1 (client_user); 0 if unknown."""
    return ROLE_LEVELS.get(role, 0)
