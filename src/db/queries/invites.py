from datetime import datetime
from uuid import UUID

from src.db.pool import Executor
from src.models.auth import Role
from src.models.invite import Invite, InviteListRow, InviteStatus


async def create_invite(
    conn: Executor,
    *,
    email: str,
    role: Role,
    invited_by: UUID,
    token: str,
    expires_at: datetime,
    organization_id: UUID | None = None,
    organization_name: str | None = None,
) -> Invite:
    row = await conn.fetchrow(
        """
        INSERT INTO invites (
            email, role, invited_by, organization_id, organization_name, token, expires_at
        )
        VALUES ($1, $2, $3, $4, $5, $6, $7)
        RETURNING *
        """,
        email,
        role,
        invited_by,
        organization_id,
        organization_name,
        token,
        expires_at,
    )
    return Invite(**dict(row))


async def get_invite_by_token(conn: Executor, token: str) -> Invite | None:
    row = await conn.fetchrow("SELECT * FROM invites WHERE token = $1", token)
    return Invite(**dict(row)) if row else None


async def get_open_invite_by_email(conn: Executor, email: str) -> Invite | None:
    """Latest invite for an email that can still be re-sent (pending or expired)."""
    row = await conn.fetchrow(
        """
        SELECT * FROM invites
        WHERE email = $1 AND status IN ($2, $3)
        ORDER BY created_at DESC
        LIMIT 1
        """,
        email,
        InviteStatus.PENDING,
        InviteStatus.EXPIRED,
    )
    return Invite(**dict(row)) if row else None


async def get_invite_for_inviter(conn: Executor, invite_id: UUID, inviter_id: UUID) -> Invite | None:
    row = await conn.fetchrow(
        "SELECT * FROM invites WHERE id = $1 AND invited_by = $2",
        invite_id,
        inviter_id,
    )
    return Invite(**dict(row)) if row else None


async def refresh_invite(conn: Executor, invite_id: UUID, token: str, expires_at: datetime) -> Invite:
    """Give an invite a new token and expiry, resetting it to pending."""
    row = await conn.fetchrow(
        """
        UPDATE invites
        SET token = $2, expires_at = $3, status = $4, updated_at = NOW()
        WHERE id = $1
        RETURNING *
        """,
        invite_id,
        token,
        expires_at,
        InviteStatus.PENDING,
    )
    return Invite(**dict(row))


async def mark_invite_expired(conn: Executor, invite_id: UUID) -> None:
    # Only pending invites may become expired; terminal states stay put.
    await conn.execute(
        """
        UPDATE invites SET status = $2, updated_at = NOW()
        WHERE id = $1 AND status = $3
        """,
        invite_id,
        InviteStatus.EXPIRED,
        InviteStatus.PENDING,
    )


async def mark_invite_accepted(conn: Executor, invite_id: UUID, user_id: UUID) -> bool:
    """Accept a pending invite. Returns False if it was no longer pending."""
    row = await conn.fetchrow(
        """
        UPDATE invites
        SET status = $2, accepted_at = NOW(), accepted_user_id = $3, updated_at = NOW()
        WHERE id = $1 AND status = $4
        RETURNING id
        """,
        invite_id,
        InviteStatus.ACCEPTED,
        user_id,
        InviteStatus.PENDING,
    )
    return row is not None


async def revoke_invite(conn: Executor, invite_id: UUID) -> bool:
    row = await conn.fetchrow(
        """
        UPDATE invites SET status = $2, updated_at = NOW()
        WHERE id = $1 AND status = $3
        RETURNING id
        """,
        invite_id,
        InviteStatus.REVOKED,
        InviteStatus.PENDING,
    )
    return row is not None


async def list_invites_by_inviter(
    conn: Executor,
    inviter_id: UUID,
    *,
    status: InviteStatus | None = None,
) -> list[InviteListRow]:
    conditions = ["i.invited_by = $1"]
    vals: list[object] = [inviter_id]

    if status:
        conditions.append("i.status = $2")
        vals.append(status)

    query = f"""
        SELECT i.*,
               u.first_name AS accepted_first_name,
               u.last_name AS accepted_last_name,
               u.email AS accepted_email
        FROM invites i
        LEFT JOIN users u ON u.id = i.accepted_user_id
        WHERE {" AND ".join(conditions)}
        ORDER BY i.created_at DESC
    """
    rows = await conn.fetch(query, *vals)
    return [InviteListRow(**dict(row)) for row in rows]


async def expire_stale_invites(conn: Executor) -> int:
    """Flip every pending invite past its expiry to expired. Returns the count."""
    rows = await conn.fetch(
        """
        UPDATE invites SET status = $1, updated_at = NOW()
        WHERE status = $2 AND expires_at < NOW()
        RETURNING id
        """,
        InviteStatus.EXPIRED,
        InviteStatus.PENDING,
    )
    return len(rows)
