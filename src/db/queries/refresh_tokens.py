from datetime import datetime
from uuid import UUID

import asyncpg

from src.db.pool import Executor
from src.models.auth import ClientMeta, RefreshToken


async def create_refresh_token(
    conn: Executor,
    *,
    token: str,
    user_id: UUID,
    expires_at: datetime,
    client: ClientMeta,
) -> RefreshToken:
    row = await conn.fetchrow(
        """
        INSERT INTO refresh_tokens (token, user_id, expires_at, user_agent, ip_address)
        VALUES ($1, $2, $3, $4, $5)
        RETURNING *
        """,
        token,
        user_id,
        expires_at,
        client.user_agent,
        client.ip_address,
    )
    return RefreshToken(**dict(row))


async def get_refresh_token(conn: Executor, token: str) -> RefreshToken | None:
    row = await conn.fetchrow("SELECT * FROM refresh_tokens WHERE token = $1", token)
    return RefreshToken(**dict(row)) if row else None


async def rotate_refresh_token(
    conn: asyncpg.Connection,
    old_token: str,
    *,
    new_token: str,
    expires_at: datetime,
    client: ClientMeta,
) -> RefreshToken | None:
    """Revoke ``old_token`` and insert its successor.

    Must run inside a transaction. The revoke is a conditional update, so of
    several concurrent rotations of the same token exactly one gets a row
    back; the others return None without creating anything.
    """
    row = await conn.fetchrow(
        """
        UPDATE refresh_tokens
        SET is_revoked = TRUE, replaced_by = $2
        WHERE token = $1 AND NOT is_revoked AND expires_at > NOW()
        RETURNING user_id
        """,
        old_token,
        new_token,
    )
    if row is None:
        return None
    return await create_refresh_token(
        conn,
        token=new_token,
        user_id=row["user_id"],
        expires_at=expires_at,
        client=client,
    )


async def revoke_refresh_token(conn: Executor, token: str) -> None:
    await conn.execute(
        "UPDATE refresh_tokens SET is_revoked = TRUE WHERE token = $1 AND NOT is_revoked",
        token,
    )


async def revoke_user_refresh_tokens(conn: Executor, user_id: UUID) -> int:
    rows = await conn.fetch(
        """
        UPDATE refresh_tokens SET is_revoked = TRUE
        WHERE user_id = $1 AND NOT is_revoked
        RETURNING id
        """,
        user_id,
    )
    return len(rows)


async def purge_expired_refresh_tokens(conn: Executor, before: datetime) -> int:
    rows = await conn.fetch(
        "DELETE FROM refresh_tokens WHERE expires_at < $1 RETURNING id",
        before,
    )
    return len(rows)
