"""Database queries for users and organizations.

These queries use raw SQL via asyncpg. Every function accepts either the pool
or a connection that is already inside a transaction, so multi-step writes
(e.g. onboarding a client admin together with their organization) can share
one transaction.
"""

from datetime import datetime
from uuid import UUID

from src.db.pool import Executor
from src.models.auth import Organization, Role, TwoFactorMethod, User


async def create_user(
    conn: Executor,
    *,
    email: str,
    password_hash: str,
    first_name: str,
    last_name: str,
    role: Role,
    organization_id: UUID | None = None,
    invited_by: UUID | None = None,
    two_factor_method: TwoFactorMethod | None = None,
) -> User:
    """Create a new user.

    Args:
        conn: asyncpg pool or connection
        email: User's email, already lowercased (must be unique)
        password_hash: bcrypt password hash
        first_name: Given name
        last_name: Family name
        role: User role
        organization_id: Organization UUID, if the role is tenant-bound
        invited_by: UUID of the inviting user
        two_factor_method: Personal MFA method, if any

    Returns:
        Created User object

    Raises:
        asyncpg.UniqueViolationError: If email already exists
    """
    query = """
        INSERT INTO users (
            email, password_hash, first_name, last_name, role,
            organization_id, invited_by, two_factor_method
        )
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
        RETURNING *
    """
    row = await conn.fetchrow(
        query,
        email,
        password_hash,
        first_name,
        last_name,
        role,
        organization_id,
        invited_by,
        two_factor_method,
    )
    return User(**dict(row))


async def get_user_by_email(conn: Executor, email: str) -> User | None:
    """Get user by (lowercased) email address.

    Args:
        conn: asyncpg pool or connection
        email: User's email

    Returns:
        User object or None if not found
    """
    row = await conn.fetchrow("SELECT * FROM users WHERE email = $1", email)
    return User(**dict(row)) if row else None


async def get_user_by_id(conn: Executor, user_id: UUID) -> User | None:
    row = await conn.fetchrow("SELECT * FROM users WHERE id = $1", user_id)
    return User(**dict(row)) if row else None


async def set_user_organization(conn: Executor, user_id: UUID, organization_id: UUID) -> User:
    row = await conn.fetchrow(
        """
        UPDATE users SET organization_id = $2, updated_at = NOW()
        WHERE id = $1
        RETURNING *
        """,
        user_id,
        organization_id,
    )
    return User(**dict(row))


async def update_last_login(conn: Executor, user_id: UUID) -> None:
    await conn.execute("UPDATE users SET last_login_at = NOW() WHERE id = $1", user_id)


async def set_pending_otp(conn: Executor, user_id: UUID, otp_hash: str, otp_expiry: datetime) -> None:
    """Store a hashed OTP and its expiry as one pair."""
    await conn.execute(
        """
        UPDATE users SET otp_hash = $2, otp_expiry = $3, updated_at = NOW()
        WHERE id = $1
        """,
        user_id,
        otp_hash,
        otp_expiry,
    )


async def consume_pending_otp(conn: Executor, user_id: UUID, otp_hash: str) -> bool:
    """Clear the pending OTP only if it is still the one that was verified.

    The conditional update makes verification single-use: of two concurrent
    requests presenting the same code, only one sees a row come back.

    Returns:
        True if this call consumed the OTP, False if it was already gone
    """
    row = await conn.fetchrow(
        """
        UPDATE users SET otp_hash = NULL, otp_expiry = NULL, updated_at = NOW()
        WHERE id = $1 AND otp_hash = $2
        RETURNING id
        """,
        user_id,
        otp_hash,
    )
    return row is not None


async def clear_pending_otp(conn: Executor, user_id: UUID) -> None:
    await conn.execute(
        "UPDATE users SET otp_hash = NULL, otp_expiry = NULL, updated_at = NOW() WHERE id = $1",
        user_id,
    )


async def set_totp_secret(conn: Executor, user_id: UUID, secret: str) -> None:
    """Store a fresh TOTP secret; enrollment stays pending until confirmed."""
    await conn.execute(
        """
        UPDATE users SET totp_secret = $2, totp_enabled = FALSE, updated_at = NOW()
        WHERE id = $1
        """,
        user_id,
        secret,
    )


async def enable_totp(
    conn: Executor, user_id: UUID, two_factor_method: TwoFactorMethod | None = None
) -> User | None:
    row = await conn.fetchrow(
        """
        UPDATE users
        SET totp_enabled = TRUE,
            two_factor_method = COALESCE($2, two_factor_method),
            updated_at = NOW()
        WHERE id = $1 AND totp_secret IS NOT NULL
        RETURNING *
        """,
        user_id,
        two_factor_method,
    )
    return User(**dict(row)) if row else None


async def set_two_factor(
    conn: Executor,
    user_id: UUID,
    *,
    two_factor_method: TwoFactorMethod | None,
    totp_secret: str | None,
    totp_enabled: bool,
) -> User:
    """Overwrite the personal MFA configuration of a user in one statement."""
    row = await conn.fetchrow(
        """
        UPDATE users
        SET two_factor_method = $2, totp_secret = $3, totp_enabled = $4, updated_at = NOW()
        WHERE id = $1
        RETURNING *
        """,
        user_id,
        two_factor_method,
        totp_secret,
        totp_enabled,
    )
    return User(**dict(row))


async def list_organization_users(conn: Executor, organization_id: UUID) -> list[User]:
    """List active users in an organization, newest first.

    Args:
        conn: asyncpg pool or connection
        organization_id: Organization UUID

    Returns:
        List of User objects
    """
    query = """
        SELECT * FROM users
        WHERE organization_id = $1 AND is_active
        ORDER BY created_at DESC
    """
    rows = await conn.fetch(query, organization_id)
    return [User(**dict(row)) for row in rows]


async def create_organization(
    conn: Executor,
    *,
    name: str,
    slug: str,
    admin_user_id: UUID,
    two_factor_method: TwoFactorMethod = TwoFactorMethod.OTP,
) -> Organization:
    """Create a new organization.

    Args:
        conn: asyncpg pool or connection
        name: Organization display name
        slug: URL-friendly unique slug
        admin_user_id: The client_admin who created it
        two_factor_method: MFA policy for members

    Returns:
        Created Organization object

    Raises:
        asyncpg.UniqueViolationError: If the slug is taken
    """
    query = """
        INSERT INTO organizations (name, slug, admin_user_id, two_factor_method)
        VALUES ($1, $2, $3, $4)
        RETURNING *
    """
    row = await conn.fetchrow(query, name, slug, admin_user_id, two_factor_method)
    return Organization(**dict(row))


async def get_organization(conn: Executor, organization_id: UUID) -> Organization | None:
    row = await conn.fetchrow("SELECT * FROM organizations WHERE id = $1", organization_id)
    return Organization(**dict(row)) if row else None


async def get_organization_by_slug(conn: Executor, slug: str) -> Organization | None:
    row = await conn.fetchrow("SELECT * FROM organizations WHERE slug = $1", slug)
    return Organization(**dict(row)) if row else None


async def update_organization(
    conn: Executor,
    organization_id: UUID,
    *,
    name: str | None = None,
    two_factor_method: TwoFactorMethod | None = None,
) -> Organization:
    row = await conn.fetchrow(
        """
        UPDATE organizations
        SET name = COALESCE($2, name),
            two_factor_method = COALESCE($3, two_factor_method),
            updated_at = NOW()
        WHERE id = $1
        RETURNING *
        """,
        organization_id,
        name,
        two_factor_method,
    )
    return Organization(**dict(row))
