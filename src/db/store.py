"""Persistence collaborator handed to the identity services.

``IdentityStore`` binds the query modules to one executor: the pool for
independent statements, or a single connection inside ``transaction()`` for
multi-step writes. Services depend only on this surface, which is what the
in-memory fake in the test suite mirrors.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any
from uuid import UUID

import asyncpg

from src.db.pool import Executor
from src.db.queries import invites as invite_queries
from src.db.queries import refresh_tokens as token_queries
from src.db.queries import users as user_queries
from src.models.auth import ClientMeta, Organization, RefreshToken, TwoFactorMethod, User
from src.models.invite import Invite, InviteListRow, InviteStatus
from src.utils.errors import ConflictError


class IdentityStore:
    def __init__(self, executor: Executor) -> None:
        self._executor = executor

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["IdentityStore"]:
        """Yield a store whose statements all run in one transaction."""
        if isinstance(self._executor, asyncpg.Pool):
            async with self._executor.acquire() as conn, conn.transaction():
                yield IdentityStore(conn)
        else:
            async with self._executor.transaction():
                yield self

    async def ping(self) -> bool:
        return await self._executor.fetchval("SELECT 1") == 1

    # Users

    async def get_user_by_email(self, email: str) -> User | None:
        return await user_queries.get_user_by_email(self._executor, email)

    async def get_user_by_id(self, user_id: UUID) -> User | None:
        return await user_queries.get_user_by_id(self._executor, user_id)

    async def create_user(self, **fields: Any) -> User:
        try:
            return await user_queries.create_user(self._executor, **fields)
        except asyncpg.UniqueViolationError as e:
            raise ConflictError("User with this email already exists") from e

    async def set_user_organization(self, user_id: UUID, organization_id: UUID) -> User:
        return await user_queries.set_user_organization(self._executor, user_id, organization_id)

    async def update_last_login(self, user_id: UUID) -> None:
        await user_queries.update_last_login(self._executor, user_id)

    async def set_pending_otp(self, user_id: UUID, otp_hash: str, otp_expiry: datetime) -> None:
        await user_queries.set_pending_otp(self._executor, user_id, otp_hash, otp_expiry)

    async def consume_pending_otp(self, user_id: UUID, otp_hash: str) -> bool:
        return await user_queries.consume_pending_otp(self._executor, user_id, otp_hash)

    async def clear_pending_otp(self, user_id: UUID) -> None:
        await user_queries.clear_pending_otp(self._executor, user_id)

    async def set_totp_secret(self, user_id: UUID, secret: str) -> None:
        await user_queries.set_totp_secret(self._executor, user_id, secret)

    async def enable_totp(
        self, user_id: UUID, two_factor_method: TwoFactorMethod | None = None
    ) -> User | None:
        return await user_queries.enable_totp(self._executor, user_id, two_factor_method)

    async def set_two_factor(
        self,
        user_id: UUID,
        *,
        two_factor_method: TwoFactorMethod | None,
        totp_secret: str | None,
        totp_enabled: bool,
    ) -> User:
        return await user_queries.set_two_factor(
            self._executor,
            user_id,
            two_factor_method=two_factor_method,
            totp_secret=totp_secret,
            totp_enabled=totp_enabled,
        )

    async def list_organization_users(self, organization_id: UUID) -> list[User]:
        return await user_queries.list_organization_users(self._executor, organization_id)

    # Organizations

    async def create_organization(self, **fields: Any) -> Organization:
        try:
            return await user_queries.create_organization(self._executor, **fields)
        except asyncpg.UniqueViolationError as e:
            raise ConflictError("Organization with this name already exists") from e

    async def get_organization(self, organization_id: UUID) -> Organization | None:
        return await user_queries.get_organization(self._executor, organization_id)

    async def get_organization_by_slug(self, slug: str) -> Organization | None:
        return await user_queries.get_organization_by_slug(self._executor, slug)

    async def update_organization(
        self,
        organization_id: UUID,
        *,
        name: str | None = None,
        two_factor_method: TwoFactorMethod | None = None,
    ) -> Organization:
        return await user_queries.update_organization(
            self._executor, organization_id, name=name, two_factor_method=two_factor_method
        )

    # Invites

    async def create_invite(self, **fields: Any) -> Invite:
        return await invite_queries.create_invite(self._executor, **fields)

    async def get_invite_by_token(self, token: str) -> Invite | None:
        return await invite_queries.get_invite_by_token(self._executor, token)

    async def get_open_invite_by_email(self, email: str) -> Invite | None:
        return await invite_queries.get_open_invite_by_email(self._executor, email)

    async def get_invite_for_inviter(self, invite_id: UUID, inviter_id: UUID) -> Invite | None:
        return await invite_queries.get_invite_for_inviter(self._executor, invite_id, inviter_id)

    async def refresh_invite(self, invite_id: UUID, token: str, expires_at: datetime) -> Invite:
        return await invite_queries.refresh_invite(self._executor, invite_id, token, expires_at)

    async def mark_invite_expired(self, invite_id: UUID) -> None:
        await invite_queries.mark_invite_expired(self._executor, invite_id)

    async def mark_invite_accepted(self, invite_id: UUID, user_id: UUID) -> bool:
        return await invite_queries.mark_invite_accepted(self._executor, invite_id, user_id)

    async def revoke_invite(self, invite_id: UUID) -> bool:
        return await invite_queries.revoke_invite(self._executor, invite_id)

    async def list_invites_by_inviter(
        self, inviter_id: UUID, *, status: InviteStatus | None = None
    ) -> list[InviteListRow]:
        return await invite_queries.list_invites_by_inviter(self._executor, inviter_id, status=status)

    async def expire_stale_invites(self) -> int:
        return await invite_queries.expire_stale_invites(self._executor)

    # Refresh tokens

    async def create_refresh_token(
        self, *, token: str, user_id: UUID, expires_at: datetime, client: ClientMeta
    ) -> RefreshToken:
        return await token_queries.create_refresh_token(
            self._executor, token=token, user_id=user_id, expires_at=expires_at, client=client
        )

    async def get_refresh_token(self, token: str) -> RefreshToken | None:
        return await token_queries.get_refresh_token(self._executor, token)

    async def rotate_refresh_token(
        self, old_token: str, *, new_token: str, expires_at: datetime, client: ClientMeta
    ) -> RefreshToken | None:
        async with self.transaction() as tx:
            return await token_queries.rotate_refresh_token(
                tx._executor,  # type: ignore[arg-type]
                old_token,
                new_token=new_token,
                expires_at=expires_at,
                client=client,
            )

    async def revoke_refresh_token(self, token: str) -> None:
        await token_queries.revoke_refresh_token(self._executor, token)

    async def revoke_user_refresh_tokens(self, user_id: UUID) -> int:
        return await token_queries.revoke_user_refresh_tokens(self._executor, user_id)

    async def purge_expired_refresh_tokens(self, before: datetime) -> int:
        return await token_queries.purge_expired_refresh_tokens(self._executor, before)
