"""Access and refresh token management.

- Access tokens are short-lived HS256 JWTs carrying user_id, email, role and
  org_id claims (stateless auth).
- Refresh tokens are opaque random strings persisted server-side. Every use
  rotates them: the presented token is revoked, linked to its successor and
  the successor is returned. A revoked token never works again.
"""

import secrets
from datetime import UTC, datetime, timedelta
from uuid import UUID

import jwt
import structlog

from src.config.constants import REFRESH_TOKEN_BYTES
from src.config.settings import Settings, get_settings
from src.db.store import IdentityStore
from src.models.auth import ClientMeta, RefreshToken, TokenPair, User
from src.utils.errors import AuthenticationError, ValidationError

log = structlog.get_logger()


class TokenService:
    def __init__(self, store: IdentityStore, settings: Settings | None = None) -> None:
        self.store = store
        self.settings = settings or get_settings()

    def issue_access_token(self, user: User) -> str:
        """Generate a signed access token for ``user``.

        Example:
            >>> token = tokens.issue_access_token(user)
            >>> # Token format: eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9...
        """
        now = datetime.now(UTC)
        payload = {
            "user_id": str(user.id),
            "email": user.email,
            "role": user.role.value,
            "org_id": str(user.organization_id) if user.organization_id else None,
            "type": "access",
            "iat": now,
            "exp": now + timedelta(minutes=self.settings.access_token_expire_minutes),
        }
        return jwt.encode(payload, self.settings.jwt_secret, algorithm=self.settings.jwt_algorithm)

    def decode_access_token(self, token: str) -> dict:
        """Decode and validate an access token.

        Raises:
            AuthenticationError: If the token is expired, tampered with, or not an access token
        """
        try:
            payload = jwt.decode(token, self.settings.jwt_secret, algorithms=[self.settings.jwt_algorithm])
        except jwt.ExpiredSignatureError as e:
            raise AuthenticationError("Token expired") from e
        except jwt.InvalidTokenError as e:
            raise AuthenticationError("Invalid token") from e

        if payload.get("type") != "access" or "user_id" not in payload:
            raise AuthenticationError("Invalid token")
        return payload

    def _new_refresh_value(self) -> tuple[str, datetime]:
        token = secrets.token_hex(REFRESH_TOKEN_BYTES)
        expires_at = datetime.now(UTC) + timedelta(days=self.settings.refresh_token_expire_days)
        return token, expires_at

    async def create_refresh_token(self, user_id: UUID, client: ClientMeta | None = None) -> RefreshToken:
        token, expires_at = self._new_refresh_value()
        return await self.store.create_refresh_token(
            token=token,
            user_id=user_id,
            expires_at=expires_at,
            client=client or ClientMeta(),
        )

    async def issue_pair(self, user: User, client: ClientMeta | None = None) -> TokenPair:
        refresh = await self.create_refresh_token(user.id, client)
        return TokenPair(access_token=self.issue_access_token(user), refresh_token=refresh.token)

    async def rotate(self, old_token: str | None, client: ClientMeta | None = None) -> TokenPair:
        """Exchange a refresh token for a new access/refresh pair.

        Raises:
            ValidationError: If no token was supplied
            AuthenticationError: If the token is unknown, expired, already revoked,
                or lost a concurrent rotation race
        """
        if not old_token:
            raise ValidationError("Refresh token required")

        new_token, expires_at = self._new_refresh_value()
        successor = await self.store.rotate_refresh_token(
            old_token,
            new_token=new_token,
            expires_at=expires_at,
            client=client or ClientMeta(),
        )
        if successor is None:
            existing = await self.store.get_refresh_token(old_token)
            if existing is not None and existing.is_revoked:
                # A revoked token being presented again means it leaked or was replayed.
                log.warning(
                    "refresh_token_replay",
                    user_id=str(existing.user_id),
                    replaced=existing.replaced_by is not None,
                    ip_address=client.ip_address if client else None,
                )
            raise AuthenticationError("Invalid or expired refresh token")

        user = await self.store.get_user_by_id(successor.user_id)
        if user is None or not user.is_active:
            await self.store.revoke_refresh_token(successor.token)
            raise AuthenticationError("Invalid or expired refresh token")

        log.info("refresh_token_rotated", user_id=str(user.id))
        return TokenPair(access_token=self.issue_access_token(user), refresh_token=successor.token)

    async def revoke(self, token: str | None) -> None:
        """Revoke a refresh token. Unknown or already revoked tokens are not an error."""
        if token:
            await self.store.revoke_refresh_token(token)

    async def revoke_all(self, user_id: UUID) -> int:
        count = await self.store.revoke_user_refresh_tokens(user_id)
        log.info("refresh_tokens_revoked", user_id=str(user_id), count=count)
        return count
