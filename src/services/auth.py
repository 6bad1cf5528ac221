"""Authentication service: credentials, second factor, and session issuance.

This module provides:
- bcrypt password hashing (adaptive work factor)
- the login state machine: credentials -> MFA challenge -> verification -> tokens
- TOTP enrollment, both inline at first login and out-of-band for signed-in users
- personal MFA method changes

The effective MFA method for a login is the organization's method when the
user belongs to one, otherwise the user's personal method, otherwise none.
"""

import asyncio
from datetime import UTC, datetime
from functools import lru_cache
from uuid import UUID

import bcrypt
import structlog

from src.config.settings import Settings, get_settings
from src.db.store import IdentityStore
from src.models.auth import (
    ClientMeta,
    LoginResult,
    MfaChangeResult,
    Organization,
    Role,
    TokenPair,
    TotpSetup,
    TwoFactorMethod,
    User,
    UserProfile,
)
from src.services import roles
from src.services.notifications import NotificationClient
from src.services.tokens import TokenService
from src.services.two_factor import TwoFactorManager
from src.utils.errors import AuthenticationError, AuthorizationError, NotFoundError, ValidationError

log = structlog.get_logger()


def hash_password(password: str, rounds: int = 12) -> str:
    """Hash password using bcrypt with auto-generated salt.

    Args:
        password: Plain text password to hash
        rounds: bcrypt cost factor

    Returns:
        bcrypt hash string (includes salt, cost factor, and hash)

    Example:
        >>> hash_password("SecurePassword123!")
        '$2b$12$LQv3c1yqBWVHxkd0LHAkCOYz6TtxMQJqhN8/LewY5GyYzS4HullRK'
    """
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode(), salt).decode()


def verify_password(password: str, password_hash: str) -> bool:
    """Verify password against bcrypt hash.

    Args:
        password: Plain text password to verify
        password_hash: bcrypt hash to compare against

    Returns:
        True if password matches hash, False otherwise

    Example:
        >>> hashed = hash_password("SecurePassword123!")
        >>> verify_password("SecurePassword123!", hashed)
        True
        >>> verify_password("WrongPassword", hashed)
        False
    """
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        return False


@lru_cache
def _dummy_hash(rounds: int) -> str:
    # Compared against for unknown emails so both failure paths cost one bcrypt check.
    return hash_password("dummy-password-for-timing", rounds)


def effective_two_factor_method(user: User, organization: Organization | None) -> TwoFactorMethod | None:
    if organization is not None and organization.two_factor_method:
        return organization.two_factor_method
    return user.two_factor_method


class AuthService:
    def __init__(
        self,
        store: IdentityStore,
        tokens: TokenService,
        two_factor: TwoFactorManager,
        notifier: NotificationClient | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.store = store
        self.tokens = tokens
        self.two_factor = two_factor
        self.notifier = notifier
        self.settings = settings or get_settings()

    # Credentials

    async def authenticate(self, email: str, password: str) -> User:
        """Check email and password.

        Unknown email, inactive account and wrong password all raise the same
        error; only the log line records which one it was.

        Raises:
            AuthenticationError: "Invalid credentials"
        """
        normalized = email.strip().lower()
        user = await self.store.get_user_by_email(normalized)

        if user is None:
            verify_password(password, _dummy_hash(self.settings.password_bcrypt_rounds))
            log.info("login_failed", reason="unknown_email")
            raise AuthenticationError("Invalid credentials")

        if not verify_password(password, user.password_hash):
            log.info("login_failed", reason="wrong_password", user_id=str(user.id))
            raise AuthenticationError("Invalid credentials")

        if not user.is_active:
            log.info("login_failed", reason="inactive", user_id=str(user.id))
            raise AuthenticationError("Invalid credentials")

        return user

    async def login(self, email: str, password: str, client: ClientMeta | None = None) -> LoginResult:
        user = await self.authenticate(email, password)
        challenge = await self.initiate_two_factor(user)
        if challenge.requires_two_factor:
            return challenge
        return await self.complete_login(user, client)

    async def complete_login(self, user: User, client: ClientMeta | None = None) -> LoginResult:
        """Issue an access/refresh pair for a user who passed every required factor."""
        if not user.is_active:
            raise AuthenticationError("Invalid credentials")

        await self.store.update_last_login(user.id)
        pair = await self.tokens.issue_pair(user, client)
        user = user.model_copy(update={"last_login_at": datetime.now(UTC)})

        log.info("login_succeeded", user_id=str(user.id), role=user.role.value)
        return LoginResult(
            requires_two_factor=False,
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            user=UserProfile.from_user(user),
        )

    async def start_session(self, user_id: UUID, client: ClientMeta | None = None) -> LoginResult:
        """Sign in a freshly onboarded user without a credentials round-trip."""
        user = await self.store.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return await self.complete_login(user, client)

    # Second factor

    async def _effective_method(self, user: User) -> TwoFactorMethod | None:
        organization = None
        if user.organization_id:
            organization = await self.store.get_organization(user.organization_id)
        return effective_two_factor_method(user, organization)

    async def _ensure_totp_allowed(self, user: User) -> None:
        # client_user follows the organization policy and cannot opt into TOTP on its own.
        if user.role == Role.CLIENT_USER and await self._effective_method(user) != TwoFactorMethod.TOTP:
            log.warning("totp_enrollment_denied", user_id=str(user.id), role=user.role.value)
            raise AuthorizationError("Your MFA method is managed by your organization")

    async def initiate_two_factor(self, user: User) -> LoginResult:
        method = await self._effective_method(user)
        if method is None:
            return LoginResult(requires_two_factor=False)
        if method == TwoFactorMethod.OTP:
            return await self._initiate_otp(user)
        return await self._initiate_totp(user)

    async def _initiate_otp(self, user: User) -> LoginResult:
        code = self.two_factor.generate_otp()
        await self.store.set_pending_otp(user.id, self.two_factor.hash_otp(code), self.two_factor.otp_expiry())
        await self._send_otp(user, code)

        return LoginResult(
            requires_two_factor=True,
            two_factor_method=TwoFactorMethod.OTP,
            user_id=user.id,
            message="OTP sent to your email",
        )

    async def _send_otp(self, user: User, code: str) -> None:
        if self.notifier is None:
            log.warning("otp_email_skipped", user_id=str(user.id), reason="no_notifier")
            return
        try:
            async with asyncio.timeout(self.settings.notification_timeout_seconds):
                await self.notifier.send_otp_email(user.email, code, self.settings.otp_expire_minutes)
        except Exception:
            # The user can log in again to get a fresh code.
            log.exception("otp_email_failed", user_id=str(user.id))

    async def _initiate_totp(self, user: User) -> LoginResult:
        if user.totp_enabled:
            return LoginResult(
                requires_two_factor=True,
                two_factor_method=TwoFactorMethod.TOTP,
                user_id=user.id,
                message="Please provide your TOTP token",
            )

        # First login under a TOTP policy: enroll inline instead of failing.
        secret = user.totp_secret
        if secret is None:
            secret, uri = self.two_factor.generate_totp_secret(user.email)
            await self.store.set_totp_secret(user.id, secret)
        else:
            uri = self.two_factor.provisioning_uri(secret, user.email)

        return LoginResult(
            requires_two_factor=True,
            two_factor_method=TwoFactorMethod.TOTP,
            user_id=user.id,
            message="Scan the QR code with your authenticator app and provide your TOTP token",
            requires_totp_setup=True,
            totp=TotpSetup(secret=secret, qr_code=self.two_factor.render_qr_code(uri)),
        )

    async def verify_otp(self, user_id: UUID, code: str) -> User:
        """Check an emailed code. A code is accepted at most once.

        Raises:
            NotFoundError: Unknown user
            ValidationError: No pending OTP, OTP expired (pending OTP is cleared), or wrong code
        """
        user = await self.store.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")

        if not user.otp_hash or not user.otp_expiry:
            raise ValidationError("No OTP found. Please login again.")

        if datetime.now(UTC) > user.otp_expiry:
            await self.store.clear_pending_otp(user.id)
            raise ValidationError("OTP expired. Please login again.")

        if not self.two_factor.verify_otp(code, user.otp_hash):
            log.info("otp_rejected", user_id=str(user.id))
            raise ValidationError("Invalid OTP")

        if not await self.store.consume_pending_otp(user.id, user.otp_hash):
            # A concurrent request used this code first.
            raise ValidationError("No OTP found. Please login again.")

        return user.model_copy(update={"otp_hash": None, "otp_expiry": None})

    async def verify_totp(self, user_id: UUID, code: str) -> User:
        """Check an authenticator code; completes inline enrollment on first success.

        Raises:
            NotFoundError: Unknown user
            ValidationError: TOTP is not the effective method, no TOTP secret, or wrong code
        """
        user = await self.store.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")

        if not user.totp_secret or await self._effective_method(user) != TwoFactorMethod.TOTP:
            raise ValidationError("TOTP not enabled")

        if not self.two_factor.verify_totp_token(code, user.totp_secret):
            log.info("totp_rejected", user_id=str(user.id))
            raise ValidationError("Invalid TOTP token")

        if not user.totp_enabled:
            enabled = await self.store.enable_totp(user.id)
            user = enabled or user.model_copy(update={"totp_enabled": True})
            log.info("totp_enrolled", user_id=str(user.id), inline=True)

        return user

    # Out-of-band TOTP enrollment

    async def setup_totp(self, user_id: UUID) -> TotpSetup:
        user = await self.store.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        await self._ensure_totp_allowed(user)

        secret, uri = self.two_factor.generate_totp_secret(user.email)
        await self.store.set_totp_secret(user.id, secret)
        return TotpSetup(secret=secret, qr_code=self.two_factor.render_qr_code(uri))

    async def confirm_totp(self, user_id: UUID, code: str) -> User:
        user = await self.store.get_user_by_id(user_id)
        if user is None or not user.totp_secret:
            raise ValidationError("TOTP not initialized")
        await self._ensure_totp_allowed(user)

        if not self.two_factor.verify_totp_token(code, user.totp_secret):
            raise ValidationError("Invalid TOTP token")

        # client_user keeps inheriting the organization's method
        method = None if user.role == Role.CLIENT_USER else TwoFactorMethod.TOTP
        enabled = await self.store.enable_totp(user.id, method)
        log.info("totp_enrolled", user_id=str(user.id), inline=False)
        return enabled or user

    async def change_mfa_method(self, user_id: UUID, method: str) -> MfaChangeResult:
        """Switch a user's personal MFA method.

        Raises:
            NotFoundError: Unknown user
            AuthorizationError: Role is client_user, whatever the requested method
            ValidationError: Method is not otp or totp
        """
        user = await self.store.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")

        if not roles.can_change_own_mfa(user.role):
            log.warning("mfa_change_denied", user_id=str(user.id), role=user.role.value)
            raise AuthorizationError("Your MFA method is managed by your organization")

        try:
            new_method = TwoFactorMethod(method)
        except ValueError:
            raise ValidationError("Invalid two-factor method") from None

        if new_method == TwoFactorMethod.OTP:
            await self.store.set_two_factor(
                user.id, two_factor_method=TwoFactorMethod.OTP, totp_secret=None, totp_enabled=False
            )
            log.info("mfa_method_changed", user_id=str(user.id), method=new_method.value)
            return MfaChangeResult(message="Two-factor method changed to OTP")

        secret, uri = self.two_factor.generate_totp_secret(user.email)
        await self.store.set_two_factor(
            user.id, two_factor_method=TwoFactorMethod.TOTP, totp_secret=secret, totp_enabled=False
        )
        log.info("mfa_method_changed", user_id=str(user.id), method=new_method.value)
        return MfaChangeResult(
            message="Two-factor method changed to TOTP. Confirm with a code from your authenticator app.",
            totp_setup=TotpSetup(secret=secret, qr_code=self.two_factor.render_qr_code(uri)),
            requires_totp_confirmation=True,
        )

    # Sessions

    async def refresh_access_token(self, refresh_token: str | None, client: ClientMeta | None = None) -> TokenPair:
        return await self.tokens.rotate(refresh_token, client)

    async def revoke_refresh_token(self, refresh_token: str) -> None:
        await self.tokens.revoke(refresh_token)

    async def logout(self, refresh_token: str | None) -> None:
        await self.tokens.revoke(refresh_token)

    async def logout_all(self, user_id: UUID) -> int:
        return await self.tokens.revoke_all(user_id)

    async def resolve_access_token(self, access_token: str) -> User:
        """Return the active user an access token belongs to."""
        claims = self.tokens.decode_access_token(access_token)
        try:
            user_id = UUID(claims["user_id"])
        except ValueError:
            raise AuthenticationError("Invalid token") from None

        user = await self.store.get_user_by_id(user_id)
        if user is None or not user.is_active:
            log.warning("access_token_user_rejected", user_id=str(user_id))
            raise AuthenticationError("User not found or inactive")
        return user

    async def get_profile(self, user_id: UUID) -> UserProfile:
        user = await self.store.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return UserProfile.from_user(user)
