"""Invite-driven onboarding.

Invite lifecycle: pending -> accepted | expired | revoked. Expiry is checked
lazily whenever an invite is read or accepted; ``expire_stale_invites`` is a
housekeeping sweep and never the gate. Re-inviting an email whose invite has
run out refreshes that same row with a new token and expiry instead of adding
a second one. Only the inviter who created an open invite may re-send it.

Notification email and the event bus are best-effort: a failure there is
logged and never fails the invite itself.
"""

import asyncio
import re
import secrets
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

import structlog

from src.config.constants import EVENT_ROUTES, INVITE_TOKEN_BYTES
from src.config.settings import Settings, get_settings
from src.db.store import IdentityStore
from src.models.auth import Organization, Role, TotpSetup, TwoFactorMethod, User, UserProfile
from src.models.invite import (
    AcceptedInvite,
    Invite,
    InviteCreated,
    InviteDetails,
    InviteListItem,
    InviteListRow,
    InviteStatus,
    InviteSummary,
    PersonInfo,
)
from src.services import roles
from src.services.auth import hash_password
from src.services.events import EventPublisher
from src.services.notifications import NotificationClient
from src.services.two_factor import TwoFactorManager
from src.utils.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError

log = structlog.get_logger()


def slugify(name: str) -> str:
    """Lowercase, collapse every run of non-alphanumerics to '-', trim dashes.

    Example:
        >>> slugify("Acme Corp, Inc.")
        'acme-corp-inc'
    """
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


class InviteService:
    def __init__(
        self,
        store: IdentityStore,
        two_factor: TwoFactorManager,
        notifier: NotificationClient | None = None,
        events: EventPublisher | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.store = store
        self.two_factor = two_factor
        self.notifier = notifier
        self.events = events
        self.settings = settings or get_settings()

    def _new_token(self) -> tuple[str, datetime]:
        token = secrets.token_hex(INVITE_TOKEN_BYTES)
        expires_at = datetime.now(UTC) + timedelta(days=self.settings.invite_expire_days)
        return token, expires_at

    # Creation

    async def create_invite(
        self,
        inviter: User,
        email: str,
        role: Role | str,
        organization_name: str | None = None,
    ) -> InviteCreated:
        """Invite ``email`` to join with ``role``.

        Raises:
            AuthorizationError: Inviter's role may not invite ``role``
            ConflictError: A user with this email already exists, or another
                inviter (or another role) already holds an open invite for it
            ValidationError: Missing organization name for a client_admin, or
                an inviter without organization inviting a client_user
        """
        normalized = (email or "").strip().lower()

        if not roles.can_invite(inviter.role, role):
            log.warning(
                "invite_denied",
                inviter_id=str(inviter.id),
                inviter_role=inviter.role.value,
                target_role=str(role),
            )
            raise AuthorizationError(f"You cannot invite users with role: {role}")
        role = Role(role)

        if await self.store.get_user_by_email(normalized):
            raise ConflictError("User with this email already exists")

        existing = await self.store.get_open_invite_by_email(normalized)
        if existing is not None:
            # Only the original inviter may re-send, and only for the same role.
            if existing.invited_by != inviter.id or existing.role != role:
                log.warning(
                    "invite_resend_denied",
                    invite_id=str(existing.id),
                    inviter_id=str(inviter.id),
                    target_role=role.value,
                )
                raise ConflictError("An invite for this email is already pending")
            return await self._resend_existing(existing, inviter)

        organization_id = None
        if role == Role.CLIENT_ADMIN:
            if not organization_name or not organization_name.strip():
                raise ValidationError("Organization name required for client_admin role")
            organization_name = organization_name.strip()
        elif role == Role.CLIENT_USER:
            if inviter.organization_id is None:
                raise ValidationError("You must belong to an organization to invite client users")
            organization_id = inviter.organization_id

        token, expires_at = self._new_token()
        invite = await self.store.create_invite(
            email=normalized,
            role=role,
            invited_by=inviter.id,
            organization_id=organization_id,
            organization_name=organization_name if role == Role.CLIENT_ADMIN else None,
            token=token,
            expires_at=expires_at,
        )
        log.info("invite_created", invite_id=str(invite.id), inviter_id=str(inviter.id), role=role.value)

        await self._notify(invite, inviter)
        return InviteCreated(message="Invitation created successfully", invite=_summary(invite))

    async def _resend_existing(self, invite: Invite, inviter: User) -> InviteCreated:
        if invite.status == InviteStatus.EXPIRED or invite.is_expired():
            token, expires_at = self._new_token()
            invite = await self.store.refresh_invite(invite.id, token, expires_at)
            log.info("invite_refreshed", invite_id=str(invite.id))
            message = "Existing expired invite refreshed and re-sent"
        else:
            log.info("invite_resent", invite_id=str(invite.id))
            message = "Active invite already existed; invitation re-sent"

        await self._notify(invite, inviter)
        return InviteCreated(message=message, invite=_summary(invite))

    async def _notify(self, invite: Invite, inviter: User) -> None:
        if self.notifier is not None:
            try:
                async with asyncio.timeout(self.settings.notification_timeout_seconds):
                    await self.notifier.send_invite_email(
                        invite.email, invite.token, inviter.full_name, invite.role.value
                    )
            except Exception:
                log.warning("invite_email_failed", invite_id=str(invite.id), exc_info=True)

        await self._publish(
            EVENT_ROUTES["invite_created"],
            {
                "invite_id": str(invite.id),
                "email": invite.email,
                "role": invite.role.value,
                "invited_by": str(inviter.id),
                "inviter_name": inviter.full_name,
                "expires_at": invite.expires_at.isoformat(),
            },
        )

    async def _publish(self, routing_key: str, payload: dict[str, Any]) -> None:
        if self.events is None:
            return
        try:
            async with asyncio.timeout(self.settings.event_publish_timeout_seconds):
                await self.events.publish(routing_key, payload)
        except Exception:
            log.warning("event_publish_failed", routing_key=routing_key, exc_info=True)

    # Acceptance

    async def accept_invite(
        self,
        token: str,
        first_name: str,
        last_name: str,
        password: str,
        requested_two_factor_method: TwoFactorMethod | str | None = None,
    ) -> AcceptedInvite:
        """Create the invited account and bootstrap its MFA.

        A client_admin invite with an organization name also creates that
        organization, owned by the new user. Everything is written in one
        transaction, so a failure leaves neither an orphan user nor an orphan
        organization.

        Raises:
            NotFoundError: Unknown token
            ValidationError: Invite expired, revoked or already used
            ConflictError: Organization slug or email already taken
        """
        invite = await self.store.get_invite_by_token(token)
        if invite is None:
            raise NotFoundError("Invalid invite token")

        if not invite.is_valid():
            if invite.status == InviteStatus.PENDING:
                await self.store.mark_invite_expired(invite.id)
            raise ValidationError("Invite has expired or is no longer valid")

        requested = None
        if requested_two_factor_method and invite.role != Role.CLIENT_USER:
            try:
                requested = TwoFactorMethod(requested_two_factor_method)
            except ValueError:
                raise ValidationError("Invalid two-factor method") from None
        password_hash = hash_password(password, self.settings.password_bcrypt_rounds)

        async with self.store.transaction() as tx:
            if invite.role == Role.CLIENT_ADMIN and invite.organization_name:
                user, organization = await self._create_admin_with_organization(
                    tx, invite, first_name, last_name, password_hash
                )
            else:
                user, organization = await self._create_member(tx, invite, first_name, last_name, password_hash)

            user, totp_setup, method = await self._bootstrap_two_factor(tx, user, organization, requested)

            if not await tx.mark_invite_accepted(invite.id, user.id):
                raise ValidationError("Invite has expired or is no longer valid")

        log.info(
            "invite_accepted",
            invite_id=str(invite.id),
            user_id=str(user.id),
            role=user.role.value,
            two_factor_method=method.value if method else None,
        )
        await self._publish(
            EVENT_ROUTES["invite_accepted"],
            {
                "invite_id": str(invite.id),
                "user_id": str(user.id),
                "email": user.email,
                "role": user.role.value,
                "invited_by": str(invite.invited_by),
            },
        )

        return AcceptedInvite(
            user=UserProfile.from_user(user),
            totp_setup=totp_setup,
            requires_totp_setup=method == TwoFactorMethod.TOTP,
        )

    async def _create_admin_with_organization(
        self,
        tx: IdentityStore,
        invite: Invite,
        first_name: str,
        last_name: str,
        password_hash: str,
    ) -> tuple[User, Organization]:
        assert invite.organization_name is not None
        slug = slugify(invite.organization_name)
        if not slug:
            raise ValidationError("Organization name must contain letters or digits")

        if await tx.get_organization_by_slug(slug):
            raise ConflictError("Organization with this name already exists")

        user = await tx.create_user(
            email=invite.email,
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            role=invite.role,
            invited_by=invite.invited_by,
        )
        organization = await tx.create_organization(
            name=invite.organization_name,
            slug=slug,
            admin_user_id=user.id,
            two_factor_method=TwoFactorMethod.OTP,
        )
        user = await tx.set_user_organization(user.id, organization.id)
        log.info("organization_created", organization_id=str(organization.id), slug=slug)
        return user, organization

    async def _create_member(
        self,
        tx: IdentityStore,
        invite: Invite,
        first_name: str,
        last_name: str,
        password_hash: str,
    ) -> tuple[User, Organization | None]:
        organization = None
        if invite.organization_id is not None:
            organization = await tx.get_organization(invite.organization_id)

        user = await tx.create_user(
            email=invite.email,
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            role=invite.role,
            organization_id=invite.organization_id,
            invited_by=invite.invited_by,
        )
        return user, organization

    async def _bootstrap_two_factor(
        self,
        tx: IdentityStore,
        user: User,
        organization: Organization | None,
        requested: TwoFactorMethod | None,
    ) -> tuple[User, TotpSetup | None, TwoFactorMethod | None]:
        """Pick the new account's MFA method and start TOTP enrollment if needed.

        client_user always gets the organization's method and whatever the
        client asked for is ignored; member MFA policy belongs to the
        organization. Other roles get the requested method, else the
        organization's, else none.
        """
        if user.role == Role.CLIENT_USER:
            if organization is None:
                raise ValidationError("Client user must belong to an organization")
            method = organization.two_factor_method or TwoFactorMethod.OTP
        else:
            method = requested or (organization.two_factor_method if organization else None)
            if method is not None:
                user = await tx.set_two_factor(
                    user.id,
                    two_factor_method=method,
                    totp_secret=user.totp_secret,
                    totp_enabled=user.totp_enabled,
                )

        totp_setup = None
        if method == TwoFactorMethod.TOTP and not user.totp_enabled:
            secret, uri = self.two_factor.generate_totp_secret(user.email)
            await tx.set_totp_secret(user.id, secret)
            user = user.model_copy(update={"totp_secret": secret})
            totp_setup = TotpSetup(secret=secret, qr_code=self.two_factor.render_qr_code(uri))

        return user, totp_setup, method

    # Reads and revocation

    async def get_invite_details(self, token: str) -> InviteDetails:
        invite = await self.store.get_invite_by_token(token)
        if invite is None:
            raise NotFoundError("Invalid invite token")

        if not invite.is_valid():
            raise ValidationError("Invite has expired or is no longer valid")

        inviter = await self.store.get_user_by_id(invite.invited_by)
        organization_name = invite.organization_name
        if organization_name is None and invite.organization_id is not None:
            organization = await self.store.get_organization(invite.organization_id)
            organization_name = organization.name if organization else None

        return InviteDetails(
            email=invite.email,
            role=invite.role,
            organization_id=invite.organization_id,
            organization_name=organization_name,
            invited_by=PersonInfo(name=inviter.full_name, email=inviter.email) if inviter else None,
            expires_at=invite.expires_at,
        )

    async def list_invites(self, inviter: User, status: InviteStatus | str | None = None) -> list[InviteListItem]:
        if not roles.can_manage_invites(inviter.role):
            raise AuthorizationError("Insufficient permissions")

        if status:
            try:
                status = InviteStatus(status)
            except ValueError:
                raise ValidationError(f"Invalid invite status: {status}") from None

        rows = await self.store.list_invites_by_inviter(inviter.id, status=status or None)
        return [_list_item(row) for row in rows]

    async def revoke_invite(self, invite_id: UUID, inviter: User) -> None:
        if not roles.can_manage_invites(inviter.role):
            raise AuthorizationError("Insufficient permissions")

        invite = await self.store.get_invite_for_inviter(invite_id, inviter.id)
        if invite is None:
            raise NotFoundError("Invite not found")

        if invite.status != InviteStatus.PENDING or not await self.store.revoke_invite(invite.id):
            raise ValidationError("Can only revoke pending invites")

        log.info("invite_revoked", invite_id=str(invite.id), inviter_id=str(inviter.id))

    async def expire_stale_invites(self) -> int:
        count = await self.store.expire_stale_invites()
        if count:
            log.info("stale_invites_expired", count=count)
        return count


def _summary(invite: Invite) -> InviteSummary:
    return InviteSummary(
        id=invite.id,
        email=invite.email,
        role=invite.role,
        expires_at=invite.expires_at,
        token=invite.token,
    )


def _list_item(row: InviteListRow) -> InviteListItem:
    accepted_user = None
    if row.accepted_user_id is not None and row.accepted_email:
        name = f"{row.accepted_first_name or ''} {row.accepted_last_name or ''}".strip()
        accepted_user = PersonInfo(name=name, email=row.accepted_email)

    return InviteListItem(
        id=row.id,
        email=row.email,
        role=row.role,
        status=row.status,
        organization_name=row.organization_name,
        created_at=row.created_at,
        expires_at=row.expires_at,
        accepted_at=row.accepted_at,
        accepted_user=accepted_user,
    )
