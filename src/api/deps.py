"""FastAPI dependencies that assemble services from the collaborators on app.state.

Collaborator handles are created and closed by the lifespan in ``src.server``;
services are cheap per-request objects built around them.
"""

from fastapi import Depends, Request

from src.config.settings import Settings, get_settings
from src.db.store import IdentityStore
from src.models.auth import ClientMeta
from src.services.auth import AuthService
from src.services.events import EventPublisher
from src.services.invites import InviteService
from src.services.notifications import NotificationClient
from src.services.organizations import OrganizationService
from src.services.tokens import TokenService
from src.services.two_factor import TwoFactorManager


def get_store(request: Request) -> IdentityStore:
    return IdentityStore(request.app.state.pool)


def get_notifier(request: Request) -> NotificationClient | None:
    return getattr(request.app.state, "notifier", None)


def get_events(request: Request) -> EventPublisher | None:
    return getattr(request.app.state, "events", None)


def get_two_factor(settings: Settings = Depends(get_settings)) -> TwoFactorManager:
    return TwoFactorManager(settings)


def get_token_service(
    store: IdentityStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> TokenService:
    return TokenService(store, settings)


def get_auth_service(
    store: IdentityStore = Depends(get_store),
    tokens: TokenService = Depends(get_token_service),
    two_factor: TwoFactorManager = Depends(get_two_factor),
    notifier: NotificationClient | None = Depends(get_notifier),
    settings: Settings = Depends(get_settings),
) -> AuthService:
    return AuthService(store, tokens, two_factor, notifier, settings)


def get_invite_service(
    store: IdentityStore = Depends(get_store),
    two_factor: TwoFactorManager = Depends(get_two_factor),
    notifier: NotificationClient | None = Depends(get_notifier),
    events: EventPublisher | None = Depends(get_events),
    settings: Settings = Depends(get_settings),
) -> InviteService:
    return InviteService(store, two_factor, notifier, events, settings)


def get_organization_service(store: IdentityStore = Depends(get_store)) -> OrganizationService:
    return OrganizationService(store)


def get_client_meta(request: Request) -> ClientMeta:
    """User agent and IP recorded on refresh tokens for audit."""
    return ClientMeta(
        user_agent=request.headers.get("user-agent"),
        ip_address=request.client.host if request.client else None,
    )
