import os

# Settings require a signing secret; set it before anything calls get_settings().
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-unit-tests-only-0123456789")

from unittest.mock import AsyncMock  # noqa: E402

import pytest  # noqa: E402

from src.config.settings import Settings  # noqa: E402
from src.services.auth import AuthService  # noqa: E402
from src.services.events import EventPublisher  # noqa: E402
from src.services.invites import InviteService  # noqa: E402
from src.services.notifications import NotificationClient  # noqa: E402
from src.services.organizations import OrganizationService  # noqa: E402
from src.services.tokens import TokenService  # noqa: E402
from src.services.two_factor import TwoFactorManager  # noqa: E402
from tests.fakes import InMemoryStore  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    return Settings(
        jwt_secret="test-secret-key-for-unit-tests-only-0123456789",
        password_bcrypt_rounds=4,
        otp_bcrypt_rounds=4,
        notification_timeout_seconds=0.5,
        event_publish_timeout_seconds=0.5,
    )


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def notifier() -> AsyncMock:
    return AsyncMock(spec=NotificationClient)


@pytest.fixture
def events() -> AsyncMock:
    mock = AsyncMock(spec=EventPublisher)
    mock.publish.return_value = 1
    return mock


@pytest.fixture
def two_factor(settings: Settings) -> TwoFactorManager:
    return TwoFactorManager(settings)


@pytest.fixture
def tokens(store: InMemoryStore, settings: Settings) -> TokenService:
    return TokenService(store, settings)  # type: ignore[arg-type]


@pytest.fixture
def auth_service(store, tokens, two_factor, notifier, settings) -> AuthService:
    return AuthService(store, tokens, two_factor, notifier, settings)


@pytest.fixture
def invite_service(store, two_factor, notifier, events, settings) -> InviteService:
    return InviteService(store, two_factor, notifier, events, settings)


@pytest.fixture
def organization_service(store) -> OrganizationService:
    return OrganizationService(store)
