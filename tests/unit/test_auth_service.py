"""Unit tests for the login / MFA state machine."""

import asyncio
from datetime import UTC, datetime, timedelta

import pyotp
import pytest

from src.models.auth import Role, TwoFactorMethod
from src.services.auth import AuthService, effective_two_factor_method, hash_password, verify_password
from src.utils.errors import AuthenticationError, AuthorizationError, NotFoundError, ValidationError
from tests.fakes import seed_organization, seed_user

PASSWORD = "Passw0rd!"


def _sent_otp(notifier) -> str:
    email, code, _minutes = notifier.send_otp_email.call_args.args
    return code


# --------------- passwords ---------------


def test_hash_password_round_trip():
    hashed = hash_password("SecurePassword123!", rounds=4)
    assert hashed.startswith("$2b$04$")
    assert verify_password("SecurePassword123!", hashed)
    assert not verify_password("WrongPassword", hashed)


def test_verify_password_with_corrupt_hash():
    assert verify_password("anything", "not-a-hash") is False


# --------------- authenticate / login ---------------


async def test_login_without_mfa_returns_tokens(auth_service: AuthService, store, tokens):
    """User with no MFA gets tokens straight away."""
    user = seed_user(store, email="a@b.com", password=PASSWORD, role=Role.OPERATOR)

    result = await auth_service.login("a@b.com", PASSWORD)

    assert result.requires_two_factor is False
    assert result.access_token and result.refresh_token
    assert result.user.id == user.id
    assert result.user.last_login_at is not None
    assert tokens.decode_access_token(result.access_token)["user_id"] == str(user.id)


async def test_login_normalizes_email(auth_service: AuthService, store):
    seed_user(store, email="a@b.com", password=PASSWORD)
    result = await auth_service.login("  A@B.com ", PASSWORD)
    assert result.access_token


@pytest.mark.parametrize("email,password", [("a@b.com", "wrong"), ("nobody@b.com", PASSWORD)])
async def test_login_bad_credentials(auth_service: AuthService, store, email, password):
    seed_user(store, email="a@b.com", password=PASSWORD)
    with pytest.raises(AuthenticationError, match="Invalid credentials"):
        await auth_service.login(email, password)


async def test_login_inactive_user_is_indistinguishable(auth_service: AuthService, store):
    seed_user(store, email="a@b.com", password=PASSWORD, is_active=False)
    with pytest.raises(AuthenticationError, match="Invalid credentials"):
        await auth_service.login("a@b.com", PASSWORD)


async def test_authenticated_user_never_serializes_secrets(auth_service: AuthService, store):
    seed_user(
        store,
        email="a@b.com",
        password=PASSWORD,
        totp_secret=pyotp.random_base32(),
        otp_hash="$2b$04$abc",
        otp_expiry=datetime.now(UTC),
    )
    user = await auth_service.authenticate("a@b.com", PASSWORD)

    dumped = user.model_dump()
    for field in ("password_hash", "totp_secret", "otp_hash", "otp_expiry"):
        assert field not in dumped
        assert field not in repr(user)

    result = await auth_service.complete_login(user)
    body = result.model_dump_json(by_alias=True)
    assert "passwordHash" not in body and "totpSecret" not in body and "$2b$" not in body


# --------------- OTP ---------------


async def test_otp_login_flow(auth_service: AuthService, store, notifier):
    user = seed_user(
        store, email="a@b.com", password=PASSWORD, role=Role.OPERATOR, two_factor_method=TwoFactorMethod.OTP
    )

    challenge = await auth_service.login("a@b.com", PASSWORD)

    assert challenge.requires_two_factor is True
    assert challenge.two_factor_method == TwoFactorMethod.OTP
    assert challenge.user_id == user.id
    assert challenge.message == "OTP sent to your email"
    assert challenge.access_token is None
    notifier.send_otp_email.assert_awaited_once()
    assert store.users[user.id].otp_hash is not None

    code = _sent_otp(notifier)
    wrong = "000000" if code != "000000" else "111111"
    with pytest.raises(ValidationError, match="Invalid OTP"):
        await auth_service.verify_otp(user.id, wrong)

    verified = await auth_service.verify_otp(user.id, code)
    assert verified.id == user.id
    assert store.users[user.id].otp_hash is None
    assert store.users[user.id].otp_expiry is None


async def test_otp_is_single_use(auth_service: AuthService, store, notifier):
    user = seed_user(store, email="a@b.com", password=PASSWORD, two_factor_method=TwoFactorMethod.OTP)
    await auth_service.login("a@b.com", PASSWORD)
    code = _sent_otp(notifier)

    await auth_service.verify_otp(user.id, code)
    with pytest.raises(ValidationError, match="No OTP found"):
        await auth_service.verify_otp(user.id, code)


async def test_concurrent_otp_verification_has_one_winner(auth_service: AuthService, store, notifier):
    user = seed_user(store, email="a@b.com", password=PASSWORD, two_factor_method=TwoFactorMethod.OTP)
    await auth_service.login("a@b.com", PASSWORD)
    code = _sent_otp(notifier)

    results = await asyncio.gather(
        auth_service.verify_otp(user.id, code),
        auth_service.verify_otp(user.id, code),
        return_exceptions=True,
    )

    assert sum(not isinstance(r, Exception) for r in results) == 1
    assert sum(isinstance(r, ValidationError) for r in results) == 1


async def test_expired_otp_is_rejected_and_cleared(auth_service: AuthService, store, notifier):
    user = seed_user(store, email="a@b.com", password=PASSWORD, two_factor_method=TwoFactorMethod.OTP)
    await auth_service.login("a@b.com", PASSWORD)
    code = _sent_otp(notifier)
    store.users[user.id] = store.users[user.id].model_copy(
        update={"otp_expiry": datetime.now(UTC) - timedelta(seconds=1)}
    )

    with pytest.raises(ValidationError, match="OTP expired"):
        await auth_service.verify_otp(user.id, code)
    assert store.users[user.id].otp_hash is None


async def test_verify_otp_without_pending_code(auth_service: AuthService, store):
    user = seed_user(store, email="a@b.com")
    with pytest.raises(ValidationError, match="No OTP found"):
        await auth_service.verify_otp(user.id, "123456")


async def test_verify_otp_unknown_user(auth_service: AuthService):
    from uuid import uuid4

    with pytest.raises(NotFoundError):
        await auth_service.verify_otp(uuid4(), "123456")


async def test_otp_email_failure_does_not_fail_login(auth_service: AuthService, store, notifier):
    seed_user(store, email="a@b.com", password=PASSWORD, two_factor_method=TwoFactorMethod.OTP)
    notifier.send_otp_email.side_effect = RuntimeError("mailer down")

    challenge = await auth_service.login("a@b.com", PASSWORD)

    assert challenge.requires_two_factor is True


async def test_organization_method_overrides_personal_method(auth_service: AuthService, store, notifier):
    admin = seed_user(
        store, email="admin@acme.com", password=PASSWORD, role=Role.CLIENT_ADMIN, two_factor_method=TwoFactorMethod.TOTP
    )
    organization = seed_organization(store, admin, two_factor_method=TwoFactorMethod.OTP)

    assert effective_two_factor_method(store.users[admin.id], organization) == TwoFactorMethod.OTP
    challenge = await auth_service.login("admin@acme.com", PASSWORD)
    assert challenge.two_factor_method == TwoFactorMethod.OTP


# --------------- TOTP ---------------


async def test_first_totp_login_enrolls_inline(auth_service: AuthService, store):
    user = seed_user(store, email="a@b.com", password=PASSWORD, two_factor_method=TwoFactorMethod.TOTP)

    challenge = await auth_service.login("a@b.com", PASSWORD)

    assert challenge.requires_two_factor is True
    assert challenge.requires_totp_setup is True
    assert challenge.totp.qr_code.startswith("data:image/png;base64,")
    secret = store.users[user.id].totp_secret
    assert challenge.totp.secret == secret

    # A second login before confirming reuses the same secret.
    again = await auth_service.login("a@b.com", PASSWORD)
    assert again.totp.secret == secret

    verified = await auth_service.verify_totp(user.id, pyotp.TOTP(secret).now())
    assert verified.totp_enabled
    assert store.users[user.id].totp_enabled


async def test_enrolled_totp_login_challenge(auth_service: AuthService, store):
    secret = pyotp.random_base32()
    user = seed_user(
        store,
        email="a@b.com",
        password=PASSWORD,
        two_factor_method=TwoFactorMethod.TOTP,
        totp_secret=secret,
        totp_enabled=True,
    )

    challenge = await auth_service.login("a@b.com", PASSWORD)

    assert challenge.message == "Please provide your TOTP token"
    assert challenge.totp is None
    assert challenge.requires_totp_setup is None
    with pytest.raises(ValidationError, match="Invalid TOTP token"):
        await auth_service.verify_totp(user.id, "000000" if pyotp.TOTP(secret).now() != "000000" else "111111")
    assert (await auth_service.verify_totp(user.id, pyotp.TOTP(secret).now())).id == user.id


async def test_verify_totp_without_secret(auth_service: AuthService, store):
    user = seed_user(store, email="a@b.com")
    with pytest.raises(ValidationError, match="TOTP not enabled"):
        await auth_service.verify_totp(user.id, "123456")


async def test_setup_and_confirm_totp(auth_service: AuthService, store):
    user = seed_user(store, email="a@b.com", role=Role.OPERATOR)

    setup = await auth_service.setup_totp(user.id)
    assert store.users[user.id].totp_secret == setup.secret
    assert not store.users[user.id].totp_enabled

    confirmed = await auth_service.confirm_totp(user.id, pyotp.TOTP(setup.secret).now())
    assert confirmed.totp_enabled
    assert confirmed.two_factor_method == TwoFactorMethod.TOTP


async def test_confirm_totp_for_client_user_keeps_inherited_method(auth_service: AuthService, store):
    admin = seed_user(store, email="admin@acme.com", role=Role.CLIENT_ADMIN)
    organization = seed_organization(store, admin, two_factor_method=TwoFactorMethod.TOTP)
    member = seed_user(store, email="c@d.com", role=Role.CLIENT_USER, organization_id=organization.id)

    setup = await auth_service.setup_totp(member.id)
    confirmed = await auth_service.confirm_totp(member.id, pyotp.TOTP(setup.secret).now())

    assert confirmed.totp_enabled
    assert confirmed.two_factor_method is None


async def test_client_user_in_otp_organization_cannot_enroll_totp(auth_service: AuthService, store):
    admin = seed_user(store, email="admin@acme.com", role=Role.CLIENT_ADMIN)
    organization = seed_organization(store, admin, two_factor_method=TwoFactorMethod.OTP)
    member = seed_user(store, email="c@d.com", role=Role.CLIENT_USER, organization_id=organization.id)

    with pytest.raises(AuthorizationError):
        await auth_service.setup_totp(member.id)
    assert store.users[member.id].totp_secret is None

    # A secret planted some other way still cannot be confirmed.
    secret = pyotp.random_base32()
    store.users[member.id] = store.users[member.id].model_copy(update={"totp_secret": secret})
    with pytest.raises(AuthorizationError):
        await auth_service.confirm_totp(member.id, pyotp.TOTP(secret).now())
    assert not store.users[member.id].totp_enabled


async def test_verify_totp_rejected_when_organization_uses_otp(auth_service: AuthService, store):
    admin = seed_user(store, email="admin@acme.com", role=Role.CLIENT_ADMIN)
    organization = seed_organization(store, admin, two_factor_method=TwoFactorMethod.OTP)
    secret = pyotp.random_base32()
    member = seed_user(
        store,
        email="c@d.com",
        role=Role.CLIENT_USER,
        organization_id=organization.id,
        totp_secret=secret,
        totp_enabled=True,
    )

    with pytest.raises(ValidationError, match="TOTP not enabled"):
        await auth_service.verify_totp(member.id, pyotp.TOTP(secret).now())


async def test_verify_totp_follows_organization_over_personal_method(auth_service: AuthService, store):
    secret = pyotp.random_base32()
    admin = seed_user(
        store,
        email="admin@acme.com",
        role=Role.CLIENT_ADMIN,
        two_factor_method=TwoFactorMethod.TOTP,
        totp_secret=secret,
        totp_enabled=True,
    )
    seed_organization(store, admin, two_factor_method=TwoFactorMethod.OTP)

    with pytest.raises(ValidationError, match="TOTP not enabled"):
        await auth_service.verify_totp(admin.id, pyotp.TOTP(secret).now())


async def test_confirm_totp_requires_setup(auth_service: AuthService, store):
    user = seed_user(store, email="a@b.com")
    with pytest.raises(ValidationError, match="TOTP not initialized"):
        await auth_service.confirm_totp(user.id, "123456")


# --------------- MFA method change ---------------


@pytest.mark.parametrize("method", ["otp", "totp", "sms", ""])
async def test_client_user_can_never_change_mfa(auth_service: AuthService, store, method):
    admin = seed_user(store, email="admin@acme.com", role=Role.CLIENT_ADMIN)
    organization = seed_organization(store, admin)
    member = seed_user(store, email="c@d.com", role=Role.CLIENT_USER, organization_id=organization.id)

    with pytest.raises(AuthorizationError):
        await auth_service.change_mfa_method(member.id, method)


async def test_change_mfa_to_otp_clears_totp(auth_service: AuthService, store):
    user = seed_user(
        store,
        email="a@b.com",
        role=Role.OPERATOR,
        two_factor_method=TwoFactorMethod.TOTP,
        totp_secret=pyotp.random_base32(),
        totp_enabled=True,
    )

    result = await auth_service.change_mfa_method(user.id, "otp")

    assert result.requires_totp_confirmation is False
    assert result.totp_setup is None
    stored = store.users[user.id]
    assert stored.two_factor_method == TwoFactorMethod.OTP
    assert stored.totp_secret is None
    assert not stored.totp_enabled


async def test_change_mfa_to_totp_requires_confirmation(auth_service: AuthService, store):
    user = seed_user(store, email="a@b.com", role=Role.SITE_ADMIN)

    result = await auth_service.change_mfa_method(user.id, "totp")

    assert result.requires_totp_confirmation is True
    assert result.totp_setup.secret == store.users[user.id].totp_secret
    assert store.users[user.id].two_factor_method == TwoFactorMethod.TOTP
    assert not store.users[user.id].totp_enabled

    body = result.model_dump(by_alias=True)
    assert body["requiresTOTPConfirmation"] is True


async def test_change_mfa_rejects_unknown_method(auth_service: AuthService, store):
    user = seed_user(store, email="a@b.com", role=Role.OPERATOR)
    with pytest.raises(ValidationError, match="Invalid two-factor method"):
        await auth_service.change_mfa_method(user.id, "sms")


# --------------- sessions ---------------


async def test_refresh_then_replay(auth_service: AuthService, store):
    seed_user(store, email="a@b.com", password=PASSWORD)
    login = await auth_service.login("a@b.com", PASSWORD)

    pair = await auth_service.refresh_access_token(login.refresh_token)
    assert pair.refresh_token != login.refresh_token

    with pytest.raises(AuthenticationError):
        await auth_service.refresh_access_token(login.refresh_token)


async def test_logout_is_idempotent(auth_service: AuthService, store):
    seed_user(store, email="a@b.com", password=PASSWORD)
    login = await auth_service.login("a@b.com", PASSWORD)

    await auth_service.logout(login.refresh_token)
    await auth_service.logout(login.refresh_token)
    await auth_service.logout(None)

    with pytest.raises(AuthenticationError):
        await auth_service.refresh_access_token(login.refresh_token)


async def test_logout_all(auth_service: AuthService, store):
    user = seed_user(store, email="a@b.com", password=PASSWORD)
    await auth_service.login("a@b.com", PASSWORD)
    await auth_service.login("a@b.com", PASSWORD)

    assert await auth_service.logout_all(user.id) == 2


async def test_resolve_access_token(auth_service: AuthService, store, tokens):
    user = seed_user(store, email="a@b.com")
    token = tokens.issue_access_token(user)

    assert (await auth_service.resolve_access_token(token)).id == user.id

    store.users[user.id] = user.model_copy(update={"is_active": False})
    with pytest.raises(AuthenticationError, match="User not found or inactive"):
        await auth_service.resolve_access_token(token)


async def test_get_profile(auth_service: AuthService, store):
    user = seed_user(store, email="a@b.com", first_name="Ada", last_name="Lovelace")
    profile = await auth_service.get_profile(user.id)
    assert profile.email == "a@b.com"
    assert profile.first_name == "Ada"
