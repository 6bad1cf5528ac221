"""Authentication API routes: login, second factor, sessions and MFA management.

Endpoints:
- POST /auth/login - Check credentials, return tokens or a second-factor challenge
- POST /auth/verify-otp - Complete login with an emailed code
- POST /auth/verify-totp - Complete login (or inline enrollment) with an authenticator code
- POST /auth/totp/setup - Start TOTP enrollment for the signed-in user
- POST /auth/totp/confirm - Finish TOTP enrollment
- POST /auth/mfa/change - Change the signed-in user's MFA method
- POST /auth/refresh - Rotate a refresh token
- POST /auth/logout - Revoke a refresh token
- POST /auth/logout-all - Revoke every refresh token of the signed-in user
- GET /auth/profile - Current user profile
"""

from fastapi import APIRouter, Depends

from src.api.deps import get_auth_service, get_client_meta
from src.api.middleware.auth import get_current_user
from src.models.api import MessageResponse
from src.models.auth import (
    ChangeMfaRequest,
    ClientMeta,
    LoginRequest,
    LoginResult,
    MfaChangeResult,
    ProfileResponse,
    RefreshRequest,
    TokenPairResponse,
    TotpCodeRequest,
    TotpSetupResponse,
    User,
    VerifyOtpRequest,
)
from src.services.auth import AuthService

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=LoginResult, response_model_exclude_none=True)
async def login(
    request: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
    client: ClientMeta = Depends(get_client_meta),
):
    """Login with email and password.

    Example:
        POST /api/auth/login
        {"email": "jane@acme.com", "password": "Str0ngPassword"}

        Response (OTP organization):
        {
            "success": true,
            "requiresTwoFactor": true,
            "twoFactorMethod": "otp",
            "userId": "123e4567-...",
            "message": "OTP sent to your email"
        }
    """
    return await auth.login(request.email, request.password, client)


@router.post("/verify-otp", response_model=LoginResult, response_model_exclude_none=True)
async def verify_otp(
    request: VerifyOtpRequest,
    auth: AuthService = Depends(get_auth_service),
    client: ClientMeta = Depends(get_client_meta),
):
    user = await auth.verify_otp(request.user_id, request.otp)
    return await auth.complete_login(user, client)


@router.post("/verify-totp", response_model=LoginResult, response_model_exclude_none=True)
async def verify_totp(
    request: TotpCodeRequest,
    auth: AuthService = Depends(get_auth_service),
    client: ClientMeta = Depends(get_client_meta),
):
    user = await auth.verify_totp(request.user_id, request.token)
    return await auth.complete_login(user, client)


@router.post("/totp/setup", response_model=TotpSetupResponse)
async def setup_totp(
    user: User = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
):
    setup = await auth.setup_totp(user.id)
    return TotpSetupResponse(secret=setup.secret, qr_code=setup.qr_code)


@router.post("/totp/confirm", response_model=MessageResponse)
async def confirm_totp(request: TotpCodeRequest, auth: AuthService = Depends(get_auth_service)):
    await auth.confirm_totp(request.user_id, request.token)
    return MessageResponse(message="TOTP enabled successfully")


@router.post("/mfa/change", response_model=MfaChangeResult, response_model_exclude_none=True)
async def change_mfa_method(
    request: ChangeMfaRequest,
    user: User = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
):
    """Switch the caller's personal MFA method.

    Organization members with the client_user role cannot change it; the
    organization's policy applies to them.
    """
    return await auth.change_mfa_method(user.id, request.method)


@router.post("/refresh", response_model=TokenPairResponse)
async def refresh(
    request: RefreshRequest,
    auth: AuthService = Depends(get_auth_service),
    client: ClientMeta = Depends(get_client_meta),
):
    """Exchange a refresh token for a new pair. The presented token stops working."""
    pair = await auth.refresh_access_token(request.refresh_token, client)
    return TokenPairResponse(access_token=pair.access_token, refresh_token=pair.refresh_token)


@router.post("/logout", response_model=MessageResponse)
async def logout(request: RefreshRequest, auth: AuthService = Depends(get_auth_service)):
    await auth.logout(request.refresh_token)
    return MessageResponse(message="Logged out successfully")


@router.post("/logout-all", response_model=MessageResponse)
async def logout_all(
    user: User = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
):
    count = await auth.logout_all(user.id)
    return MessageResponse(message=f"Logged out from {count} session(s)")


@router.get("/profile", response_model=ProfileResponse)
async def profile(
    user: User = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
):
    return ProfileResponse(user=await auth.get_profile(user.id))
