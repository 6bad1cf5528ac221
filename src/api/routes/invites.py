"""Invite API routes.

Endpoints:
- POST /invites/create - Invite an email to a role
- POST /invites/accept - Create the invited account (public)
- GET /invites/details/{token} - Public projection of a pending invite
- GET /invites/list - Invites sent by the caller
- DELETE /invites/{invite_id}/revoke - Revoke a pending invite
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from src.api.deps import get_auth_service, get_client_meta, get_invite_service
from src.api.middleware.auth import get_current_user
from src.models.api import MessageResponse
from src.models.auth import ClientMeta, TwoFactorMethod, User
from src.models.invite import (
    AcceptInviteRequest,
    AcceptInviteResponse,
    CreateInviteRequest,
    InviteCreated,
    InviteDetailsResponse,
    InviteListResponse,
)
from src.services.auth import AuthService
from src.services.invites import InviteService

router = APIRouter(prefix="/invites", tags=["invites"])


@router.post("/create", response_model=InviteCreated, status_code=status.HTTP_201_CREATED)
async def create_invite(
    request: CreateInviteRequest,
    user: User = Depends(get_current_user),
    invites: InviteService = Depends(get_invite_service),
):
    """Invite a new user.

    Example:
        POST /api/invites/create
        Headers: Authorization: Bearer eyJhbGc...
        {"email": "ops@acme.com", "role": "client_admin", "organizationName": "Acme Corp"}

        Response:
        {
            "success": true,
            "message": "Invitation created successfully",
            "invite": {"id": "...", "email": "ops@acme.com", "role": "client_admin", ...}
        }
    """
    return await invites.create_invite(user, request.email, request.role, request.organization_name)


@router.post(
    "/accept",
    response_model=AcceptInviteResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def accept_invite(
    request: AcceptInviteRequest,
    invites: InviteService = Depends(get_invite_service),
    auth: AuthService = Depends(get_auth_service),
    client: ClientMeta = Depends(get_client_meta),
):
    """Accept an invite and sign the new user in.

    When the account's method is TOTP the response carries the enrollment QR
    code instead of tokens; the client finishes with POST /auth/verify-totp.
    """
    accepted = await invites.accept_invite(
        request.token,
        request.first_name,
        request.last_name,
        request.password,
        request.two_factor_method,
    )

    if accepted.requires_totp_setup:
        return AcceptInviteResponse(
            message="Account created successfully. Complete TOTP setup to continue.",
            user=accepted.user,
            requires_two_factor=True,
            two_factor_method=TwoFactorMethod.TOTP,
            user_id=accepted.user.id,
            totp=accepted.totp_setup,
        )

    session = await auth.start_session(accepted.user.id, client)
    return AcceptInviteResponse(
        message="Account created successfully",
        user=session.user or accepted.user,
        access_token=session.access_token,
        refresh_token=session.refresh_token,
    )


@router.get("/details/{token}", response_model=InviteDetailsResponse)
async def get_invite_details(token: str, invites: InviteService = Depends(get_invite_service)):
    return InviteDetailsResponse(invite=await invites.get_invite_details(token))


@router.get("/list", response_model=InviteListResponse)
async def list_invites(
    invite_status: str | None = Query(default=None, alias="status"),
    user: User = Depends(get_current_user),
    invites: InviteService = Depends(get_invite_service),
):
    return InviteListResponse(invites=await invites.list_invites(user, invite_status))


@router.delete("/{invite_id}/revoke", response_model=MessageResponse)
async def revoke_invite(
    invite_id: UUID,
    user: User = Depends(get_current_user),
    invites: InviteService = Depends(get_invite_service),
):
    await invites.revoke_invite(invite_id, user)
    return MessageResponse(message="Invite revoked successfully")
