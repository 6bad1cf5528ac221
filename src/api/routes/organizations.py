"""Organization settings for signed-in tenant users."""

from fastapi import APIRouter, Depends

from src.api.deps import get_organization_service
from src.api.middleware.auth import get_current_user
from src.models.auth import User
from src.models.organization import MembersResponse, OrganizationResponse, UpdateOrganizationRequest
from src.services.organizations import OrganizationService

router = APIRouter(prefix="/organization", tags=["organization"])


@router.get("", response_model=OrganizationResponse, response_model_exclude_none=True)
async def get_organization(
    user: User = Depends(get_current_user),
    organizations: OrganizationService = Depends(get_organization_service),
):
    return OrganizationResponse(organization=await organizations.get_organization(user.id))


@router.put("", response_model=OrganizationResponse, response_model_exclude_none=True)
async def update_organization(
    request: UpdateOrganizationRequest,
    user: User = Depends(get_current_user),
    organizations: OrganizationService = Depends(get_organization_service),
):
    """Rename the organization or change the MFA method its members must use."""
    organization = await organizations.update_organization(
        user.id, name=request.name, two_factor_method=request.two_factor_method
    )
    return OrganizationResponse(message="Organization updated successfully", organization=organization)


@router.get("/members", response_model=MembersResponse)
async def list_members(
    user: User = Depends(get_current_user),
    organizations: OrganizationService = Depends(get_organization_service),
):
    return MembersResponse(members=await organizations.list_members(user.id))
