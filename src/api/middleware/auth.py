"""Authentication dependency for bearer access tokens.

Routes only establish *who* the caller is. Whether that caller may perform an
operation is decided once, inside the service that implements it.
"""

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.api.deps import get_auth_service
from src.models.auth import User
from src.services.auth import AuthService
from src.utils.errors import AuthenticationError

security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    auth: AuthService = Depends(get_auth_service),
) -> User:
    """Resolve the bearer token to an active user.

    @router.get("/protected")
    async def protected_route(user: User = Depends(get_current_user)):
        return {"user_id": str(user.id), "role": user.role}

    Raises:
        AuthenticationError: Missing, expired or invalid token, or the user is gone/inactive
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("No token provided")
    return await auth.resolve_access_token(credentials.credentials)
