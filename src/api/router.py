from fastapi import APIRouter

from src.api.routes import auth, health, invites, organizations

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(auth.router)
api_router.include_router(invites.router)
api_router.include_router(organizations.router)
