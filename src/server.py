from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import redis.asyncio as redis
import structlog
from fastapi import FastAPI

from src.api.errors import register_error_handlers
from src.api.router import api_router
from src.config.settings import get_settings
from src.db.pool import close_pool, get_pool
from src.services.events import EventPublisher
from src.services.notifications import NotificationClient
from src.utils.logger import setup_logging

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    setup_logging()
    settings = get_settings()

    app.state.pool = await get_pool()
    app.state.redis = redis.from_url(settings.redis_url)
    app.state.notifier = NotificationClient(
        base_url=settings.notification_service_url,
        frontend_url=settings.frontend_url,
        timeout=settings.notification_timeout_seconds,
    )
    app.state.events = EventPublisher(app.state.redis, settings.event_channel_prefix)
    log.info("identity_service_started", port=settings.port)

    yield

    await app.state.notifier.close()
    await app.state.redis.aclose()
    await close_pool()


app = FastAPI(
    title="Identity Service",
    version="0.1.0",
    description="Multi-tenant authentication, MFA, invite onboarding and role hierarchy",
    lifespan=lifespan,
)

register_error_handlers(app)

app.include_router(api_router, prefix="/api")
