from fastapi import APIRouter, Depends, Request

from src.api.deps import get_store
from src.db.store import IdentityStore
from src.models.api import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(request: Request, store: IdentityStore = Depends(get_store)) -> HealthResponse:
    db_status = "disconnected"
    redis_status = "disconnected"

    try:
        if await store.ping():
            db_status = "connected"
    except Exception:
        pass

    try:
        redis = getattr(request.app.state, "redis", None)
        if redis is not None:
            await redis.ping()
            redis_status = "connected"
    except Exception:
        pass

    status = "ok" if db_status == "connected" else "degraded"
    return HealthResponse(status=status, database=db_status, redis=redis_status)
