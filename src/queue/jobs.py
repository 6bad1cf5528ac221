"""Housekeeping jobs run by the arq worker.

Expiry is already enforced whenever an invite or refresh token is read, so
these sweeps only keep stored state tidy.
"""

from datetime import UTC, datetime, timedelta

import structlog

from src.config.constants import REFRESH_TOKEN_PURGE_GRACE_HOURS
from src.config.settings import get_settings
from src.db.store import IdentityStore
from src.services.invites import InviteService
from src.services.two_factor import TwoFactorManager

log = structlog.get_logger()


async def expire_stale_invites(ctx: dict) -> dict:
    store = IdentityStore(ctx["pool"])
    service = InviteService(store, TwoFactorManager(get_settings()))
    count = await service.expire_stale_invites()
    return {"expired": count}


async def purge_expired_refresh_tokens(ctx: dict) -> dict:
    """Delete refresh tokens that expired more than the grace period ago."""
    store = IdentityStore(ctx["pool"])
    cutoff = datetime.now(UTC) - timedelta(hours=REFRESH_TOKEN_PURGE_GRACE_HOURS)
    count = await store.purge_expired_refresh_tokens(cutoff)
    log.info("refresh_tokens_purged", count=count, before=cutoff.isoformat())
    return {"purged": count}
