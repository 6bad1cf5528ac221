from arq.connections import RedisSettings
from arq.cron import cron

from src.config.constants import HOUSEKEEPING_JOB_TIMEOUT
from src.config.settings import get_settings
from src.queue.jobs import expire_stale_invites, purge_expired_refresh_tokens


async def startup(ctx: dict) -> None:
    from src.db.pool import get_pool
    from src.utils.logger import setup_logging

    setup_logging()
    ctx["pool"] = await get_pool()


async def shutdown(ctx: dict) -> None:
    from src.db.pool import close_pool

    await close_pool()


class WorkerSettings:
    functions = [expire_stale_invites, purge_expired_refresh_tokens]
    on_startup = startup
    on_shutdown = shutdown

    # Expire stale invites every hour at :00
    # Purge dead refresh tokens daily at 03:30
    cron_jobs = [
        cron(expire_stale_invites, hour=None, minute=0),
        cron(purge_expired_refresh_tokens, hour=3, minute=30),
    ]

    _settings = get_settings()
    redis_settings = RedisSettings.from_dsn(_settings.redis_url)
    job_timeout = HOUSEKEEPING_JOB_TIMEOUT
