"""Bootstrap the first super_admin.

Every other account is created through an invite chain that starts here.
Run with ``python -m src.db.seed`` after migrations.
"""

import asyncio

import asyncpg
import structlog

from src.config.settings import get_settings
from src.db.store import IdentityStore
from src.models.auth import Role
from src.services.auth import hash_password
from src.utils.logger import setup_logging

log = structlog.get_logger()


async def seed() -> None:
    setup_logging()
    settings = get_settings()
    if not settings.seed_admin_email or not settings.seed_admin_password:
        log.error("seed_skipped", reason="SEED_ADMIN_EMAIL and SEED_ADMIN_PASSWORD must be set")
        return

    pool = await asyncpg.create_pool(settings.database_url)
    assert pool is not None
    store = IdentityStore(pool)
    email = settings.seed_admin_email.strip().lower()

    try:
        if await store.get_user_by_email(email):
            log.info("seed_admin_exists", email=email)
            return

        user = await store.create_user(
            email=email,
            password_hash=hash_password(settings.seed_admin_password, settings.password_bcrypt_rounds),
            first_name="Super",
            last_name="Admin",
            role=Role.SUPER_ADMIN,
        )
        log.info("seed_admin_created", user_id=str(user.id), email=email)
    finally:
        await pool.close()


if __name__ == "__main__":
    asyncio.run(seed())
