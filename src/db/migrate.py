"""Apply SQL migrations from db/migrations/ in filename order.

Each file runs in its own transaction together with its bookkeeping row, so a
failed migration leaves no partial schema behind and is retried next run.

    python -m src.db.migrate
"""

import asyncio
from pathlib import Path

import asyncpg
import structlog

from src.config.settings import get_settings
from src.utils.logger import setup_logging

log = structlog.get_logger()

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


async def run_migrations(migrations_dir: Path = MIGRATIONS_DIR) -> list[str]:
    """Apply every migration not yet recorded. Returns the names applied."""
    conn = await asyncpg.connect(get_settings().database_url)
    applied: list[str] = []
    try:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS _migrations (
                name TEXT PRIMARY KEY,
                applied_at TIMESTAMPTZ DEFAULT NOW()
            )
            """
        )
        done = {r["name"] for r in await conn.fetch("SELECT name FROM _migrations")}

        for path in sorted(migrations_dir.glob("*.sql")):
            if path.name in done:
                log.debug("migration_skipped", name=path.name)
                continue
            async with conn.transaction():
                await conn.execute(path.read_text())
                await conn.execute("INSERT INTO _migrations (name) VALUES ($1)", path.name)
            applied.append(path.name)
            log.info("migration_applied", name=path.name)
    finally:
        await conn.close()

    log.info("migrations_complete", applied=len(applied))
    return applied


if __name__ == "__main__":
    setup_logging()
    asyncio.run(run_migrations())
