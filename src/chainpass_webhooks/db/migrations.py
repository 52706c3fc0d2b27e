"""SQL migrations shared by the startup hook and ``bin/migrate.py``."""
from __future__ import annotations

import asyncio
import hashlib
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable

import asyncpg  # type: ignore[import-untyped]
import structlog
from aiohttp import web

logger = structlog.get_logger(__name__)

PACKAGE_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_MIGRATION_DIRS = (
    PACKAGE_ROOT.parent.parent / "migrations",  # source checkout
    Path("/app/migrations"),  # container image
)


def find_migrations_dir(possible_paths: Iterable[Path] = DEFAULT_MIGRATION_DIRS) -> Path | None:
    for path in possible_paths:
        if path.exists():
            return path
    return None


def load_migrations(directory: Path) -> dict[str, Path]:
    migrations: dict[str, Path] = {}
    for path in sorted(directory.glob("*.sql")):
        version = path.stem
        if version in migrations:
            raise ValueError(f"Duplicate migration version detected: {version}")
        migrations[version] = path
    return migrations


async def pending_migrations(
    conn: asyncpg.Connection, migrations: dict[str, Path]
) -> list[tuple[str, Path, str, str]]:
    """Return ``(version, path, sql, checksum)`` for migrations not applied yet."""
    await conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version text PRIMARY KEY,
            checksum text NOT NULL,
            applied_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )
    rows = await conn.fetch("SELECT version, checksum FROM schema_migrations")
    applied = {row["version"]: row["checksum"] for row in rows}
    pending = []
    for version, path in migrations.items():
        sql = path.read_text(encoding="utf-8")
        checksum = hashlib.sha256(sql.encode("utf-8")).hexdigest()
        if version in applied:
            if applied[version] != checksum:
                raise RuntimeError(
                    f"Checksum mismatch for {version}: {applied[version]} (db) != {checksum} (file)"
                )
            continue
        pending.append((version, path, sql, checksum))
    return pending


async def apply_pending(conn: asyncpg.Connection, migrations: dict[str, Path]) -> list[str]:
    applied: list[str] = []
    for version, path, sql, checksum in await pending_migrations(conn, migrations):
        logger.info("applying migration", migration=path.name)
        async with conn.transaction():
            await conn.execute(sql)
            await conn.execute(
                "INSERT INTO schema_migrations (version, checksum) VALUES ($1, $2)",
                version,
                checksum,
            )
        applied.append(version)
    return applied


def create_migration_runner(
    settings: Any,
    possible_paths: Iterable[Path] = DEFAULT_MIGRATION_DIRS,
    *,
    max_retries: int = 5,
    retry_delay: float = 2.0,
) -> Callable[[web.Application], Awaitable[None]]:
    """Create an aiohttp startup hook that applies pending SQL migrations."""
    possible_paths_list = list(possible_paths)

    async def apply_migrations_on_startup(_app: web.Application) -> None:
        migrations_dir = find_migrations_dir(possible_paths_list)
        if migrations_dir is None:
            logger.warning("migrations directory not found", tried=[str(p) for p in possible_paths_list])
            return
        migrations = load_migrations(migrations_dir)
        if not migrations:
            logger.warning("no migrations found", directory=str(migrations_dir))
            return

        conn = None
        for attempt in range(1, max_retries + 1):
            try:
                conn = await asyncpg.connect(str(settings.database_url))
                break
            except (OSError, asyncpg.PostgresError) as exc:
                logger.warning(
                    "database connection failed",
                    attempt=attempt,
                    max_retries=max_retries,
                    error=str(exc),
                )
                if attempt < max_retries:
                    await asyncio.sleep(retry_delay)
        if conn is None:
            logger.error("could not connect to database, skipping migrations")
            return

        try:
            applied = await apply_pending(conn, migrations)
        finally:
            await conn.close()
        logger.info("migrations applied", count=len(applied), versions=applied)

    return apply_migrations_on_startup
