from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import aiomysql


logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parent / "schema.sql"


@dataclass(frozen=True)
class MySqlPoolConfig:
    host: str
    port: int
    user: str
    password: str
    database: str
    minsize: int = 1
    maxsize: int = 5
    connect_timeout: int = 10


def split_sql_script(script: str) -> list[str]:
    """
    Split a schema script into single statements.
    Only handles ';' at end of line and '--' comment lines, which is all schema.sql uses.
    """
    statements: list[str] = []
    buf: list[str] = []
    for raw in script.splitlines():
        line = raw.rstrip()
        if not line.strip() or line.strip().startswith("--"):
            continue
        buf.append(line)
        if line.endswith(";"):
            statements.append("\n".join(buf))
            buf = []
    if buf:
        statements.append("\n".join(buf))
    return statements


class DbPool:
    """
    Owns the aiomysql pool: started once by the bot, shared by every repository,
    closed on shutdown.
    """

    def __init__(self) -> None:
        self._pool: Optional[aiomysql.Pool] = None

    @property
    def pool(self) -> aiomysql.Pool:
        if self._pool is None:
            raise RuntimeError("DB pool is not initialized. Call await DbPool.start() first.")
        return self._pool

    async def start(self, cfg: MySqlPoolConfig) -> None:
        if self._pool is not None:
            return

        self._pool = await aiomysql.create_pool(
            host=cfg.host,
            port=cfg.port,
            user=cfg.user,
            password=cfg.password,
            db=cfg.database,
            minsize=cfg.minsize,
            maxsize=cfg.maxsize,
            connect_timeout=cfg.connect_timeout,
            autocommit=True,  # single statements commit on their own; bulk writes use transaction()
            charset="utf8mb4",
        )
        logger.info("DB pool started (%s@%s:%s/%s)", cfg.user, cfg.host, cfg.port, cfg.database)

        await self.ping()

    async def ping(self) -> None:
        async with self.pool.acquire() as conn:
            async with conn.cursor() as cur:
                await cur.execute("SELECT 1;")
                await cur.fetchone()

    async def apply_schema(self, path: Path = SCHEMA_PATH) -> int:
        """
        Runs every statement of schema.sql (all CREATE TABLE IF NOT EXISTS).
        Returns the number of statements executed.
        """
        statements = split_sql_script(path.read_text(encoding="utf-8"))
        async with self.pool.acquire() as conn:
            async with conn.cursor() as cur:
                for stmt in statements:
                    await cur.execute(stmt)
        logger.info("Applied %s schema statements from %s", len(statements), path.name)
        return len(statements)

    async def close(self) -> None:
        if self._pool is None:
            return
        self._pool.close()
        await self._pool.wait_closed()
        self._pool = None
        logger.info("DB pool closed")
