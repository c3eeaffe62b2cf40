from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Tuple

import aiomysql


@asynccontextmanager
async def get_cursor(
    pool: aiomysql.Pool, *, dict_rows: bool = True
) -> AsyncIterator[aiomysql.Cursor]:
    """
    Cursor on a pooled autocommit connection (DictCursor unless dict_rows=False).
    """
    cursor_cls = aiomysql.DictCursor if dict_rows else aiomysql.Cursor
    async with pool.acquire() as conn:
        async with conn.cursor(cursor_cls) as cur:
            yield cur


@asynccontextmanager
async def transaction(
    pool: aiomysql.Pool, *, dict_rows: bool = True
) -> AsyncIterator[Tuple[aiomysql.Connection, aiomysql.Cursor]]:
    """
    All-or-nothing block: commits when the body finishes, rolls back and
    re-raises on any exception.

        async with transaction(pool) as (conn, cur):
            await cur.execute("INSERT INTO group_bracket ...")
            await cur.executemany("INSERT INTO tournament_match ...", rows)
    """
    cursor_cls = aiomysql.DictCursor if dict_rows else aiomysql.Cursor

    async with pool.acquire() as conn:
        # the pool runs with autocommit=True; begin() opens an explicit transaction
        await conn.begin()
        try:
            async with conn.cursor(cursor_cls) as cur:
                yield conn, cur
            await conn.commit()
        except Exception:
            await conn.rollback()
            raise
