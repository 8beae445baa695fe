"""
PostgreSQL 연결 모듈
- asyncpg 커넥션 풀 (lazy 생성)
- json/jsonb 컬럼 자동 디코딩
"""

import json
import logging
from typing import Any, List, Optional

import asyncpg

from clinic_search.config import DBConfig

logger = logging.getLogger(__name__)


async def _init_connection(conn: asyncpg.Connection) -> None:
    """커넥션별 json 코덱 등록"""
    for type_name in ("json", "jsonb"):
        await conn.set_type_codec(
            type_name,
            encoder=json.dumps,
            decoder=json.loads,
            schema="pg_catalog",
        )


class Database:
    """
    asyncpg 풀 래퍼

    사용 예:
        db = Database(DBConfig.from_env())
        rows = await db.fetch("SELECT * FROM pets LIMIT $1", 10)
    """

    def __init__(self, config: Optional[DBConfig] = None):
        self.config = config or DBConfig.from_env()
        self._pool: Optional[asyncpg.Pool] = None

    async def get_pool(self) -> asyncpg.Pool:
        """커넥션 풀 반환"""
        if self._pool is None:
            self._pool = await asyncpg.create_pool(
                self.config.dsn,
                min_size=self.config.min_size,
                max_size=self.config.max_size,
                init=_init_connection,
            )
            logger.info(f"PostgreSQL pool created: {self.config.host}:{self.config.port}/{self.config.database}")
        return self._pool

    async def fetch(self, query: str, *args: Any) -> List[asyncpg.Record]:
        pool = await self.get_pool()
        async with pool.acquire() as conn:
            return await conn.fetch(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        pool = await self.get_pool()
        async with pool.acquire() as conn:
            return await conn.fetchval(query, *args)

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("PostgreSQL pool closed")
