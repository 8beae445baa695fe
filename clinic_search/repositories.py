"""
원본 저장소(PostgreSQL) 엔티티 리포지토리

동기화 엔진은 배치 단위 조회(count / fetch_batch)를,
검색/자동완성 폴백은 prefix_search / substring_search 를 사용합니다.
"""

import re
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from clinic_search.db import Database

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")

# 인덱스명 → (테이블, 고정 조건)
TABLE_MAP: Dict[str, Tuple[str, Optional[str]]] = {
    "pets": ("pets", None),
    "appointments": ("appointments", None),
    "users": ("users", None),
    "clinics": ("clinics", None),
    "health-records": ("clinic_pet_cases", None),
    "faqs": ("animal_faqs", "is_active = true"),
}


def _identifier(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return name


def escape_like(value: str) -> str:
    """LIKE 패턴 특수문자 이스케이프"""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class EntityRepository(Protocol):
    """동기화/폴백 검색에 필요한 원본 저장소 인터페이스"""

    table: str

    async def count(self) -> int: ...

    async def fetch_batch(self, offset: int, limit: int) -> List[Dict[str, Any]]: ...

    async def prefix_search(
        self,
        column: str,
        prefix: str,
        limit: int,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]: ...

    async def substring_search(
        self,
        columns: Sequence[str],
        query: str,
        limit: int,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]: ...


class PostgresRepository:
    """테이블 단위 asyncpg 리포지토리"""

    def __init__(
        self,
        db: Database,
        table: str,
        order_by: str = "id",
        base_where: Optional[str] = None,
    ):
        self.db = db
        self.table = _identifier(table)
        self.order_by = _identifier(order_by)
        self.base_where = base_where

    def _where(self, conditions: List[str], params: List[Any], filters: Optional[Dict[str, Any]]) -> str:
        clauses = list(conditions)
        if self.base_where:
            clauses.append(self.base_where)
        for column, value in (filters or {}).items():
            params.append(value)
            clauses.append(f"{_identifier(column)} = ${len(params)}")
        return f" WHERE {' AND '.join(clauses)}" if clauses else ""

    async def count(self) -> int:
        params: List[Any] = []
        sql = f"SELECT COUNT(*) FROM {self.table}{self._where([], params, None)}"
        result = await self.db.fetchval(sql, *params)
        return result or 0

    async def fetch_batch(self, offset: int, limit: int) -> List[Dict[str, Any]]:
        """정렬 순서가 고정된 LIMIT/OFFSET 배치 조회"""
        params: List[Any] = []
        where = self._where([], params, None)
        params.extend([limit, offset])
        sql = (
            f"SELECT * FROM {self.table}{where} "
            f"ORDER BY {self.order_by} LIMIT ${len(params) - 1} OFFSET ${len(params)}"
        )
        rows = await self.db.fetch(sql, *params)
        return [dict(row) for row in rows]

    async def prefix_search(
        self,
        column: str,
        prefix: str,
        limit: int,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """
        접두어 일치 조회 (대소문자 구분, 알파벳순)

        Args:
            column: 비교 컬럼
            prefix: 접두어
            limit: 최대 행 수
            filters: 추가 동등 조건 (컬럼 → 값)
        """
        column = _identifier(column)
        params: List[Any] = [escape_like(prefix) + "%"]
        where = self._where([f"{column} LIKE $1 ESCAPE '\\'"], params, filters)
        params.append(limit)
        sql = f"SELECT * FROM {self.table}{where} ORDER BY {column} ASC LIMIT ${len(params)}"
        rows = await self.db.fetch(sql, *params)
        return [dict(row) for row in rows]

    async def substring_search(
        self,
        columns: Sequence[str],
        query: str,
        limit: int,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """부분 문자열 일치 조회 (대소문자 무시)"""
        if not columns:
            raise ValueError("substring_search requires at least one column")
        params: List[Any] = [f"%{escape_like(query)}%"]
        match = " OR ".join(f"{_identifier(c)} ILIKE $1 ESCAPE '\\'" for c in columns)
        where = self._where([f"({match})"], params, filters)
        params.append(limit)
        sql = f"SELECT * FROM {self.table}{where} ORDER BY {self.order_by} LIMIT ${len(params)}"
        rows = await self.db.fetch(sql, *params)
        return [dict(row) for row in rows]


def build_repositories(db: Database) -> Dict[str, PostgresRepository]:
    """인덱스명 → 리포지토리"""
    return {
        index_name: PostgresRepository(db, table, base_where=base_where)
        for index_name, (table, base_where) in TABLE_MAP.items()
    }
