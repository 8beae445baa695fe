"""
테스트용 인메모리 검색 엔진 / 원본 리포지토리

실제 Elasticsearch 와 PostgreSQL 없이 동기화/검색 흐름을 검증하기 위한 대체 구현입니다.
쿼리 평가는 테스트에 필요한 만큼만 지원합니다 (match_all, bool, multi_match, match, match_phrase_prefix, term, terms, range).
"""

import copy
from typing import Any, Dict, List, Optional, Sequence, Set

from clinic_search.errors import DocumentNotFoundError, EngineRequestError, EngineUnavailableError
from clinic_search.es_client import BulkAction, BulkItemResult, BulkResponse, SearchEngine

SUBFIELD_SUFFIXES = (".search", ".keyword", ".completion", ".autocomplete")


def _base_field(name: str) -> str:
    """'name.search^2' → 'name'"""
    name = name.split("^")[0]
    for suffix in SUBFIELD_SUFFIXES:
        if name.endswith(suffix):
            return name[: -len(suffix)]
    return name


def _lookup(doc: Dict[str, Any], path: str) -> Any:
    value: Any = doc
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _tokens(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [t for v in value for t in _tokens(v)]
    return str(value).lower().split()


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


class InMemorySearchEngine(SearchEngine):
    """
    인메모리 엔진

    실패 주입:
        fail_bulk_calls: 실패시킬 bulk 호출 번호 (1부터)
        fail_item_ids: bulk 항목 단위로 거부할 문서 id
        fail_search_indices: 검색 시 실패시킬 인덱스
        reachable: False 면 ping 실패
    """

    is_enabled = True

    def __init__(self):
        self.indices: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.definitions: Dict[str, Dict[str, Any]] = {}
        self.create_calls: List[str] = []
        self.delete_calls: List[str] = []
        self.refresh_calls: List[str] = []
        self.search_calls: List[Dict[str, Any]] = []
        self.bulk_calls = 0
        self.fail_bulk_calls: Set[int] = set()
        self.fail_item_ids: Set[str] = set()
        self.fail_search_indices: Set[str] = set()
        self.reachable = True
        self.closed = False

    # ------------------------------------------------------------------
    # 헬스 / 인덱스
    # ------------------------------------------------------------------

    async def ping(self) -> bool:
        return self.reachable

    async def cluster_health(self) -> Dict[str, Any]:
        if not self.reachable:
            raise EngineUnavailableError("Connection refused")
        return {"cluster_name": "in-memory", "status": "green", "number_of_nodes": 1}

    async def create_index(self, name, mappings, settings=None) -> None:
        if name in self.indices:
            raise EngineRequestError(
                f"resource_already_exists_exception: index [{name}] already exists",
                index=name,
                status_code=400,
            )
        self.create_calls.append(name)
        self.indices[name] = {}
        self.definitions[name] = {"mappings": mappings, "settings": settings or {}}

    async def index_exists(self, name: str) -> bool:
        return name in self.indices

    async def delete_index(self, name: str) -> bool:
        if name not in self.indices:
            return False
        self.delete_calls.append(name)
        del self.indices[name]
        self.definitions.pop(name, None)
        return True

    # ------------------------------------------------------------------
    # 문서
    # ------------------------------------------------------------------

    def _docs(self, index: str) -> Dict[str, Dict[str, Any]]:
        return self.indices.setdefault(index, {})

    def _require(self, index: str, id: str) -> Dict[str, Any]:
        docs = self.indices.get(index, {})
        if str(id) not in docs:
            raise EngineRequestError(f"document_missing_exception: [{id}]", index=index, status_code=404)
        return docs[str(id)]

    async def index_document(self, index, document, id=None, refresh=False) -> str:
        doc_id = str(id if id is not None else len(self._docs(index)) + 1)
        self._docs(index)[doc_id] = copy.deepcopy(document)
        return doc_id

    async def get_document(self, index, id) -> Dict[str, Any]:
        try:
            return copy.deepcopy(self._require(index, id))
        except EngineRequestError as e:
            raise DocumentNotFoundError(index, str(id)) from e

    async def update_document(self, index, id, partial, refresh=False) -> None:
        self._require(index, id).update(copy.deepcopy(partial))

    async def delete_document(self, index, id, refresh=False) -> None:
        self._require(index, id)
        del self.indices[index][str(id)]

    async def bulk(self, actions: List[BulkAction], refresh: bool = False) -> BulkResponse:
        self.bulk_calls += 1
        if self.bulk_calls in self.fail_bulk_calls:
            raise EngineUnavailableError("Connection timed out")

        items = []
        for action in actions:
            doc_id = str(action.id)
            if doc_id in self.fail_item_ids:
                items.append(BulkItemResult(
                    action.op_type, action.index, doc_id, 400,
                    error="mapper_parsing_exception: failed to parse",
                ))
                continue
            docs = self._docs(action.index)
            if action.op_type == "delete":
                status = 200 if docs.pop(doc_id, None) is not None else 404
            elif action.op_type == "update":
                docs.setdefault(doc_id, {}).update(copy.deepcopy(action.document))
                status = 200
            else:
                status = 200 if doc_id in docs else 201
                docs[doc_id] = copy.deepcopy(action.document)
            items.append(BulkItemResult(action.op_type, action.index, doc_id, status))

        errors = any(not item.ok for item in items)
        return BulkResponse(took=1, errors=errors, items=items)

    async def refresh_index(self, name: str) -> None:
        self.refresh_calls.append(name)

    async def get_mapping(self, name: str) -> Dict[str, Any]:
        return self.definitions.get(name, {}).get("mappings", {})

    async def put_mapping(self, name: str, properties: Dict[str, Any]) -> None:
        mappings = self.definitions.setdefault(name, {"mappings": {}, "settings": {}})["mappings"]
        mappings.setdefault("properties", {}).update(properties)

    async def count(self, name: str) -> int:
        if name not in self.indices:
            raise EngineRequestError(f"index_not_found_exception: no such index [{name}]", index=name, status_code=404)
        return len(self.indices[name])

    async def close(self) -> None:
        self.closed = True

    # ------------------------------------------------------------------
    # 검색
    # ------------------------------------------------------------------

    def _matches(self, doc: Dict[str, Any], query: Dict[str, Any]) -> bool:
        if not query or "match_all" in query:
            return True

        if "bool" in query:
            clause = query["bool"]
            if not all(self._matches(doc, q) for q in clause.get("must", [])):
                return False
            if not all(self._matches(doc, q) for q in clause.get("filter", [])):
                return False
            if any(self._matches(doc, q) for q in clause.get("must_not", [])):
                return False
            should = clause.get("should", [])
            if should:
                required = clause.get("minimum_should_match", 1)
                if sum(1 for q in should if self._matches(doc, q)) < required:
                    return False
            return True

        if "multi_match" in query:
            clause_body = query["multi_match"]
            wanted = _tokens(clause_body["query"])
            haystack = set()
            for name in clause_body["fields"]:
                haystack.update(_tokens(_lookup(doc, _base_field(name))))
            return any(token in haystack for token in wanted)

        if "match" in query or "match_phrase_prefix" in query:
            kind = "match" if "match" in query else "match_phrase_prefix"
            (name, clause_body), = query[kind].items()
            text = clause_body["query"] if isinstance(clause_body, dict) else clause_body
            value = _lookup(doc, _base_field(name))
            if kind == "match_phrase_prefix":
                return str(text).lower() in " ".join(_tokens(value))
            return any(token in _tokens(value) for token in _tokens(text))

        if "term" in query:
            (name, value), = query["term"].items()
            if isinstance(value, dict):
                value = value.get("value")
            return value in _as_list(_lookup(doc, _base_field(name)))

        if "terms" in query:
            (name, values), = query["terms"].items()
            present = _as_list(_lookup(doc, _base_field(name)))
            return any(v in present for v in values)

        if "range" in query:
            (name, bounds), = query["range"].items()
            value = _lookup(doc, _base_field(name))
            if value is None:
                return False
            checks = {
                "gte": lambda a, b: a >= b,
                "lte": lambda a, b: a <= b,
                "gt": lambda a, b: a > b,
                "lt": lambda a, b: a < b,
            }
            return all(checks[op](value, bound) for op, bound in bounds.items() if op in checks)

        raise ValueError(f"Unsupported query in fake engine: {list(query)}")

    async def search(self, index: str, body: Dict[str, Any]) -> Dict[str, Any]:
        self.search_calls.append({"index": index, "body": body})
        if index in self.fail_search_indices:
            raise EngineUnavailableError("Connection timed out", index=index)
        if index not in self.indices:
            raise EngineRequestError(f"index_not_found_exception: no such index [{index}]", index=index, status_code=404)

        matched = [
            (doc_id, doc) for doc_id, doc in self.indices[index].items()
            if self._matches(doc, body.get("query", {}))
        ]

        for sort in reversed(body.get("sort") or []):
            (name, direction), = sort.items()
            if name == "_score":
                continue
            present = [m for m in matched if _lookup(m[1], _base_field(name)) is not None]
            missing = [m for m in matched if _lookup(m[1], _base_field(name)) is None]
            present.sort(key=lambda m: _lookup(m[1], _base_field(name)), reverse=direction == "desc")
            matched = present + missing

        start = body.get("from", 0) or 0
        size = body.get("size", 10)
        page = matched[start:start + size]

        return {
            "took": 1,
            "hits": {
                "total": {"value": len(matched), "relation": "eq"},
                "max_score": 1.0 if page else None,
                "hits": [
                    {"_index": index, "_id": doc_id, "_score": 1.0, "_source": copy.deepcopy(doc)}
                    for doc_id, doc in page
                ],
            },
        }


class FakeRepository:
    """인메모리 원본 리포지토리"""

    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None, table: str = "fake"):
        self.table = table
        self.rows = list(rows or [])
        self.fetch_calls: List[tuple] = []

    def _filtered(self, filters: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [
            row for row in self.rows
            if all(row.get(column) == value for column, value in (filters or {}).items())
        ]

    async def count(self) -> int:
        return len(self.rows)

    async def fetch_batch(self, offset: int, limit: int) -> List[Dict[str, Any]]:
        self.fetch_calls.append((offset, limit))
        return [dict(row) for row in self.rows[offset:offset + limit]]

    async def prefix_search(
        self,
        column: str,
        prefix: str,
        limit: int,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        rows = [r for r in self._filtered(filters) if str(r.get(column) or "").startswith(prefix)]
        rows.sort(key=lambda r: r[column])
        return rows[:limit]

    async def substring_search(
        self,
        columns: Sequence[str],
        query: str,
        limit: int,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        needle = query.lower()
        rows = [
            r for r in self._filtered(filters)
            if any(needle in str(r.get(c) or "").lower() for c in columns)
        ]
        return rows[:limit]


class FailingRepository(FakeRepository):
    """모든 조회가 실패하는 리포지토리"""

    async def count(self) -> int:
        raise ConnectionError("database unavailable")

    async def fetch_batch(self, offset: int, limit: int) -> List[Dict[str, Any]]:
        raise ConnectionError("database unavailable")

    async def prefix_search(self, column, prefix, limit, filters=None):
        raise ConnectionError("database unavailable")

    async def substring_search(self, columns, query, limit, filters=None):
        raise ConnectionError("database unavailable")


def pet_row(i: int, **overrides) -> Dict[str, Any]:
    """pets 테이블 행 샘플"""
    row = {
        "id": f"pet-{i:04d}",
        "name": f"Pet {i}",
        "species": "dog" if i % 2 == 0 else "cat",
        "breed": "Mixed",
        "owner_id": f"user-{i % 7}",
        "clinic_id": "clinic-1",
        "status": "active",
    }
    row.update(overrides)
    return row
