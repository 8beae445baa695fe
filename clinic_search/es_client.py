"""
Elasticsearch 엔진 클라이언트

AsyncElasticsearch 를 감싸는 얇은 타입 래퍼입니다.
- 활성/비활성 스위치 (ELASTICSEARCH_ENABLED, 시작 시 한 번 결정)
- 인덱스/문서 CRUD, bulk, 검색, 매핑 조회/변경, 클러스터 상태
- 엔진 예외를 SearchEngineError 계층으로 변환 (원본 메시지 유지)
- 호출 단위 타임아웃

비활성 상태에서는 DisabledEngineClient 가 선택되어, 존재 확인/헬스 체크는
False 를 반환하고 나머지 호출은 ServiceDisabledError 를 발생시킵니다.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, List, Optional

from elasticsearch import AsyncElasticsearch
from elasticsearch.exceptions import ApiError, NotFoundError, TransportError

from clinic_search.config import ESConfig, get_es_config
from clinic_search.errors import (
    DocumentNotFoundError,
    EngineRequestError,
    EngineUnavailableError,
    ServiceDisabledError,
)

logger = logging.getLogger(__name__)

BULK_OP_TYPES = ("index", "create", "update", "delete")


@dataclass
class BulkAction:
    """bulk 요청 단위"""
    op_type: str
    index: str
    id: Optional[str] = None
    document: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if self.op_type not in BULK_OP_TYPES:
            raise ValueError(f"Unsupported bulk operation: {self.op_type}")
        if self.op_type in ("update", "delete") and not self.id:
            raise ValueError(f"Bulk {self.op_type} requires a document id")
        if self.op_type != "delete" and self.document is None:
            raise ValueError(f"Bulk {self.op_type} requires a document")

    def to_operations(self) -> List[Dict[str, Any]]:
        meta: Dict[str, Any] = {"_index": self.index}
        if self.id is not None:
            meta["_id"] = str(self.id)
        if self.op_type == "delete":
            return [{"delete": meta}]
        if self.op_type == "update":
            return [{"update": meta}, {"doc": self.document}]
        return [{self.op_type: meta}, self.document]


@dataclass
class BulkItemResult:
    """bulk 응답 항목"""
    op_type: str
    index: str
    id: Optional[str]
    status: int
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.status < 300


@dataclass
class BulkResponse:
    """bulk 응답"""
    took: int = 0
    errors: bool = False
    items: List[BulkItemResult] = field(default_factory=list)

    @property
    def failed_items(self) -> List[BulkItemResult]:
        return [item for item in self.items if not item.ok]


def _body(response: Any) -> Any:
    """ObjectApiResponse → dict"""
    return getattr(response, "body", response)


def _format_item_error(error: Any) -> str:
    if isinstance(error, dict):
        reason = error.get("reason") or ""
        error_type = error.get("type") or "error"
        return f"{error_type}: {reason}".strip()
    return str(error)


def parse_bulk_response(raw: Dict[str, Any]) -> BulkResponse:
    """bulk API 응답을 BulkResponse 로 정규화"""
    items = []
    for entry in raw.get("items", []):
        for op_type, result in entry.items():
            error = result.get("error")
            items.append(BulkItemResult(
                op_type=op_type,
                index=result.get("_index", ""),
                id=result.get("_id"),
                status=int(result.get("status", 0) or 0),
                error=_format_item_error(error) if error else None,
            ))
    return BulkResponse(
        took=int(raw.get("took", 0) or 0),
        errors=bool(raw.get("errors", False)),
        items=items,
    )


class SearchEngine(ABC):
    """검색 엔진 기능 인터페이스"""

    is_enabled: bool = False

    @abstractmethod
    async def ping(self) -> bool: ...

    @abstractmethod
    async def cluster_health(self) -> Dict[str, Any]: ...

    @abstractmethod
    async def create_index(
        self,
        name: str,
        mappings: Dict[str, Any],
        settings: Optional[Dict[str, Any]] = None,
    ) -> None: ...

    @abstractmethod
    async def index_exists(self, name: str) -> bool: ...

    @abstractmethod
    async def delete_index(self, name: str) -> bool: ...

    @abstractmethod
    async def index_document(
        self,
        index: str,
        document: Dict[str, Any],
        id: Optional[str] = None,
        refresh: bool = False,
    ) -> str: ...

    @abstractmethod
    async def get_document(self, index: str, id: str) -> Dict[str, Any]: ...

    @abstractmethod
    async def update_document(
        self,
        index: str,
        id: str,
        partial: Dict[str, Any],
        refresh: bool = False,
    ) -> None: ...

    @abstractmethod
    async def delete_document(self, index: str, id: str, refresh: bool = False) -> None: ...

    @abstractmethod
    async def search(self, index: str, body: Dict[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    async def bulk(self, actions: List[BulkAction], refresh: bool = False) -> BulkResponse: ...

    @abstractmethod
    async def refresh_index(self, name: str) -> None: ...

    @abstractmethod
    async def get_mapping(self, name: str) -> Dict[str, Any]: ...

    @abstractmethod
    async def put_mapping(self, name: str, properties: Dict[str, Any]) -> None: ...

    @abstractmethod
    async def count(self, name: str) -> int: ...

    async def close(self) -> None:
        return None

    async def get_service_status(self) -> Dict[str, Any]:
        """
        서비스 상태

        Returns:
            {enabled, connected, cluster_health?}
        """
        if not self.is_enabled:
            return {"enabled": False, "connected": False}

        connected = await self.ping()
        status: Dict[str, Any] = {"enabled": True, "connected": connected}
        if connected:
            try:
                status["cluster_health"] = await self.cluster_health()
            except EngineUnavailableError as e:
                logger.error(f"Cluster health check failed: {e}")
                status["connected"] = False
            except EngineRequestError as e:
                logger.error(f"Cluster health check failed: {e}")
        return status


class DisabledEngineClient(SearchEngine):
    """
    비활성 엔진

    존재 확인/헬스 체크는 False 를 반환하고,
    데이터를 주고받는 호출은 ServiceDisabledError 를 발생시킵니다.
    """

    is_enabled = False

    def _disabled(self, index: Optional[str] = None) -> ServiceDisabledError:
        return ServiceDisabledError(index=index)

    async def ping(self) -> bool:
        return False

    async def cluster_health(self) -> Dict[str, Any]:
        raise self._disabled()

    async def create_index(self, name, mappings, settings=None) -> None:
        raise self._disabled(name)

    async def index_exists(self, name: str) -> bool:
        return False

    async def delete_index(self, name: str) -> bool:
        raise self._disabled(name)

    async def index_document(self, index, document, id=None, refresh=False) -> str:
        raise self._disabled(index)

    async def get_document(self, index, id) -> Dict[str, Any]:
        raise self._disabled(index)

    async def update_document(self, index, id, partial, refresh=False) -> None:
        raise self._disabled(index)

    async def delete_document(self, index, id, refresh=False) -> None:
        raise self._disabled(index)

    async def search(self, index, body) -> Dict[str, Any]:
        raise self._disabled(index)

    async def bulk(self, actions, refresh=False) -> BulkResponse:
        raise self._disabled()

    async def refresh_index(self, name) -> None:
        raise self._disabled(name)

    async def get_mapping(self, name) -> Dict[str, Any]:
        raise self._disabled(name)

    async def put_mapping(self, name, properties) -> None:
        raise self._disabled(name)

    async def count(self, name) -> int:
        raise self._disabled(name)


class ESEngineClient(SearchEngine):
    """
    Elasticsearch 엔진 클라이언트

    사용 예:
        engine = ESEngineClient(ESConfig.from_env())
        await engine.create_index("pets", mappings, settings)
        resp = await engine.search("pets", {"query": {"match_all": {}}})
    """

    is_enabled = True

    def __init__(self, config: Optional[ESConfig] = None, client: Optional[AsyncElasticsearch] = None):
        """
        Args:
            config: 연결 설정 (기본값: 환경 변수)
            client: 미리 생성한 AsyncElasticsearch (테스트용)
        """
        self.config = config or get_es_config()
        self._client: Optional[AsyncElasticsearch] = client

    @property
    def client(self) -> AsyncElasticsearch:
        """비동기 클라이언트 (lazy initialization)"""
        if self._client is None:
            self._client = AsyncElasticsearch(**self._client_kwargs())
        return self._client

    def _client_kwargs(self) -> Dict[str, Any]:
        cfg = self.config
        kwargs: Dict[str, Any] = {
            "hosts": cfg.hosts,
            "request_timeout": cfg.request_timeout,
            "max_retries": cfg.max_retries,
            "retry_on_timeout": True,
        }
        if cfg.sniff_on_start:
            kwargs["sniff_on_start"] = True
        if cfg.api_key:
            kwargs["api_key"] = cfg.api_key
        elif cfg.username and cfg.password:
            kwargs["basic_auth"] = (cfg.username, cfg.password)

        # TLS 옵션은 https 노드에만 적용
        if any(h.startswith("https://") for h in kwargs["hosts"]):
            kwargs["verify_certs"] = cfg.verify_certs
            if cfg.ca_certs:
                kwargs["ca_certs"] = cfg.ca_certs
        return kwargs

    async def _call(self, operation: str, awaitable: Awaitable, index: Optional[str] = None) -> Any:
        """엔진 호출 + 타임아웃 + 예외 변환"""
        try:
            response = await asyncio.wait_for(awaitable, timeout=self.config.call_timeout)
            return _body(response)
        except asyncio.TimeoutError as e:
            logger.error(f"ES {operation} timed out after {self.config.call_timeout}s (index={index})")
            raise EngineUnavailableError(
                f"{operation} timed out after {self.config.call_timeout}s",
                index=index,
            ) from e
        except ApiError as e:
            status = getattr(getattr(e, "meta", None), "status", None)
            logger.error(f"ES {operation} failed (index={index}, status={status}): {e}")
            raise EngineRequestError(str(e), index=index, status_code=status) from e
        except TransportError as e:
            logger.error(f"ES {operation} transport error (index={index}): {e}")
            raise EngineUnavailableError(str(e), index=index) from e

    async def ping(self) -> bool:
        """연결 확인 (실패 시 False)"""
        try:
            return bool(await self.client.options(request_timeout=self.config.ping_timeout).ping())
        except (ApiError, TransportError) as e:
            logger.warning(f"Elasticsearch connection failed: {e}")
            return False

    async def cluster_health(self) -> Dict[str, Any]:
        return await self._call("cluster_health", self.client.cluster.health())

    async def create_index(
        self,
        name: str,
        mappings: Dict[str, Any],
        settings: Optional[Dict[str, Any]] = None,
    ) -> None:
        await self._call(
            "create_index",
            self.client.indices.create(index=name, mappings=mappings, settings=settings or {}),
            index=name,
        )
        logger.info(f"Index created: {name}")

    async def index_exists(self, name: str) -> bool:
        """인덱스 존재 확인 (엔진 오류 시 False)"""
        try:
            return bool(await self._call("index_exists", self.client.indices.exists(index=name), index=name))
        except (EngineRequestError, EngineUnavailableError) as e:
            logger.warning(f"Index existence check failed for {name}: {e}")
            return False

    async def delete_index(self, name: str) -> bool:
        """
        인덱스 삭제

        Returns:
            삭제했으면 True, 원래 없었으면 False
        """
        try:
            await self._call("delete_index", self.client.indices.delete(index=name), index=name)
        except EngineRequestError as e:
            if e.status_code == 404:
                return False
            raise
        logger.info(f"Index deleted: {name}")
        return True

    async def index_document(
        self,
        index: str,
        document: Dict[str, Any],
        id: Optional[str] = None,
        refresh: bool = False,
    ) -> str:
        response = await self._call(
            "index_document",
            self.client.index(
                index=index,
                id=str(id) if id is not None else None,
                document=document,
                refresh="true" if refresh else "false",
            ),
            index=index,
        )
        return str(response.get("_id", id))

    async def get_document(self, index: str, id: str) -> Dict[str, Any]:
        try:
            response = await self._call("get_document", self.client.get(index=index, id=str(id)), index=index)
        except EngineRequestError as e:
            if e.status_code == 404:
                raise DocumentNotFoundError(index, str(id)) from e
            raise
        return response.get("_source", {})

    async def update_document(
        self,
        index: str,
        id: str,
        partial: Dict[str, Any],
        refresh: bool = False,
    ) -> None:
        await self._call(
            "update_document",
            self.client.update(index=index, id=str(id), doc=partial, refresh="true" if refresh else "false"),
            index=index,
        )

    async def delete_document(self, index: str, id: str, refresh: bool = False) -> None:
        await self._call(
            "delete_document",
            self.client.delete(index=index, id=str(id), refresh="true" if refresh else "false"),
            index=index,
        )

    async def search(self, index: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """
        검색 실행

        Args:
            index: 인덱스명
            body: 검색 본문 (query, size, from, sort, aggs, highlight, suggest, _source)
        """
        params = dict(body)
        if "from" in params:
            params["from_"] = params.pop("from")
        if "_source" in params:
            params["source"] = params.pop("_source")
        return await self._call("search", self.client.search(index=index, **params), index=index)

    async def bulk(self, actions: List[BulkAction], refresh: bool = False) -> BulkResponse:
        """bulk 실행 (항목별 결과 정규화)"""
        if not actions:
            return BulkResponse()

        operations: List[Dict[str, Any]] = []
        for action in actions:
            operations.extend(action.to_operations())

        raw = await self._call(
            "bulk",
            self.client.bulk(operations=operations, refresh="true" if refresh else "false"),
            index=actions[0].index,
        )
        result = parse_bulk_response(raw)
        if result.errors:
            logger.warning(f"Bulk completed with {len(result.failed_items)} failed items")
        return result

    async def refresh_index(self, name: str) -> None:
        await self._call("refresh_index", self.client.indices.refresh(index=name), index=name)

    async def get_mapping(self, name: str) -> Dict[str, Any]:
        response = await self._call("get_mapping", self.client.indices.get_mapping(index=name), index=name)
        return response.get(name, {}).get("mappings", {})

    async def put_mapping(self, name: str, properties: Dict[str, Any]) -> None:
        await self._call(
            "put_mapping",
            self.client.indices.put_mapping(index=name, properties=properties),
            index=name,
        )

    async def count(self, name: str) -> int:
        response = await self._call("count", self.client.count(index=name), index=name)
        return int(response.get("count", 0))

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
            logger.info("Elasticsearch client closed")


def create_search_engine(config: Optional[ESConfig] = None) -> SearchEngine:
    """설정에 따라 실제/비활성 엔진 선택"""
    config = config or get_es_config()
    if not config.enabled:
        logger.info("Elasticsearch is disabled (ELASTICSEARCH_ENABLED=false)")
        return DisabledEngineClient()
    logger.info(f"Elasticsearch enabled: nodes={list(config.nodes)}")
    return ESEngineClient(config)


# 싱글톤 인스턴스
_engine: Optional[SearchEngine] = None


def get_search_engine() -> SearchEngine:
    """프로세스 전역 엔진 반환"""
    global _engine
    if _engine is None:
        _engine = create_search_engine()
    return _engine


async def close_search_engine() -> None:
    global _engine
    if _engine is not None:
        await _engine.close()
        _engine = None
