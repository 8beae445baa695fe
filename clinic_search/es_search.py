"""
엔티티 검색 서비스

(검색어, 구조화 필터, 옵션) 을 엔티티별 bool 쿼리로 변환하고
결과를 정규화합니다. 5개 엔티티를 동시에 조회하는 통합 검색을 지원합니다.

엔진이 비활성이면 빈 결과 대신 ServiceDisabledError 를 발생시킵니다.
"""

import asyncio
import logging
from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

from clinic_search.errors import SearchEngineError, ServiceDisabledError, UnknownIndexError, UnsupportedFilterError
from clinic_search.es_client import SearchEngine
from clinic_search.query_dsl import (
    Aggregation,
    BoolQuery,
    DateHistogramAgg,
    Highlight,
    MultiMatch,
    RangeAgg,
    RangeBucket,
    RangeFilter,
    TermFilter,
    TermsAgg,
    TermsFilter,
    build_aggregations,
)

logger = logging.getLogger(__name__)

DEFAULT_SIZE = 10
GLOBAL_SIZE_CAP = 5

DateValue = Union[str, date, datetime]


def _iso(value: Optional[DateValue]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


@dataclass
class DateRange:
    start: Optional[DateValue] = None
    end: Optional[DateValue] = None

    def is_empty(self) -> bool:
        return self.start is None and self.end is None


@dataclass
class SearchFilters:
    """구조화 필터 (엔티티마다 허용 필터가 다름)"""
    clinic_id: Optional[str] = None
    user_id: Optional[str] = None
    pet_id: Optional[str] = None
    status: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    priority: List[str] = field(default_factory=list)
    date_range: Optional[DateRange] = None

    def populated(self) -> List[str]:
        """값이 채워진 필터명"""
        names = []
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, DateRange):
                if not value.is_empty():
                    names.append(f.name)
            elif value:
                names.append(f.name)
        return names

    def restricted_to(self, supported: List[str]) -> "SearchFilters":
        """지원하지 않는 필터를 비운 복사본"""
        cleared = {}
        for name in self.populated():
            if name not in supported:
                cleared[name] = None if name in ("clinic_id", "user_id", "pet_id", "date_range") else []
        return replace(self, **cleared)


@dataclass
class SearchOptions:
    """페이지/정렬/하이라이트/집계 옵션"""
    size: int = DEFAULT_SIZE
    from_: int = 0
    sort: Optional[List[Dict[str, str]]] = None
    highlight: bool = False
    aggregations: bool = False


@dataclass
class SearchResult:
    """정규화된 검색 결과"""
    hits: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0
    aggregations: Optional[Dict[str, Any]] = None
    suggestions: Optional[List[Dict[str, Any]]] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"hits": self.hits, "total": self.total}
        if self.aggregations is not None:
            data["aggregations"] = self.aggregations
        if self.suggestions is not None:
            data["suggestions"] = self.suggestions
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class EntityProfile:
    """
    엔티티별 검색 프로필

    filters: 요청 필터명 → 문서 필드 (range 필터는 date_field 사용)
    """
    index: str
    result_key: str
    search_fields: List[str]
    filters: Dict[str, str]
    default_sort: List[Dict[str, str]]
    highlight_fields: List[str]
    aggregations: Dict[str, Aggregation]
    date_field: Optional[str] = None

    @property
    def supported_filters(self) -> List[str]:
        supported = list(self.filters)
        if self.date_field:
            supported.append("date_range")
        return supported


# 엔티티별 프로필 (매핑 기반)
PROFILES: Dict[str, EntityProfile] = {
    "pets": EntityProfile(
        index="pets",
        result_key="pets",
        search_fields=["name.search^2", "breed.search", "description.search", "species"],
        filters={"clinic_id": "clinicId", "user_id": "ownerId", "status": "status", "tags": "tags"},
        default_sort=[{"createdAt": "desc"}],
        highlight_fields=["name", "breed", "description"],
        aggregations={
            "species": TermsAgg("species"),
            "status": TermsAgg("status"),
            "tags": TermsAgg("tags"),
            "age_ranges": RangeAgg("age", [
                RangeBucket("0-1", 0, 1),
                RangeBucket("1-5", 1, 5),
                RangeBucket("5-10", 5, 10),
                RangeBucket("10+", 10),
            ]),
        },
    ),
    "appointments": EntityProfile(
        index="appointments",
        result_key="appointments",
        search_fields=["reason.search^2", "notes.search", "type"],
        filters={
            "clinic_id": "clinicId",
            "user_id": "ownerId",
            "pet_id": "petId",
            "status": "status",
            "priority": "priority",
        },
        date_field="appointmentDate",
        default_sort=[{"appointmentDate": "asc"}],
        highlight_fields=["reason", "notes"],
        aggregations={
            "status": TermsAgg("status"),
            "type": TermsAgg("type"),
            "priority": TermsAgg("priority"),
            "date_histogram": DateHistogramAgg("appointmentDate", "day"),
        },
    ),
    "users": EntityProfile(
        index="users",
        result_key="users",
        search_fields=["firstName.search^2", "lastName.search^2", "fullName.search", "email"],
        filters={"clinic_id": "clinicId", "status": "status"},
        default_sort=[{"createdAt": "desc"}],
        highlight_fields=["firstName", "lastName", "fullName"],
        aggregations={
            "role": TermsAgg("role"),
            "status": TermsAgg("status"),
        },
    ),
    "clinics": EntityProfile(
        index="clinics",
        result_key="clinics",
        search_fields=["name.search^2", "description.search", "services", "specialties"],
        filters={"status": "status", "tags": "tags"},
        # text 필드는 정렬 불가, keyword 하위 필드로 동점 정렬
        default_sort=[{"rating": "desc"}, {"name.keyword": "asc"}],
        highlight_fields=["name", "description"],
        aggregations={
            "services": TermsAgg("services"),
            "specialties": TermsAgg("specialties"),
            "status": TermsAgg("status"),
            "rating_ranges": RangeAgg("rating", [
                RangeBucket("0-3", 0, 3),
                RangeBucket("3-4", 3, 4),
                RangeBucket("4-5", 4, 5),
            ]),
        },
    ),
    "health-records": EntityProfile(
        index="health-records",
        result_key="healthRecords",
        search_fields=["title.search^2", "description.search", "symptoms.search", "diagnosis.search", "treatment.search"],
        filters={
            "clinic_id": "clinicId",
            "pet_id": "petId",
            "user_id": "veterinarianId",
            "status": "status",
            "tags": "tags",
        },
        date_field="recordDate",
        default_sort=[{"recordDate": "desc"}],
        highlight_fields=["title", "description", "symptoms", "diagnosis"],
        aggregations={
            "recordType": TermsAgg("recordType"),
            "severity": TermsAgg("severity"),
            "tags": TermsAgg("tags"),
            "date_histogram": DateHistogramAgg("recordDate", "month"),
        },
    ),
}

SEARCHABLE_INDICES = tuple(PROFILES.keys())


def get_profile(index_name: str) -> EntityProfile:
    if index_name not in PROFILES:
        raise UnknownIndexError(index_name)
    return PROFILES[index_name]


def build_bool_query(profile: EntityProfile, query: Optional[str], filters: SearchFilters) -> BoolQuery:
    """
    bool 쿼리 생성

    검색어가 있을 때만 must 에 multi_match 를 넣고,
    값이 있는 필터만 filter 절로 추가합니다.

    Raises:
        UnsupportedFilterError: 엔티티가 지원하지 않는 필터가 채워진 경우
    """
    unsupported = [name for name in filters.populated() if name not in profile.supported_filters]
    if unsupported:
        raise UnsupportedFilterError(profile.index, unsupported)

    bool_query = BoolQuery()

    if query and query.strip():
        bool_query.must.append(MultiMatch(query=query.strip(), fields=profile.search_fields))

    for name, doc_field in profile.filters.items():
        value = getattr(filters, name)
        if not value:
            continue
        if isinstance(value, list):
            bool_query.filter.append(TermsFilter(doc_field, value))
        else:
            bool_query.filter.append(TermFilter(doc_field, value))

    if profile.date_field and filters.date_range and not filters.date_range.is_empty():
        bool_query.filter.append(RangeFilter(
            profile.date_field,
            gte=_iso(filters.date_range.start),
            lte=_iso(filters.date_range.end),
        ))

    return bool_query


def build_search_body(
    profile: EntityProfile,
    query: Optional[str],
    filters: Optional[SearchFilters] = None,
    options: Optional[SearchOptions] = None,
) -> Dict[str, Any]:
    """엔티티 검색 본문 생성"""
    filters = filters or SearchFilters()
    options = options or SearchOptions()

    body: Dict[str, Any] = {
        "query": build_bool_query(profile, query, filters).to_dict(),
        "size": options.size if options.size is not None else DEFAULT_SIZE,
        "from": options.from_ or 0,
        # 호출자 정렬은 기본 정렬을 대체
        "sort": options.sort if options.sort else profile.default_sort,
    }

    if options.highlight:
        body["highlight"] = Highlight(profile.highlight_fields).to_dict()

    if options.aggregations:
        body["aggs"] = build_aggregations(profile.aggregations)

    return body


def normalize_total(raw_total: Any) -> int:
    """hits.total 은 클라이언트 버전에 따라 dict 또는 int"""
    if isinstance(raw_total, dict):
        return int(raw_total.get("value", 0) or 0)
    if isinstance(raw_total, int):
        return raw_total
    return 0


def format_search_result(response: Dict[str, Any]) -> SearchResult:
    """엔진 응답 → SearchResult"""
    raw_hits = response.get("hits", {}) or {}
    hits = []
    for hit in raw_hits.get("hits", []):
        item = dict(hit.get("_source", {}))
        item["_score"] = hit.get("_score")
        item["_id"] = hit.get("_id")
        if hit.get("highlight"):
            item["highlight"] = hit["highlight"]
        hits.append(item)

    return SearchResult(
        hits=hits,
        total=normalize_total(raw_hits.get("total")),
        aggregations=response.get("aggregations"),
    )


class ESSearchService:
    """
    엔티티 검색 서비스

    사용 예:
        service = ESSearchService(engine)
        result = await service.search_pets("dog", SearchFilters(status=["active"]))
    """

    def __init__(self, engine: SearchEngine):
        self.engine = engine

    def _ensure_enabled(self, index_name: Optional[str] = None) -> None:
        if not self.engine.is_enabled:
            raise ServiceDisabledError("Search is disabled", index=index_name)

    async def search(
        self,
        index_name: str,
        query: Optional[str] = None,
        filters: Optional[SearchFilters] = None,
        options: Optional[SearchOptions] = None,
    ) -> SearchResult:
        """
        단일 엔티티 검색

        Args:
            index_name: pets / appointments / users / clinics / health-records
            query: 검색어 (비어 있으면 필터만 적용)
            filters: 구조화 필터
            options: 페이지/정렬/하이라이트/집계

        Raises:
            ServiceDisabledError: 엔진 비활성
            UnsupportedFilterError: 지원하지 않는 필터
            EngineUnavailableError / EngineRequestError: 엔진 오류 (그대로 전파)
        """
        profile = get_profile(index_name)
        self._ensure_enabled(index_name)

        body = build_search_body(profile, query, filters, options)
        response = await self.engine.search(index_name, body)
        result = format_search_result(response)

        logger.info(f"ES search: query='{query or ''}', index={index_name}, hits={len(result.hits)}, total={result.total}")
        return result

    async def search_pets(self, query=None, filters=None, options=None) -> SearchResult:
        return await self.search("pets", query, filters, options)

    async def search_appointments(self, query=None, filters=None, options=None) -> SearchResult:
        return await self.search("appointments", query, filters, options)

    async def search_users(self, query=None, filters=None, options=None) -> SearchResult:
        return await self.search("users", query, filters, options)

    async def search_clinics(self, query=None, filters=None, options=None) -> SearchResult:
        return await self.search("clinics", query, filters, options)

    async def search_health_records(self, query=None, filters=None, options=None) -> SearchResult:
        return await self.search("health-records", query, filters, options)

    async def global_search(
        self,
        query: Optional[str] = None,
        filters: Optional[SearchFilters] = None,
        options: Optional[SearchOptions] = None,
    ) -> Dict[str, SearchResult]:
        """
        통합 검색

        5개 엔티티를 동시에 조회하며, 엔티티별 size 는 min(요청 size, 5) 입니다.
        엔티티가 지원하지 않는 필터는 해당 엔티티 조회에서 제외합니다.
        한 엔티티의 실패는 error 가 채워진 빈 결과로 대체하고,
        모든 엔티티가 실패하면 첫 번째 오류를 발생시킵니다.

        Returns:
            {pets, appointments, users, clinics, healthRecords}
        """
        self._ensure_enabled()
        filters = filters or SearchFilters()
        options = options or SearchOptions()
        capped = replace(options, size=min(options.size or DEFAULT_SIZE, GLOBAL_SIZE_CAP))

        profiles = list(PROFILES.values())
        outcomes = await asyncio.gather(
            *(
                self.search(p.index, query, filters.restricted_to(p.supported_filters), capped)
                for p in profiles
            ),
            return_exceptions=True,
        )

        results: Dict[str, SearchResult] = {}
        failures: List[BaseException] = []
        for profile, outcome in zip(profiles, outcomes):
            if isinstance(outcome, Exception):
                logger.error(f"Global search failed for {profile.index}: {outcome}")
                failures.append(outcome)
                message = outcome.message if isinstance(outcome, SearchEngineError) else str(outcome)
                results[profile.result_key] = SearchResult(error=message)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results[profile.result_key] = outcome

        if failures and len(failures) == len(profiles):
            raise failures[0]

        return results
