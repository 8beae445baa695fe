"""
Elasticsearch Search API

엔티티별 검색, 통합 검색, 자동완성, FAQ 검색
"""

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import SearchServices, get_services
from api.models import GlobalSearchRequest, SearchFiltersModel, SearchOptionsModel, bad_request, error_response, success_response
from clinic_search.es_search import DateRange, SearchFilters, SearchOptions, SearchResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/elasticsearch/search", tags=["Elasticsearch Search"])


def parse_sort(sort: Optional[str]) -> Optional[List[Dict[str, str]]]:
    """
    "field:dir,field2" → [{"field": "dir"}, {"field2": "asc"}]

    Raises:
        ValueError: 방향이 asc/desc 가 아닌 경우
    """
    if not sort:
        return None

    parsed = []
    for part in sort.split(","):
        part = part.strip()
        if not part:
            continue
        field_name, _, direction = part.partition(":")
        direction = (direction or "asc").lower()
        if direction not in ("asc", "desc"):
            raise ValueError(f"Invalid sort direction: {direction}")
        parsed.append({field_name: direction})
    return parsed or None


def to_filters(model: Optional[SearchFiltersModel]) -> SearchFilters:
    if model is None:
        return SearchFilters()
    date_range = None
    if model.date_range is not None:
        date_range = DateRange(start=model.date_range.start, end=model.date_range.end)
    return SearchFilters(
        clinic_id=model.clinic_id,
        user_id=model.user_id,
        pet_id=model.pet_id,
        status=list(model.status),
        tags=list(model.tags),
        priority=list(model.priority),
        date_range=date_range,
    )


def to_options(model: Optional[SearchOptionsModel]) -> SearchOptions:
    if model is None:
        return SearchOptions()
    return SearchOptions(
        size=model.size,
        from_=model.from_,
        sort=model.sort,
        highlight=model.highlight,
        aggregations=model.aggregations,
    )


class EntitySearchParams:
    """엔티티 검색 쿼리 파라미터"""

    def __init__(
        self,
        query: Optional[str] = Query(default=None, description="검색어 (필수)"),
        clinic_id: Optional[str] = Query(default=None, alias="clinicId"),
        user_id: Optional[str] = Query(default=None, alias="userId"),
        pet_id: Optional[str] = Query(default=None, alias="petId"),
        status: Optional[List[str]] = Query(default=None),
        tags: Optional[List[str]] = Query(default=None),
        priority: Optional[List[str]] = Query(default=None),
        start_date: Optional[str] = Query(default=None, alias="startDate"),
        end_date: Optional[str] = Query(default=None, alias="endDate"),
        size: int = Query(default=10, ge=0, le=100),
        from_: int = Query(default=0, ge=0, alias="from"),
        sort: Optional[str] = Query(default=None, description="field:asc|desc, 콤마 구분"),
        highlight: bool = Query(default=False),
        aggregations: bool = Query(default=False),
    ):
        self.query = query
        self.filters = SearchFilters(
            clinic_id=clinic_id,
            user_id=user_id,
            pet_id=pet_id,
            status=status or [],
            tags=tags or [],
            priority=priority or [],
            date_range=DateRange(start_date, end_date) if (start_date or end_date) else None,
        )
        self.size = size
        self.from_ = from_
        self.sort = sort
        self.highlight = highlight
        self.aggregations = aggregations

    def options(self) -> SearchOptions:
        return SearchOptions(
            size=self.size,
            from_=self.from_,
            sort=parse_sort(self.sort),
            highlight=self.highlight,
            aggregations=self.aggregations,
        )


async def _entity_search(index_name: str, params: EntitySearchParams, services: SearchServices):
    if not params.query or not params.query.strip():
        return bad_request("Query parameter is required")

    try:
        result: SearchResult = await services.search.search(
            index_name, params.query, params.filters, params.options()
        )
    except Exception as e:
        logger.error(f"Search failed for {index_name}: {e}")
        return error_response(e, f"Failed to search {index_name}")

    return success_response(result.to_dict())


@router.get("/pets", summary="반려동물 검색")
async def search_pets(params: EntitySearchParams = Depends(), services: SearchServices = Depends(get_services)):
    return await _entity_search("pets", params, services)


@router.get("/appointments", summary="예약 검색")
async def search_appointments(params: EntitySearchParams = Depends(), services: SearchServices = Depends(get_services)):
    return await _entity_search("appointments", params, services)


@router.get("/users", summary="사용자 검색")
async def search_users(params: EntitySearchParams = Depends(), services: SearchServices = Depends(get_services)):
    return await _entity_search("users", params, services)


@router.get("/clinics", summary="병원 검색")
async def search_clinics(params: EntitySearchParams = Depends(), services: SearchServices = Depends(get_services)):
    return await _entity_search("clinics", params, services)


@router.get("/health-records", summary="진료 기록 검색")
async def search_health_records(
    params: EntitySearchParams = Depends(),
    services: SearchServices = Depends(get_services),
):
    return await _entity_search("health-records", params, services)


@router.post("/global", summary="통합 검색")
async def global_search(request: GlobalSearchRequest, services: SearchServices = Depends(get_services)):
    """
    5개 엔티티 통합 검색

    엔티티별 결과 수는 최대 5건입니다.
    """
    if not request.query.strip():
        return bad_request("Query parameter is required")

    try:
        results = await services.search.global_search(
            request.query, to_filters(request.filters), to_options(request.options)
        )
    except Exception as e:
        logger.error(f"Global search failed: {e}")
        return error_response(e, "Failed to perform global search")

    return success_response({key: result.to_dict() for key, result in results.items()})


@router.get("/suggestions", summary="자동완성")
async def get_suggestions(
    query: Optional[str] = Query(default=None),
    index: Optional[str] = Query(default=None),
    size: int = Query(default=10, ge=1, le=50),
    species: Optional[str] = Query(default=None),
    services: SearchServices = Depends(get_services),
):
    if not query or not index:
        return bad_request("Query and index parameters are required")

    try:
        response = await services.suggestions.get_suggestions(query, index, size=size, species=species)
    except Exception as e:
        logger.error(f"Suggestions failed for {index}: {e}")
        return error_response(e, "Failed to get suggestions")

    return success_response(response.to_dict())


@router.get("/faqs", summary="FAQ 검색")
async def search_faqs(
    query: Optional[str] = Query(default=None),
    species: Optional[str] = Query(default=None),
    size: int = Query(default=20, ge=1, le=100),
    services: SearchServices = Depends(get_services),
):
    if not query or not query.strip():
        return bad_request("Query parameter is required")

    try:
        response = await services.faqs.search_faqs(query.strip(), species=species, size=size)
    except Exception as e:
        logger.error(f"FAQ search failed: {e}")
        return error_response(e, "Failed to search FAQs")

    return success_response(response.to_dict())
