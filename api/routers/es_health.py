"""
Elasticsearch Health API

엔진 연결 상태, 클러스터 상태, 인덱스 상태 조회
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.dependencies import SearchServices, get_services
from api.models import utc_now_iso
from clinic_search.errors import SearchEngineError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/elasticsearch/health", tags=["Elasticsearch Health"])


def _health(status_code: int, status: str, **fields) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"status": status, "timestamp": utc_now_iso(), **fields})


@router.get("", summary="엔진 연결 상태")
async def get_health(services: SearchServices = Depends(get_services)):
    """
    엔진 연결 상태

    - 비활성: 200, status=disabled
    - 활성 + 연결됨: 200, status=healthy
    - 활성 + 연결 안 됨: 503, status=unhealthy
    """
    try:
        service = await services.engine.get_service_status()
    except SearchEngineError as e:
        logger.error(f"Health check failed: {e}")
        return _health(500, "error", message="Failed to retrieve Elasticsearch health status", error=e.message)

    if not service["enabled"]:
        return _health(200, "disabled", service=service, message="Elasticsearch service is disabled")
    if not service["connected"]:
        return _health(
            503, "unhealthy", service=service,
            message="Elasticsearch service is enabled but not connected",
        )
    return _health(200, "healthy", service=service)


@router.get("/cluster", summary="클러스터 상태")
async def get_cluster_health(services: SearchServices = Depends(get_services)):
    if not services.engine.is_enabled:
        return _health(503, "disabled", message="Elasticsearch service is disabled")

    try:
        cluster_health = await services.engine.cluster_health()
    except SearchEngineError as e:
        return _health(503, "unhealthy", message="Failed to retrieve cluster health information", error=e.message)

    return _health(200, "healthy", cluster_health=cluster_health)


@router.get("/indices", summary="인덱스 상태")
async def get_indices_health(services: SearchServices = Depends(get_services)):
    """관리 대상 인덱스별 존재 여부와 문서 수"""
    if not services.engine.is_enabled:
        return _health(503, "disabled", message="Elasticsearch service is disabled")

    try:
        indices = await services.index_manager.get_indices_status()
    except SearchEngineError as e:
        return _health(503, "unhealthy", message="Failed to retrieve indices information", error=e.message)

    return _health(200, "healthy", indices=indices)
