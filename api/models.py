"""
검색 API Pydantic 모델 및 공통 응답 봉투
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from clinic_search.errors import EngineUnavailableError, SearchEngineError, ServiceDisabledError


# ========================================
# 공통 응답 봉투
# ========================================

class ApiResponse(BaseModel):
    """공통 응답 {status, data?, message?, error?, timestamp}"""
    status: str = Field(..., description="success | error | partial_success")
    data: Optional[Any] = Field(default=None, description="결과 데이터")
    message: Optional[str] = Field(default=None, description="메시지")
    error: Optional[Any] = Field(default=None, description="오류 내용")
    timestamp: str = Field(..., description="응답 시각 (ISO-8601)")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def envelope(
    status: str,
    data: Any = None,
    message: Optional[str] = None,
    error: Any = None,
    status_code: int = 200,
) -> JSONResponse:
    """봉투 응답 생성 (None 필드 생략)"""
    body = ApiResponse(status=status, data=data, message=message, error=error, timestamp=utc_now_iso())
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(body.model_dump(exclude_none=True)),
    )


def success_response(data: Any = None, message: Optional[str] = None) -> JSONResponse:
    return envelope("success", data=data, message=message)


def error_status_code(error: Exception) -> int:
    """예외 → HTTP 상태 코드"""
    if isinstance(error, (ServiceDisabledError, EngineUnavailableError)):
        return 503
    if isinstance(error, ValueError):
        return 400
    return 500


def error_response(error: Exception, message: str) -> JSONResponse:
    """예외 → 오류 봉투"""
    detail = error.message if isinstance(error, SearchEngineError) else str(error)
    return envelope("error", message=message, error=detail, status_code=error_status_code(error))


def bad_request(message: str) -> JSONResponse:
    return envelope("error", message=message, status_code=400)


# ========================================
# Request Models
# ========================================

class SyncRequest(BaseModel):
    """동기화 요청"""
    force: bool = Field(default=False, description="인덱스 삭제 후 재생성")
    batch_size: int = Field(default=100, ge=1, le=5000, alias="batchSize", description="bulk 호출당 문서 수")
    refresh: bool = Field(default=True, description="완료 후 인덱스 새로고침")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {"force": False, "batchSize": 100, "refresh": True}
        }


class DateRangeModel(BaseModel):
    start: Optional[datetime] = None
    end: Optional[datetime] = None


class SearchFiltersModel(BaseModel):
    """검색 필터"""
    clinic_id: Optional[str] = Field(default=None, alias="clinicId")
    user_id: Optional[str] = Field(default=None, alias="userId")
    pet_id: Optional[str] = Field(default=None, alias="petId")
    status: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    priority: List[str] = Field(default_factory=list)
    date_range: Optional[DateRangeModel] = Field(default=None, alias="dateRange")

    class Config:
        populate_by_name = True


class SearchOptionsModel(BaseModel):
    """검색 옵션"""
    size: int = Field(default=10, ge=0, le=100)
    from_: int = Field(default=0, ge=0, alias="from")
    sort: Optional[List[Dict[str, str]]] = None
    highlight: bool = False
    aggregations: bool = False

    class Config:
        populate_by_name = True


class GlobalSearchRequest(BaseModel):
    """통합 검색 요청"""
    query: str = Field(..., description="검색어")
    filters: Optional[SearchFiltersModel] = None
    options: Optional[SearchOptionsModel] = None

    class Config:
        json_schema_extra = {
            "example": {
                "query": "golden retriever",
                "filters": {"status": ["active"]},
                "options": {"size": 5, "highlight": True}
            }
        }
