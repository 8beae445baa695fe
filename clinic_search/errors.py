"""
검색 계층 커스텀 예외 클래스
- 엔진 비활성 / 연결 실패 / 요청 실패 구분
- 스키마 위반, 알 수 없는 인덱스, 미지원 필터
"""


class SearchEngineError(Exception):
    """검색 계층 기본 예외"""

    def __init__(self, message: str, index: str = None, details: dict = None):
        self.message = message
        self.index = index
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "index": self.index,
            "details": self.details
        }


class ServiceDisabledError(SearchEngineError):
    """Elasticsearch 비활성 (ELASTICSEARCH_ENABLED=false)"""

    def __init__(self, message: str = "Elasticsearch is disabled", index: str = None):
        super().__init__(message, index=index, details={"error_code": "SEARCH_DISABLED"})


class EngineUnavailableError(SearchEngineError):
    """엔진 연결 실패 또는 타임아웃"""

    def __init__(self, message: str, index: str = None, details: dict = None):
        super().__init__(message, index=index, details=details)


class EngineRequestError(SearchEngineError):
    """엔진이 오류 응답을 반환"""

    def __init__(self, message: str, index: str = None, status_code: int = None, details: dict = None):
        details = dict(details or {})
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, index=index, details=details)
        self.status_code = status_code


class DocumentNotFoundError(SearchEngineError):
    """문서 없음"""

    def __init__(self, index: str, document_id: str):
        super().__init__(
            f"Document {document_id} not found in {index}",
            index=index,
            details={"id": document_id},
        )
        self.document_id = document_id


class SchemaViolationError(SearchEngineError):
    """매핑에 선언되지 않은 필드 포함"""

    def __init__(self, index: str, fields: list, document_id: str = None):
        super().__init__(
            f"Fields not declared in {index} mapping: {', '.join(fields)}",
            index=index,
            details={"fields": list(fields), "id": document_id},
        )
        self.fields = list(fields)


class UnknownIndexError(SearchEngineError, ValueError):
    """관리 대상이 아닌 인덱스명"""

    def __init__(self, index: str):
        super().__init__(f"Unknown index: {index}", index=index)


class UnsupportedFilterError(SearchEngineError, ValueError):
    """엔티티가 지원하지 않는 필터"""

    def __init__(self, index: str, filters: list):
        super().__init__(
            f"Filters not supported for {index}: {', '.join(filters)}",
            index=index,
            details={"filters": list(filters)},
        )
