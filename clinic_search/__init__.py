# Clinic Search Module
"""
동물병원 플랫폼 검색 인덱스 동기화/조회 모듈

PostgreSQL 원본 레코드(반려동물, 예약, 사용자, 병원, 진료 기록, FAQ)를
Elasticsearch 인덱스로 미러링하고 통합 검색/자동완성을 제공합니다.

주요 컴포넌트:
- es_client: 엔진 클라이언트 (활성/비활성 구현)
- es_indices: 인덱스 생성/삭제/상태 관리
- es_sync: PostgreSQL → Elasticsearch 동기화
- es_search: 엔티티 검색 및 통합 검색
- es_suggest: 자동완성 (엔진 우선, DB 폴백)
- es_faq: FAQ 색인/검색
"""

from .es_client import ESEngineClient, DisabledEngineClient, SearchEngine, create_search_engine, get_search_engine
from .es_indices import ESIndexManager
from .es_sync import ESSyncService, SyncOptions, SyncResult
from .es_search import ESSearchService, SearchFilters, SearchOptions, SearchResult
from .es_suggest import SuggestionService
from .es_faq import FaqSearchService

__all__ = [
    "SearchEngine",
    "ESEngineClient",
    "DisabledEngineClient",
    "create_search_engine",
    "get_search_engine",
    "ESIndexManager",
    "ESSyncService",
    "SyncOptions",
    "SyncResult",
    "ESSearchService",
    "SearchFilters",
    "SearchOptions",
    "SearchResult",
    "SuggestionService",
    "FaqSearchService",
]
