"""
API 의존성

- 앱 상태에 보관된 검색 서비스 묶음 조회
- 관리 API 키 검증 (X-Admin-Key)
"""

import logging
import secrets
from dataclasses import dataclass, field
from typing import Dict, Optional

from fastapi import Header, HTTPException, Request

from clinic_search.config import Settings
from clinic_search.db import Database
from clinic_search.es_client import SearchEngine, create_search_engine
from clinic_search.es_faq import FaqSearchService
from clinic_search.es_indices import ESIndexManager
from clinic_search.es_search import ESSearchService
from clinic_search.es_suggest import SuggestionService
from clinic_search.es_sync import ESSyncService
from clinic_search.repositories import EntityRepository, build_repositories

logger = logging.getLogger(__name__)


@dataclass
class SearchServices:
    """프로세스 전역 서비스 묶음 (시작 시 한 번 생성)"""
    engine: SearchEngine
    index_manager: ESIndexManager
    sync: ESSyncService
    search: ESSearchService
    suggestions: SuggestionService
    faqs: FaqSearchService
    admin_api_key: Optional[str] = None
    db: Optional[Database] = None
    repositories: Dict[str, EntityRepository] = field(default_factory=dict)

    async def close(self) -> None:
        await self.engine.close()
        if self.db is not None:
            await self.db.close()


def build_services(
    engine: SearchEngine,
    repositories: Optional[Dict[str, EntityRepository]] = None,
    admin_api_key: Optional[str] = None,
    db: Optional[Database] = None,
) -> SearchServices:
    """엔진 + 리포지토리로 서비스 묶음 구성"""
    repositories = dict(repositories or {})
    index_manager = ESIndexManager(engine)
    sync = ESSyncService(engine, repositories, index_manager)
    suggestions = SuggestionService(engine, repositories)
    return SearchServices(
        engine=engine,
        index_manager=index_manager,
        sync=sync,
        search=ESSearchService(engine),
        suggestions=suggestions,
        faqs=FaqSearchService(sync, suggestions),
        admin_api_key=admin_api_key,
        db=db,
        repositories=repositories,
    )


def build_services_from_settings(settings: Settings) -> SearchServices:
    db = Database(settings.db)
    return build_services(
        engine=create_search_engine(settings.es),
        repositories=build_repositories(db),
        admin_api_key=settings.admin_api_key,
        db=db,
    )


def get_services(request: Request) -> SearchServices:
    return request.app.state.services


def require_admin_key(request: Request, x_admin_key: Optional[str] = Header(default=None)) -> None:
    """
    관리 API 키 검증

    SEARCH_ADMIN_API_KEY 가 설정되지 않았으면 검증하지 않습니다.
    """
    expected = get_services(request).admin_api_key
    if not expected:
        return

    if not x_admin_key:
        raise HTTPException(status_code=401, detail="Missing X-Admin-Key header")

    if not secrets.compare_digest(x_admin_key, expected):
        raise HTTPException(status_code=401, detail="Invalid admin key")
