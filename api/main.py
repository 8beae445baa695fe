"""
Clinic Search API
FastAPI 기반 검색 인덱스 동기화/조회 REST API
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.dependencies import SearchServices, build_services_from_settings
from api.routers.es_health import router as es_health_router
from api.routers.es_management import router as es_management_router
from api.routers.es_search import router as es_search_router
from clinic_search.config import get_settings

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """앱 시작/종료 시 실행"""
    services: Optional[SearchServices] = getattr(app.state, "services", None)
    owns_services = services is None
    if owns_services:
        services = build_services_from_settings(get_settings())
        app.state.services = services

    logger.info("Clinic Search API starting...")
    if services.engine.is_enabled:
        if await services.engine.ping():
            logger.info("Elasticsearch connection established")
        else:
            logger.warning("Elasticsearch is enabled but not reachable")
    else:
        logger.info("Elasticsearch is disabled, search endpoints will report disabled")

    if not services.admin_api_key:
        logger.warning("SEARCH_ADMIN_API_KEY is not set, management endpoints are unprotected")

    yield

    logger.info("Clinic Search API shutting down...")
    if owns_services:
        await services.close()


def create_app(services: Optional[SearchServices] = None) -> FastAPI:
    """
    앱 생성

    Args:
        services: 미리 구성한 서비스 묶음 (테스트용). 없으면 시작 시 환경 설정으로 생성
    """
    app = FastAPI(
        title="Clinic Search API",
        description="반려동물, 예약, 사용자, 병원, 진료 기록, FAQ 검색 인덱스 동기화/조회",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    if services is not None:
        app.state.services = services

    # CORS 설정
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/", tags=["Health"])
    async def root():
        """API 상태 확인"""
        return {
            "status": "ok",
            "service": "Clinic Search API",
            "version": "1.0.0"
        }

    @app.get("/health", tags=["Health"])
    async def health_check():
        """헬스 체크"""
        return {"status": "healthy"}

    app.include_router(es_health_router)
    app.include_router(es_management_router)
    app.include_router(es_search_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
