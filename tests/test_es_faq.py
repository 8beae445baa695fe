"""
FAQ 색인/검색 테스트
"""

from datetime import datetime

import pytest

from clinic_search.es_client import DisabledEngineClient
from clinic_search.es_faq import FaqSearchService, build_faq_query
from clinic_search.es_sync import ESSyncService


@pytest.fixture
def faq_service(sync_service):
    return FaqSearchService(sync_service)


class TestBuildFaqQuery:
    """FAQ 쿼리 생성"""

    def test_active_only(self):
        body = build_faq_query("vaccine")

        must = body["query"]["bool"]["must"]
        assert {"term": {"is_active": True}} in must
        assert body["size"] == 20
        assert body["sort"][0] == {"_score": "desc"}

    def test_species_filter(self):
        body = build_faq_query("vaccine", species="dog", size=5)

        assert {"term": {"species": "dog"}} in body["query"]["bool"]["must"]
        assert body["size"] == 5


class TestFaqIndexing:
    """FAQ 색인"""

    @pytest.mark.asyncio
    async def test_index_all_faqs(self, engine, faq_service):
        # When
        result = await faq_service.index_all_faqs()

        # Then
        assert result.success is True
        assert result.total_synced == 2
        assert set(engine.indices["faqs"]) == {"1", "2"}
        assert engine.indices["faqs"]["1"]["searchable_content"].startswith("how often")
        assert engine.refresh_calls == ["faqs"]

    @pytest.mark.asyncio
    async def test_index_and_remove_single_faq(self, engine, faq_service):
        await faq_service.sync.index_manager.create_faq_index()

        assert await faq_service.index_faq({"id": 9, "question": "Q", "answer": "A", "is_active": True}) is True
        assert "9" in engine.indices["faqs"]

        assert await faq_service.remove_faq("9") is True
        assert "9" not in engine.indices["faqs"]

    @pytest.mark.asyncio
    async def test_disabled(self, repositories):
        service = FaqSearchService(ESSyncService(DisabledEngineClient(), repositories))

        result = await service.index_all_faqs()

        assert result.success is False
        assert result.errors == ["Elasticsearch is disabled"]


class TestFaqSearch:
    """FAQ 검색 (엔진 우선, DB 폴백)"""

    @pytest.mark.asyncio
    async def test_engine_search(self, faq_service):
        await faq_service.index_all_faqs()

        response = await faq_service.search_faqs("vaccinate", species="dog")

        assert response.source == "engine"
        assert [r["id"] for r in response.results] == ["1"]
        assert response.results[0]["question"] == "How often should I vaccinate my dog?"

    @pytest.mark.asyncio
    async def test_falls_back_to_database_on_engine_error(self, engine, faq_service):
        # Given: 인덱스가 없어 엔진 검색 실패
        assert "faqs" not in engine.indices

        # When
        response = await faq_service.search_faqs("twice")

        # Then
        assert response.source == "database"
        assert [r["id"] for r in response.results] == ["2"]

    @pytest.mark.asyncio
    async def test_database_search_when_disabled(self, repositories):
        repositories["faqs"].rows[0]["created_at"] = datetime(2024, 3, 1, 9, 0)
        service = FaqSearchService(ESSyncService(DisabledEngineClient(), repositories))

        response = await service.search_faqs("VACCINAT", species="dog")

        assert response.total == 1
        assert response.results[0]["id"] == "1"
        assert response.results[0]["created_at"] == "2024-03-01T09:00:00+00:00"

    @pytest.mark.asyncio
    async def test_autocomplete_uses_faq_index(self, repositories):
        service = FaqSearchService(ESSyncService(DisabledEngineClient(), repositories))

        response = await service.autocomplete("How much", species="cat")

        assert [s.text for s in response.suggestions] == ["How much should a cat eat?"]
