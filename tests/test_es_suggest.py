"""
자동완성 서비스 테스트
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from clinic_search.errors import EngineUnavailableError, UnknownIndexError
from clinic_search.es_client import DisabledEngineClient
from clinic_search.es_suggest import Suggestion, SuggestionService, deduplicate_suggestions, normalize_text
from fakes import FailingRepository, FakeRepository


def _engine_returning(response):
    engine = MagicMock()
    engine.is_enabled = True
    engine.search = AsyncMock(return_value=response)
    return engine


class TestDeduplication:
    """중복 제거"""

    def test_normalize_text(self):
        assert normalize_text("  Golden   RETRIEVER ") == "golden retriever"

    def test_keeps_highest_score(self):
        suggestions = [Suggestion("Golden Retriever", 0.9), Suggestion("golden retriever", 0.95)]

        unique = deduplicate_suggestions(suggestions)

        assert len(unique) == 1
        assert unique[0].score == 0.95


class TestEngineSuggestions:
    """엔진 제안기"""

    @pytest.mark.asyncio
    async def test_merges_completion_and_phrase(self):
        # Given: 두 제안기가 같은 텍스트를 대소문자만 다르게 반환
        engine = _engine_returning({
            "suggest": {
                "completion": [{"text": "gol", "options": [
                    {"text": "Golden Retriever", "_score": 0.9},
                    {"text": "Golden Doodle", "_score": 0.5},
                ]}],
                "phrase": [{"text": "gol", "options": [
                    {"text": "golden retriever", "score": 0.95},
                ]}],
            }
        })
        service = SuggestionService(engine)

        # When
        response = await service.get_suggestions("gol", "pets")

        # Then
        assert [s.text for s in response.suggestions] == ["golden retriever", "Golden Doodle"]
        assert response.suggestions[0].score == 0.95
        assert response.total == 2
        assert response.source == "engine"

    @pytest.mark.asyncio
    async def test_suggest_body(self):
        engine = _engine_returning({"suggest": {}})
        service = SuggestionService(engine)

        await service.get_suggestions("vacc", "faqs", size=5, species="dog")

        index, body = engine.search.call_args.args
        assert index == "faqs"
        assert body["size"] == 0
        assert body["suggest"]["completion"]["completion"]["field"] == "question.completion"
        assert body["suggest"]["completion"]["completion"]["skip_duplicates"] is True
        assert body["suggest"]["phrase"]["phrase"]["field"] == "question"
        assert {"term": {"species": "dog"}} in body["query"]["bool"]["filter"]

    @pytest.mark.asyncio
    async def test_blank_query_returns_empty(self):
        engine = _engine_returning({})
        response = await SuggestionService(engine).get_suggestions("  ", "pets")

        assert response.suggestions == []
        engine.search.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_index(self):
        with pytest.raises(UnknownIndexError):
            await SuggestionService(_engine_returning({})).get_suggestions("x", "invoices")


class TestFallbackSuggestions:
    """원본 저장소 폴백"""

    @pytest.fixture
    def pet_repository(self):
        return FakeRepository([
            {"id": 3, "name": "Goldie", "species": "fish"},
            {"id": 1, "name": "Golden", "species": "dog"},
            {"id": 2, "name": "gold", "species": "dog"},
            {"id": 4, "name": "Max", "species": "dog"},
        ])

    @pytest.mark.asyncio
    async def test_disabled_engine_uses_prefix_search(self, pet_repository):
        # Given
        service = SuggestionService(DisabledEngineClient(), {"pets": pet_repository})

        # When
        response = await service.get_suggestions("Gold", "pets")

        # Then: 대소문자 구분 접두어, 알파벳순, 1.0 - i*0.1
        assert [(s.text, s.score) for s in response.suggestions] == [("Golden", 1.0), ("Goldie", 0.9)]
        assert response.source == "database"

    @pytest.mark.asyncio
    async def test_engine_error_falls_back(self, pet_repository):
        engine = MagicMock()
        engine.is_enabled = True
        engine.search = AsyncMock(side_effect=EngineUnavailableError("Connection refused"))
        service = SuggestionService(engine, {"pets": pet_repository})

        response = await service.get_suggestions("Gold", "pets", size=1)

        assert [s.text for s in response.suggestions] == ["Golden"]
        assert response.source == "database"

    @pytest.mark.asyncio
    async def test_faq_species_filter(self):
        repository = FakeRepository([
            {"id": 1, "question": "How often to walk?", "species": "dog"},
            {"id": 2, "question": "How much to feed?", "species": "cat"},
        ])
        service = SuggestionService(DisabledEngineClient(), {"faqs": repository})

        response = await service.get_suggestions("How", "faqs", species="cat")

        assert [s.text for s in response.suggestions] == ["How much to feed?"]
        assert response.species == "cat"

    @pytest.mark.asyncio
    async def test_database_failure_returns_empty(self):
        service = SuggestionService(DisabledEngineClient(), {"pets": FailingRepository()})

        response = await service.get_suggestions("Gold", "pets")

        assert response.suggestions == []
        assert response.total == 0

    @pytest.mark.asyncio
    async def test_missing_repository_returns_empty(self):
        response = await SuggestionService(DisabledEngineClient()).get_suggestions("Gold", "clinics")

        assert response.suggestions == []
