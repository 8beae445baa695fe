"""
FAQ 검색

FAQ(animal_faqs)는 엔티티 인덱스와 별도로 관리되며 bulk_sync_documents 로 색인합니다.
검색은 엔진 우선, 엔진이 비활성/오류면 원본 저장소 부분 문자열 검색으로 대체합니다.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from clinic_search.errors import SearchEngineError
from clinic_search.es_indices import FAQ_INDEX
from clinic_search.es_search import normalize_total
from clinic_search.es_suggest import SuggestionResponse, SuggestionService
from clinic_search.es_sync import ESSyncService, SyncOptions, SyncResult, format_date

logger = logging.getLogger(__name__)

FAQ_RESULT_FIELDS = ("id", "species", "category", "question", "answer", "order_index", "created_at", "updated_at")


@dataclass
class FaqSearchResponse:
    query: str
    total: int = 0
    results: List[Dict[str, Any]] = field(default_factory=list)
    took: Optional[int] = None
    max_score: Optional[float] = None
    source: str = "engine"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def build_faq_query(query: str, species: Optional[str] = None, size: int = 20) -> Dict[str, Any]:
    """질문/답변 phrase_prefix + searchable_content 퍼지 매치"""
    must: List[Dict[str, Any]] = [
        {
            "bool": {
                "should": [
                    {"match_phrase_prefix": {"question": {"query": query, "boost": 3.0}}},
                    {"match_phrase_prefix": {"answer": {"query": query, "boost": 2.0}}},
                    {"match": {"searchable_content": {"query": query, "boost": 1.0, "fuzziness": "AUTO"}}},
                ],
                "minimum_should_match": 1,
            }
        },
        {"term": {"is_active": True}},
    ]
    if species:
        must.append({"term": {"species": species}})

    return {
        "query": {"bool": {"must": must}},
        "size": size,
        "sort": [{"_score": "desc"}, {"order_index": "asc"}, {"created_at": "desc"}],
        "highlight": {
            "fields": {"question": {}, "answer": {}},
            "pre_tags": ["<mark>"],
            "post_tags": ["</mark>"],
        },
    }


class FaqSearchService:
    """
    FAQ 색인/검색

    사용 예:
        faqs = FaqSearchService(sync_service, suggestion_service)
        await faqs.index_all_faqs()
        response = await faqs.search_faqs("vaccination", species="dog")
    """

    def __init__(self, sync_service: ESSyncService, suggestion_service: Optional[SuggestionService] = None):
        self.sync = sync_service
        self.engine = sync_service.engine
        self.suggestions = suggestion_service or SuggestionService(self.engine, sync_service.repositories)

    @property
    def repository(self):
        return self.sync.repositories.get(FAQ_INDEX)

    async def _load_faq_documents(self, batch_size: int) -> List[Dict[str, Any]]:
        documents = []
        offset = 0
        while True:
            rows = await self.repository.fetch_batch(offset, batch_size)
            documents.extend(self.sync.transform(FAQ_INDEX, row) for row in rows)
            if len(rows) < batch_size:
                break
            offset += batch_size
        return documents

    async def index_all_faqs(self, options: Optional[SyncOptions] = None) -> SyncResult:
        """FAQ 인덱스 생성 후 활성 FAQ 전체 색인"""
        options = options or SyncOptions(refresh=True)
        if not self.engine.is_enabled:
            logger.warning("Elasticsearch is disabled, skipping FAQ indexing")
            return SyncResult.disabled()
        if self.repository is None:
            return SyncResult(success=False, errors=["No repository configured for faqs"])

        await self.sync.index_manager.create_index(FAQ_INDEX, recreate=options.force)
        documents = await self._load_faq_documents(options.batch_size)
        logger.info(f"Indexing {len(documents)} FAQs")
        return await self.sync.bulk_sync_documents(FAQ_INDEX, documents, options)

    async def index_faq(self, row: Dict[str, Any]) -> bool:
        """단건 FAQ 색인 (원본 레코드)"""
        return await self.sync.sync_document(FAQ_INDEX, self.sync.transform(FAQ_INDEX, row), refresh=True)

    async def remove_faq(self, faq_id: str) -> bool:
        return await self.sync.delete_document(FAQ_INDEX, faq_id, refresh=True)

    async def search_faqs(self, query: str, species: Optional[str] = None, size: int = 20) -> FaqSearchResponse:
        """
        FAQ 검색

        엔진 검색이 실패하면 원본 저장소 검색 결과를 반환합니다.
        """
        if self.engine.is_enabled:
            try:
                return await self._search_engine(query, species, size)
            except SearchEngineError as e:
                logger.warning(f"Elasticsearch FAQ search failed, falling back to database: {e}")

        return await self._search_database(query, species, size)

    async def _search_engine(self, query: str, species: Optional[str], size: int) -> FaqSearchResponse:
        response = await self.engine.search(FAQ_INDEX, build_faq_query(query, species, size))
        hits = response.get("hits", {}) or {}

        results = []
        for hit in hits.get("hits", []):
            source = hit.get("_source", {})
            item = {name: source.get(name) for name in FAQ_RESULT_FIELDS}
            item["id"] = hit.get("_id", item["id"])
            if hit.get("highlight"):
                item["highlight"] = hit["highlight"]
            results.append(item)

        return FaqSearchResponse(
            query=query,
            total=normalize_total(hits.get("total")),
            results=results,
            took=response.get("took"),
            max_score=hits.get("max_score"),
        )

    async def _search_database(self, query: str, species: Optional[str], size: int) -> FaqSearchResponse:
        if self.repository is None:
            logger.warning("No repository configured for faqs, returning empty result")
            return FaqSearchResponse(query=query, source="database")

        filters = {"species": species} if species else None
        rows = await self.repository.substring_search(["question", "answer"], query, size, filters)
        results = [
            {name: format_date(row.get(name)) if name.endswith("_at") else row.get(name)
             for name in FAQ_RESULT_FIELDS}
            for row in rows
        ]
        for item in results:
            item["id"] = None if item["id"] is None else str(item["id"])

        return FaqSearchResponse(query=query, total=len(results), results=results, source="database")

    async def autocomplete(self, query: str, species: Optional[str] = None, size: int = 10) -> SuggestionResponse:
        return await self.suggestions.get_suggestions(query, FAQ_INDEX, size=size, species=species)
