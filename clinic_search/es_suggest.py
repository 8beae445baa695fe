"""
자동완성 서비스

엔진 사용 가능 시: completion + phrase 제안기를 한 번에 요청해 병합합니다.
엔진 비활성/오류 시: 원본 저장소 접두어 조회로 대체합니다.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from clinic_search.errors import SearchEngineError, UnknownIndexError
from clinic_search.es_client import SearchEngine
from clinic_search.repositories import EntityRepository

logger = logging.getLogger(__name__)

DEFAULT_SUGGESTION_SIZE = 10


@dataclass
class Suggestion:
    text: str
    score: float
    frequency: int = 1


@dataclass
class SuggestionResponse:
    query: str
    suggestions: List[Suggestion] = field(default_factory=list)
    total: int = 0
    species: Optional[str] = None
    source: str = "engine"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SuggestionProfile:
    """인덱스별 제안 필드"""
    completion_field: str
    phrase_field: str
    source_column: str
    active_filter: Optional[str] = None
    species_field: Optional[str] = None


SUGGESTION_PROFILES: Dict[str, SuggestionProfile] = {
    "pets": SuggestionProfile("name.completion", "name", "name"),
    "appointments": SuggestionProfile("reason.completion", "reason", "reason"),
    "users": SuggestionProfile("fullName.completion", "fullName", "first_name"),
    "clinics": SuggestionProfile("name.completion", "name", "name"),
    "health-records": SuggestionProfile("title.completion", "title", "title"),
    "faqs": SuggestionProfile(
        "question.completion", "question", "question",
        active_filter="is_active", species_field="species",
    ),
}


def normalize_text(text: str) -> str:
    """대소문자/공백 정규화 키"""
    return " ".join(text.lower().split())


def deduplicate_suggestions(suggestions: List[Suggestion]) -> List[Suggestion]:
    """정규화 텍스트가 같은 항목은 점수가 높은 쪽만 유지"""
    seen: Dict[str, Suggestion] = {}
    for suggestion in suggestions:
        key = normalize_text(suggestion.text)
        if not key:
            continue
        current = seen.get(key)
        if current is None or current.score < suggestion.score:
            seen[key] = suggestion
    return list(seen.values())


def rank_suggestions(suggestions: List[Suggestion], size: int) -> List[Suggestion]:
    unique = deduplicate_suggestions(suggestions)
    unique.sort(key=lambda s: s.score, reverse=True)
    return unique[:size]


class SuggestionService:
    """
    자동완성 서비스

    사용 예:
        service = SuggestionService(engine, repositories)
        response = await service.get_suggestions("gol", "pets")
    """

    def __init__(self, engine: SearchEngine, repositories: Optional[Dict[str, EntityRepository]] = None):
        self.engine = engine
        self.repositories: Dict[str, EntityRepository] = dict(repositories or {})

    def build_suggest_body(
        self,
        index_name: str,
        query: str,
        size: int = DEFAULT_SUGGESTION_SIZE,
        species: Optional[str] = None,
    ) -> Dict[str, Any]:
        """size 0 쿼리 + completion/phrase 제안기"""
        profile = self._profile(index_name)

        filters: List[Dict[str, Any]] = []
        if profile.active_filter:
            filters.append({"term": {profile.active_filter: True}})
        if species and profile.species_field:
            filters.append({"term": {profile.species_field: species}})

        return {
            "query": {"bool": {"filter": filters}} if filters else {"match_all": {}},
            "size": 0,
            "suggest": {
                "completion": {
                    "prefix": query,
                    "completion": {
                        "field": profile.completion_field,
                        "size": size,
                        "skip_duplicates": True,
                    },
                },
                "phrase": {
                    "text": query,
                    "phrase": {
                        "field": profile.phrase_field,
                        "size": size,
                        "gram_size": 2,
                        "direct_generator": [
                            {
                                "field": profile.phrase_field,
                                "suggest_mode": "always",
                                "min_word_length": 1,
                            }
                        ],
                    },
                },
            },
        }

    def _profile(self, index_name: str) -> SuggestionProfile:
        if index_name not in SUGGESTION_PROFILES:
            raise UnknownIndexError(index_name)
        return SUGGESTION_PROFILES[index_name]

    def _parse_options(self, response: Dict[str, Any]) -> List[Suggestion]:
        suggestions = []
        for name in ("completion", "phrase"):
            for entry in (response.get("suggest") or {}).get(name, []):
                for option in entry.get("options", []):
                    # completion 옵션은 _score, phrase 옵션은 score
                    score = option.get("_score", option.get("score"))
                    text = option.get("text")
                    if not text or score is None:
                        continue
                    frequency = (option.get("_source") or {}).get("frequency") or 1
                    suggestions.append(Suggestion(text=text, score=float(score), frequency=int(frequency)))
        return suggestions

    async def get_suggestions(
        self,
        query: str,
        index_name: str,
        size: int = DEFAULT_SUGGESTION_SIZE,
        species: Optional[str] = None,
    ) -> SuggestionResponse:
        """
        자동완성 제안

        Args:
            query: 입력 접두어
            index_name: 대상 인덱스
            size: 최대 제안 수
            species: FAQ 종 필터

        Returns:
            SuggestionResponse (점수 내림차순, 중복 제거)
        """
        self._profile(index_name)
        if not query or not query.strip():
            return SuggestionResponse(query=query or "", species=species)

        if not self.engine.is_enabled:
            return await self._fallback_suggestions(query, index_name, size, species)

        try:
            body = self.build_suggest_body(index_name, query, size, species)
            response = await self.engine.search(index_name, body)
        except SearchEngineError as e:
            logger.error(f"Engine suggestions failed for {index_name}, falling back to database: {e}")
            return await self._fallback_suggestions(query, index_name, size, species)

        suggestions = rank_suggestions(self._parse_options(response), size)
        return SuggestionResponse(
            query=query,
            suggestions=suggestions,
            total=len(suggestions),
            species=species,
        )

    async def _fallback_suggestions(
        self,
        query: str,
        index_name: str,
        size: int,
        species: Optional[str],
    ) -> SuggestionResponse:
        """원본 저장소 접두어 조회 (알파벳순, 점수 1.0 - i*0.1)"""
        profile = self._profile(index_name)
        response = SuggestionResponse(query=query, species=species, source="database")

        repository = self.repositories.get(index_name)
        if repository is None:
            logger.warning(f"No repository for {index_name}, returning empty suggestions")
            return response

        filters = {profile.species_field: species} if species and profile.species_field else None
        try:
            rows = await repository.prefix_search(profile.source_column, query, size, filters)
        except Exception as e:
            logger.error(f"Database suggestions failed for {index_name}: {e}")
            return response

        texts = [row.get(profile.source_column) for row in rows if row.get(profile.source_column)]
        response.suggestions = rank_suggestions(
            [Suggestion(text=text, score=round(1.0 - i * 0.1, 4)) for i, text in enumerate(texts)],
            size,
        )
        response.total = len(response.suggestions)
        return response
