"""
Elasticsearch 인덱스 관리

관리 대상 인덱스(pets, appointments, users, clinics, health-records, faqs)의
생성, 삭제, 상태 확인, 매핑 검증을 담당합니다.
관리 대상 이외의 인덱스는 생성/삭제하지 않습니다.
"""

import copy
import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

from clinic_search.errors import EngineRequestError, SchemaViolationError, UnknownIndexError
from clinic_search.es_client import SearchEngine, get_search_engine

logger = logging.getLogger(__name__)

# 설정 파일 경로
CONFIG_DIR = Path(__file__).parent / "config"
SETTINGS_PATH = CONFIG_DIR / "settings.json"
MAPPINGS_DIR = CONFIG_DIR / "mappings"

# 엔티티 인덱스 (전체 동기화 대상)
CLINIC_INDICES = ("pets", "appointments", "users", "clinics", "health-records")
FAQ_INDEX = "faqs"
KNOWN_INDICES = CLINIC_INDICES + (FAQ_INDEX,)


@dataclass(frozen=True)
class IndexDefinition:
    """인덱스 정의 (매핑 + 설정)"""
    name: str
    mappings: Dict[str, Any]
    settings: Dict[str, Any]

    @property
    def properties(self) -> Dict[str, Any]:
        return self.mappings.get("properties", {})


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _load_json(path: Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


@lru_cache(maxsize=None)
def load_index_definition(index_name: str) -> IndexDefinition:
    """
    인덱스 정의 로드

    공통 settings.json 위에 인덱스별 settings 를 덮어씁니다.

    Raises:
        UnknownIndexError: 관리 대상이 아닌 인덱스
    """
    if index_name not in KNOWN_INDICES:
        raise UnknownIndexError(index_name)

    mapping_path = MAPPINGS_DIR / f"{index_name}.json"
    if not mapping_path.exists():
        raise FileNotFoundError(f"Mapping file not found: {mapping_path}")

    shared = _load_json(SETTINGS_PATH).get("settings", {}) if SETTINGS_PATH.exists() else {}
    definition = _load_json(mapping_path)

    return IndexDefinition(
        name=index_name,
        mappings=definition.get("mappings", {}),
        settings=_deep_merge(shared, definition.get("settings", {})),
    )


def find_unmapped_fields(document: Dict[str, Any], properties: Dict[str, Any], prefix: str = "") -> List[str]:
    """
    매핑에 선언되지 않은 필드 목록 (점 표기 경로)

    object 타입(properties 보유) 필드만 하위로 내려가 검사합니다.
    """
    unmapped = []
    for key, value in document.items():
        path = f"{prefix}{key}"
        field_mapping = properties.get(key)
        if field_mapping is None:
            unmapped.append(path)
            continue

        sub_properties = field_mapping.get("properties")
        if sub_properties is None:
            continue

        children = value if isinstance(value, list) else [value]
        for child in children:
            if isinstance(child, dict):
                for nested in find_unmapped_fields(child, sub_properties, prefix=f"{path}."):
                    if nested not in unmapped:
                        unmapped.append(nested)
    return unmapped


class ESIndexManager:
    """
    Elasticsearch 인덱스 관리자

    사용 예:
        manager = ESIndexManager(engine)
        await manager.create_clinic_indices()
        status = await manager.get_indices_status()
    """

    def __init__(self, engine: Optional[SearchEngine] = None):
        self.engine = engine or get_search_engine()

    def get_index_definition(self, index_name: str) -> IndexDefinition:
        return load_index_definition(index_name)

    def find_unmapped_fields(self, index_name: str, document: Dict[str, Any]) -> List[str]:
        """문서에서 인덱스 매핑에 없는 필드 검출"""
        return find_unmapped_fields(document, self.get_index_definition(index_name).properties)

    def validate_document(self, index_name: str, document: Dict[str, Any], document_id: str = None) -> None:
        """
        쓰기 전 매핑 검사

        Raises:
            SchemaViolationError: 매핑에 없는 필드가 있는 경우 (details["fields"])
        """
        unmapped = self.find_unmapped_fields(index_name, document)
        if unmapped:
            raise SchemaViolationError(index_name, unmapped, document_id)

    async def create_index(self, index_name: str, recreate: bool = False) -> str:
        """
        단일 인덱스 생성

        Args:
            index_name: 인덱스명 (관리 대상만 허용)
            recreate: 기존 인덱스 삭제 후 재생성

        Returns:
            "created" 또는 "exists"
        """
        definition = self.get_index_definition(index_name)

        if await self.engine.index_exists(index_name):
            if not recreate:
                logger.info(f"Index already exists: {index_name}")
                return "exists"
            logger.info(f"Deleting existing index: {index_name}")
            await self.engine.delete_index(index_name)

        try:
            await self.engine.create_index(index_name, definition.mappings, definition.settings)
        except EngineRequestError as e:
            # 동시 생성 경합
            if e.status_code == 400 and "resource_already_exists" in e.message:
                logger.info(f"Index already exists: {index_name}")
                return "exists"
            raise
        return "created"

    async def create_clinic_indices(self) -> Dict[str, str]:
        """
        엔티티 인덱스 5종 생성 (멱등)

        Returns:
            인덱스별 결과 ("created" / "exists"), 비활성 시 빈 딕셔너리
        """
        if not self.engine.is_enabled:
            logger.warning("Elasticsearch is disabled, skipping index creation")
            return {}

        results = {}
        for index_name in CLINIC_INDICES:
            results[index_name] = await self.create_index(index_name)
        logger.info(f"Clinic indices ready: {results}")
        return results

    async def create_faq_index(self, recreate: bool = False) -> str:
        if not self.engine.is_enabled:
            logger.warning("Elasticsearch is disabled, skipping FAQ index creation")
            return "disabled"
        return await self.create_index(FAQ_INDEX, recreate=recreate)

    async def delete_index(self, index_name: str) -> bool:
        """
        인덱스 삭제 (되돌릴 수 없음)

        Returns:
            삭제했으면 True, 원래 없었으면 False

        Raises:
            UnknownIndexError: 관리 대상이 아닌 인덱스
        """
        if index_name not in KNOWN_INDICES:
            raise UnknownIndexError(index_name)

        if not self.engine.is_enabled:
            logger.warning("Elasticsearch is disabled, skipping index deletion")
            return False

        if not await self.engine.index_exists(index_name):
            logger.info(f"Index does not exist: {index_name}")
            return False

        deleted = await self.engine.delete_index(index_name)
        logger.warning(f"Index deleted: {index_name}")
        return deleted

    async def delete_clinic_indices(self) -> List[str]:
        """존재하는 엔티티 인덱스 모두 삭제"""
        if not self.engine.is_enabled:
            logger.warning("Elasticsearch is disabled, skipping index deletion")
            return []

        deleted = []
        for index_name in await self.get_clinic_indices():
            if await self.engine.delete_index(index_name):
                deleted.append(index_name)
        logger.warning(f"Clinic indices deleted: {deleted}")
        return deleted

    async def get_clinic_indices(self) -> List[str]:
        """엔티티 인덱스 중 현재 존재하는 것"""
        if not self.engine.is_enabled:
            return []
        return [name for name in CLINIC_INDICES if await self.engine.index_exists(name)]

    async def get_indices_status(self) -> Dict[str, Dict[str, Any]]:
        """
        관리 대상 인덱스 상태 조회

        Returns:
            인덱스별 {exists, docs_count}
        """
        status = {}
        for index_name in KNOWN_INDICES:
            exists = await self.engine.index_exists(index_name)
            info: Dict[str, Any] = {"exists": exists, "docs_count": 0}
            if exists:
                info["docs_count"] = await self.engine.count(index_name)
            status[index_name] = info
        return status

    async def refresh_index(self, index_name: str) -> None:
        if index_name not in KNOWN_INDICES:
            raise UnknownIndexError(index_name)
        await self.engine.refresh_index(index_name)
        logger.info(f"Index refreshed: {index_name}")


# CLI 인터페이스
async def main():
    """CLI 진입점"""
    import argparse

    parser = argparse.ArgumentParser(description="Clinic search index manager")
    parser.add_argument("action", choices=["create", "delete", "status", "refresh"])
    parser.add_argument("--index", "-i", choices=KNOWN_INDICES, help="Target index (default: all)")
    parser.add_argument("--recreate", "-r", action="store_true", help="Recreate existing indices")

    args = parser.parse_args()

    manager = ESIndexManager()

    try:
        if args.action == "create":
            if args.index:
                result = await manager.create_index(args.index, args.recreate)
                print(f"Create {args.index}: {result}")
            else:
                results = await manager.create_clinic_indices()
                results[FAQ_INDEX] = await manager.create_faq_index()
                for idx, result in results.items():
                    print(f"  {idx}: {result}")

        elif args.action == "delete":
            if args.index:
                result = await manager.delete_index(args.index)
                print(f"Delete {args.index}: {'OK' if result else 'NOT EXISTS'}")
            else:
                deleted = await manager.delete_clinic_indices()
                print(f"Deleted: {', '.join(deleted) or '-'}")

        elif args.action == "status":
            status = await manager.get_indices_status()
            print("\n=== Search Index Status ===")
            for idx, info in status.items():
                if info["exists"]:
                    print(f"  {idx}: {info['docs_count']:,} docs")
                else:
                    print(f"  {idx}: NOT EXISTS")

        elif args.action == "refresh":
            for index_name in [args.index] if args.index else await manager.get_clinic_indices():
                await manager.refresh_index(index_name)
                print(f"  {index_name}: OK")

    finally:
        await manager.engine.close()


if __name__ == "__main__":
    import asyncio
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
    asyncio.run(main())
