"""
PostgreSQL → Elasticsearch 동기화 엔진

원본 저장소(PostgreSQL)가 항상 기준이며, 검색 인덱스는 파생된 뷰입니다.
- 엔티티별 전체 재동기화 (배치 순차 처리, 부분 실패 허용)
- 5개 엔티티 동시 재동기화 (엔티티별 실패 격리)
- 단건 반영 (upsert / update / delete, 실패 시 False 반환)
- 임의 문서 배치 bulk upsert (FAQ 등)
- 인덱스 동기화 상태 (문서 수 비교)
"""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from clinic_search.errors import EngineRequestError, SchemaViolationError, SearchEngineError, UnknownIndexError
from clinic_search.es_client import BulkAction, SearchEngine
from clinic_search.es_indices import CLINIC_INDICES, KNOWN_INDICES, ESIndexManager
from clinic_search.repositories import EntityRepository

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100
DISABLED_MESSAGE = "Elasticsearch is disabled"


@dataclass
class SyncOptions:
    """
    동기화 옵션

    force: 동기화 전에 인덱스를 삭제 후 재생성
    batch_size: bulk 호출당 문서 수
    refresh: 완료 후 한 번 인덱스 새로고침
    """
    force: bool = False
    batch_size: int = DEFAULT_BATCH_SIZE
    refresh: bool = False

    def __post_init__(self):
        if self.batch_size is None or self.batch_size < 1:
            self.batch_size = DEFAULT_BATCH_SIZE


@dataclass
class SyncResult:
    """동기화 실행 결과 (저장하지 않음)"""
    success: bool
    total_processed: int = 0
    total_synced: int = 0
    errors: List[str] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def is_partial(self) -> bool:
        return not self.success and self.total_synced > 0

    @classmethod
    def disabled(cls) -> "SyncResult":
        return cls(success=False, errors=[DISABLED_MESSAGE])

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def __str__(self) -> str:
        return (
            f"processed={self.total_processed:,} synced={self.total_synced:,} "
            f"errors={len(self.errors)} in {self.duration_ms}ms"
        )


@dataclass
class IndexSyncStatus:
    """인덱스 동기화 상태"""
    index: str
    status: str
    document_count: Optional[int] = None
    source_count: Optional[int] = None
    last_sync: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def format_date(value: Any) -> Optional[str]:
    """날짜 형식 변환 (ISO-8601, naive 는 UTC 로 간주)"""
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _compact(doc: Dict[str, Any]) -> Dict[str, Any]:
    """None 값 제거"""
    return {k: v for k, v in doc.items() if v is not None}


class ESSyncService:
    """
    동기화 엔진

    사용 예:
        sync = ESSyncService(engine, repositories)
        result = await sync.sync_all_clinic_data(SyncOptions(refresh=True))
    """

    def __init__(
        self,
        engine: SearchEngine,
        repositories: Optional[Dict[str, EntityRepository]] = None,
        index_manager: Optional[ESIndexManager] = None,
    ):
        """
        Args:
            engine: 검색 엔진
            repositories: 인덱스명 → 원본 리포지토리
            index_manager: 인덱스 관리자 (기본값: 같은 엔진 사용)
        """
        self.engine = engine
        self.repositories: Dict[str, EntityRepository] = dict(repositories or {})
        self.index_manager = index_manager or ESIndexManager(engine)
        self._last_sync: Dict[str, datetime] = {}

    # ------------------------------------------------------------------
    # 레코드 → 문서 변환
    # ------------------------------------------------------------------

    def _format_date(self, value: Any) -> Optional[str]:
        return format_date(value)

    def _str(self, value: Any) -> Optional[str]:
        return None if value is None else str(value)

    def _number(self, value: Any) -> Optional[float]:
        return None if value is None else float(value)

    def _status(self, row: Dict[str, Any]) -> Optional[str]:
        if row.get("status") is not None:
            return str(row["status"])
        if row.get("is_active") is not None:
            return "active" if row["is_active"] else "inactive"
        return None

    def _age_years(self, date_of_birth: Any) -> Optional[int]:
        if not isinstance(date_of_birth, date):
            return None
        today = date.today()
        born = date_of_birth.date() if isinstance(date_of_birth, datetime) else date_of_birth
        years = today.year - born.year - ((today.month, today.day) < (born.month, born.day))
        return max(years, 0)

    def _transform_pet(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """반려동물 레코드 변환"""
        age = row.get("age")
        if age is None:
            age = self._age_years(row.get("date_of_birth"))
        description = row.get("description")
        if description is None:
            notes = [row.get("medical_history"), row.get("behavioral_notes")]
            description = " ".join(n for n in notes if n) or None
        return _compact({
            "id": self._str(row.get("id")),
            "name": row.get("name"),
            "species": row.get("species"),
            "breed": row.get("breed"),
            "age": age,
            "weight": self._number(row.get("weight")),
            "ownerId": self._str(row.get("owner_id")),
            "clinicId": self._str(row.get("clinic_id")),
            "status": self._status(row),
            "tags": row.get("tags"),
            "description": description,
            "createdAt": self._format_date(row.get("created_at")),
            "updatedAt": self._format_date(row.get("updated_at")),
        })

    def _transform_appointment(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """예약 레코드 변환"""
        return _compact({
            "id": self._str(row.get("id")),
            "petId": self._str(row.get("pet_id")),
            "ownerId": self._str(row.get("owner_id")),
            "clinicId": self._str(row.get("clinic_id")),
            "veterinarianId": self._str(row.get("staff_id")),
            "appointmentDate": self._format_date(row.get("scheduled_date")),
            "startTime": self._format_date(row.get("actual_start_time")),
            "endTime": self._format_date(row.get("actual_end_time")),
            "duration": row.get("duration_minutes"),
            "type": row.get("appointment_type"),
            "status": self._status(row),
            "reason": row.get("reason"),
            "notes": row.get("notes"),
            "priority": row.get("priority"),
            "tags": row.get("tags"),
            "createdAt": self._format_date(row.get("created_at")),
            "updatedAt": self._format_date(row.get("updated_at")),
        })

    def _transform_user(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """사용자 레코드 변환"""
        first_name = row.get("first_name")
        last_name = row.get("last_name")
        full_name = " ".join(n for n in (first_name, last_name) if n) or None
        return _compact({
            "id": self._str(row.get("id")),
            "email": row.get("email"),
            "firstName": first_name,
            "lastName": last_name,
            "fullName": full_name,
            "phone": row.get("phone"),
            "role": row.get("role"),
            "clinicId": self._str(row.get("clinic_id")),
            "status": self._status(row),
            "lastLoginAt": self._format_date(row.get("last_login_at")),
            "createdAt": self._format_date(row.get("created_at")),
            "updatedAt": self._format_date(row.get("updated_at")),
        })

    def _transform_clinic(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """병원 레코드 변환"""
        address = _compact({
            "street": row.get("address"),
            "city": row.get("city"),
            "state": row.get("state"),
            "zipCode": row.get("postal_code"),
            "country": row.get("country"),
        })
        doc = {
            "id": self._str(row.get("id")),
            "name": row.get("name"),
            "description": row.get("description"),
            "address": address or None,
            "phone": row.get("phone"),
            "email": row.get("email"),
            "website": row.get("website"),
            "services": row.get("services"),
            "specialties": row.get("specializations"),
            "tags": row.get("tags"),
            "rating": self._number(row.get("rating")),
            "status": self._status(row),
            "createdAt": self._format_date(row.get("created_at")),
            "updatedAt": self._format_date(row.get("updated_at")),
        }

        # 위치 정보가 있으면 location 추가
        lat = row.get("latitude")
        lon = row.get("longitude")
        if lat is not None and lon is not None:
            doc["location"] = {"lat": float(lat), "lon": float(lon)}

        return _compact(doc)

    def _transform_health_record(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """진료 기록(clinic_pet_cases) 레코드 변환"""
        symptoms = row.get("current_symptoms") or row.get("initial_symptoms") or []
        plan = row.get("treatment_plan") or {}
        vitals = row.get("vital_signs") or {}
        pressure = vitals.get("blood_pressure")
        if isinstance(pressure, dict):
            pressure = f"{pressure.get('systolic')}/{pressure.get('diastolic')}"

        vital_signs = _compact({
            "temperature": self._number(vitals.get("temperature")),
            "heartRate": vitals.get("heart_rate"),
            "bloodPressure": pressure,
            "weight": self._number(vitals.get("weight")),
        })

        return _compact({
            "id": self._str(row.get("id")),
            "petId": self._str(row.get("pet_id")),
            "clinicId": self._str(row.get("clinic_id")),
            "veterinarianId": self._str(row.get("vet_id")),
            "recordType": row.get("case_type"),
            "title": row.get("title"),
            "description": row.get("description"),
            "symptoms": ", ".join(symptoms) if isinstance(symptoms, list) else symptoms,
            "diagnosis": row.get("diagnosis"),
            "treatment": plan.get("follow_up_instructions") if isinstance(plan, dict) else None,
            "medications": [m.get("name") for m in plan.get("medications", []) if isinstance(m, dict)] or None,
            "procedures": plan.get("procedures") or None,
            "vitalSigns": vital_signs or None,
            "attachments": [a.get("file_url") for a in row.get("attachments") or [] if isinstance(a, dict)] or None,
            "tags": row.get("tags"),
            "severity": row.get("priority"),
            "status": self._status(row),
            "recordDate": self._format_date(row.get("record_date") or row.get("created_at")),
            "createdAt": self._format_date(row.get("created_at")),
            "updatedAt": self._format_date(row.get("updated_at")),
        })

    def _transform_faq(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """FAQ 레코드 변환"""
        question = row.get("question") or ""
        answer = row.get("answer") or ""
        return _compact({
            "id": self._str(row.get("id")),
            "species": row.get("species"),
            "category": row.get("category"),
            "question": question,
            "answer": answer,
            "order_index": row.get("order_index"),
            "is_active": row.get("is_active"),
            "created_at": self._format_date(row.get("created_at")),
            "updated_at": self._format_date(row.get("updated_at")),
            "searchable_content": f"{question} {answer}".lower(),
        })

    def _get_transformer(self, index_name: str) -> Callable[[Dict[str, Any]], Dict[str, Any]]:
        """인덱스별 변환 함수 반환"""
        transformers = {
            "pets": self._transform_pet,
            "appointments": self._transform_appointment,
            "users": self._transform_user,
            "clinics": self._transform_clinic,
            "health-records": self._transform_health_record,
            "faqs": self._transform_faq,
        }
        if index_name not in transformers:
            raise UnknownIndexError(index_name)
        return transformers[index_name]

    def transform(self, index_name: str, row: Dict[str, Any]) -> Dict[str, Any]:
        return self._get_transformer(index_name)(row)

    # ------------------------------------------------------------------
    # 배치 쓰기
    # ------------------------------------------------------------------

    async def _write_batch(self, index_name: str, documents: List[Dict[str, Any]], errors: List[str]) -> int:
        """
        한 배치를 bulk 한 번으로 기록

        id 가 없거나 매핑 위반인 문서는 배치에서 빼고 문서별 오류로 남깁니다.
        bulk 호출 자체가 실패하면 배치 전체 문서를 실패로 기록합니다.

        Returns:
            성공한 문서 수
        """
        valid = []
        for doc in documents:
            if doc.get("id") is None:
                errors.append("Failed to sync document None: document has no id")
                continue
            try:
                self.index_manager.validate_document(index_name, doc, doc["id"])
            except SchemaViolationError as e:
                errors.append(f"Failed to sync document {doc['id']}: {e.message}")
                continue
            valid.append(doc)

        if not valid:
            return 0

        actions = [BulkAction("index", index_name, doc["id"], doc) for doc in valid]
        try:
            response = await self.engine.bulk(actions)
        except SearchEngineError as e:
            logger.error(f"Bulk request failed for {index_name} ({len(valid)} documents): {e}")
            errors.extend(f"Failed to sync document {doc['id']}: {e.message}" for doc in valid)
            return 0

        failed = response.failed_items
        for item in failed:
            errors.append(f"Failed to sync document {item.id}: {item.error}")
        return len(valid) - len(failed)

    async def _finish(
        self,
        index_name: str,
        options: SyncOptions,
        start: float,
        processed: int,
        synced: int,
        errors: List[str],
    ) -> SyncResult:
        """새로고침(요청 시 1회) 후 결과 생성"""
        if options.refresh and synced:
            try:
                await self.engine.refresh_index(index_name)
            except SearchEngineError as e:
                errors.append(f"Failed to refresh {index_name}: {e.message}")

        result = SyncResult(
            success=not errors,
            total_processed=processed,
            total_synced=synced,
            errors=errors,
            duration_ms=_elapsed_ms(start),
        )
        if result.success:
            self._last_sync[index_name] = datetime.now(timezone.utc)
            logger.info(f"Sync completed for {index_name}: {result}")
        else:
            logger.warning(f"Sync completed with errors for {index_name}: {result}")
        return result

    # ------------------------------------------------------------------
    # 전체 동기화
    # ------------------------------------------------------------------

    async def sync_entity(
        self,
        index_name: str,
        options: Optional[SyncOptions] = None,
        ensure_index: bool = True,
    ) -> SyncResult:
        """
        엔티티 전체 재동기화

        batch_size 단위로 원본을 페이지 조회해 배치마다 bulk 한 번을 보냅니다.
        배치는 순차 처리하며, 실패한 배치가 있어도 나머지 배치는 계속 진행합니다.

        Args:
            index_name: 대상 인덱스
            options: 동기화 옵션
            ensure_index: 시작 전 인덱스 생성 확인 (force 면 재생성)

        Returns:
            SyncResult
        """
        options = options or SyncOptions()
        if not self.engine.is_enabled:
            logger.warning(f"Elasticsearch is disabled, skipping {index_name} sync")
            return SyncResult.disabled()

        transform = self._get_transformer(index_name)
        repository = self.repositories.get(index_name)
        if repository is None:
            return SyncResult(success=False, errors=[f"No repository configured for {index_name}"])

        start = time.monotonic()
        errors: List[str] = []
        processed = 0
        synced = 0

        if ensure_index:
            try:
                await self.index_manager.create_index(index_name, recreate=options.force)
            except SearchEngineError as e:
                return SyncResult(
                    success=False,
                    errors=[f"Failed to prepare index {index_name}: {e.message}"],
                    duration_ms=_elapsed_ms(start),
                )

        logger.info(f"Starting sync: {index_name} (batch_size={options.batch_size})")

        offset = 0
        while True:
            try:
                rows = await repository.fetch_batch(offset, options.batch_size)
            except Exception as e:
                logger.error(f"Failed to read {index_name} batch at offset {offset}: {e}")
                errors.append(f"Failed to read batch at offset {offset}: {e}")
                break

            if not rows:
                break

            documents = []
            for row in rows:
                try:
                    documents.append(transform(row))
                except (KeyError, TypeError, ValueError, AttributeError) as e:
                    errors.append(f"Failed to sync document {row.get('id')}: transform error: {e}")

            processed += len(rows)
            synced += await self._write_batch(index_name, documents, errors)
            logger.debug(f"  {index_name}: {processed:,} processed, {synced:,} synced")

            if len(rows) < options.batch_size:
                break
            offset += options.batch_size

        return await self._finish(index_name, options, start, processed, synced, errors)

    async def sync_pets(self, options: Optional[SyncOptions] = None) -> SyncResult:
        return await self.sync_entity("pets", options)

    async def sync_appointments(self, options: Optional[SyncOptions] = None) -> SyncResult:
        return await self.sync_entity("appointments", options)

    async def sync_users(self, options: Optional[SyncOptions] = None) -> SyncResult:
        return await self.sync_entity("users", options)

    async def sync_clinics(self, options: Optional[SyncOptions] = None) -> SyncResult:
        return await self.sync_entity("clinics", options)

    async def sync_health_records(self, options: Optional[SyncOptions] = None) -> SyncResult:
        return await self.sync_entity("health-records", options)

    async def sync_all_clinic_data(self, options: Optional[SyncOptions] = None) -> SyncResult:
        """
        5개 엔티티 동시 재동기화

        인덱스 존재를 보장한 뒤 엔티티별 동기화를 동시에 실행합니다.
        한 엔티티의 실패는 다른 엔티티에 영향을 주지 않으며,
        오류는 엔티티명을 앞에 붙여 합칩니다.
        """
        options = options or SyncOptions()
        if not self.engine.is_enabled:
            logger.warning("Elasticsearch is disabled, skipping sync")
            return SyncResult.disabled()

        start = time.monotonic()
        try:
            if options.force:
                for index_name in CLINIC_INDICES:
                    await self.index_manager.create_index(index_name, recreate=True)
            else:
                await self.index_manager.create_clinic_indices()
        except SearchEngineError as e:
            logger.error(f"Failed to prepare clinic indices: {e}")
            return SyncResult(
                success=False,
                errors=[f"Failed to prepare indices: {e.message}"],
                duration_ms=_elapsed_ms(start),
            )

        outcomes = await asyncio.gather(
            *(self.sync_entity(name, options, ensure_index=False) for name in CLINIC_INDICES),
            return_exceptions=True,
        )

        total_processed = 0
        total_synced = 0
        errors: List[str] = []
        for name, outcome in zip(CLINIC_INDICES, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Sync failed for {name}: {outcome}")
                errors.append(f"{name}: {outcome}")
                continue
            total_processed += outcome.total_processed
            total_synced += outcome.total_synced
            errors.extend(f"{name}: {err}" for err in outcome.errors)

        result = SyncResult(
            success=not errors,
            total_processed=total_processed,
            total_synced=total_synced,
            errors=errors,
            duration_ms=_elapsed_ms(start),
        )
        logger.info(f"Full sync completed: {result}")
        return result

    # ------------------------------------------------------------------
    # 단건 반영
    # ------------------------------------------------------------------

    def _resolve_id(self, document: Dict[str, Any], document_id: Optional[str]) -> str:
        """문서 id 는 원본 기본키와 같아야 함"""
        doc_id = document.get("id")
        if document_id is not None and doc_id is not None and str(doc_id) != str(document_id):
            raise ValueError(f"Document id {doc_id} does not match {document_id}")
        resolved = document_id if document_id is not None else doc_id
        if resolved is None:
            raise ValueError("Document has no id")
        return str(resolved)

    async def sync_document(
        self,
        index_name: str,
        document: Dict[str, Any],
        document_id: Optional[str] = None,
        refresh: bool = False,
    ) -> bool:
        """
        단건 upsert

        원본 저장소 커밋 이후 호출됩니다. 실패는 로그만 남기고 False 를 반환합니다.
        """
        if not self.engine.is_enabled:
            logger.debug(f"Elasticsearch is disabled, skipping document sync for {index_name}")
            return False

        try:
            doc_id = self._resolve_id(document, document_id)
            doc = {**document, "id": doc_id}
            self.index_manager.validate_document(index_name, doc, doc_id)
            await self.engine.index_document(index_name, doc, id=doc_id, refresh=refresh)
        except (SearchEngineError, ValueError) as e:
            logger.error(f"Failed to sync document to {index_name}: {e}")
            return False

        logger.debug(f"Document synced: {index_name}/{doc_id}")
        return True

    async def update_document(
        self,
        index_name: str,
        document_id: str,
        partial: Dict[str, Any],
        refresh: bool = False,
    ) -> bool:
        """단건 부분 업데이트"""
        if not self.engine.is_enabled:
            logger.debug(f"Elasticsearch is disabled, skipping document update for {index_name}")
            return False

        try:
            if "id" in partial and str(partial["id"]) != str(document_id):
                raise ValueError(f"Document id {partial['id']} does not match {document_id}")
            self.index_manager.validate_document(index_name, partial, str(document_id))
            await self.engine.update_document(index_name, str(document_id), partial, refresh=refresh)
        except (SearchEngineError, ValueError) as e:
            logger.error(f"Failed to update document {index_name}/{document_id}: {e}")
            return False

        logger.debug(f"Document updated: {index_name}/{document_id}")
        return True

    async def delete_document(self, index_name: str, document_id: str, refresh: bool = False) -> bool:
        """단건 삭제 (이미 없으면 성공으로 처리)"""
        if not self.engine.is_enabled:
            logger.debug(f"Elasticsearch is disabled, skipping document delete for {index_name}")
            return False

        try:
            await self.engine.delete_document(index_name, str(document_id), refresh=refresh)
        except EngineRequestError as e:
            if e.status_code == 404:
                logger.debug(f"Document already absent: {index_name}/{document_id}")
                return True
            logger.error(f"Failed to delete document {index_name}/{document_id}: {e}")
            return False
        except SearchEngineError as e:
            logger.error(f"Failed to delete document {index_name}/{document_id}: {e}")
            return False

        logger.debug(f"Document deleted: {index_name}/{document_id}")
        return True

    async def bulk_sync_documents(
        self,
        index_name: str,
        documents: List[Dict[str, Any]],
        options: Optional[SyncOptions] = None,
    ) -> SyncResult:
        """
        임의 문서 배치 bulk upsert

        Args:
            index_name: 대상 인덱스 (관리 대상만 허용)
            documents: id 를 포함한 문서 목록
            options: batch_size / refresh 사용

        Returns:
            SyncResult (부분 실패 누적)
        """
        options = options or SyncOptions()
        if index_name not in KNOWN_INDICES:
            raise UnknownIndexError(index_name)
        if not self.engine.is_enabled:
            return SyncResult.disabled()

        start = time.monotonic()
        errors: List[str] = []
        synced = 0

        for offset in range(0, len(documents), options.batch_size):
            chunk = [
                doc if doc.get("id") is None else {**doc, "id": str(doc["id"])}
                for doc in documents[offset:offset + options.batch_size]
            ]
            synced += await self._write_batch(index_name, chunk, errors)

        return await self._finish(index_name, options, start, len(documents), synced, errors)

    # ------------------------------------------------------------------
    # 상태
    # ------------------------------------------------------------------

    async def get_index_sync_status(self, index_name: str) -> IndexSyncStatus:
        """
        인덱스 동기화 상태

        인덱스 문서 수와 원본 행 수를 비교합니다.
        같으면 synced, 다르면 out_of_sync, 비교할 수 없으면 unknown.
        """
        if index_name not in KNOWN_INDICES:
            raise UnknownIndexError(index_name)

        last_sync = self._last_sync.get(index_name)
        status = IndexSyncStatus(
            index=index_name,
            status="unknown",
            last_sync=last_sync.isoformat() if last_sync else None,
        )

        if not self.engine.is_enabled:
            return status

        try:
            status.document_count = await self.engine.count(index_name)
        except SearchEngineError as e:
            logger.warning(f"Could not count documents in {index_name}: {e}")
            return status

        repository = self.repositories.get(index_name)
        if repository is None:
            return status

        try:
            status.source_count = await repository.count()
        except Exception as e:
            logger.warning(f"Could not count source rows for {index_name}: {e}")
            return status

        status.status = "synced" if status.document_count == status.source_count else "out_of_sync"
        return status


# CLI 인터페이스
async def main():
    """CLI 진입점"""
    import argparse

    from clinic_search.config import get_settings
    from clinic_search.db import Database
    from clinic_search.es_client import create_search_engine
    from clinic_search.repositories import build_repositories

    parser = argparse.ArgumentParser(description="Sync primary store records into the search indices")
    parser.add_argument("target", choices=("all",) + KNOWN_INDICES)
    parser.add_argument("--batch-size", "-b", type=int, default=DEFAULT_BATCH_SIZE, help="Documents per bulk call")
    parser.add_argument("--refresh", action="store_true", help="Refresh indices after sync")
    parser.add_argument("--force", action="store_true", help="Recreate indices before sync")

    args = parser.parse_args()

    settings = get_settings()
    engine = create_search_engine(settings.es)
    db = Database(settings.db)
    service = ESSyncService(engine, build_repositories(db))
    options = SyncOptions(force=args.force, batch_size=args.batch_size, refresh=args.refresh)

    try:
        if args.target == "all":
            result = await service.sync_all_clinic_data(options)
        else:
            result = await service.sync_entity(args.target, options)

        print(f"\n=== Sync {args.target}: {'OK' if result.success else 'FAILED'} ===")
        print(f"  {result}")
        for err in result.errors[:10]:
            print(f"  - {err}")
    finally:
        await engine.close()
        await db.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
    asyncio.run(main())
