"""
Elasticsearch Management API

인덱스 생성/삭제, 데이터 동기화, 단건 문서 반영 (운영자 전용)
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends

from api.dependencies import SearchServices, get_services, require_admin_key
from api.models import SyncRequest, bad_request, envelope, error_response, success_response
from clinic_search.errors import SearchEngineError, ServiceDisabledError
from clinic_search.es_indices import CLINIC_INDICES, KNOWN_INDICES
from clinic_search.es_sync import SyncOptions, SyncResult

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/elasticsearch/management",
    tags=["Elasticsearch Management"],
    dependencies=[Depends(require_admin_key)],
)


def _sync_options(request: Optional[SyncRequest]) -> SyncOptions:
    request = request or SyncRequest()
    return SyncOptions(force=request.force, batch_size=request.batch_size, refresh=request.refresh)


def _disabled(message: str):
    return error_response(ServiceDisabledError(), message)


def _sync_response(result: SyncResult, target: str):
    """전체 성공 200, 부분 성공 206, 실패 500"""
    if result.success:
        return success_response(result.to_dict(), message=f"{target} synced successfully")
    if result.total_synced > 0:
        return envelope(
            "partial_success", data=result.to_dict(),
            message=f"{target} sync completed with some errors", status_code=206,
        )
    return envelope(
        "error", data=result.to_dict(), message=f"Failed to sync {target}",
        error=result.errors[0] if result.errors else None, status_code=500,
    )


# ========================================
# Indices
# ========================================

@router.post("/indices/create", summary="엔티티 인덱스 생성 (멱등)")
async def create_indices(services: SearchServices = Depends(get_services)):
    try:
        results = await services.index_manager.create_clinic_indices()
    except SearchEngineError as e:
        return error_response(e, "Failed to create indices")
    return success_response(results, message="All clinic indices created successfully")


@router.get("/indices/list", summary="존재하는 엔티티 인덱스 목록")
async def list_indices(services: SearchServices = Depends(get_services)):
    try:
        indices = await services.index_manager.get_clinic_indices()
    except SearchEngineError as e:
        return error_response(e, "Failed to get indices list")
    return success_response(indices)


# /indices/{index_name} 보다 먼저 선언해야 함
@router.delete("/indices/all", summary="엔티티 인덱스 전체 삭제")
async def delete_all_indices(services: SearchServices = Depends(get_services)):
    try:
        deleted = await services.index_manager.delete_clinic_indices()
    except SearchEngineError as e:
        return error_response(e, "Failed to delete all indices")
    return success_response(deleted, message="All clinic indices deleted successfully")


@router.delete("/indices/{index_name}", summary="인덱스 삭제")
async def delete_index(index_name: str, services: SearchServices = Depends(get_services)):
    try:
        deleted = await services.index_manager.delete_index(index_name)
    except SearchEngineError as e:
        return error_response(e, f"Failed to delete index {index_name}")
    message = f"Index {index_name} deleted successfully" if deleted else f"Index {index_name} does not exist"
    return success_response({"index": index_name, "deleted": deleted}, message=message)


# ========================================
# Sync
# ========================================

@router.post("/sync/all", summary="전체 엔티티 동기화")
async def sync_all(
    request: Optional[SyncRequest] = None,
    services: SearchServices = Depends(get_services),
):
    if not services.engine.is_enabled:
        return _disabled("Failed to sync all clinic data")
    result = await services.sync.sync_all_clinic_data(_sync_options(request))
    return _sync_response(result, "All clinic data")


@router.get("/sync/status/{index_name}", summary="인덱스 동기화 상태")
async def get_sync_status(index_name: str, services: SearchServices = Depends(get_services)):
    if index_name not in KNOWN_INDICES:
        return bad_request(f"Invalid index name: {index_name}")
    try:
        status = await services.sync.get_index_sync_status(index_name)
    except SearchEngineError as e:
        return error_response(e, f"Failed to get sync status for index {index_name}")
    return success_response(status.to_dict())


@router.post("/sync/document/{index_name}/{document_id}/update", summary="단건 문서 부분 업데이트")
async def update_document(
    index_name: str,
    document_id: str,
    document: Dict[str, Any] = Body(...),
    services: SearchServices = Depends(get_services),
):
    if index_name not in KNOWN_INDICES:
        return bad_request(f"Invalid index name: {index_name}")
    if await services.sync.update_document(index_name, document_id, document, refresh=True):
        return success_response(message=f"Document {document_id} updated successfully in index {index_name}")
    return envelope(
        "error", message=f"Failed to update document {document_id} in index {index_name}", status_code=500,
    )


@router.post("/sync/document/{index_name}/{document_id}", summary="단건 문서 반영")
async def sync_document(
    index_name: str,
    document_id: str,
    document: Dict[str, Any] = Body(...),
    services: SearchServices = Depends(get_services),
):
    if index_name not in KNOWN_INDICES:
        return bad_request(f"Invalid index name: {index_name}")
    if await services.sync.sync_document(index_name, document, document_id, refresh=True):
        return success_response(message=f"Document {document_id} synced successfully to index {index_name}")
    return envelope(
        "error", message=f"Failed to sync document {document_id} to index {index_name}", status_code=500,
    )


@router.delete("/sync/document/{index_name}/{document_id}", summary="단건 문서 삭제")
async def delete_document(index_name: str, document_id: str, services: SearchServices = Depends(get_services)):
    if index_name not in KNOWN_INDICES:
        return bad_request(f"Invalid index name: {index_name}")
    if await services.sync.delete_document(index_name, document_id, refresh=True):
        return success_response(message=f"Document {document_id} deleted successfully from index {index_name}")
    return envelope(
        "error", message=f"Failed to delete document {document_id} from index {index_name}", status_code=500,
    )


@router.post("/sync/{index_name}", summary="단일 엔티티 동기화")
async def sync_index(
    index_name: str,
    request: Optional[SyncRequest] = None,
    services: SearchServices = Depends(get_services),
):
    if index_name not in CLINIC_INDICES:
        return bad_request(f"Invalid index name: {index_name}")
    if not services.engine.is_enabled:
        return _disabled(f"Failed to sync index {index_name}")
    result = await services.sync.sync_entity(index_name, _sync_options(request))
    return _sync_response(result, f"Index {index_name}")


# ========================================
# FAQ
# ========================================

@router.post("/faqs/reindex", summary="FAQ 전체 재색인")
async def reindex_faqs(
    request: Optional[SyncRequest] = None,
    services: SearchServices = Depends(get_services),
):
    if not services.engine.is_enabled:
        return _disabled("Failed to reindex FAQs")
    try:
        result = await services.faqs.index_all_faqs(_sync_options(request))
    except Exception as e:
        logger.error(f"FAQ reindex failed: {e}")
        return error_response(e, "Failed to reindex FAQs")
    return _sync_response(result, "FAQs")
