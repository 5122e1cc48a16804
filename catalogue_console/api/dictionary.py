"""Vocabulary dictionary endpoints (v2 data types).

Data types here are provider-independent: each carries its properties,
the provider mappings of every property and the sources that supply it.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Query, Request

from catalogue_console.api.models import ReseedRequest, SuccessResponse
from catalogue_console.audit import get_audit_logger
from catalogue_console.auth.api_key import Principal, user_ref
from catalogue_console.auth.roles import check_admin_secret, require_editor
from catalogue_console.dictionary import get_dictionary
from catalogue_console.dictionary.models import (
    BulkAddMappingRequest,
    BulkMappingResponse,
    BulkRemoveMappingRequest,
    DictionaryExport,
    DictionarySearchResponse,
    DictionaryStats,
    MappingWrite,
    PropertyWrite,
    SourceWrite,
    VocabDataType,
    VocabDataTypeWrite,
)

log = logging.getLogger(__name__)
router = APIRouter(prefix="/api/dictionary", tags=["dictionary"])


def _payload(body) -> dict[str, Any]:
    return body.model_dump(by_alias=True, exclude_unset=True)


def _audit(action: str, principal: Principal, resource: str, request: Request, **details) -> None:
    get_audit_logger().log_access(
        action=action,
        principal_id=principal.key_id,
        resource=resource,
        details=details or None,
        request=request,
    )


# =============================================================================
# Data types
# =============================================================================


@router.get("/data-types", response_model=list[VocabDataType])
async def list_data_types(
    category: Optional[str] = Query(None),
    search: Optional[str] = Query(None, description="Applied from 2 characters"),
) -> list[dict]:
    return get_dictionary().list_data_types(category=category, search=search)


@router.get("/data-types/{data_type_id}", response_model=VocabDataType)
async def get_data_type(data_type_id: str) -> dict:
    return get_dictionary().get_data_type(data_type_id)


@router.post("/data-types", response_model=VocabDataType)
async def create_data_type(
    body: VocabDataTypeWrite,
    request: Request,
    principal: Principal = require_editor,
) -> dict:
    data_type = get_dictionary().create_data_type(_payload(body), user_ref(principal))
    _audit("vocab_data_type.create", principal, data_type["id"], request)
    return data_type


@router.put("/data-types/{data_type_id}", response_model=VocabDataType)
async def update_data_type(
    data_type_id: str,
    body: VocabDataTypeWrite,
    request: Request,
    principal: Principal = require_editor,
) -> dict:
    data_type = get_dictionary().update_data_type(data_type_id, _payload(body), user_ref(principal))
    _audit("vocab_data_type.update", principal, data_type_id, request)
    return data_type


@router.delete("/data-types/{data_type_id}", response_model=SuccessResponse)
async def delete_data_type(
    data_type_id: str,
    request: Request,
    principal: Principal = require_editor,
) -> SuccessResponse:
    get_dictionary().delete_data_type(data_type_id)
    _audit("vocab_data_type.delete", principal, data_type_id, request)
    return SuccessResponse(success=True)


# =============================================================================
# Properties
# =============================================================================

# Bulk routes are declared before the {property_id} routes they would
# otherwise be captured by.


@router.post(
    "/data-types/{data_type_id}/properties/bulk-add-mapping",
    response_model=BulkMappingResponse,
    response_model_exclude_none=True,
)
async def bulk_add_mapping(
    data_type_id: str,
    body: BulkAddMappingRequest,
    request: Request,
    principal: Principal = require_editor,
) -> BulkMappingResponse:
    """Attach one provider mapping to several properties.

    Properties already mapped to the entity are skipped.
    """
    mapping = body.mapping.model_dump(by_alias=True, exclude_unset=True) if body.mapping else None
    added, skipped, data_type = get_dictionary().bulk_add_mapping(
        data_type_id, body.property_ids, mapping, user_ref(principal)
    )
    _audit(
        "provider_mapping.bulk_add", principal, data_type_id, request,
        entity_id=mapping.get("entityId") if mapping else None, added=added, skipped=skipped,
    )
    return BulkMappingResponse(success=True, added=added, skipped=skipped, data_type=data_type)


@router.post(
    "/data-types/{data_type_id}/properties/bulk-remove-mapping",
    response_model=BulkMappingResponse,
    response_model_exclude_none=True,
)
async def bulk_remove_mapping(
    data_type_id: str,
    body: BulkRemoveMappingRequest,
    request: Request,
    principal: Principal = require_editor,
) -> BulkMappingResponse:
    removed, skipped, data_type = get_dictionary().bulk_remove_mapping(
        data_type_id, body.property_ids, body.entity_id, user_ref(principal)
    )
    _audit(
        "provider_mapping.bulk_remove", principal, data_type_id, request,
        entity_id=body.entity_id, removed=removed, skipped=skipped,
    )
    return BulkMappingResponse(success=True, removed=removed, skipped=skipped, data_type=data_type)


@router.post("/data-types/{data_type_id}/properties", response_model=VocabDataType)
async def add_property(
    data_type_id: str,
    body: PropertyWrite,
    request: Request,
    principal: Principal = require_editor,
) -> dict:
    data_type = get_dictionary().add_property(data_type_id, _payload(body), user_ref(principal))
    _audit("property.create", principal, data_type_id, request, name=body.name)
    return data_type


@router.put("/data-types/{data_type_id}/properties/{property_id}", response_model=VocabDataType)
async def update_property(
    data_type_id: str,
    property_id: str,
    body: PropertyWrite,
    request: Request,
    principal: Principal = require_editor,
) -> dict:
    data_type = get_dictionary().update_property(
        data_type_id, property_id, _payload(body), user_ref(principal)
    )
    _audit("property.update", principal, data_type_id, request, property_id=property_id)
    return data_type


@router.delete("/data-types/{data_type_id}/properties/{property_id}", response_model=VocabDataType)
async def delete_property(
    data_type_id: str,
    property_id: str,
    request: Request,
    principal: Principal = require_editor,
) -> dict:
    data_type = get_dictionary().delete_property(data_type_id, property_id, user_ref(principal))
    _audit("property.delete", principal, data_type_id, request, property_id=property_id)
    return data_type


# =============================================================================
# Provider mappings
# =============================================================================


@router.post(
    "/data-types/{data_type_id}/properties/{property_id}/mappings",
    response_model=VocabDataType,
)
async def add_mapping(
    data_type_id: str,
    property_id: str,
    body: MappingWrite,
    request: Request,
    principal: Principal = require_editor,
) -> dict:
    data_type = get_dictionary().add_mapping(
        data_type_id, property_id, _payload(body), user_ref(principal)
    )
    _audit(
        "provider_mapping.create", principal, data_type_id, request,
        property_id=property_id, entity_id=body.entity_id,
    )
    return data_type


@router.put(
    "/data-types/{data_type_id}/properties/{property_id}/mappings/{entity_id}",
    response_model=VocabDataType,
)
async def update_mapping(
    data_type_id: str,
    property_id: str,
    entity_id: str,
    body: MappingWrite,
    request: Request,
    principal: Principal = require_editor,
) -> dict:
    data_type = get_dictionary().update_mapping(
        data_type_id, property_id, entity_id, _payload(body), user_ref(principal)
    )
    _audit(
        "provider_mapping.update", principal, data_type_id, request,
        property_id=property_id, entity_id=entity_id,
    )
    return data_type


@router.delete(
    "/data-types/{data_type_id}/properties/{property_id}/mappings/{entity_id}",
    response_model=VocabDataType,
)
async def delete_mapping(
    data_type_id: str,
    property_id: str,
    entity_id: str,
    request: Request,
    principal: Principal = require_editor,
) -> dict:
    data_type = get_dictionary().delete_mapping(
        data_type_id, property_id, entity_id, user_ref(principal)
    )
    _audit(
        "provider_mapping.delete", principal, data_type_id, request,
        property_id=property_id, entity_id=entity_id,
    )
    return data_type


# =============================================================================
# Sources
# =============================================================================


@router.post("/data-types/{data_type_id}/sources", response_model=VocabDataType)
async def add_source(
    data_type_id: str,
    body: SourceWrite,
    request: Request,
    principal: Principal = require_editor,
) -> dict:
    data_type = get_dictionary().add_source(data_type_id, _payload(body), user_ref(principal))
    _audit("source.create", principal, data_type_id, request, entity_id=body.entity_id)
    return data_type


@router.put("/data-types/{data_type_id}/sources/{entity_id}", response_model=VocabDataType)
async def update_source(
    data_type_id: str,
    entity_id: str,
    body: SourceWrite,
    request: Request,
    principal: Principal = require_editor,
) -> dict:
    data_type = get_dictionary().update_source(
        data_type_id, entity_id, _payload(body), user_ref(principal)
    )
    _audit("source.update", principal, data_type_id, request, entity_id=entity_id)
    return data_type


@router.delete("/data-types/{data_type_id}/sources/{entity_id}", response_model=VocabDataType)
async def delete_source(
    data_type_id: str,
    entity_id: str,
    request: Request,
    principal: Principal = require_editor,
) -> dict:
    data_type = get_dictionary().delete_source(data_type_id, entity_id, user_ref(principal))
    _audit("source.delete", principal, data_type_id, request, entity_id=entity_id)
    return data_type


# =============================================================================
# Search, export, stats
# =============================================================================


@router.get("/search", response_model=DictionarySearchResponse)
async def search_dictionary(q: Optional[str] = Query(None)) -> dict:
    return {"dataTypes": get_dictionary().search(q)}


@router.get("/export", response_model=DictionaryExport)
async def export_dictionary() -> dict:
    return get_dictionary().export()


@router.get("/stats", response_model=DictionaryStats)
async def dictionary_stats() -> dict:
    return get_dictionary().stats()


@router.post("/admin/reseed")
async def reseed_dictionary(request: Request, body: Optional[ReseedRequest] = None) -> dict:
    """Overwrite the vocabulary data types from the bundled seed."""
    check_admin_secret(body.admin_secret if body else None)
    counts = get_dictionary().reseed()
    get_audit_logger().log_access(
        action="dictionary.reseed",
        principal_id="admin-secret",
        details=counts,
        request=request,
    )
    log.info(f"Data types reseeded with {counts['dataTypes']} data types")
    return {"success": True, "message": "Reseeded data types", **counts}
