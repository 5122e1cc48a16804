"""Furnisher catalogue endpoints (v1).

Reads are public. Mutations require console:editor; the reseed endpoint is
gated by the shared admin secret alone.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Query, Request

from catalogue_console.api.models import DeleteResponse, ReseedRequest, SuccessResponse
from catalogue_console.audit import get_audit_logger
from catalogue_console.auth.api_key import Principal, user_ref
from catalogue_console.auth.roles import check_admin_secret, require_editor
from catalogue_console.catalogue import get_catalogue
from catalogue_console.catalogue.models import (
    Attribute,
    AttributeWrite,
    BulkAttributesRequest,
    BulkAttributesResponse,
    CatalogueExport,
    CatalogueSearchResponse,
    CatalogueStats,
    Category,
    CategoryWrite,
    DataType,
    DataTypeDetail,
    DataTypeWrite,
    Furnisher,
    FurnisherDetail,
    FurnisherSummary,
    FurnisherWrite,
)

log = logging.getLogger(__name__)
router = APIRouter(prefix="/api/catalogue", tags=["catalogue"])


def _payload(body) -> dict[str, Any]:
    """Fields the caller actually sent, camelCase, extras included."""
    return body.model_dump(by_alias=True, exclude_unset=True)


# =============================================================================
# Furnishers
# =============================================================================


@router.get("/furnishers", response_model=list[FurnisherSummary])
async def list_furnishers() -> list[dict]:
    """All furnishers with data type and attribute counts."""
    return get_catalogue().list_furnishers()


@router.get("/furnishers/{furnisher_id}", response_model=FurnisherDetail)
async def get_furnisher(furnisher_id: str) -> dict:
    """A furnisher with its data types and attributes nested."""
    return get_catalogue().get_furnisher(furnisher_id)


@router.post("/furnishers", response_model=Furnisher)
async def create_furnisher(
    body: FurnisherWrite,
    request: Request,
    principal: Principal = require_editor,
) -> dict:
    furnisher = get_catalogue().create_furnisher(_payload(body), user_ref(principal))
    get_audit_logger().log_access(
        action="furnisher.create",
        principal_id=principal.key_id,
        resource=furnisher["id"],
        request=request,
    )
    return furnisher


@router.put("/furnishers/{furnisher_id}", response_model=Furnisher)
async def update_furnisher(
    furnisher_id: str,
    body: FurnisherWrite,
    request: Request,
    principal: Principal = require_editor,
) -> dict:
    furnisher = get_catalogue().update_furnisher(furnisher_id, _payload(body), user_ref(principal))
    get_audit_logger().log_access(
        action="furnisher.update",
        principal_id=principal.key_id,
        resource=furnisher_id,
        request=request,
    )
    return furnisher


@router.delete("/furnishers/{furnisher_id}", response_model=DeleteResponse)
async def delete_furnisher(
    furnisher_id: str,
    request: Request,
    principal: Principal = require_editor,
) -> DeleteResponse:
    """Delete a furnisher along with its data types and their attributes."""
    removed = get_catalogue().delete_furnisher(furnisher_id)
    get_audit_logger().log_access(
        action="furnisher.delete",
        principal_id=principal.key_id,
        resource=furnisher_id,
        details=removed,
        request=request,
    )
    return DeleteResponse(success=True, deleted=removed)


# =============================================================================
# Data types
# =============================================================================


@router.get("/data-types", response_model=list[DataType])
async def list_data_types(
    furnisher_id: Optional[str] = Query(None, alias="furnisherId"),
) -> list[dict]:
    return get_catalogue().list_data_types(furnisher_id)


@router.get("/data-types/{data_type_id}", response_model=DataTypeDetail)
async def get_data_type(data_type_id: str) -> dict:
    return get_catalogue().get_data_type(data_type_id)


@router.post("/data-types", response_model=DataType)
async def create_data_type(
    body: DataTypeWrite,
    request: Request,
    principal: Principal = require_editor,
) -> dict:
    data_type = get_catalogue().create_data_type(_payload(body))
    get_audit_logger().log_access(
        action="data_type.create",
        principal_id=principal.key_id,
        resource=data_type["id"],
        request=request,
    )
    return data_type


@router.put("/data-types/{data_type_id}", response_model=DataType)
async def update_data_type(
    data_type_id: str,
    body: DataTypeWrite,
    request: Request,
    principal: Principal = require_editor,
) -> dict:
    data_type = get_catalogue().update_data_type(data_type_id, _payload(body))
    get_audit_logger().log_access(
        action="data_type.update",
        principal_id=principal.key_id,
        resource=data_type_id,
        request=request,
    )
    return data_type


@router.delete("/data-types/{data_type_id}", response_model=DeleteResponse)
async def delete_data_type(
    data_type_id: str,
    request: Request,
    principal: Principal = require_editor,
) -> DeleteResponse:
    removed = get_catalogue().delete_data_type(data_type_id)
    get_audit_logger().log_access(
        action="data_type.delete",
        principal_id=principal.key_id,
        resource=data_type_id,
        details=removed,
        request=request,
    )
    return DeleteResponse(success=True, deleted=removed)


# =============================================================================
# Attributes
# =============================================================================


@router.post("/attributes/bulk", response_model=BulkAttributesResponse)
async def bulk_create_attributes(
    body: BulkAttributesRequest,
    request: Request,
    principal: Principal = require_editor,
) -> BulkAttributesResponse:
    """Import many attributes into one data type.

    Entries without a name, or whose id already exists, are skipped.
    """
    created, skipped = get_catalogue().bulk_create_attributes(body.data_type_id, body.attributes)
    get_audit_logger().log_access(
        action="attribute.bulk_create",
        principal_id=principal.key_id,
        resource=body.data_type_id,
        details={"created": len(created), "skipped": skipped},
        request=request,
    )
    return BulkAttributesResponse(created=len(created), skipped=skipped, attributes=created)


@router.get("/attributes/{attribute_id}", response_model=Attribute)
async def get_attribute(attribute_id: str) -> dict:
    return get_catalogue().get_attribute(attribute_id)


@router.post("/attributes", response_model=Attribute)
async def create_attribute(
    body: AttributeWrite,
    request: Request,
    principal: Principal = require_editor,
) -> dict:
    attribute = get_catalogue().create_attribute(_payload(body))
    get_audit_logger().log_access(
        action="attribute.create",
        principal_id=principal.key_id,
        resource=attribute["id"],
        request=request,
    )
    return attribute


@router.put("/attributes/{attribute_id}", response_model=Attribute)
async def update_attribute(
    attribute_id: str,
    body: AttributeWrite,
    request: Request,
    principal: Principal = require_editor,
) -> dict:
    attribute = get_catalogue().update_attribute(attribute_id, _payload(body))
    get_audit_logger().log_access(
        action="attribute.update",
        principal_id=principal.key_id,
        resource=attribute_id,
        request=request,
    )
    return attribute


@router.delete("/attributes/{attribute_id}", response_model=SuccessResponse)
async def delete_attribute(
    attribute_id: str,
    request: Request,
    principal: Principal = require_editor,
) -> SuccessResponse:
    get_catalogue().delete_attribute(attribute_id)
    get_audit_logger().log_access(
        action="attribute.delete",
        principal_id=principal.key_id,
        resource=attribute_id,
        request=request,
    )
    return SuccessResponse(success=True)


# =============================================================================
# Categories (shared with the dictionary)
# =============================================================================


@router.get("/categories", response_model=list[Category])
async def list_categories() -> list[dict]:
    return get_catalogue().categories.list_all()


@router.post("/categories", response_model=Category, status_code=201)
async def create_category(
    body: CategoryWrite,
    request: Request,
    principal: Principal = require_editor,
) -> dict:
    category = get_catalogue().categories.create(_payload(body))
    get_audit_logger().log_access(
        action="category.create",
        principal_id=principal.key_id,
        resource=category["id"],
        request=request,
    )
    return category


@router.put("/categories/{category_id}", response_model=Category)
async def update_category(
    category_id: str,
    body: CategoryWrite,
    request: Request,
    principal: Principal = require_editor,
) -> dict:
    category = get_catalogue().categories.update(category_id, _payload(body))
    get_audit_logger().log_access(
        action="category.update",
        principal_id=principal.key_id,
        resource=category_id,
        request=request,
    )
    return category


@router.delete("/categories/{category_id}", response_model=SuccessResponse)
async def delete_category(
    category_id: str,
    request: Request,
    principal: Principal = require_editor,
) -> SuccessResponse:
    get_catalogue().categories.delete(category_id)
    get_audit_logger().log_access(
        action="category.delete",
        principal_id=principal.key_id,
        resource=category_id,
        request=request,
    )
    return SuccessResponse(success=True)


# =============================================================================
# Search, export, stats
# =============================================================================


@router.get("/search", response_model=CatalogueSearchResponse)
async def search_catalogue(q: Optional[str] = Query(None, description="Search text")) -> dict:
    """Case-insensitive substring search; fewer than 2 characters finds nothing."""
    return get_catalogue().search(q)


@router.get("/export", response_model=CatalogueExport)
async def export_catalogue() -> dict:
    return get_catalogue().export()


@router.get("/stats", response_model=CatalogueStats)
async def catalogue_stats() -> dict:
    return get_catalogue().stats()


@router.post("/admin/reseed")
async def reseed_catalogue(request: Request, body: Optional[ReseedRequest] = None) -> dict:
    """Overwrite furnishers, data types and attributes from the bundled seed."""
    check_admin_secret(body.admin_secret if body else None)
    counts = get_catalogue().reseed()
    get_audit_logger().log_access(
        action="catalogue.reseed",
        principal_id="admin-secret",
        details=counts,
        request=request,
    )
    log.info(f"Catalogue reseeded: {counts}")
    return {"success": True, "message": "Reseeded catalogue", **counts}
