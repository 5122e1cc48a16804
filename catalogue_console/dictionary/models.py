"""Request and response models for the vocabulary dictionary."""

from typing import Any, Optional

from pydantic import Field

from catalogue_console.catalogue.models import CamelModel, Category, UserRef


class ProviderMapping(CamelModel):
    entity_id: str
    entity_name: str = ""
    provider_field_name: str = ""
    regions_covered: list[str] = Field(default_factory=list)
    notes: str = ""
    added_at: Optional[str] = None
    added_by: Optional[UserRef] = None


class Property(CamelModel):
    id: str
    name: str
    display_name: str = ""
    description: str = ""
    value_type: str = "string"
    required: bool = False
    sample_value: Any = ""
    path: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    provider_mappings: list[ProviderMapping] = Field(default_factory=list)


class Source(CamelModel):
    entity_id: str
    entity_name: str = ""
    regions_covered: list[str] = Field(default_factory=list)
    update_frequency: str = ""
    notes: str = ""
    api_endpoint: str = ""
    added_at: Optional[str] = None
    added_by: Optional[UserRef] = None


class VocabDataType(CamelModel):
    id: str
    name: str
    description: str = ""
    category: str = "other"
    parent_type_id: Optional[str] = None
    properties: list[Property] = Field(default_factory=list)
    sources: list[Source] = Field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    created_by: Optional[UserRef] = None
    updated_by: Optional[UserRef] = None


# =============================================================================
# Requests
# =============================================================================


class VocabDataTypeWrite(CamelModel):
    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    parent_type_id: Optional[str] = None
    properties: Optional[list[dict[str, Any]]] = None
    sources: Optional[list[dict[str, Any]]] = None


class PropertyWrite(CamelModel):
    id: Optional[str] = None
    name: Optional[str] = None
    display_name: Optional[str] = None
    description: Optional[str] = None
    value_type: Optional[str] = None
    required: Optional[bool] = None
    sample_value: Any = None
    path: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    provider_mappings: Optional[list[dict[str, Any]]] = None


class MappingWrite(CamelModel):
    entity_id: Optional[str] = None
    entity_name: Optional[str] = None
    provider_field_name: Optional[str] = None
    regions_covered: Optional[list[str]] = None
    notes: Optional[str] = None


class SourceWrite(CamelModel):
    entity_id: Optional[str] = None
    entity_name: Optional[str] = None
    regions_covered: Optional[list[str]] = None
    update_frequency: Optional[str] = None
    notes: Optional[str] = None
    api_endpoint: Optional[str] = None


class BulkAddMappingRequest(CamelModel):
    property_ids: Any = None
    mapping: Optional[MappingWrite] = None


class BulkRemoveMappingRequest(CamelModel):
    property_ids: Any = None
    entity_id: Optional[str] = None


class BulkMappingResponse(CamelModel):
    success: bool = True
    added: Optional[int] = None
    removed: Optional[int] = None
    skipped: int
    data_type: VocabDataType


# =============================================================================
# Search / export / stats
# =============================================================================


class DictionarySearchResponse(CamelModel):
    data_types: list[VocabDataType] = Field(default_factory=list)


class DictionaryExport(CamelModel):
    exported_at: str
    categories: list[Category]
    data_types: list[VocabDataType]


class DictionaryStats(CamelModel):
    total_data_types: int
    total_properties: int
    total_sources: int
    total_categories: int
    category_counts: dict[str, int]
