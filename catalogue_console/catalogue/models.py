"""Request and response models for the furnisher catalogue.

Wire format is camelCase (as persisted in the JSON documents); Python
attributes are snake_case. Models allow extra keys so caller-supplied fields
survive a create/read round trip.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model with camelCase aliases and pass-through extras."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class UserRef(CamelModel):
    """Who created or last edited a record."""

    id: str
    login: Optional[str] = None
    name: Optional[str] = None


# =============================================================================
# Records
# =============================================================================


class Attribute(CamelModel):
    id: str
    data_type_id: str
    name: str
    display_name: str = ""
    description: str = ""
    data_type: str = "string"
    sample_value: Any = ""
    regions_covered: Optional[list[str]] = Field(
        None, description="Overrides the furnisher's regions when non-empty"
    )
    effective_regions_covered: Optional[list[str]] = Field(
        None, description="Regions after applying furnisher inheritance"
    )
    path: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class DataType(CamelModel):
    id: str
    furnisher_id: str
    name: str
    description: str = ""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class DataTypeDetail(DataType):
    attributes: list[Attribute] = Field(default_factory=list)


class FurnisherStats(CamelModel):
    data_type_count: int
    attribute_count: int


class Furnisher(CamelModel):
    id: str
    name: str
    description: str = ""
    logo_uri: Optional[str] = None
    website: Optional[str] = None
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    did: Optional[str] = None
    regions_covered: list[str] = Field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    created_by: Optional[UserRef] = None
    updated_by: Optional[UserRef] = None


class FurnisherSummary(Furnisher):
    stats: FurnisherStats


class FurnisherDetail(Furnisher):
    data_types: list[DataTypeDetail] = Field(default_factory=list)


class Category(CamelModel):
    id: str
    name: str
    description: str = ""
    order: int = 99


# =============================================================================
# Requests
# =============================================================================


class FurnisherWrite(CamelModel):
    """Create/update body for a furnisher. All fields optional on PUT."""

    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    logo_uri: Optional[str] = None
    website: Optional[str] = None
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    did: Optional[str] = None
    regions_covered: Optional[list[str]] = None


class DataTypeWrite(CamelModel):
    id: Optional[str] = None
    furnisher_id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None


class AttributeWrite(CamelModel):
    id: Optional[str] = None
    data_type_id: Optional[str] = None
    name: Optional[str] = None
    display_name: Optional[str] = None
    description: Optional[str] = None
    data_type: Optional[str] = None
    sample_value: Any = None
    regions_covered: Optional[list[str]] = None
    path: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class BulkAttributesRequest(CamelModel):
    data_type_id: Optional[str] = None
    attributes: list[dict[str, Any]] = Field(default_factory=list)


class BulkAttributesResponse(CamelModel):
    created: int
    skipped: int
    attributes: list[Attribute]


class CategoryWrite(CamelModel):
    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    order: Optional[int] = None


# =============================================================================
# Search / export / stats
# =============================================================================


class CatalogueSearchResponse(CamelModel):
    furnishers: list[Furnisher] = Field(default_factory=list)
    data_types: list[DataType] = Field(default_factory=list)
    attributes: list[Attribute] = Field(default_factory=list)


class CatalogueExport(CamelModel):
    exported_at: str
    version: str = "1.0"
    furnishers: list[FurnisherDetail]
    categories: list[Category]


class CatalogueStats(CamelModel):
    total_furnishers: int
    total_data_types: int
    total_attributes: int
    total_categories: int
