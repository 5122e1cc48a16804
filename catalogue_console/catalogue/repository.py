"""Furnisher catalogue repository.

Owns the three documents of the furnisher ownership tree:

    furnishers.json   {"furnishers": [...]}
    data-types.json   {"dataTypes":  [...]}   each with furnisherId
    attributes.json   {"attributes": [...]}   each with dataTypeId

Referential integrity lives here: deleting a furnisher removes its data types
and their attributes in one operation, and deleting a data type removes its
attributes. Dependents are written before parents, so a failure part-way
through never leaves a child pointing at a deleted parent.
"""

import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError as SchemaError

from catalogue_console.catalogue.categories import (
    CATEGORIES_DOCUMENT,
    CategoryRepository,
    default_categories,
)
from catalogue_console.catalogue.models import AttributeWrite
from catalogue_console.store.errors import ConflictError, NotFoundError, ValidationError
from catalogue_console.store.ids import timestamp_id
from catalogue_console.store.json_store import DocumentLayout, DocumentStore, JsonDocumentStore
from catalogue_console.store.patch import apply_patch, require, utc_now

log = logging.getLogger(__name__)

FURNISHERS = ("furnishers", "furnishers")
DATA_TYPES = ("data-types", "dataTypes")
ATTRIBUTES = ("attributes", "attributes")

SEED_FILE = "seed-furnishers.json"

# Value kinds an attribute may declare
ATTRIBUTE_VALUE_KINDS = frozenset({
    "string", "number", "integer", "boolean", "date", "datetime",
    "array", "object", "uri", "email", "phone",
})

FURNISHER_DEFAULTS: dict[str, Any] = {"description": "", "regionsCovered": []}
DATA_TYPE_DEFAULTS: dict[str, Any] = {"description": ""}
ATTRIBUTE_DEFAULTS: dict[str, Any] = {
    "displayName": "",
    "description": "",
    "dataType": "string",
    "sampleValue": "",
    "path": "",
    "metadata": {},
}


def build_catalogue_store(base_dir: Path, seed_dir: Path | None = None) -> JsonDocumentStore:
    """Create the JSON store for the catalogue directory."""
    seed_path = Path(seed_dir) / SEED_FILE if seed_dir else None
    return JsonDocumentStore(
        base_dir,
        {
            FURNISHERS[0]: DocumentLayout(lambda: {"furnishers": []}, seed_path, "furnishers"),
            DATA_TYPES[0]: DocumentLayout(lambda: {"dataTypes": []}, seed_path, "dataTypes"),
            ATTRIBUTES[0]: DocumentLayout(lambda: {"attributes": []}, seed_path, "attributes"),
            CATEGORIES_DOCUMENT: DocumentLayout(default_categories),
        },
    )


def resolve_regions(attribute: dict[str, Any], furnisher: dict[str, Any] | None) -> list[str]:
    """Regions an attribute applies to.

    A non-empty ``regionsCovered`` on the attribute overrides the furnisher's;
    null, absent or empty inherits.
    """
    override = attribute.get("regionsCovered")
    if override:
        return list(override)
    if furnisher is None:
        return []
    return list(furnisher.get("regionsCovered") or [])


def _matches(query: str, *values: Any) -> bool:
    return any(isinstance(v, str) and query in v.lower() for v in values)


def _validate_value_kind(kind: Any) -> None:
    if kind not in ATTRIBUTE_VALUE_KINDS:
        raise ValidationError(
            f"Invalid dataType '{kind}'. Must be one of: {', '.join(sorted(ATTRIBUTE_VALUE_KINDS))}"
        )


class FurnisherCatalogue:
    """Repository over furnishers, their data types and attributes."""

    def __init__(self, store: DocumentStore, min_query_length: int = 2):
        self.store = store
        self.categories = CategoryRepository(store)
        self.min_query_length = min_query_length

    # -------------------------------------------------------------------------
    # Document access
    # -------------------------------------------------------------------------

    def _items(self, collection: tuple[str, str]) -> list[dict[str, Any]]:
        name, key = collection
        return self.store.load(name).get(key, [])

    def _write(self, collection: tuple[str, str], items: list[dict[str, Any]]) -> None:
        name, key = collection
        self.store.save(name, {key: items})

    @staticmethod
    def _index(items: list[dict[str, Any]], record_id: str) -> int | None:
        return next((i for i, item in enumerate(items) if item.get("id") == record_id), None)

    def _with_regions(
        self, attribute: dict[str, Any], furnisher: dict[str, Any] | None
    ) -> dict[str, Any]:
        return {**attribute, "effectiveRegionsCovered": resolve_regions(attribute, furnisher)}

    def _furnisher_for_data_type(self, data_type_id: str) -> dict[str, Any] | None:
        data_type = next((d for d in self._items(DATA_TYPES) if d["id"] == data_type_id), None)
        if data_type is None:
            return None
        return next(
            (f for f in self._items(FURNISHERS) if f["id"] == data_type.get("furnisherId")),
            None,
        )

    # -------------------------------------------------------------------------
    # Furnishers
    # -------------------------------------------------------------------------

    def list_furnishers(self) -> list[dict[str, Any]]:
        """All furnishers with data type and attribute counts."""
        furnishers = self._items(FURNISHERS)
        data_types = self._items(DATA_TYPES)
        attributes = self._items(ATTRIBUTES)

        result = []
        for furnisher in furnishers:
            dt_ids = {d["id"] for d in data_types if d.get("furnisherId") == furnisher["id"]}
            result.append({
                **furnisher,
                "stats": {
                    "dataTypeCount": len(dt_ids),
                    "attributeCount": sum(1 for a in attributes if a.get("dataTypeId") in dt_ids),
                },
            })
        return result

    def get_furnisher(self, furnisher_id: str) -> dict[str, Any]:
        """A furnisher with its data types and their attributes nested."""
        furnisher = next((f for f in self._items(FURNISHERS) if f["id"] == furnisher_id), None)
        if furnisher is None:
            raise NotFoundError("Furnisher not found")

        attributes = self._items(ATTRIBUTES)
        data_types = [
            {
                **d,
                "attributes": [
                    self._with_regions(a, furnisher)
                    for a in attributes
                    if a.get("dataTypeId") == d["id"]
                ],
            }
            for d in self._items(DATA_TYPES)
            if d.get("furnisherId") == furnisher_id
        ]
        return {**furnisher, "dataTypes": data_types}

    def create_furnisher(self, payload: dict[str, Any], user: dict[str, Any] | None = None) -> dict[str, Any]:
        require(payload, "name", "Name")
        furnishers = self._items(FURNISHERS)

        furnisher_id = payload.get("id") or timestamp_id("furnisher")
        if self._index(furnishers, furnisher_id) is not None:
            raise ConflictError(f"Furnisher with ID '{furnisher_id}' already exists")

        now = utc_now()
        furnisher = dict(FURNISHER_DEFAULTS)
        furnisher.update({k: v for k, v in payload.items() if v is not None})
        furnisher.update(id=furnisher_id, createdAt=now, updatedAt=now, createdBy=user)

        furnishers.append(furnisher)
        self._write(FURNISHERS, furnishers)
        log.info(f"Created furnisher {furnisher_id}")
        return furnisher

    def update_furnisher(
        self, furnisher_id: str, changes: dict[str, Any], user: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        furnishers = self._items(FURNISHERS)
        index = self._index(furnishers, furnisher_id)
        if index is None:
            raise NotFoundError("Furnisher not found")

        furnisher = apply_patch(
            furnishers[index],
            changes,
            required=("name",),
            protected=("id", "createdAt", "createdBy"),
            defaults=FURNISHER_DEFAULTS,
        )
        furnisher.update(updatedAt=utc_now(), updatedBy=user)
        furnishers[index] = furnisher
        self._write(FURNISHERS, furnishers)
        return furnisher

    def delete_furnisher(self, furnisher_id: str) -> dict[str, int]:
        """Delete a furnisher and everything it owns.

        Returns:
            Counts of cascaded data types and attributes
        """
        furnishers = self._items(FURNISHERS)
        if self._index(furnishers, furnisher_id) is None:
            raise NotFoundError("Furnisher not found")

        data_types = self._items(DATA_TYPES)
        attributes = self._items(ATTRIBUTES)
        owned = {d["id"] for d in data_types if d.get("furnisherId") == furnisher_id}
        kept_attributes = [a for a in attributes if a.get("dataTypeId") not in owned]

        self._write(ATTRIBUTES, kept_attributes)
        self._write(DATA_TYPES, [d for d in data_types if d["id"] not in owned])
        self._write(FURNISHERS, [f for f in furnishers if f["id"] != furnisher_id])

        removed = {"dataTypes": len(owned), "attributes": len(attributes) - len(kept_attributes)}
        log.info(f"Deleted furnisher {furnisher_id} (cascade: {removed})")
        return removed

    # -------------------------------------------------------------------------
    # Data types
    # -------------------------------------------------------------------------

    def list_data_types(self, furnisher_id: str | None = None) -> list[dict[str, Any]]:
        data_types = self._items(DATA_TYPES)
        if furnisher_id:
            data_types = [d for d in data_types if d.get("furnisherId") == furnisher_id]
        return data_types

    def get_data_type(self, data_type_id: str) -> dict[str, Any]:
        data_type = next((d for d in self._items(DATA_TYPES) if d["id"] == data_type_id), None)
        if data_type is None:
            raise NotFoundError("Data type not found")
        furnisher = self._furnisher_for_data_type(data_type_id)
        attributes = [
            self._with_regions(a, furnisher)
            for a in self._items(ATTRIBUTES)
            if a.get("dataTypeId") == data_type_id
        ]
        return {**data_type, "attributes": attributes}

    def create_data_type(self, payload: dict[str, Any]) -> dict[str, Any]:
        furnisher_id = require(payload, "furnisherId", "Furnisher ID")
        require(payload, "name", "Name")

        if self._index(self._items(FURNISHERS), furnisher_id) is None:
            raise NotFoundError("Furnisher not found")

        data_types = self._items(DATA_TYPES)
        data_type_id = payload.get("id") or timestamp_id("datatype")
        if self._index(data_types, data_type_id) is not None:
            raise ConflictError(f"Data type with ID '{data_type_id}' already exists")

        now = utc_now()
        data_type = dict(DATA_TYPE_DEFAULTS)
        data_type.update({k: v for k, v in payload.items() if v is not None})
        data_type.update(id=data_type_id, createdAt=now, updatedAt=now)

        data_types.append(data_type)
        self._write(DATA_TYPES, data_types)
        log.info(f"Created data type {data_type_id} for furnisher {furnisher_id}")
        return data_type

    def update_data_type(self, data_type_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        data_types = self._items(DATA_TYPES)
        index = self._index(data_types, data_type_id)
        if index is None:
            raise NotFoundError("Data type not found")

        data_type = apply_patch(
            data_types[index],
            changes,
            required=("name",),
            protected=("id", "furnisherId", "createdAt"),
            defaults=DATA_TYPE_DEFAULTS,
        )
        data_type["updatedAt"] = utc_now()
        data_types[index] = data_type
        self._write(DATA_TYPES, data_types)
        return data_type

    def delete_data_type(self, data_type_id: str) -> dict[str, int]:
        data_types = self._items(DATA_TYPES)
        if self._index(data_types, data_type_id) is None:
            raise NotFoundError("Data type not found")

        attributes = self._items(ATTRIBUTES)
        kept = [a for a in attributes if a.get("dataTypeId") != data_type_id]

        self._write(ATTRIBUTES, kept)
        self._write(DATA_TYPES, [d for d in data_types if d["id"] != data_type_id])
        log.info(f"Deleted data type {data_type_id}")
        return {"attributes": len(attributes) - len(kept)}

    # -------------------------------------------------------------------------
    # Attributes
    # -------------------------------------------------------------------------

    def _new_attribute(self, payload: dict[str, Any], attribute_id: str, now: str) -> dict[str, Any]:
        attribute = dict(ATTRIBUTE_DEFAULTS)
        attribute["metadata"] = {}
        attribute["regionsCovered"] = None
        attribute.update({k: v for k, v in payload.items() if v is not None})
        if not attribute.get("displayName"):
            attribute["displayName"] = attribute["name"]
        _validate_value_kind(attribute["dataType"])
        attribute.update(id=attribute_id, createdAt=now, updatedAt=now)
        return attribute

    def get_attribute(self, attribute_id: str) -> dict[str, Any]:
        attribute = next((a for a in self._items(ATTRIBUTES) if a["id"] == attribute_id), None)
        if attribute is None:
            raise NotFoundError("Attribute not found")
        return self._with_regions(attribute, self._furnisher_for_data_type(attribute["dataTypeId"]))

    def create_attribute(self, payload: dict[str, Any]) -> dict[str, Any]:
        data_type_id = require(payload, "dataTypeId", "Data type ID")
        require(payload, "name", "Name")

        if self._index(self._items(DATA_TYPES), data_type_id) is None:
            raise NotFoundError("Data type not found")

        attributes = self._items(ATTRIBUTES)
        attribute_id = payload.get("id") or timestamp_id("attr")
        if self._index(attributes, attribute_id) is not None:
            raise ConflictError(f"Attribute with ID '{attribute_id}' already exists")

        attribute = self._new_attribute(payload, attribute_id, utc_now())
        attributes.append(attribute)
        self._write(ATTRIBUTES, attributes)
        return self._with_regions(attribute, self._furnisher_for_data_type(data_type_id))

    def bulk_create_attributes(
        self, data_type_id: str | None, entries: list[dict[str, Any]]
    ) -> tuple[list[dict[str, Any]], int]:
        """Create many attributes under one data type.

        Entries that fail attribute validation, lack a name, declare an
        unknown value kind or reuse a taken id are skipped.

        Returns:
            Tuple of (created attributes, skipped count)
        """
        if not data_type_id:
            raise ValidationError("Data type ID is required")
        if not isinstance(entries, list):
            raise ValidationError("attributes must be a list")
        if self._index(self._items(DATA_TYPES), data_type_id) is None:
            raise NotFoundError("Data type not found")

        attributes = self._items(ATTRIBUTES)
        taken = {a["id"] for a in attributes}
        now = utc_now()
        created: list[dict[str, Any]] = []
        skipped = 0

        for position, entry in enumerate(entries):
            try:
                entry = AttributeWrite.model_validate(entry).model_dump(
                    by_alias=True, exclude_unset=True
                )
            except SchemaError as e:
                log.debug(f"Skipping bulk attribute {position}: {e.error_count()} invalid fields")
                skipped += 1
                continue
            if not str(entry.get("name") or "").strip():
                skipped += 1
                continue
            attribute_id = entry.get("id") or timestamp_id("attr", position)
            if attribute_id in taken:
                skipped += 1
                continue
            try:
                attribute = self._new_attribute(
                    {**entry, "dataTypeId": data_type_id}, attribute_id, now
                )
            except ValidationError:
                skipped += 1
                continue
            taken.add(attribute_id)
            created.append(attribute)

        if created:
            self._write(ATTRIBUTES, attributes + created)
        log.info(f"Bulk import into {data_type_id}: created={len(created)} skipped={skipped}")

        furnisher = self._furnisher_for_data_type(data_type_id)
        return [self._with_regions(a, furnisher) for a in created], skipped

    def update_attribute(self, attribute_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        attributes = self._items(ATTRIBUTES)
        index = self._index(attributes, attribute_id)
        if index is None:
            raise NotFoundError("Attribute not found")

        if "dataType" in changes and changes["dataType"] is not None:
            _validate_value_kind(changes["dataType"])

        attribute = apply_patch(
            attributes[index],
            changes,
            required=("name",),
            protected=("id", "dataTypeId", "createdAt"),
            defaults=ATTRIBUTE_DEFAULTS,
        )
        attribute["updatedAt"] = utc_now()
        attributes[index] = attribute
        self._write(ATTRIBUTES, attributes)
        return self._with_regions(attribute, self._furnisher_for_data_type(attribute["dataTypeId"]))

    def delete_attribute(self, attribute_id: str) -> None:
        attributes = self._items(ATTRIBUTES)
        kept = [a for a in attributes if a["id"] != attribute_id]
        if len(kept) == len(attributes):
            raise NotFoundError("Attribute not found")
        self._write(ATTRIBUTES, kept)

    # -------------------------------------------------------------------------
    # Search, export, stats, reseed
    # -------------------------------------------------------------------------

    def search(self, query: str | None) -> dict[str, list[dict[str, Any]]]:
        """Case-insensitive substring search across the whole tree."""
        q = (query or "").strip().lower()
        if len(q) < self.min_query_length:
            return {"furnishers": [], "dataTypes": [], "attributes": []}

        return {
            "furnishers": [
                f for f in self._items(FURNISHERS)
                if _matches(q, f.get("name"), f.get("description"))
            ],
            "dataTypes": [
                d for d in self._items(DATA_TYPES)
                if _matches(q, d.get("name"), d.get("description"))
            ],
            "attributes": [
                a for a in self._items(ATTRIBUTES)
                if _matches(q, a.get("name"), a.get("displayName"), a.get("description"))
            ],
        }

    def export(self) -> dict[str, Any]:
        """The whole furnisher tree plus categories as one document."""
        furnishers = self._items(FURNISHERS)
        return {
            "exportedAt": utc_now(),
            "version": "1.0",
            "furnishers": [self.get_furnisher(f["id"]) for f in furnishers],
            "categories": self.categories.list_all(),
        }

    def stats(self) -> dict[str, int]:
        return {
            "totalFurnishers": len(self._items(FURNISHERS)),
            "totalDataTypes": len(self._items(DATA_TYPES)),
            "totalAttributes": len(self._items(ATTRIBUTES)),
            "totalCategories": self.categories.count(),
        }

    def reseed(self) -> dict[str, int]:
        """Overwrite the furnisher tree from the bundled seed file."""
        counts = {}
        for name, key in (ATTRIBUTES, DATA_TYPES, FURNISHERS):
            document = self.store.reseed(name)
            counts[key] = len(document.get(key, []))
        return counts


# Global repository instance
_catalogue: FurnisherCatalogue | None = None


def get_catalogue() -> FurnisherCatalogue:
    """Get the global furnisher catalogue.

    Lazily initializes from config on first access.
    """
    global _catalogue

    if _catalogue is None:
        from catalogue_console.config import CATALOGUE_DIR, SEARCH_MIN_QUERY_LENGTH, SEED_DIR

        _catalogue = FurnisherCatalogue(
            build_catalogue_store(CATALOGUE_DIR, SEED_DIR),
            min_query_length=SEARCH_MIN_QUERY_LENGTH,
        )
        log.info(f"Furnisher catalogue at {CATALOGUE_DIR}")

    return _catalogue


def reset_catalogue() -> None:
    """Reset the global repository (for testing)."""
    global _catalogue
    _catalogue = None
