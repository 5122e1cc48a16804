"""Vocabulary dictionary repository.

Data types here are vocabulary-scoped rather than furnisher-scoped: each one
embeds its properties (with provider mappings) and its sources, and the whole
collection is one document, ``data-types.json`` = ``{"dataTypes": [...]}``.
Every sub-resource mutation rewrites the parent data type and returns it.
"""

import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError as SchemaError

from catalogue_console.catalogue.categories import CategoryRepository
from catalogue_console.dictionary.models import VocabDataType
from catalogue_console.store.errors import ConflictError, NotFoundError, ValidationError
from catalogue_console.store.ids import slugify, timestamp_id
from catalogue_console.store.json_store import DocumentLayout, DocumentStore, JsonDocumentStore
from catalogue_console.store.patch import apply_patch, require, utc_now

log = logging.getLogger(__name__)

DOCUMENT = "data-types"
KEY = "dataTypes"
SEED_FILE = "data-types.json"

# Value types a vocabulary property may declare
PROPERTY_VALUE_TYPES = frozenset({
    "string", "number", "integer", "boolean", "date", "datetime",
    "currency", "url", "email", "phone", "array", "object",
})

DATA_TYPE_DEFAULTS: dict[str, Any] = {
    "description": "",
    "category": "other",
    "properties": [],
    "sources": [],
}
PROPERTY_DEFAULTS: dict[str, Any] = {
    "displayName": "",
    "description": "",
    "valueType": "string",
    "required": False,
    "sampleValue": "",
    "path": "",
    "metadata": {},
    "providerMappings": [],
}
MAPPING_DEFAULTS: dict[str, Any] = {
    "entityName": "",
    "providerFieldName": "",
    "regionsCovered": [],
    "notes": "",
}
SOURCE_DEFAULTS: dict[str, Any] = {
    "entityName": "",
    "regionsCovered": [],
    "updateFrequency": "",
    "notes": "",
    "apiEndpoint": "",
}


def build_dictionary_store(base_dir: Path, seed_dir: Path | None = None) -> JsonDocumentStore:
    """Create the JSON store for the dictionary directory."""
    seed_path = Path(seed_dir) / SEED_FILE if seed_dir else None
    return JsonDocumentStore(
        base_dir,
        {DOCUMENT: DocumentLayout(lambda: {KEY: []}, seed_path, KEY)},
    )


def _matches(query: str, *values: Any) -> bool:
    return any(isinstance(v, str) and query in v.lower() for v in values)


def _validate_value_type(value_type: Any) -> None:
    if value_type not in PROPERTY_VALUE_TYPES:
        raise ValidationError(
            f"Invalid valueType '{value_type}'. Must be one of: {', '.join(sorted(PROPERTY_VALUE_TYPES))}"
        )


def _fill(defaults: dict[str, Any], payload: dict[str, Any]) -> dict[str, Any]:
    """Defaults overlaid with the non-null payload values."""
    record = {k: (list(v) if isinstance(v, list) else dict(v) if isinstance(v, dict) else v)
              for k, v in defaults.items()}
    record.update({k: v for k, v in payload.items() if v is not None})
    return record


def _embedded_mapping(prop: dict[str, Any], item: Any, user, now: str) -> dict[str, Any]:
    if not isinstance(item, dict):
        raise ValidationError("Each provider mapping must be an object")
    require(item, "entityId", "Entity ID")
    mapping = _fill(MAPPING_DEFAULTS, item)
    if not mapping["providerFieldName"]:
        mapping["providerFieldName"] = prop["name"]
    mapping.setdefault("addedAt", now)
    mapping.setdefault("addedBy", user)
    return mapping


def _embedded_properties(items: Any, user, now: str) -> list[dict[str, Any]]:
    """Properties sent inline with a data type, filled out like added ones."""
    if not isinstance(items, list):
        raise ValidationError("properties must be a list")

    properties: list[dict[str, Any]] = []
    for position, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError("Each property must be an object")
        name = require(item, "name", "Property name")
        if item.get("valueType") is not None:
            _validate_value_type(item["valueType"])
        prop = _fill(PROPERTY_DEFAULTS, item)
        prop["id"] = item.get("id") or timestamp_id("prop", position)
        if any(p["id"] == prop["id"] for p in properties):
            raise ConflictError(f"Property with ID '{prop['id']}' already exists")
        if not prop["displayName"]:
            prop["displayName"] = name
        mappings = prop["providerMappings"]
        if not isinstance(mappings, list):
            raise ValidationError("providerMappings must be a list")
        prop["providerMappings"] = [_embedded_mapping(prop, m, user, now) for m in mappings]
        properties.append(prop)
    return properties


def _embedded_sources(items: Any, user, now: str) -> list[dict[str, Any]]:
    if not isinstance(items, list):
        raise ValidationError("sources must be a list")

    sources: list[dict[str, Any]] = []
    for item in items:
        if not isinstance(item, dict):
            raise ValidationError("Each source must be an object")
        require(item, "entityId", "Entity ID")
        source = _fill(SOURCE_DEFAULTS, item)
        source.setdefault("addedAt", now)
        source.setdefault("addedBy", user)
        sources.append(source)
    return sources


def _normalise_embedded(record: dict[str, Any], user, now: str) -> None:
    if record.get("properties") is not None:
        record["properties"] = _embedded_properties(record["properties"], user, now)
    if record.get("sources") is not None:
        record["sources"] = _embedded_sources(record["sources"], user, now)


def _checked(data_type: dict[str, Any]) -> dict[str, Any]:
    """Reject a data type the read endpoints could not serialise."""
    try:
        VocabDataType.model_validate(data_type)
    except SchemaError as e:
        problem = e.errors()[0]
        where = ".".join(str(part) for part in problem["loc"])
        raise ValidationError(f"Invalid data type: {where}: {problem['msg']}") from None
    return data_type


class VocabularyDictionary:
    """Repository over vocabulary data types and their embedded records."""

    def __init__(
        self,
        store: DocumentStore,
        categories: CategoryRepository,
        min_query_length: int = 2,
    ):
        self.store = store
        self.categories = categories
        self.min_query_length = min_query_length

    # -------------------------------------------------------------------------
    # Document access
    # -------------------------------------------------------------------------

    def _load(self) -> list[dict[str, Any]]:
        return self.store.load(DOCUMENT).get(KEY, [])

    def _save(self, data_types: list[dict[str, Any]]) -> None:
        self.store.save(DOCUMENT, {KEY: data_types})

    @staticmethod
    def _locate(data_types: list[dict[str, Any]], data_type_id: str) -> int:
        for i, data_type in enumerate(data_types):
            if data_type.get("id") == data_type_id:
                return i
        raise NotFoundError("Data type not found")

    @staticmethod
    def _locate_property(data_type: dict[str, Any], property_id: str) -> int:
        for i, prop in enumerate(data_type.setdefault("properties", [])):
            if prop.get("id") == property_id:
                return i
        raise NotFoundError("Property not found")

    @staticmethod
    def _touch(data_type: dict[str, Any], user: dict[str, Any] | None, now: str | None = None) -> None:
        data_type["updatedAt"] = now or utc_now()
        data_type["updatedBy"] = user

    def _mutate(self, data_type_id: str, user: dict[str, Any] | None, change) -> dict[str, Any]:
        """Load, apply ``change`` to one data type, stamp and save it."""
        data_types = self._load()
        index = self._locate(data_types, data_type_id)
        data_type = data_types[index]
        change(data_type)
        self._touch(data_type, user)
        _checked(data_type)
        self._save(data_types)
        return data_type

    # -------------------------------------------------------------------------
    # Data types
    # -------------------------------------------------------------------------

    def list_data_types(self, category: str | None = None, search: str | None = None) -> list[dict[str, Any]]:
        data_types = self._load()
        if category:
            data_types = [d for d in data_types if d.get("category") == category]
        q = (search or "").strip().lower()
        if len(q) >= self.min_query_length:
            data_types = [d for d in data_types if _matches(q, d.get("name"), d.get("description"))]
        return data_types

    def get_data_type(self, data_type_id: str) -> dict[str, Any]:
        data_types = self._load()
        return data_types[self._locate(data_types, data_type_id)]

    def create_data_type(self, payload: dict[str, Any], user: dict[str, Any] | None = None) -> dict[str, Any]:
        name = require(payload, "name", "Name")
        data_types = self._load()

        data_type_id = payload.get("id") or slugify(name) or timestamp_id("datatype")
        if any(d.get("id") == data_type_id for d in data_types):
            raise ConflictError(f"Data type with ID '{data_type_id}' already exists")

        now = utc_now()
        data_type = _fill(DATA_TYPE_DEFAULTS, payload)
        _normalise_embedded(data_type, user, now)
        data_type.setdefault("parentTypeId", None)
        data_type.update(id=data_type_id, createdAt=now, updatedAt=now, createdBy=user)
        _checked(data_type)

        data_types.append(data_type)
        self._save(data_types)
        log.info(f"Created vocabulary data type {data_type_id}")
        return data_type

    def update_data_type(
        self, data_type_id: str, changes: dict[str, Any], user: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        data_types = self._load()
        index = self._locate(data_types, data_type_id)

        parent = changes.get("parentTypeId")
        if parent is not None and parent == data_type_id:
            raise ValidationError("A data type cannot be its own parent")

        data_type = apply_patch(
            data_types[index],
            changes,
            required=("name",),
            protected=("id", "createdAt", "createdBy"),
            defaults=DATA_TYPE_DEFAULTS,
        )
        self._touch(data_type, user)
        if changes.get("properties") is not None:
            data_type["properties"] = _embedded_properties(changes["properties"], user, data_type["updatedAt"])
        if changes.get("sources") is not None:
            data_type["sources"] = _embedded_sources(changes["sources"], user, data_type["updatedAt"])
        _checked(data_type)
        data_types[index] = data_type
        self._save(data_types)
        return data_type

    def delete_data_type(self, data_type_id: str) -> None:
        data_types = self._load()
        index = self._locate(data_types, data_type_id)
        del data_types[index]
        self._save(data_types)
        log.info(f"Deleted vocabulary data type {data_type_id}")

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    def add_property(
        self, data_type_id: str, payload: dict[str, Any], user: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        name = require(payload, "name", "Property name")
        if payload.get("valueType") is not None:
            _validate_value_type(payload["valueType"])

        def change(data_type):
            properties = data_type.setdefault("properties", [])
            if any(p.get("name") == name for p in properties):
                raise ConflictError("Property with this name already exists")
            prop = _fill(PROPERTY_DEFAULTS, payload)
            prop["id"] = payload.get("id") or timestamp_id("prop")
            if any(p.get("id") == prop["id"] for p in properties):
                raise ConflictError(f"Property with ID '{prop['id']}' already exists")
            if not prop["displayName"]:
                prop["displayName"] = name
            properties.append(prop)

        return self._mutate(data_type_id, user, change)

    def update_property(
        self,
        data_type_id: str,
        property_id: str,
        changes: dict[str, Any],
        user: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        if changes.get("valueType") is not None:
            _validate_value_type(changes["valueType"])

        def change(data_type):
            index = self._locate_property(data_type, property_id)
            properties = data_type["properties"]
            new_name = changes.get("name")
            if new_name and any(
                p.get("name") == new_name and p.get("id") != property_id for p in properties
            ):
                raise ConflictError("Property with this name already exists")
            properties[index] = apply_patch(
                properties[index], changes, required=("name",), defaults=PROPERTY_DEFAULTS
            )

        return self._mutate(data_type_id, user, change)

    def delete_property(
        self, data_type_id: str, property_id: str, user: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        def change(data_type):
            del data_type["properties"][self._locate_property(data_type, property_id)]

        return self._mutate(data_type_id, user, change)

    # -------------------------------------------------------------------------
    # Provider mappings
    # -------------------------------------------------------------------------

    @staticmethod
    def _new_mapping(prop: dict[str, Any], payload: dict[str, Any], user, now: str) -> dict[str, Any]:
        mapping = _fill(MAPPING_DEFAULTS, payload)
        if not mapping["providerFieldName"]:
            mapping["providerFieldName"] = prop.get("name", "")
        mapping.update(addedAt=now, addedBy=user)
        return mapping

    def add_mapping(
        self,
        data_type_id: str,
        property_id: str,
        payload: dict[str, Any],
        user: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        entity_id = require(payload, "entityId", "Entity ID")

        def change(data_type):
            prop = data_type["properties"][self._locate_property(data_type, property_id)]
            mappings = prop.setdefault("providerMappings", [])
            if any(m.get("entityId") == entity_id for m in mappings):
                raise ConflictError("This entity is already mapped to this property")
            mappings.append(self._new_mapping(prop, payload, user, utc_now()))

        return self._mutate(data_type_id, user, change)

    def update_mapping(
        self,
        data_type_id: str,
        property_id: str,
        entity_id: str,
        changes: dict[str, Any],
        user: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        def change(data_type):
            prop = data_type["properties"][self._locate_property(data_type, property_id)]
            mappings = prop.setdefault("providerMappings", [])
            index = next((i for i, m in enumerate(mappings) if m.get("entityId") == entity_id), None)
            if index is None:
                raise NotFoundError("Provider mapping not found")
            mappings[index] = apply_patch(
                mappings[index],
                changes,
                protected=("entityId", "addedAt", "addedBy"),
                defaults=MAPPING_DEFAULTS,
            )

        return self._mutate(data_type_id, user, change)

    def delete_mapping(
        self,
        data_type_id: str,
        property_id: str,
        entity_id: str,
        user: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        def change(data_type):
            prop = data_type["properties"][self._locate_property(data_type, property_id)]
            mappings = prop.get("providerMappings") or []
            kept = [m for m in mappings if m.get("entityId") != entity_id]
            if len(kept) == len(mappings):
                raise NotFoundError("Provider mapping not found")
            prop["providerMappings"] = kept

        return self._mutate(data_type_id, user, change)

    def bulk_add_mapping(
        self,
        data_type_id: str,
        property_ids: Any,
        mapping: dict[str, Any] | None,
        user: dict[str, Any] | None = None,
    ) -> tuple[int, int, dict[str, Any]]:
        """Attach one provider mapping to many properties.

        Unknown property ids and properties already mapped to the entity are
        skipped.

        Returns:
            Tuple of (added, skipped, data type)
        """
        data_types = self._load()
        data_type = data_types[self._locate(data_types, data_type_id)]

        if not isinstance(property_ids, list) or not property_ids:
            raise ValidationError("Property IDs array is required")
        if not mapping or not mapping.get("entityId"):
            raise ValidationError("Entity ID is required in mapping")

        now = utc_now()
        by_id = {p.get("id"): p for p in data_type.setdefault("properties", [])}
        added = skipped = 0
        for property_id in property_ids:
            prop = by_id.get(property_id)
            if prop is None:
                skipped += 1
                continue
            mappings = prop.setdefault("providerMappings", [])
            if any(m.get("entityId") == mapping["entityId"] for m in mappings):
                skipped += 1
                continue
            mappings.append(self._new_mapping(prop, mapping, user, now))
            added += 1

        self._touch(data_type, user, now)
        _checked(data_type)
        self._save(data_types)
        return added, skipped, data_type

    def bulk_remove_mapping(
        self,
        data_type_id: str,
        property_ids: Any,
        entity_id: str | None,
        user: dict[str, Any] | None = None,
    ) -> tuple[int, int, dict[str, Any]]:
        """Detach an entity's mapping from many properties.

        Returns:
            Tuple of (removed, skipped, data type)
        """
        data_types = self._load()
        data_type = data_types[self._locate(data_types, data_type_id)]

        if not isinstance(property_ids, list) or not property_ids:
            raise ValidationError("Property IDs array is required")
        if not entity_id:
            raise ValidationError("Entity ID is required")

        by_id = {p.get("id"): p for p in data_type.setdefault("properties", [])}
        removed = skipped = 0
        for property_id in property_ids:
            prop = by_id.get(property_id)
            mappings = (prop or {}).get("providerMappings") or []
            kept = [m for m in mappings if m.get("entityId") != entity_id]
            if prop is None or len(kept) == len(mappings):
                skipped += 1
                continue
            prop["providerMappings"] = kept
            removed += 1

        self._touch(data_type, user)
        self._save(data_types)
        return removed, skipped, data_type

    # -------------------------------------------------------------------------
    # Sources
    # -------------------------------------------------------------------------

    def add_source(
        self, data_type_id: str, payload: dict[str, Any], user: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        entity_id = require(payload, "entityId", "Entity ID")

        def change(data_type):
            sources = data_type.setdefault("sources", [])
            if any(s.get("entityId") == entity_id for s in sources):
                raise ConflictError("This entity is already a source for this data type")
            source = _fill(SOURCE_DEFAULTS, payload)
            source.update(addedAt=utc_now(), addedBy=user)
            sources.append(source)

        return self._mutate(data_type_id, user, change)

    def update_source(
        self,
        data_type_id: str,
        entity_id: str,
        changes: dict[str, Any],
        user: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        def change(data_type):
            sources = data_type.setdefault("sources", [])
            index = next((i for i, s in enumerate(sources) if s.get("entityId") == entity_id), None)
            if index is None:
                raise NotFoundError("Source not found")
            sources[index] = apply_patch(
                sources[index],
                changes,
                protected=("entityId", "addedAt", "addedBy"),
                defaults=SOURCE_DEFAULTS,
            )

        return self._mutate(data_type_id, user, change)

    def delete_source(
        self, data_type_id: str, entity_id: str, user: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        def change(data_type):
            sources = data_type.get("sources") or []
            kept = [s for s in sources if s.get("entityId") != entity_id]
            if len(kept) == len(sources):
                raise NotFoundError("Source not found")
            data_type["sources"] = kept

        return self._mutate(data_type_id, user, change)

    # -------------------------------------------------------------------------
    # Search, export, stats, reseed
    # -------------------------------------------------------------------------

    def search(self, query: str | None) -> list[dict[str, Any]]:
        """Data types whose own text or any property's text matches."""
        q = (query or "").strip().lower()
        if len(q) < self.min_query_length:
            return []

        return [
            d for d in self._load()
            if _matches(q, d.get("name"), d.get("description"))
            or any(
                _matches(q, p.get("name"), p.get("displayName"), p.get("description"))
                for p in d.get("properties") or []
            )
        ]

    def export(self) -> dict[str, Any]:
        return {
            "exportedAt": utc_now(),
            "categories": self.categories.list_all(),
            "dataTypes": self._load(),
        }

    def stats(self) -> dict[str, Any]:
        data_types = self._load()
        category_counts: dict[str, int] = {}
        for d in data_types:
            category = d.get("category") or "other"
            category_counts[category] = category_counts.get(category, 0) + 1

        return {
            "totalDataTypes": len(data_types),
            "totalProperties": sum(len(d.get("properties") or []) for d in data_types),
            "totalSources": sum(len(d.get("sources") or []) for d in data_types),
            "totalCategories": self.categories.count(),
            "categoryCounts": category_counts,
        }

    def reseed(self) -> dict[str, int]:
        document = self.store.reseed(DOCUMENT)
        data_types = document.get(KEY, [])
        return {
            "dataTypes": len(data_types),
            "properties": sum(len(d.get("properties") or []) for d in data_types),
        }


# Global repository instance
_dictionary: VocabularyDictionary | None = None


def get_dictionary() -> VocabularyDictionary:
    """Get the global vocabulary dictionary.

    Shares the category repository of the furnisher catalogue.
    """
    global _dictionary

    if _dictionary is None:
        from catalogue_console.catalogue.repository import get_catalogue
        from catalogue_console.config import DICTIONARY_DIR, SEARCH_MIN_QUERY_LENGTH, SEED_DIR

        _dictionary = VocabularyDictionary(
            build_dictionary_store(DICTIONARY_DIR, SEED_DIR),
            get_catalogue().categories,
            min_query_length=SEARCH_MIN_QUERY_LENGTH,
        )
        log.info(f"Vocabulary dictionary at {DICTIONARY_DIR}")

    return _dictionary


def reset_dictionary() -> None:
    """Reset the global repository (for testing)."""
    global _dictionary
    _dictionary = None
