"""Category repository shared by the furnisher catalogue and the dictionary."""

import logging
from typing import Any

from catalogue_console.store.errors import ConflictError, NotFoundError
from catalogue_console.store.ids import slugify, timestamp_id
from catalogue_console.store.json_store import DocumentStore
from catalogue_console.store.patch import apply_patch, require

log = logging.getLogger(__name__)

CATEGORIES_DOCUMENT = "categories"

DEFAULT_CATEGORIES: list[dict[str, Any]] = [
    {"id": "property", "name": "Property", "description": "Property and land records", "order": 1},
    {"id": "identity", "name": "Identity", "description": "Identity and personal information", "order": 2},
    {"id": "financial", "name": "Financial", "description": "Financial and mortgage data", "order": 3},
    {"id": "other", "name": "Other", "description": "Miscellaneous data types", "order": 99},
]


def default_categories() -> list[dict[str, Any]]:
    return [dict(c) for c in DEFAULT_CATEGORIES]


class CategoryRepository:
    """CRUD over the categories document (a bare JSON array)."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def _load(self) -> list[dict[str, Any]]:
        return self.store.load(CATEGORIES_DOCUMENT)

    def _save(self, categories: list[dict[str, Any]]) -> None:
        self.store.save(CATEGORIES_DOCUMENT, categories)

    def list_all(self) -> list[dict[str, Any]]:
        return sorted(self._load(), key=lambda c: c.get("order", 99))

    def count(self) -> int:
        return len(self._load())

    def create(self, payload: dict[str, Any]) -> dict[str, Any]:
        name = require(payload, "name", "Name").strip()
        categories = self._load()

        if any(c["name"].lower() == name.lower() for c in categories):
            raise ConflictError("Category with this name already exists")

        category_id = payload.get("id") or slugify(name) or timestamp_id("category")
        if any(c["id"] == category_id for c in categories):
            raise ConflictError(f"Category with ID '{category_id}' already exists")

        order = payload.get("order")
        if order is None:
            order = max((c.get("order", 0) for c in categories), default=0) + 1

        category = {
            "id": category_id,
            "name": name,
            "description": payload.get("description") or "",
            "order": order,
        }
        categories.append(category)
        self._save(categories)
        log.info(f"Created category {category_id}")
        return category

    def update(self, category_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        categories = self._load()
        index = next((i for i, c in enumerate(categories) if c["id"] == category_id), None)
        if index is None:
            raise NotFoundError("Category not found")

        new_name = changes.get("name")
        if new_name and any(
            c["name"].lower() == new_name.strip().lower() and c["id"] != category_id
            for c in categories
        ):
            raise ConflictError("Category with this name already exists")

        categories[index] = apply_patch(
            categories[index],
            changes,
            required=("name", "order"),
            defaults={"description": ""},
        )
        self._save(categories)
        return categories[index]

    def delete(self, category_id: str) -> None:
        categories = self._load()
        remaining = [c for c in categories if c["id"] != category_id]
        if len(remaining) == len(categories):
            raise NotFoundError("Category not found")
        self._save(remaining)
        log.info(f"Deleted category {category_id}")
