"""Furnisher catalogue: furnishers, their data types and attributes."""

from catalogue_console.catalogue.categories import CategoryRepository
from catalogue_console.catalogue.repository import (
    FurnisherCatalogue,
    build_catalogue_store,
    get_catalogue,
    reset_catalogue,
    resolve_regions,
)

__all__ = [
    "CategoryRepository",
    "FurnisherCatalogue",
    "build_catalogue_store",
    "get_catalogue",
    "reset_catalogue",
    "resolve_regions",
]
