"""Vocabulary dictionary: data types with embedded properties and sources."""

from catalogue_console.dictionary.repository import (
    VocabularyDictionary,
    build_dictionary_store,
    get_dictionary,
    reset_dictionary,
)

__all__ = [
    "VocabularyDictionary",
    "build_dictionary_store",
    "get_dictionary",
    "reset_dictionary",
]
