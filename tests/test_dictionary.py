"""Tests for the vocabulary dictionary repository."""
import pytest

from catalogue_console.dictionary.repository import VocabularyDictionary
from catalogue_console.store.errors import ConflictError, NotFoundError, ValidationError

EDITOR = {"id": "test-editor", "login": "test-editor", "name": "Test Editor"}


class TestDataTypes:
    """Tests for vocabulary data type CRUD."""

    def test_seeded(self, dictionary: VocabularyDictionary):
        ids = [d["id"] for d in dictionary.list_data_types()]
        assert ids == ["property-address", "credit-score"]

    def test_filter_by_category(self, dictionary: VocabularyDictionary):
        assert [d["id"] for d in dictionary.list_data_types(category="financial")] == ["credit-score"]

    def test_filter_by_search(self, dictionary: VocabularyDictionary):
        assert [d["id"] for d in dictionary.list_data_types(search="civic")] == ["property-address"]
        # Below the threshold the search filter is ignored
        assert len(dictionary.list_data_types(search="c")) == 2

    def test_create_slugifies_name(self, dictionary: VocabularyDictionary):
        data_type = dictionary.create_data_type({"name": "Employment History"}, EDITOR)
        assert data_type["id"] == "employment-history"
        assert data_type["category"] == "other"
        assert data_type["properties"] == []
        assert data_type["sources"] == []
        assert data_type["parentTypeId"] is None
        assert data_type["createdBy"] == EDITOR

    def test_create_fills_inline_properties_and_sources(self, dictionary: VocabularyDictionary):
        data_type = dictionary.create_data_type({
            "name": "Employment",
            "properties": [
                {"name": "employer"},
                {"name": "startDate", "valueType": "date",
                 "providerMappings": [{"entityId": "equifax-canada"}]},
            ],
            "sources": [{"entityId": "equifax-canada"}],
        }, EDITOR)

        employer, start = data_type["properties"]
        assert employer["id"].startswith("prop-")
        assert employer["id"] != start["id"]
        assert employer["displayName"] == "employer"
        assert employer["valueType"] == "string"
        assert start["providerMappings"][0]["providerFieldName"] == "startDate"
        assert data_type["sources"][0]["regionsCovered"] == []
        assert data_type["sources"][0]["addedBy"] == EDITOR

    def test_create_rejects_malformed_inline_records(self, dictionary: VocabularyDictionary):
        with pytest.raises(ValidationError, match="Property name is required"):
            dictionary.create_data_type({"name": "Employment", "properties": [{"valueType": "string"}]})
        with pytest.raises(ValidationError, match="Entity ID is required"):
            dictionary.create_data_type({"name": "Employment", "sources": [{"notes": "x"}]})
        with pytest.raises(ValidationError, match="path"):
            dictionary.create_data_type({"name": "Employment", "properties": [{"name": "a", "path": 1}]})
        assert len(dictionary.list_data_types()) == 2

    def test_update_replaces_inline_properties(self, dictionary: VocabularyDictionary):
        data_type = dictionary.update_data_type("credit-score", {"properties": [{"name": "bureau"}]})
        assert [p["name"] for p in data_type["properties"]] == ["bureau"]
        assert data_type["properties"][0]["id"].startswith("prop-")

        with pytest.raises(ValidationError, match="Entity ID is required"):
            dictionary.update_data_type("credit-score", {"sources": [{}]})
        assert dictionary.get_data_type("credit-score")["sources"] == data_type["sources"]

    def test_create_duplicate_conflicts(self, dictionary: VocabularyDictionary):
        with pytest.raises(ConflictError):
            dictionary.create_data_type({"name": "Property Address"})

    def test_cannot_be_own_parent(self, dictionary: VocabularyDictionary):
        with pytest.raises(ValidationError, match="own parent"):
            dictionary.update_data_type("credit-score", {"parentTypeId": "credit-score"})

    def test_update_stamps_editor(self, dictionary: VocabularyDictionary):
        updated = dictionary.update_data_type("credit-score", {"description": "Scores"}, EDITOR)
        assert updated["description"] == "Scores"
        assert updated["updatedBy"] == EDITOR
        assert len(updated["properties"]) == 1

    def test_delete(self, dictionary: VocabularyDictionary):
        dictionary.delete_data_type("credit-score")
        with pytest.raises(NotFoundError, match="Data type not found"):
            dictionary.get_data_type("credit-score")


class TestProperties:
    """Tests for embedded properties."""

    def test_add_returns_parent(self, dictionary: VocabularyDictionary):
        data_type = dictionary.add_property("credit-score", {"name": "bureau"}, EDITOR)
        prop = data_type["properties"][-1]
        assert prop["id"].startswith("prop-")
        assert prop["displayName"] == "bureau"
        assert prop["providerMappings"] == []
        assert data_type["updatedBy"] == EDITOR

    def test_duplicate_name_conflicts(self, dictionary: VocabularyDictionary):
        with pytest.raises(ConflictError, match="Property with this name already exists"):
            dictionary.add_property("credit-score", {"name": "score"})

    def test_invalid_value_type(self, dictionary: VocabularyDictionary):
        with pytest.raises(ValidationError, match="Invalid valueType"):
            dictionary.add_property("credit-score", {"name": "x", "valueType": "blob"})

    def test_update(self, dictionary: VocabularyDictionary):
        data_type = dictionary.update_property("credit-score", "prop-score", {"required": False})
        assert data_type["properties"][0]["required"] is False
        assert data_type["properties"][0]["name"] == "score"

    def test_update_rename_conflict(self, dictionary: VocabularyDictionary):
        with pytest.raises(ConflictError):
            dictionary.update_property(
                "property-address", "prop-postal-code", {"name": "streetAddress"}
            )

    def test_delete_unknown(self, dictionary: VocabularyDictionary):
        with pytest.raises(NotFoundError, match="Property not found"):
            dictionary.delete_property("credit-score", "nope")


class TestMappings:
    """Tests for provider mappings."""

    def test_add_defaults_provider_field_name(self, dictionary: VocabularyDictionary):
        data_type = dictionary.add_mapping(
            "credit-score", "prop-score", {"entityId": "equifax-canada"}, EDITOR
        )
        [mapping] = data_type["properties"][0]["providerMappings"]
        assert mapping["providerFieldName"] == "score"
        assert mapping["addedBy"] == EDITOR
        assert mapping["regionsCovered"] == []

    def test_add_duplicate_conflicts(self, dictionary: VocabularyDictionary):
        with pytest.raises(ConflictError, match="already mapped"):
            dictionary.add_mapping(
                "property-address", "prop-street", {"entityId": "bc-land-title"}
            )

    def test_add_requires_entity(self, dictionary: VocabularyDictionary):
        with pytest.raises(ValidationError, match="Entity ID is required"):
            dictionary.add_mapping("credit-score", "prop-score", {})

    def test_update_keeps_entity(self, dictionary: VocabularyDictionary):
        data_type = dictionary.update_mapping(
            "property-address",
            "prop-street",
            "bc-land-title",
            {"entityId": "other", "notes": "checked"},
        )
        [mapping] = data_type["properties"][0]["providerMappings"]
        assert mapping["entityId"] == "bc-land-title"
        assert mapping["notes"] == "checked"

    def test_delete(self, dictionary: VocabularyDictionary):
        data_type = dictionary.delete_mapping("property-address", "prop-street", "bc-land-title")
        assert data_type["properties"][0]["providerMappings"] == []
        with pytest.raises(NotFoundError, match="Provider mapping not found"):
            dictionary.delete_mapping("property-address", "prop-street", "bc-land-title")


class TestBulkMappings:
    """Tests for bulk mapping add/remove."""

    def test_bulk_add_skips_unknown_and_existing(self, dictionary: VocabularyDictionary):
        added, skipped, data_type = dictionary.bulk_add_mapping(
            "property-address",
            ["prop-street", "prop-postal-code", "nope"],
            {"entityId": "bc-land-title", "entityName": "BC Land Title Office"},
            EDITOR,
        )
        assert (added, skipped) == (1, 2)
        postal = data_type["properties"][1]
        assert postal["providerMappings"][0]["providerFieldName"] == "postalCode"

    def test_bulk_add_validation(self, dictionary: VocabularyDictionary):
        with pytest.raises(ValidationError, match="Property IDs array is required"):
            dictionary.bulk_add_mapping("property-address", [], {"entityId": "x"})
        with pytest.raises(ValidationError, match="Entity ID is required in mapping"):
            dictionary.bulk_add_mapping("property-address", ["prop-street"], {})
        with pytest.raises(NotFoundError):
            dictionary.bulk_add_mapping("nope", ["prop-street"], {"entityId": "x"})

    def test_bulk_remove(self, dictionary: VocabularyDictionary):
        removed, skipped, data_type = dictionary.bulk_remove_mapping(
            "property-address", ["prop-street", "prop-postal-code"], "bc-land-title"
        )
        assert (removed, skipped) == (1, 1)
        assert data_type["properties"][0]["providerMappings"] == []

    def test_bulk_remove_validation(self, dictionary: VocabularyDictionary):
        with pytest.raises(ValidationError, match="Entity ID is required"):
            dictionary.bulk_remove_mapping("property-address", ["prop-street"], None)


class TestSources:
    """Tests for data type sources."""

    def test_add_and_duplicate(self, dictionary: VocabularyDictionary):
        data_type = dictionary.add_source(
            "credit-score", {"entityId": "equifax-canada", "updateFrequency": "monthly"}
        )
        assert data_type["sources"][0]["updateFrequency"] == "monthly"
        with pytest.raises(ConflictError):
            dictionary.add_source("credit-score", {"entityId": "equifax-canada"})

    def test_update_and_delete(self, dictionary: VocabularyDictionary):
        data_type = dictionary.update_source(
            "property-address", "bc-land-title", {"updateFrequency": "weekly"}
        )
        assert data_type["sources"][0]["updateFrequency"] == "weekly"
        data_type = dictionary.delete_source("property-address", "bc-land-title")
        assert data_type["sources"] == []
        with pytest.raises(NotFoundError, match="Source not found"):
            dictionary.update_source("property-address", "bc-land-title", {})


class TestSearchExportStats:
    """Tests for dictionary search, export, stats and reseed."""

    def test_search_matches_properties(self, dictionary: VocabularyDictionary):
        assert [d["id"] for d in dictionary.search("postal")] == ["property-address"]
        assert dictionary.search("p") == []

    def test_export(self, dictionary: VocabularyDictionary):
        export = dictionary.export()
        assert len(export["dataTypes"]) == 2
        assert len(export["categories"]) == 4
        assert "exportedAt" in export

    def test_stats(self, dictionary: VocabularyDictionary):
        stats = dictionary.stats()
        assert stats["totalDataTypes"] == 2
        assert stats["totalProperties"] == 3
        assert stats["totalSources"] == 1
        assert stats["totalCategories"] == 4
        assert stats["categoryCounts"] == {"property": 1, "financial": 1}

    def test_reseed(self, dictionary: VocabularyDictionary):
        dictionary.delete_data_type("credit-score")
        assert dictionary.reseed() == {"dataTypes": 2, "properties": 3}
        assert len(dictionary.list_data_types()) == 2
