"""Tests for the whole-document JSON store and the id/patch helpers."""
import json
from pathlib import Path

import pytest

from catalogue_console.store.errors import DocumentCorruptError, NotFoundError, ValidationError
from catalogue_console.store.ids import slugify, timestamp_id
from catalogue_console.store.json_store import DocumentLayout, JsonDocumentStore
from catalogue_console.store.patch import apply_patch, require


@pytest.fixture
def seed_file(temp_dir: Path) -> Path:
    path = temp_dir / "seed.json"
    path.write_text(json.dumps({
        "widgets": [{"id": "w1"}, {"id": "w2"}],
        "gadgets": [{"id": "g1"}],
    }))
    return path


@pytest.fixture
def store(temp_dir: Path, seed_file: Path) -> JsonDocumentStore:
    return JsonDocumentStore(
        temp_dir / "docs",
        {
            "widgets": DocumentLayout(lambda: {"widgets": []}, seed_file, "widgets"),
            "plain": DocumentLayout(lambda: {"items": []}),
            "listing": DocumentLayout(list),
        },
    )


class TestJsonDocumentStore:
    """Tests for load/save/seed behaviour."""

    def test_first_load_copies_seed_key(self, store: JsonDocumentStore):
        """An absent document is created from its key of the seed file."""
        assert not store.exists("widgets")
        document = store.load("widgets")
        assert document == {"widgets": [{"id": "w1"}, {"id": "w2"}]}
        assert store.exists("widgets")

    def test_first_load_without_seed_uses_default(self, store: JsonDocumentStore, temp_dir: Path):
        assert store.load("plain") == {"items": []}
        assert json.loads((temp_dir / "docs" / "plain.json").read_text()) == {"items": []}

    def test_bare_array_document(self, store: JsonDocumentStore):
        assert store.load("listing") == []
        store.save("listing", [{"id": "a"}])
        assert store.load("listing") == [{"id": "a"}]

    def test_save_replaces_whole_document(self, store: JsonDocumentStore):
        store.load("widgets")
        store.save("widgets", {"widgets": [{"id": "only"}]})
        assert store.load("widgets") == {"widgets": [{"id": "only"}]}

    def test_missing_seed_file_falls_back_to_default(self, temp_dir: Path):
        store = JsonDocumentStore(
            temp_dir / "docs",
            {"widgets": DocumentLayout(lambda: {"widgets": []}, temp_dir / "absent.json", "widgets")},
        )
        assert store.load("widgets") == {"widgets": []}

    def test_seed_file_is_not_reread_once_document_exists(
        self, store: JsonDocumentStore, seed_file: Path
    ):
        store.load("widgets")
        seed_file.write_text(json.dumps({"widgets": [{"id": "changed"}]}))
        assert store.load("widgets") == {"widgets": [{"id": "w1"}, {"id": "w2"}]}

    def test_reseed_overwrites(self, store: JsonDocumentStore):
        store.save("widgets", {"widgets": []})
        document = store.reseed("widgets")
        assert len(document["widgets"]) == 2
        assert store.load("widgets") == document

    def test_reseed_without_seed_raises(self, store: JsonDocumentStore):
        with pytest.raises(NotFoundError):
            store.reseed("plain")

    def test_corrupt_document_raises(self, store: JsonDocumentStore, temp_dir: Path):
        (temp_dir / "docs" / "plain.json").write_text("{not json")
        with pytest.raises(DocumentCorruptError) as exc_info:
            store.load("plain")
        assert exc_info.value.status_code == 500

    def test_unknown_document_name(self, store: JsonDocumentStore):
        with pytest.raises(KeyError):
            store.load("nope")


class TestIds:
    """Tests for id generation."""

    def test_slugify(self):
        assert slugify("Property Address") == "property-address"
        assert slugify("  Credit -- Score!  ") == "credit-score"
        assert slugify("Émile's Data") == "miles-data"

    def test_slugify_empty_when_nothing_allowed(self):
        assert slugify("!!!") == ""

    def test_timestamp_id(self):
        value = timestamp_id("furnisher")
        prefix, stamp = value.split("-")
        assert prefix == "furnisher"
        assert stamp.isdigit() and len(stamp) >= 13

    def test_timestamp_id_with_suffix(self):
        assert timestamp_id("attr", 3).endswith("-3")


class TestPatch:
    """Tests for partial update semantics."""

    def test_omitted_fields_unchanged(self):
        record = {"id": "a", "name": "A", "description": "keep"}
        assert apply_patch(record, {"name": "B"}) == {"id": "a", "name": "B", "description": "keep"}

    def test_record_is_not_mutated(self):
        record = {"id": "a", "name": "A"}
        apply_patch(record, {"name": "B"})
        assert record["name"] == "A"

    def test_null_resets_to_default(self):
        record = {"id": "a", "regionsCovered": ["BC"]}
        patched = apply_patch(record, {"regionsCovered": None}, defaults={"regionsCovered": []})
        assert patched["regionsCovered"] == []

    def test_null_without_default_stores_null(self):
        patched = apply_patch({"id": "a", "website": "x"}, {"website": None})
        assert patched["website"] is None

    def test_protected_fields_ignored(self):
        patched = apply_patch({"id": "a", "name": "A"}, {"id": "b"})
        assert patched["id"] == "a"

    def test_required_field_cannot_be_blanked(self):
        with pytest.raises(ValidationError, match="name cannot be empty"):
            apply_patch({"id": "a", "name": "A"}, {"name": "  "}, required=("name",))

    def test_require(self):
        assert require({"name": "x"}, "name", "Name") == "x"
        with pytest.raises(ValidationError, match="Name is required"):
            require({}, "name", "Name")
