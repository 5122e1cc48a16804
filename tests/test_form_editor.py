"""Tests for the form schema editor and debounced auto-save."""
import asyncio

import pytest

from catalogue_console.forms.editor import AutoSaver, FormEditor, array_move
from catalogue_console.store.errors import NotFoundError, ValidationError


class FakeFormsClient:
    """Records update_form calls in place of a ConsoleClient."""

    def __init__(self, form: dict, fail: bool = False):
        self.form = form
        self.fail = fail
        self.updates: list[dict] = []

    async def get_form(self, form_id: str) -> dict:
        return self.form

    async def update_form(self, form_id: str, body: dict) -> dict:
        if self.fail:
            raise RuntimeError("server unavailable")
        self.updates.append(body)
        return {**self.form, **body}


def _form() -> dict:
    return {
        "id": "form-1",
        "title": "Tenant Application",
        "description": "",
        "mode": "simple",
        "schema": {
            "sections": [
                {"id": "s1", "title": "Applicant", "fields": [
                    {"id": "f1", "type": "text", "label": "Name", "name": "applicant.name"},
                    {"id": "f2", "type": "email", "label": "Email", "name": "applicant.email"},
                ]},
                {"id": "s2", "title": "Proof", "fields": []},
            ],
        },
    }


class TestArrayMove:
    def test_move(self):
        assert array_move(["a", "b", "c"], 0, 2) == ["b", "c", "a"]
        assert array_move(["a", "b", "c"], 2, 0) == ["c", "a", "b"]

    def test_out_of_range(self):
        with pytest.raises(ValidationError):
            array_move(["a"], 0, 1)


class TestEditorOperations:
    """Schema operations without saving."""

    def test_operations_replace_schema_object(self):
        editor = FormEditor(_form())
        before = editor.schema
        editor.add_section("Extra")
        assert editor.schema is not before
        assert len(before.sections) == 2
        assert [s.title for s in editor.schema.sections] == ["Applicant", "Proof", "Extra"]

    def test_add_and_update_field(self):
        editor = FormEditor(_form())
        editor.add_field("s2", "number", label="Income", name="finances.income")
        field = editor.schema.sections[1].fields[0]
        assert field.type == "number" and field.name == "finances.income"

        editor.update_field(field.id, label="Annual income", required=True)
        updated = editor.schema.sections[1].fields[0]
        assert updated.label == "Annual income" and updated.required

    def test_update_field_to_credential_adds_config(self):
        editor = FormEditor(_form())
        editor.update_field("f1", type="verifiable-credential")
        field = editor.schema.sections[0].fields[0]
        assert field.credential_config is not None

        editor.update_field("f1", type="text")
        assert editor.schema.sections[0].fields[0].credential_config is None

    def test_move_field_within_section(self):
        editor = FormEditor(_form())
        editor.move_field("s1", 0, 1)
        assert [f.id for f in editor.schema.sections[0].fields] == ["f2", "f1"]

    def test_move_field_to_section(self):
        editor = FormEditor(_form())
        editor.move_field_to_section("f2", "s2")
        assert [f.id for f in editor.schema.sections[0].fields] == ["f1"]
        assert [f.id for f in editor.schema.sections[1].fields] == ["f2"]

    def test_move_and_delete_section(self):
        editor = FormEditor(_form())
        editor.move_section(1, 0)
        assert [s.id for s in editor.schema.sections] == ["s2", "s1"]
        editor.delete_section("s2")
        assert [s.id for s in editor.schema.sections] == ["s1"]

    def test_unknown_ids(self):
        editor = FormEditor(_form())
        with pytest.raises(NotFoundError, match="Section not found"):
            editor.add_field("nope")
        with pytest.raises(NotFoundError, match="Field not found"):
            editor.delete_field("nope")

    def test_screens(self):
        editor = FormEditor(_form())
        editor.set_info_screen("Before you start", "Have your ID ready")
        editor.set_success_screen("Done", "We will be in touch")
        assert editor.schema.info_screen.title == "Before you start"
        assert editor.schema.success_screen.content == "We will be in touch"
        editor.set_info_screen(None)
        assert editor.schema.info_screen is None

    def test_predicate(self):
        editor = FormEditor(_form())
        editor.update_field("f1", type="verifiable-credential")
        editor.set_credential_config("f1", required_attributes=["birthDate"])
        editor.set_predicate("f1", ">=", 18, attribute_path="age")
        config = editor.schema.sections[0].fields[0].credential_config
        assert config.required_attributes == ["birthDate"]
        assert config.attribute_path == "age"
        assert config.predicate.operator == ">="

        editor.set_predicate("f1", None)
        assert editor.schema.sections[0].fields[0].credential_config.predicate is None

    def test_predicate_on_plain_field_rejected(self):
        editor = FormEditor(_form())
        with pytest.raises(ValidationError, match="not a verifiable credential field"):
            editor.set_predicate("f1", ">=", 18, attribute_path="age")

    def test_invalid_change_keeps_previous_schema(self):
        editor = FormEditor(_form())
        before = editor.schema
        with pytest.raises(ValidationError):
            editor.update_field("f1", type="signature")
        assert editor.schema is before

    def test_empty_title_rejected(self):
        editor = FormEditor(_form())
        with pytest.raises(ValidationError, match="Title cannot be empty"):
            editor.update_details(title="  ")


class TestAutoSave:
    """Tests for debounced saving."""

    async def test_burst_of_changes_saves_once(self):
        client = FakeFormsClient(_form())
        editor = FormEditor(_form(), client, delay=0.05)

        editor.add_section("One")
        editor.add_section("Two")
        editor.update_details(title="Renamed")
        assert editor.saver.pending
        assert client.updates == []

        await asyncio.sleep(0.2)
        assert len(client.updates) == 1
        saved = client.updates[0]
        assert saved["title"] == "Renamed"
        assert [s["title"] for s in saved["schema"]["sections"]][-2:] == ["One", "Two"]
        assert not editor.saver.dirty
        assert editor.saver.last_saved is not None

    async def test_change_restarts_quiet_period(self):
        client = FakeFormsClient(_form())
        editor = FormEditor(_form(), client, delay=0.3)

        editor.add_section("One")
        await asyncio.sleep(0.15)
        editor.add_section("Two")
        await asyncio.sleep(0.2)
        assert client.updates == []

        await asyncio.sleep(0.4)
        assert len(client.updates) == 1

    async def test_close_flushes_pending_save(self):
        client = FakeFormsClient(_form())
        editor = FormEditor(_form(), client, delay=10)
        editor.add_section("One")

        await editor.close()
        assert len(client.updates) == 1
        assert not editor.saver.pending

    async def test_save_now_raises_and_records_error(self):
        client = FakeFormsClient(_form(), fail=True)
        editor = FormEditor(_form(), client, delay=10)
        editor.add_section("One")

        with pytest.raises(RuntimeError):
            await editor.save_now()
        assert editor.saver.error == "server unavailable"
        assert editor.saver.dirty

    async def test_background_failure_is_recorded(self):
        client = FakeFormsClient(_form(), fail=True)
        editor = FormEditor(_form(), client, delay=0.01)
        editor.add_section("One")

        await asyncio.sleep(0.1)
        assert editor.saver.error == "server unavailable"
        assert not editor.saver.is_saving

    async def test_saves_do_not_overlap(self):
        active = 0
        peak = 0

        async def slow_save():
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.05)
            active -= 1

        saver = AutoSaver(slow_save, delay=0.01)
        saver.schedule()
        await asyncio.sleep(0.02)
        await asyncio.gather(saver.save_now(), saver.save_now())
        await saver.flush()

        assert peak == 1
        assert saver.save_count == 3

    async def test_open_loads_form(self):
        client = FakeFormsClient(_form())
        editor = await FormEditor.open(client, "form-1", delay=0.01)
        assert editor.title == "Tenant Application"
        assert editor.schema.sections[0].fields[1].name == "applicant.email"
