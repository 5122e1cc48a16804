"""Form schema editor with debounced auto-save.

``FormEditor`` holds the schema of one form. Every operation builds a new
:class:`FormSchema` (the previous object is left untouched), makes it current
and schedules a save. ``AutoSaver`` waits for a quiet period after the last
change before saving; each change restarts the wait. A save that has already
started always runs to completion.

Usage:
    editor = await FormEditor.open(client, form_id)
    editor.add_field(section_id, "email", label="Email", name="contact.email")
    ...
    await editor.close()   # flushes pending changes
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from pydantic.alias_generators import to_camel

from catalogue_console.forms.schema import FormSchema, parse_schema
from catalogue_console.store.errors import NotFoundError, ValidationError

log = logging.getLogger(__name__)


def array_move(items: list, old_index: int, new_index: int) -> list:
    """Remove at ``old_index`` and insert at ``new_index``, returning a new list."""
    if not (0 <= old_index < len(items)) or not (0 <= new_index < len(items)):
        raise ValidationError("Index out of range")
    moved = list(items)
    moved.insert(new_index, moved.pop(old_index))
    return moved


def _wire(changes: dict[str, Any]) -> dict[str, Any]:
    return {to_camel(k) if "_" in k else k: v for k, v in changes.items()}


class AutoSaver:
    """Debounced saver.

    Args:
        save: Coroutine function performing the save
        delay: Quiet period in seconds before a scheduled save runs
    """

    def __init__(self, save: Callable[[], Awaitable[Any]], delay: float = 2.0):
        self._save = save
        self.delay = delay
        self._timer: Optional[asyncio.TimerHandle] = None
        self._inflight: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()
        self._generation = 0

        self.dirty = False
        self.is_saving = False
        self.last_saved: Optional[datetime] = None
        self.error: Optional[str] = None
        self.save_count = 0

    @property
    def pending(self) -> bool:
        """A save is scheduled but has not started."""
        return self._timer is not None

    def schedule(self) -> None:
        """Note a change and (re)start the quiet period."""
        self.dirty = True
        self._generation += 1
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.delay, self._fire)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        self._timer = None
        self._inflight = asyncio.ensure_future(self._perform(raise_errors=False))

    async def _perform(self, raise_errors: bool) -> None:
        # Saves never overlap; a later save waits for the one in flight
        async with self._lock:
            generation = self._generation
            self.is_saving = True
            self.error = None
            try:
                await self._save()
            except Exception as e:
                self.error = str(e) or "Failed to save"
                log.warning(f"Auto-save failed: {self.error}")
                if raise_errors:
                    raise
                return
            finally:
                self.is_saving = False

            self.save_count += 1
            self.last_saved = datetime.now(timezone.utc)
            if generation == self._generation:
                self.dirty = False

    async def save_now(self) -> None:
        """Save immediately, dropping any scheduled save.

        Raises whatever the save raises.
        """
        self._cancel_timer()
        await self._perform(raise_errors=True)

    async def flush(self) -> None:
        """Run a scheduled save now and wait for any save in flight."""
        if self._timer is not None:
            await self.save_now()
        if self._inflight is not None and not self._inflight.done():
            await self._inflight


class FormEditor:
    """Immutable-update editor over one form's schema.

    Args:
        form: The form document as returned by the API
        client: Object with ``async update_form(form_id, body)``; None disables saving
        delay: Auto-save quiet period (defaults to AUTOSAVE_DELAY_SECONDS)
    """

    def __init__(self, form: dict[str, Any], client: Any = None, delay: Optional[float] = None):
        if delay is None:
            from catalogue_console.config import AUTOSAVE_DELAY_SECONDS

            delay = AUTOSAVE_DELAY_SECONDS

        self.form_id: str = form["id"]
        self.title: str = form.get("title", "")
        self.description: str = form.get("description") or ""
        self.mode: str = form.get("mode") or "simple"
        self.schema: FormSchema = parse_schema(form.get("schema") or {})
        self.client = client
        self.saver = AutoSaver(self._save, delay) if client is not None else None

    @classmethod
    async def open(cls, client: Any, form_id: str, delay: Optional[float] = None) -> "FormEditor":
        return cls(await client.get_form(form_id), client, delay)

    def document(self) -> dict[str, Any]:
        """The body PUT on save: the whole editable form."""
        return {
            "title": self.title,
            "description": self.description,
            "mode": self.mode,
            "schema": self.schema.to_document(),
        }

    async def _save(self) -> None:
        await self.client.update_form(self.form_id, self.document())

    async def save_now(self) -> None:
        if self.saver is not None:
            await self.saver.save_now()

    async def close(self) -> None:
        if self.saver is not None:
            await self.saver.flush()

    # -------------------------------------------------------------------------
    # Plumbing
    # -------------------------------------------------------------------------

    def _commit(self, document: dict[str, Any]) -> FormSchema:
        self.schema = parse_schema(document)
        if self.saver is not None:
            self.saver.schedule()
        return self.schema

    def _document(self) -> dict[str, Any]:
        return self.schema.model_dump(by_alias=True)

    @staticmethod
    def _section_index(document: dict[str, Any], section_id: str) -> int:
        for i, section in enumerate(document["sections"]):
            if section["id"] == section_id:
                return i
        raise NotFoundError("Section not found")

    @staticmethod
    def _field_position(document: dict[str, Any], field_id: str) -> tuple[int, int]:
        for si, section in enumerate(document["sections"]):
            for fi, field in enumerate(section["fields"]):
                if field["id"] == field_id:
                    return si, fi
        raise NotFoundError("Field not found")

    # -------------------------------------------------------------------------
    # Form details
    # -------------------------------------------------------------------------

    def update_details(
        self,
        title: Optional[str] = None,
        description: Optional[str] = None,
        mode: Optional[str] = None,
    ) -> None:
        if title is not None:
            if not title.strip():
                raise ValidationError("Title cannot be empty")
            self.title = title
        if description is not None:
            self.description = description
        if mode is not None:
            self.mode = mode
        if self.saver is not None:
            self.saver.schedule()

    # -------------------------------------------------------------------------
    # Sections
    # -------------------------------------------------------------------------

    def add_section(self, title: str = "New Section", index: Optional[int] = None, **props) -> FormSchema:
        document = self._document()
        section = {"title": title, "fields": [], **_wire(props)}
        if index is None:
            document["sections"].append(section)
        else:
            document["sections"].insert(index, section)
        return self._commit(document)

    def update_section(self, section_id: str, **changes) -> FormSchema:
        document = self._document()
        index = self._section_index(document, section_id)
        changes = _wire(changes)
        changes.pop("id", None)
        changes.pop("fields", None)
        document["sections"][index].update(changes)
        return self._commit(document)

    def delete_section(self, section_id: str) -> FormSchema:
        document = self._document()
        del document["sections"][self._section_index(document, section_id)]
        return self._commit(document)

    def move_section(self, old_index: int, new_index: int) -> FormSchema:
        document = self._document()
        document["sections"] = array_move(document["sections"], old_index, new_index)
        return self._commit(document)

    # -------------------------------------------------------------------------
    # Fields
    # -------------------------------------------------------------------------

    def add_field(
        self,
        section_id: str,
        field_type: str = "text",
        index: Optional[int] = None,
        **props,
    ) -> FormSchema:
        document = self._document()
        fields = document["sections"][self._section_index(document, section_id)]["fields"]
        field = {"type": field_type, "label": "", "name": "", "required": False, **_wire(props)}
        if index is None:
            fields.append(field)
        else:
            fields.insert(index, field)
        return self._commit(document)

    def update_field(self, field_id: str, **changes) -> FormSchema:
        """Update field properties. Changing the type to or from the
        credential type adds or drops the credential configuration."""
        document = self._document()
        si, fi = self._field_position(document, field_id)
        changes = _wire(changes)
        changes.pop("id", None)
        document["sections"][si]["fields"][fi].update(changes)
        return self._commit(document)

    def delete_field(self, field_id: str) -> FormSchema:
        document = self._document()
        si, fi = self._field_position(document, field_id)
        del document["sections"][si]["fields"][fi]
        return self._commit(document)

    def move_field(self, section_id: str, old_index: int, new_index: int) -> FormSchema:
        document = self._document()
        section = document["sections"][self._section_index(document, section_id)]
        section["fields"] = array_move(section["fields"], old_index, new_index)
        return self._commit(document)

    def move_field_to_section(
        self, field_id: str, target_section_id: str, index: Optional[int] = None
    ) -> FormSchema:
        document = self._document()
        target = self._section_index(document, target_section_id)
        si, fi = self._field_position(document, field_id)
        field = document["sections"][si]["fields"].pop(fi)
        fields = document["sections"][target]["fields"]
        if index is None:
            fields.append(field)
        else:
            fields.insert(index, field)
        return self._commit(document)

    # -------------------------------------------------------------------------
    # Screens
    # -------------------------------------------------------------------------

    def set_info_screen(self, title: Optional[str] = None, content: str = "") -> FormSchema:
        """Set the screen shown before the form; ``title=None`` removes it."""
        document = self._document()
        document["infoScreen"] = None if title is None else {"title": title, "content": content}
        return self._commit(document)

    def set_success_screen(self, title: str, content: str = "") -> FormSchema:
        document = self._document()
        document["successScreen"] = {"title": title, "content": content}
        return self._commit(document)

    # -------------------------------------------------------------------------
    # Credential fields
    # -------------------------------------------------------------------------

    def _credential_field(self, document: dict[str, Any], field_id: str) -> dict[str, Any]:
        si, fi = self._field_position(document, field_id)
        field = document["sections"][si]["fields"][fi]
        if field["type"] != "verifiable-credential":
            raise ValidationError("Field is not a verifiable credential field")
        return field

    def set_credential_config(self, field_id: str, **config) -> FormSchema:
        """Merge ``config`` into the field's credential configuration."""
        document = self._document()
        field = self._credential_field(document, field_id)
        field["credentialConfig"] = {**(field.get("credentialConfig") or {}), **_wire(config)}
        return self._commit(document)

    def set_predicate(
        self,
        field_id: str,
        operator: Optional[str],
        value: Any = None,
        attribute_path: Optional[str] = None,
    ) -> FormSchema:
        """Constrain one attribute of the presented credential.

        ``operator=None`` removes the predicate. ``attribute_path`` replaces
        the configured path when given.
        """
        document = self._document()
        field = self._credential_field(document, field_id)
        config = dict(field.get("credentialConfig") or {})
        if attribute_path is not None:
            config["attributePath"] = attribute_path
        config["predicate"] = None if operator is None else {"operator": operator, "value": value}
        field["credentialConfig"] = config
        return self._commit(document)
